# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the Sewa Directory platform.
"""

from enum import Enum


class UserRole(str, Enum):
    """Account role enumeration."""
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class AssistanceStatus(str, Enum):
    """Assistance request follow-up status."""
    PENDING = "pending"
    CONTACTED = "contacted"
    RESOLVED = "resolved"


class RequestType(str, Enum):
    """What an assistance request refers to."""
    SERVICE = "service"
    BUNDLE = "bundle"


class TokenAvailability(str, Enum):
    """Derived state of a service's daily token ledger."""
    DISABLED = "disabled"
    AVAILABLE = "available"
    EXHAUSTED = "exhausted"


class AuditEntity(str, Enum):
    """Entities recorded in the audit trail."""
    USER = "user"
    SERVICE = "service"
    LICENSE_KEY = "license_key"
    BUNDLE = "bundle"
    ASSISTANCE_REQUEST = "assistance_request"


class AuditAction(str, Enum):
    """Actions recorded in the audit trail."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    RECONFIGURE_TOKENS = "reconfigure_tokens"
    STATUS_CHANGE = "status_change"
    REGISTER = "register"
