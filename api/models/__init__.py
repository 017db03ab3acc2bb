# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the Sewa Directory platform.
"""

# Base models
from .base import BaseEntity, Location, RequestModel, ObjectIdPath

# Enumerations
from .enums import (
    UserRole,
    AssistanceStatus,
    RequestType,
    TokenAvailability,
    AuditEntity,
    AuditAction
)

# Core entities
from .entities import (
    User,
    LicenseKey,
    Service,
    ServiceBundle,
    AssistanceRequest,
    UserContext
)

# Request models
from .requests import (
    RegisterRequest,
    LoginRequest,
    RefreshTokenRequest,
    TokenRequest,
    LocationQuery,
    ServiceSearchQuery,
    KeywordQuery,
    ServiceRequest,
    AssistanceRequestCreate,
    AssistanceUpdate,
    UserStatusRequest,
    LicenseKeyRequest,
    BundleCreate,
    BundleUpdate,
    AuditLogQuery,
    UploadPath
)

# Response models
from .responses import (
    HalLink,
    ErrorResponse,
    MessageResponse,
    TokenStatusResponse,
    AuthUser,
    AuthTokenResponse,
    RefreshTokenResponse,
    UploadResponse,
    LocationsResponse,
    HealthCheckResponse
)

__all__ = [
    # Base models
    "BaseEntity",
    "Location",
    "RequestModel",
    "ObjectIdPath",

    # Enumerations
    "UserRole",
    "AssistanceStatus",
    "RequestType",
    "TokenAvailability",
    "AuditEntity",
    "AuditAction",

    # Core entities
    "User",
    "LicenseKey",
    "Service",
    "ServiceBundle",
    "AssistanceRequest",
    "UserContext",

    # Request models
    "RegisterRequest",
    "LoginRequest",
    "RefreshTokenRequest",
    "TokenRequest",
    "LocationQuery",
    "ServiceSearchQuery",
    "KeywordQuery",
    "ServiceRequest",
    "AssistanceRequestCreate",
    "AssistanceUpdate",
    "UserStatusRequest",
    "LicenseKeyRequest",
    "BundleCreate",
    "BundleUpdate",
    "AuditLogQuery",
    "UploadPath",

    # Response models
    "HalLink",
    "ErrorResponse",
    "MessageResponse",
    "TokenStatusResponse",
    "AuthUser",
    "AuthTokenResponse",
    "RefreshTokenResponse",
    "UploadResponse",
    "LocationsResponse",
    "HealthCheckResponse"
]
