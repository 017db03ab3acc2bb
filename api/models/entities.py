# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the Sewa Directory platform.

Entities use snake_case attributes; the MongoDB documents they are built
from use camelCase field names. ``from_document`` and ``to_document``
translate between the two.
"""

from datetime import datetime
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from bson import ObjectId

from .base import BaseEntity, Location
from .enums import UserRole, AssistanceStatus, RequestType


def _str_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


class User(BaseEntity):
    """Organization admin account."""

    organization_name: str = Field(..., min_length=1, max_length=200, description="Organization name")
    username: str = Field(..., min_length=1, max_length=100, description="Unique login name")
    password_hash: str = Field(..., description="bcrypt password hash")
    location: Location = Field(..., description="Organization location")
    license_key: str = Field(..., description="License key consumed at registration")
    role: UserRole = Field(default=UserRole.ADMIN, description="Account role")
    is_active: bool = Field(default=True, description="Whether the account may log in")

    @field_validator('organization_name', 'username')
    @classmethod
    def validate_not_blank(cls, v):
        """Reject whitespace-only names."""
        if not v.strip():
            raise ValueError('Value cannot be empty')
        return v.strip()

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "User":
        return cls(
            id=str(doc["_id"]),
            organization_name=doc["organizationName"],
            username=doc["username"],
            password_hash=doc["password"],
            location=doc["location"],
            license_key=doc.get("licenseKey", ""),
            role=doc.get("role", UserRole.ADMIN.value),
            is_active=doc.get("isActive", True),
            created_at=doc.get("createdAt") or datetime.utcnow(),
            updated_at=doc.get("updatedAt") or datetime.utcnow()
        )

    def public_profile(self) -> Dict[str, Any]:
        """Profile returned to clients; never includes the password hash."""
        return {
            "id": self.id,
            "organizationName": self.organization_name,
            "username": self.username,
            "location": self.location.model_dump(),
            "role": self.role
        }


class LicenseKey(BaseEntity):
    """Single-use key required to register an organization."""

    key: str = Field(..., description="License key value")
    is_used: bool = Field(default=False, description="Whether the key has been consumed")
    used_by: Optional[str] = Field(None, description="User who consumed the key")
    created_by: Optional[str] = Field(None, description="Issuer (None for the system superadmin)")
    expires_at: Optional[datetime] = Field(None, description="Optional expiry")

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check whether the key is past its expiry."""
        if self.expires_at is None:
            return False
        return self.expires_at < (now or datetime.utcnow())

    def is_redeemable(self, now: Optional[datetime] = None) -> bool:
        return not self.is_used and not self.is_expired(now)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "LicenseKey":
        return cls(
            id=str(doc["_id"]),
            key=doc["key"],
            is_used=doc.get("isUsed", False),
            used_by=_str_id(doc.get("usedBy")),
            created_by=_str_id(doc.get("createdBy")),
            expires_at=doc.get("expiresAt"),
            created_at=doc.get("createdAt") or datetime.utcnow(),
            updated_at=doc.get("updatedAt") or datetime.utcnow()
        )


class Service(BaseEntity):
    """Government service listed by an organization, with its token ledger fields."""

    service_name: str = Field(..., min_length=1, max_length=200, description="Service name")
    documents: List[str] = Field(default_factory=list, description="Required documents")
    procedure: str = Field(..., description="Procedure to obtain the service")
    estimated_time: str = Field(..., description="Estimated processing time")
    charge: str = Field(..., description="Service charge")
    sample_form_url: str = Field(default="", description="Uploaded sample form path")
    user_id: str = Field(..., description="Owning organization account")
    tokens_enabled: bool = Field(default=False, description="Whether daily tokens are issued")
    daily_token_limit: int = Field(default=0, ge=0, description="Tokens issuable per calendar day")
    tokens_issued: int = Field(default=0, ge=0, description="Tokens issued on the current day")
    last_token_reset: datetime = Field(default_factory=datetime.utcnow, description="Day the counter belongs to")

    @field_validator('service_name')
    @classmethod
    def validate_service_name(cls, v):
        """Validate service name."""
        if not v.strip():
            raise ValueError('Service name cannot be empty')
        return v.strip()

    @model_validator(mode='after')
    def validate_disabled_limit(self):
        """A disabled ledger never carries a limit."""
        if not self.tokens_enabled and self.daily_token_limit != 0:
            raise ValueError('dailyTokenLimit must be 0 when tokens are disabled')
        return self

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Service":
        return cls(
            id=str(doc["_id"]),
            service_name=doc["serviceName"],
            documents=doc.get("documents", []),
            procedure=doc["procedure"],
            estimated_time=doc["estimatedTime"],
            charge=doc["charge"],
            sample_form_url=doc.get("sampleFormUrl", ""),
            user_id=str(doc["userId"]),
            tokens_enabled=doc.get("tokensEnabled", False),
            daily_token_limit=doc.get("dailyTokenLimit", 0),
            tokens_issued=doc.get("tokensIssued", 0),
            last_token_reset=doc.get("lastTokenReset") or doc.get("createdAt") or datetime.utcnow(),
            created_at=doc.get("createdAt") or datetime.utcnow(),
            updated_at=doc.get("updatedAt") or datetime.utcnow()
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "_id": ObjectId(self.id),
            "serviceName": self.service_name,
            "documents": self.documents,
            "procedure": self.procedure,
            "estimatedTime": self.estimated_time,
            "charge": self.charge,
            "sampleFormUrl": self.sample_form_url,
            "userId": ObjectId(self.user_id),
            "tokensEnabled": self.tokens_enabled,
            "dailyTokenLimit": self.daily_token_limit,
            "tokensIssued": self.tokens_issued,
            "lastTokenReset": self.last_token_reset
        }


class ServiceBundle(BaseEntity):
    """Curated group of services offered at one location."""

    bundle_name: str = Field(..., min_length=1, max_length=200, description="Bundle name")
    description: str = Field(default="", max_length=2000, description="Bundle description")
    services: List[str] = Field(..., min_length=1, description="Service identifiers")
    location: Location = Field(..., description="Where the bundle applies")
    created_by: Optional[str] = Field(None, description="Creator (None for the system superadmin)")
    is_active: bool = Field(default=True, description="Whether the bundle is publicly listed")


class AssistanceRequest(BaseEntity):
    """Citizen request for help with a service or bundle."""

    user_name: str = Field(..., min_length=1, description="Requester name")
    user_contact: str = Field(..., min_length=1, description="Requester contact")
    request_type: RequestType = Field(..., description="What the request refers to")
    service_id: Optional[str] = Field(None, description="Referenced service")
    bundle_id: Optional[str] = Field(None, description="Referenced bundle")
    status: AssistanceStatus = Field(default=AssistanceStatus.PENDING, description="Follow-up status")
    notes: str = Field(default="", description="Superadmin notes")

    @model_validator(mode='after')
    def validate_reference(self):
        """The referenced identifier must match the request type."""
        if self.request_type == RequestType.SERVICE.value and not self.service_id:
            raise ValueError('Service ID is required for service requests')
        if self.request_type == RequestType.BUNDLE.value and not self.bundle_id:
            raise ValueError('Bundle ID is required for bundle requests')
        return self


class UserContext(BaseModel):
    """Authenticated caller, built from a validated access token."""

    user_id: str = Field(..., description="Authenticated account ID ('superadmin' for the system account)")
    username: str = Field(..., description="Login name")
    organization_name: Optional[str] = Field(None, description="Organization name")
    location: Optional[Dict[str, Any]] = Field(None, description="Organization location")
    role: UserRole = Field(..., description="Account role")
    token_payload: Optional[Dict[str, Any]] = Field(None, description="Original JWT payload")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")

    model_config = ConfigDict(
        use_enum_values=True
    )

    def has_role(self, role: UserRole) -> bool:
        """Check whether the caller holds a role."""
        return self.role == UserRole(role).value

    @property
    def is_superadmin(self) -> bool:
        return self.has_role(UserRole.SUPERADMIN)

