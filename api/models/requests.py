# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints.

Bodies arrive with the camelCase keys used by the web client; each model
exposes them under snake_case attribute names through field aliases.
Required-field checks that the client relies on for its messages are done
in model validators so the first reported error reads like the client
expects.
"""

from datetime import datetime, timezone
from typing import List, Optional, Any
from pydantic import BaseModel, Field, field_validator, model_validator

from .base import RequestModel, Location
from .enums import AssistanceStatus, RequestType


def _missing(*values: Optional[str]) -> bool:
    return any(value is None or not str(value).strip() for value in values)


class RegisterRequest(RequestModel):
    """Organization registration with a license key."""

    organization_name: Optional[str] = Field(None, alias="organizationName", max_length=200, description="Organization name")
    username: Optional[str] = Field(None, max_length=100, description="Login name")
    password: Optional[str] = Field(None, description="Password (at least 6 characters)")
    province: Optional[str] = Field(None, max_length=100, description="Province")
    district: Optional[str] = Field(None, max_length=100, description="District")
    municipality: Optional[str] = Field(None, max_length=100, description="Municipality")
    license_key: Optional[str] = Field(None, alias="licenseKey", description="Unused license key")

    @model_validator(mode='after')
    def validate_complete(self):
        """All fields are required and the password must be long enough."""
        if _missing(self.organization_name, self.username, self.password, self.province,
                    self.district, self.municipality, self.license_key):
            raise ValueError('All fields including license key are required')
        if len(self.password) < 6:
            raise ValueError('Password must be at least 6 characters long')
        return self

    def location(self) -> Location:
        return Location(province=self.province, district=self.district, municipality=self.municipality)


class LoginRequest(RequestModel):
    """Username and password login."""

    username: str = Field(..., min_length=1, description="Login name")
    password: str = Field(..., min_length=1, description="Password")


class RefreshTokenRequest(RequestModel):
    """Request model for token refresh."""

    refresh_token: str = Field(..., alias="refreshToken", description="Refresh token")


class TokenRequest(RequestModel):
    """Citizen details printed on a token receipt."""

    user_name: Optional[str] = Field(None, alias="userName", max_length=200, description="Applicant name")
    user_contact: Optional[str] = Field(None, alias="userContact", max_length=100, description="Applicant contact")

    @model_validator(mode='after')
    def validate_applicant(self):
        if _missing(self.user_name, self.user_contact):
            raise ValueError('User name and contact are required')
        return self


class LocationQuery(BaseModel):
    """Optional location filter."""

    province: Optional[str] = Field(None, description="Province")
    district: Optional[str] = Field(None, description="District")
    municipality: Optional[str] = Field(None, description="Municipality")


class ServiceSearchQuery(LocationQuery):
    """Keyword and location search over public services."""

    q: Optional[str] = Field(None, max_length=200, description="Keyword matched against name, documents and procedure")


class KeywordQuery(BaseModel):
    q: Optional[str] = Field(None, max_length=200, description="Keyword matched against name, documents and procedure")


class ServiceRequest(RequestModel):
    """
    Service listing submitted from the admin dashboard.

    ``tokensEnabled`` and ``dailyTokenLimit`` are kept as sent; the form
    posts them as strings and the token ledger normalizes them.
    """

    service_name: str = Field(..., alias="serviceName", min_length=1, max_length=200, description="Service name")
    documents: List[str] = Field(default_factory=list, description="Required documents")
    procedure: str = Field(..., min_length=1, description="Procedure to obtain the service")
    estimated_time: str = Field(..., alias="estimatedTime", min_length=1, description="Estimated processing time")
    charge: str = Field(..., min_length=1, description="Service charge")
    sample_form_url: Optional[str] = Field("", alias="sampleFormUrl", description="URL returned by the upload endpoint")
    tokens_enabled: Any = Field(False, alias="tokensEnabled", description="true or \"true\" enables daily tokens")
    daily_token_limit: Any = Field(0, alias="dailyTokenLimit", description="Tokens issuable per calendar day")

    @field_validator('documents')
    @classmethod
    def drop_blank_documents(cls, v):
        return [doc.strip() for doc in v if doc and doc.strip()]

    def descriptive_fields(self) -> dict:
        """Stored fields other than the token settings."""
        return {
            "serviceName": self.service_name,
            "documents": self.documents,
            "procedure": self.procedure,
            "estimatedTime": self.estimated_time,
            "charge": self.charge,
            "sampleFormUrl": self.sample_form_url or ""
        }


class AssistanceRequestCreate(RequestModel):
    """Citizen request for help with a service or a bundle."""

    user_name: Optional[str] = Field(None, alias="userName", max_length=200, description="Requester name")
    user_contact: Optional[str] = Field(None, alias="userContact", max_length=100, description="Requester contact")
    request_type: Optional[str] = Field(None, alias="requestType", description="'service' or 'bundle'")
    service_id: Optional[str] = Field(None, alias="serviceId", description="Service the request refers to")
    bundle_id: Optional[str] = Field(None, alias="bundleId", description="Bundle the request refers to")

    @model_validator(mode='after')
    def validate_reference(self):
        if _missing(self.user_name, self.user_contact, self.request_type):
            raise ValueError('Name, contact, and request type are required')
        if self.request_type not in (RequestType.SERVICE.value, RequestType.BUNDLE.value):
            raise ValueError("Request type must be 'service' or 'bundle'")
        if self.request_type == RequestType.SERVICE.value and not self.service_id:
            raise ValueError('Service ID is required for service requests')
        if self.request_type == RequestType.BUNDLE.value and not self.bundle_id:
            raise ValueError('Bundle ID is required for bundle requests')
        return self


class AssistanceUpdate(RequestModel):
    """Superadmin follow-up on an assistance request."""

    status: Optional[AssistanceStatus] = Field(None, description="pending, contacted or resolved")
    notes: Optional[str] = Field(None, max_length=2000, description="Internal notes")


class UserStatusRequest(RequestModel):
    is_active: bool = Field(..., alias="isActive", description="Whether the account may log in")


class LicenseKeyRequest(RequestModel):
    """Batch of license keys to issue."""

    count: int = Field(1, ge=1, le=100, description="Number of keys to generate")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt", description="Optional expiry")

    @field_validator('expires_at', mode='before')
    @classmethod
    def blank_is_none(cls, v):
        if v == "":
            return None
        return v

    @field_validator('expires_at')
    @classmethod
    def to_naive_utc(cls, v):
        """Stored expiries are naive UTC like every other timestamp."""
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class BundleCreate(RequestModel):
    """New service bundle."""

    bundle_name: Optional[str] = Field(None, alias="bundleName", max_length=200, description="Bundle name")
    description: str = Field("", max_length=2000, description="Bundle description")
    services: Optional[List[str]] = Field(None, description="Service identifiers")
    location: Optional[Location] = Field(None, description="Where the bundle applies")

    @model_validator(mode='after')
    def validate_required(self):
        if _missing(self.bundle_name) or not self.services or self.location is None:
            raise ValueError('Bundle name, services, and location are required')
        return self


class BundleUpdate(RequestModel):
    """Partial bundle update; omitted fields keep their stored value."""

    bundle_name: Optional[str] = Field(None, alias="bundleName", min_length=1, max_length=200, description="Bundle name")
    description: Optional[str] = Field(None, max_length=2000, description="Bundle description")
    services: Optional[List[str]] = Field(None, description="Service identifiers")
    location: Optional[Location] = Field(None, description="Where the bundle applies")
    is_active: Optional[bool] = Field(None, alias="isActive", description="Whether the bundle is publicly listed")

    @field_validator('services')
    @classmethod
    def validate_services(cls, v):
        if v is not None and not v:
            raise ValueError('A bundle must include at least one service')
        return v


class AuditLogQuery(BaseModel):
    """Audit log filters and pagination."""

    page: int = Field(1, ge=1, description="Page number")
    page_size: int = Field(20, ge=1, le=100, description="Items per page")
    entity: Optional[str] = Field(None, description="Entity type")
    action: Optional[str] = Field(None, description="Action performed")
    user_id: Optional[str] = Field(None, description="Account that performed the action")


class UploadPath(BaseModel):
    filename: str = Field(..., min_length=1, description="Stored file name")
