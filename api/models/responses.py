# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models for API endpoints with HAL support.

These models document the response bodies in the OpenAPI schema; views
build the bodies as plain dictionaries.
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field


class HalLink(BaseModel):
    """HAL link representation."""

    href: str = Field(..., description="Link URL")
    method: Optional[str] = Field(None, description="HTTP method")
    type: Optional[str] = Field(None, description="Content type")
    title: Optional[str] = Field(None, description="Link title")
    templated: Optional[bool] = Field(None, description="Whether URL is templated")


class ErrorResponse(BaseModel):
    """RFC 7807 problem document."""

    type: str = Field(..., description="Problem type URI")
    title: str = Field(..., description="Short summary")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(..., description="Human-readable explanation")
    instance: str = Field(..., description="Request path")
    error: str = Field(..., description="Same as detail")
    errors: Optional[List[Dict[str, Any]]] = Field(None, description="Field validation errors")


class MessageResponse(BaseModel):
    message: str = Field(..., description="Outcome message")


class TokenStatusResponse(BaseModel):
    """Daily token availability of a service."""

    tokensEnabled: bool = Field(..., description="Whether the service issues tokens")
    tokensAvailable: int = Field(..., description="Tokens still available today")
    tokensIssued: int = Field(..., description="Tokens issued today")
    dailyLimit: int = Field(..., description="Tokens issuable per day")


class AuthUser(BaseModel):
    """Profile returned with authentication tokens."""

    id: str = Field(..., description="Account ID")
    organizationName: str = Field(..., description="Organization name")
    username: str = Field(..., description="Login name")
    location: Dict[str, str] = Field(..., description="Organization location")
    role: str = Field(..., description="Account role")


class AuthTokenResponse(BaseModel):
    """Successful login or registration."""

    message: str = Field(..., description="Outcome message")
    token: str = Field(..., description="JWT access token")
    refreshToken: str = Field(..., description="JWT refresh token")
    expiresIn: int = Field(..., description="Access token lifetime in seconds")
    user: AuthUser


class RefreshTokenResponse(BaseModel):
    token: str = Field(..., description="New JWT access token")
    expiresIn: int = Field(..., description="Access token lifetime in seconds")


class UploadResponse(BaseModel):
    message: str = Field(..., description="Outcome message")
    fileUrl: str = Field(..., description="Path under /uploads/ to store on the service")


class LocationsResponse(BaseModel):
    provinces: List[str] = Field(default_factory=list)
    districts: List[str] = Field(default_factory=list)
    municipalities: List[str] = Field(default_factory=list)


class HealthCheckResponse(BaseModel):
    """Health check response model."""

    status: str = Field(..., description="healthy, degraded or unhealthy")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    timestamp: str = Field(..., description="Check timestamp")
    dependencies: Dict[str, Any] = Field(default_factory=dict, description="Dependency health")
