# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Authentication endpoints for registration, login, logout, and token refresh.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
import logging
from datetime import datetime
from typing import Dict, Any
from bson import ObjectId

from models.requests import RegisterRequest, LoginRequest, RefreshTokenRequest
from models.responses import AuthTokenResponse, RefreshTokenResponse, MessageResponse, ErrorResponse
from models.entities import User, UserContext, LicenseKey
from models.enums import UserRole, AuditEntity, AuditAction
from domain.licensing import check_redeemable
from services.mongodb import USERS, LICENSE_KEYS, DuplicateDocumentError
from services.auth import SUPERADMIN_ID, SUPERADMIN_ORGANIZATION, SUPERADMIN_LOCATION, TokenValidationError
from middleware.auth import require_auth
from middleware.rate_limit import rate_limit_auth
from middleware.error_handler import (
    ValidationException,
    AuthenticationException,
    NotFoundException
)
from utils.serialization import serialize_document

# Set up logging and tracing
logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Create API blueprint
auth_tag = Tag(name="Authentication", description="Organization registration and token management")
auth_bp = APIBlueprint(
    'auth',
    __name__,
    url_prefix='/api/auth',
    abp_tags=[auth_tag]
)


def _token_response(message: str, tokens: Dict[str, Any], profile: Dict[str, Any], status: int = 200):
    return jsonify({
        "message": message,
        "token": tokens["access_token"],
        "refreshToken": tokens["refresh_token"],
        "expiresIn": tokens["expires_in"],
        "user": profile
    }), status


def _superadmin_profile(username: str) -> Dict[str, Any]:
    return {
        "id": SUPERADMIN_ID,
        "organizationName": SUPERADMIN_ORGANIZATION,
        "username": username,
        "location": dict(SUPERADMIN_LOCATION),
        "role": UserRole.SUPERADMIN.value
    }


@auth_bp.post('/register', responses={201: AuthTokenResponse, 400: ErrorResponse})
@rate_limit_auth
def register(body: RegisterRequest):
    """
    Register an organization admin with a single-use license key.

    The key is claimed atomically before the account is created, so two
    registrations racing for the same key cannot both succeed.
    """
    with tracer.start_as_current_span(
        "auth.register",
        attributes={"auth.username": body.username}
    ) as span:
        mongodb_service = current_app.mongodb_service
        auth_service = current_app.auth_service

        if mongodb_service.find_one(USERS, {"username": body.username}, {"_id": 1}):
            span.set_status(Status(StatusCode.ERROR, "Username taken"))
            raise ValidationException("Username already exists")

        key_doc = mongodb_service.find_one(LICENSE_KEYS, {"key": body.license_key})
        redemption = check_redeemable(LicenseKey.from_document(key_doc) if key_doc else None)
        if not redemption.valid:
            span.set_status(Status(StatusCode.ERROR, "License key rejected"))
            logger.warning(
                "Registration rejected: license key not redeemable",
                extra={"username": body.username, "reason": redemption.error_message}
            )
            raise ValidationException(redemption.error_message)

        claimed = mongodb_service.compare_and_set(LICENSE_KEYS, key_doc["_id"], {"isUsed": False}, {"isUsed": True})
        if claimed is None:
            raise ValidationException("Invalid or already used license key")

        user_doc = {
            "_id": ObjectId(),
            "organizationName": body.organization_name,
            "username": body.username,
            "password": auth_service.hash_password(body.password),
            "location": body.location().model_dump(),
            "licenseKey": body.license_key,
            "role": UserRole.ADMIN.value,
            "isActive": True
        }

        try:
            mongodb_service.create(USERS, user_doc)
        except DuplicateDocumentError:
            # Lost a race on the username; give the key back
            mongodb_service.compare_and_set(LICENSE_KEYS, key_doc["_id"], {"isUsed": True}, {"isUsed": False})
            raise ValidationException("Username already exists")

        mongodb_service.update_by_id(LICENSE_KEYS, key_doc["_id"], {"usedBy": user_doc["_id"], "usedAt": datetime.utcnow()})
        current_app.redis_service.invalidate_locations()

        user = User.from_document(user_doc)
        current_app.audit_service.log_action(
            UserContext(user_id=user.id, username=user.username, role=user.role),
            AuditEntity.USER.value,
            user.id,
            AuditAction.REGISTER.value,
            after=user_doc
        )

        span.set_attribute("user.id", user.id)
        logger.info("Organization registered", extra={"user_id": user.id, "username": user.username})

        tokens = auth_service.generate_tokens(auth_service.user_claims(user))
        return _token_response("User registered successfully", tokens, user.public_profile(), 201)


@auth_bp.post('/login', responses={200: AuthTokenResponse, 401: ErrorResponse})
@rate_limit_auth
def login(body: LoginRequest):
    """Authenticate an organization admin and return JWT tokens."""
    with tracer.start_as_current_span("auth.login", attributes={"auth.username": body.username}) as span:
        auth_service = current_app.auth_service

        user_doc = current_app.mongodb_service.find_one(USERS, {"username": body.username, "isActive": True})
        if not user_doc or not auth_service.verify_password(body.password, user_doc.get("password", "")):
            span.set_status(Status(StatusCode.ERROR, "Invalid credentials"))
            logger.warning("Login failed", extra={"username": body.username})
            raise AuthenticationException("Invalid username or password")

        user = User.from_document(user_doc)
        span.set_attribute("user.id", user.id)
        logger.info("User logged in", extra={"user_id": user.id})

        tokens = auth_service.generate_tokens(auth_service.user_claims(user))
        return _token_response("Login successful", tokens, user.public_profile())


@auth_bp.post('/superadmin-login', responses={200: AuthTokenResponse, 401: ErrorResponse})
@rate_limit_auth
def superadmin_login(body: LoginRequest):
    """Authenticate the superadmin configured through the environment."""
    with tracer.start_as_current_span("auth.superadmin_login") as span:
        auth_service = current_app.auth_service

        if not auth_service.verify_superadmin(body.username, body.password):
            span.set_status(Status(StatusCode.ERROR, "Invalid credentials"))
            logger.warning("Superadmin login failed", extra={"username": body.username})
            raise AuthenticationException("Invalid superadmin credentials")

        logger.info("Superadmin logged in")
        tokens = auth_service.generate_tokens(auth_service.superadmin_claims())
        return _token_response("SuperAdmin login successful", tokens, _superadmin_profile(body.username))


@auth_bp.get('/me')
@require_auth
def me(user_context: UserContext):
    """Current account without its password hash."""
    if user_context.is_superadmin:
        return jsonify(_superadmin_profile(user_context.username))

    user_doc = current_app.mongodb_service.find_by_id(USERS, user_context.user_id, projection={"password": 0})
    if not user_doc:
        raise NotFoundException("User not found")

    return jsonify(serialize_document(user_doc))


@auth_bp.post('/refresh', responses={200: RefreshTokenResponse, 401: ErrorResponse})
def refresh(body: RefreshTokenRequest):
    """Exchange a refresh token for a new access token."""
    with tracer.start_as_current_span("auth.refresh"):
        try:
            refreshed = current_app.auth_service.refresh_access_token(body.refresh_token)
        except TokenValidationError as e:
            raise AuthenticationException("Invalid or expired refresh token") from e

        return jsonify({"token": refreshed["access_token"], "expiresIn": refreshed["expires_in"]})


@auth_bp.post('/logout', responses={200: MessageResponse})
@require_auth
def logout(user_context: UserContext):
    """Revoke the presented access token until it expires."""
    payload = user_context.token_payload or {}
    if payload.get("jti") and payload.get("exp"):
        current_app.redis_service.add_to_blocklist(payload["jti"], int(payload["exp"]))

    logger.info("User logged out", extra={"user_id": user_context.user_id})
    return jsonify({"message": "Logged out successfully"})
