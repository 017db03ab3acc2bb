# SPDX-License-Identifier: Apache-2.0

"""
Authentication middleware for JWT token validation and user context extraction.

``require_auth`` and ``require_role`` look up ``current_app.auth_middleware``
at request time and call the wrapped view with the caller's ``UserContext``
as its first argument.
"""

from functools import wraps
from flask import request, g, current_app
from typing import Optional, Dict, Any, Callable
from opentelemetry import trace
import logging

from models.entities import UserContext
from models.enums import UserRole
from services.auth import TokenValidationError
from middleware.error_handler import AuthenticationException, AuthorizationException

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthMiddleware:
    """
    JWT authentication middleware for Flask applications.

    Handles token extraction, validation, blocklist checking, and user context
    building for protected endpoints.
    """

    def __init__(self, auth_service, redis_service):
        """
        Initialize the authentication middleware.

        Args:
            auth_service: JWT authentication service
            redis_service: Redis service for token blocklist
        """
        self.auth_service = auth_service
        self.redis_service = redis_service

    def extract_token_from_request(self) -> Optional[str]:
        """Extract a bearer token from the Authorization header."""
        auth_header = request.headers.get('Authorization', '')
        if not auth_header.startswith('Bearer '):
            return None
        token = auth_header[7:].strip()
        return token or None

    def is_token_blocked(self, token: str) -> bool:
        """
        Check if token is in the Redis blocklist.

        Undecodable tokens count as blocked.
        """
        try:
            token_id = self.auth_service.extract_token_id(token)
        except TokenValidationError:
            return True
        return self.redis_service.is_token_blocked(token_id)

    def build_user_context(self, token_payload: Dict[str, Any], request_info: Dict[str, Any]) -> UserContext:
        """Build user context from a validated token payload."""
        return UserContext(
            user_id=token_payload["sub"],
            username=token_payload.get("username", ""),
            organization_name=token_payload.get("organization_name"),
            location=token_payload.get("location"),
            role=token_payload.get("role", UserRole.ADMIN.value),
            token_payload=token_payload,
            ip_address=request_info.get("ip_address"),
            user_agent=request_info.get("user_agent")
        )

    def get_request_info(self) -> Dict[str, Any]:
        return {
            "ip_address": request.headers.get('X-Forwarded-For', request.remote_addr or '').split(',')[0].strip() or None,
            "user_agent": request.headers.get('User-Agent', '')
        }

    def authenticate(self) -> UserContext:
        """
        Authenticate the current request.

        Raises:
            AuthenticationException: If the token is missing, revoked or invalid
        """
        with tracer.start_as_current_span("auth.middleware.validate_request") as span:
            token = self.extract_token_from_request()
            if not token:
                span.set_attribute("auth.result", "missing_token")
                raise AuthenticationException("Access token required")

            if self.is_token_blocked(token):
                span.set_attribute("auth.result", "token_blocked")
                logger.warning("Authentication failed: token is revoked")
                raise AuthenticationException("Token has been revoked")

            try:
                token_payload = self.auth_service.validate_token(token, "access")
            except TokenValidationError as e:
                span.set_attribute("auth.result", "invalid_token")
                raise AuthenticationException("Invalid or expired token") from e

            user_context = self.build_user_context(token_payload, self.get_request_info())
            span.set_attributes({
                "auth.result": "success",
                "user.id": user_context.user_id,
                "user.role": user_context.role
            })
            return user_context


def require_auth(f: Callable) -> Callable:
    """Require a valid access token; passes the ``UserContext`` first."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_context = current_app.auth_middleware.authenticate()
        g.user_context = user_context
        return f(user_context, *args, **kwargs)

    return decorated_function


def require_role(role: UserRole) -> Callable:
    """
    Require an authenticated caller holding ``role``.

    Args:
        role: Role the caller must hold
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user_context = current_app.auth_middleware.authenticate()
            g.user_context = user_context

            if not user_context.has_role(role):
                logger.warning(
                    "Authorization failed: role required",
                    extra={
                        "user_id": user_context.user_id,
                        "required_role": UserRole(role).value,
                        "role": user_context.role
                    }
                )
                if UserRole(role) == UserRole.SUPERADMIN:
                    raise AuthorizationException("Superadmin access required")
                raise AuthorizationException("Organization admin access required")

            return f(user_context, *args, **kwargs)

        return decorated_function
    return decorator
