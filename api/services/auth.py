# SPDX-License-Identifier: Apache-2.0

"""
Authentication service for JWT token management and password hashing.

This module provides JWT token generation, validation, refresh, and password
hashing utilities using RS256 signing and bcrypt for secure authentication.
"""

import os
import hmac
import uuid
import jwt
import bcrypt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Tuple
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from opentelemetry import trace
import logging

from models.entities import User
from models.enums import UserRole

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

SUPERADMIN_ID = "superadmin"
SUPERADMIN_ORGANIZATION = "System Administration"
SUPERADMIN_LOCATION = {"province": "System", "district": "System", "municipality": "System"}

# Claims copied from a refresh token into the access token it mints
IDENTITY_CLAIMS = ("sub", "username", "organization_name", "location", "role")


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


class TokenValidationError(Exception):
    """Raised when token validation fails."""
    pass


class AuthService:
    """
    JWT authentication service with RS256 signing and bcrypt password hashing.

    Issues tokens for organization admins and for the environment-configured
    superadmin account.
    """

    def __init__(
        self,
        private_key: Optional[str] = None,
        public_key: Optional[str] = None,
        superadmin_username: Optional[str] = None,
        superadmin_password: Optional[str] = None
    ):
        """
        Initialize the authentication service.

        Args:
            private_key: RS256 private key for token signing (PEM format)
            public_key: RS256 public key for token verification (PEM format)
            superadmin_username: System administrator login name
            superadmin_password: System administrator password
        """
        private_key = private_key or os.getenv("JWT_PRIVATE_KEY")
        public_key = public_key or os.getenv("JWT_PUBLIC_KEY")

        if not private_key or not public_key:
            logger.warning("JWT keys not configured, generating development key pair")
            private_key, public_key = self._generate_dev_key_pair()

        self.private_key = private_key
        self.public_key = public_key
        self.algorithm = "RS256"
        self.access_token_expire_minutes = int(os.getenv("JWT_ACCESS_TOKEN_MINUTES", "60"))
        self.refresh_token_expire_days = int(os.getenv("JWT_REFRESH_TOKEN_DAYS", "7"))

        self.superadmin_username = superadmin_username or os.getenv("SUPERADMIN_USERNAME", "")
        self.superadmin_password = superadmin_password or os.getenv("SUPERADMIN_PASSWORD", "")

    def _generate_dev_key_pair(self) -> Tuple[str, str]:
        """Generate RSA key pair for development use."""
        private_key = rsa.generate_private_key(
            public_exponent=65537,
            key_size=2048
        )

        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        ).decode('utf-8')

        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        ).decode('utf-8')

        return private_pem, public_pem

    def hash_password(self, password: str) -> str:
        """
        Hash a password using bcrypt with salt.

        Args:
            password: Plain text password to hash

        Returns:
            Hashed password string
        """
        with tracer.start_as_current_span("auth.hash_password"):
            salt = bcrypt.gensalt(rounds=12)
            hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
            return hashed.decode('utf-8')

    def verify_password(self, password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        Returns:
            True if password matches, False otherwise (including malformed hashes)
        """
        with tracer.start_as_current_span("auth.verify_password") as span:
            try:
                result = bcrypt.checkpw(
                    password.encode('utf-8'),
                    hashed_password.encode('utf-8')
                )
            except ValueError as e:
                span.set_attribute("auth.verification_result", "error")
                logger.error(f"Password verification error: {str(e)}")
                return False

            span.set_attribute("auth.verification_result", "success" if result else "failed")
            return result

    def verify_superadmin(self, username: str, password: str) -> bool:
        """Check credentials against the configured superadmin account."""
        if not self.superadmin_username or not self.superadmin_password:
            logger.warning("Superadmin login attempted but no superadmin is configured")
            return False

        username_ok = hmac.compare_digest(username.encode('utf-8'), self.superadmin_username.encode('utf-8'))
        password_ok = hmac.compare_digest(password.encode('utf-8'), self.superadmin_password.encode('utf-8'))
        return username_ok and password_ok

    def user_claims(self, user: User) -> Dict[str, Any]:
        """Identity claims for an organization admin."""
        return {
            "sub": user.id,
            "username": user.username,
            "organization_name": user.organization_name,
            "location": user.location.model_dump(),
            "role": user.role
        }

    def superadmin_claims(self) -> Dict[str, Any]:
        """Identity claims for the system superadmin."""
        return {
            "sub": SUPERADMIN_ID,
            "username": self.superadmin_username,
            "organization_name": SUPERADMIN_ORGANIZATION,
            "location": dict(SUPERADMIN_LOCATION),
            "role": UserRole.SUPERADMIN.value
        }

    def _encode(self, claims: Dict[str, Any], token_type: str, now: datetime, expires_at: datetime) -> str:
        payload = dict(claims)
        payload.update({
            "iat": now,
            "exp": expires_at,
            "jti": uuid.uuid4().hex,
            "type": token_type
        })
        return jwt.encode(payload, self.private_key, algorithm=self.algorithm)

    def generate_tokens(self, claims: Dict[str, Any]) -> Dict[str, Any]:
        """
        Generate access and refresh tokens.

        Args:
            claims: Identity claims from ``user_claims`` or ``superadmin_claims``

        Returns:
            Dictionary containing access_token, refresh_token, and metadata
        """
        with tracer.start_as_current_span("auth.generate_tokens") as span:
            span.set_attributes({
                "user.id": claims["sub"],
                "user.role": claims["role"]
            })

            now = datetime.now(timezone.utc)
            access_exp = now + timedelta(minutes=self.access_token_expire_minutes)
            refresh_exp = now + timedelta(days=self.refresh_token_expire_days)

            try:
                access_token = self._encode(claims, "access", now, access_exp)
                refresh_token = self._encode(claims, "refresh", now, refresh_exp)
            except (jwt.PyJWTError, ValueError, TypeError) as e:
                span.set_attribute("auth.tokens_generated", "error")
                logger.error(f"Token generation failed: {str(e)}")
                raise AuthenticationError(f"Failed to generate tokens: {str(e)}")

            logger.info(
                "JWT tokens generated",
                extra={
                    "user_id": claims["sub"],
                    "role": claims["role"],
                    "access_expires_at": access_exp.isoformat()
                }
            )

            return {
                "access_token": access_token,
                "refresh_token": refresh_token,
                "token_type": "Bearer",
                "expires_in": self.access_token_expire_minutes * 60,
                "access_expires_at": access_exp.isoformat(),
                "refresh_expires_at": refresh_exp.isoformat()
            }

    def validate_token(self, token: str, token_type: str = "access") -> Dict[str, Any]:
        """
        Validate and decode a JWT token.

        Args:
            token: JWT token string to validate
            token_type: Expected token type ("access" or "refresh")

        Returns:
            Decoded token payload

        Raises:
            TokenValidationError: If token is invalid or expired
        """
        with tracer.start_as_current_span("auth.validate_token") as span:
            span.set_attribute("auth.token_type", token_type)

            try:
                payload = jwt.decode(
                    token,
                    self.public_key,
                    algorithms=[self.algorithm],
                    options={"verify_exp": True}
                )
            except jwt.ExpiredSignatureError:
                span.set_attribute("auth.validation_result", "expired")
                logger.warning("Token validation failed: token expired")
                raise TokenValidationError("Token has expired")
            except jwt.InvalidTokenError as e:
                span.set_attribute("auth.validation_result", "invalid")
                logger.warning(f"Token validation failed: {str(e)}")
                raise TokenValidationError(f"Invalid token: {str(e)}")

            if payload.get("type") != token_type:
                span.set_attribute("auth.validation_result", "wrong_type")
                raise TokenValidationError(f"Invalid token type. Expected {token_type}")

            span.set_attributes({
                "auth.validation_result": "success",
                "user.id": payload.get("sub")
            })
            return payload

    def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """
        Generate a new access token using a valid refresh token.

        Raises:
            TokenValidationError: If refresh token is invalid
        """
        with tracer.start_as_current_span("auth.refresh_access_token"):
            refresh_payload = self.validate_token(refresh_token, "refresh")
            claims = {name: refresh_payload.get(name) for name in IDENTITY_CLAIMS}

            now = datetime.now(timezone.utc)
            access_exp = now + timedelta(minutes=self.access_token_expire_minutes)

            try:
                access_token = self._encode(claims, "access", now, access_exp)
            except (jwt.PyJWTError, ValueError, TypeError) as e:
                logger.error(f"Token refresh failed: {str(e)}")
                raise AuthenticationError(f"Failed to refresh token: {str(e)}")

            logger.info(
                "Access token refreshed",
                extra={"user_id": claims["sub"], "new_expires_at": access_exp.isoformat()}
            )

            return {
                "access_token": access_token,
                "token_type": "Bearer",
                "expires_in": self.access_token_expire_minutes * 60,
                "expires_at": access_exp.isoformat()
            }

    def extract_token_id(self, token: str) -> str:
        """
        Extract the unique identifier of a token for blocklist purposes.

        Raises:
            TokenValidationError: If the token cannot be decoded
        """
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError as e:
            logger.error(f"Failed to extract token ID: {str(e)}")
            raise TokenValidationError(f"Invalid token format: {str(e)}")

        if payload.get("jti"):
            return payload["jti"]
        return f"{payload.get('sub')}:{payload.get('iat')}:{payload.get('type')}"
