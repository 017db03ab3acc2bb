# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for middleware functionality.
"""

import pytest
from unittest.mock import Mock, patch
from flask import Flask, jsonify
from werkzeug.middleware.proxy_fix import ProxyFix
from pydantic import ValidationError

from models.requests import TokenRequest, LicenseKeyRequest
from models.enums import UserRole
from domain.tokens import LimitReached, PersistenceFailure
from middleware.validation import ValidationMiddleware
from middleware.error_handler import (
    ErrorHandlerMiddleware, ValidationException, AuthenticationException,
    AuthorizationException, NotFoundException, register_custom_error_handlers
)
from middleware.cors import CORSMiddleware, configure_cors
from middleware.rate_limit import RateLimiter, rate_limit
from middleware.auth import AuthMiddleware, require_auth, require_role
from services.auth import AuthService
from services.hal import HalFormatter
from services.token_ledger import ServiceNotFound


class TestValidationMiddleware:
    """Test validation error formatting."""

    def setup_method(self):
        self.app = Flask(__name__)
        self.validation_middleware = ValidationMiddleware("https://api.example.com")

    def _error(self, model, data):
        with pytest.raises(ValidationError) as exc_info:
            model.model_validate(data)
        return exc_info.value

    def test_format_validation_errors(self):
        error = self._error(LicenseKeyRequest, {"count": 500})

        result = self.validation_middleware.format_validation_errors(error)

        assert result[0]["field"] == "count"
        assert result[0]["type"] == "less_than_equal"

    def test_detail_is_validator_message(self):
        error = self._error(TokenRequest, {"userName": "Sita"})

        with self.app.test_request_context('/api/services/x/token', method='POST'):
            response = self.validation_middleware.openapi_error_callback(error)

        assert response.status_code == 400
        body = response.get_json()
        assert body["detail"] == "User name and contact are required"
        assert body["error"] == body["detail"]
        assert body["instance"] == "/api/services/x/token"
        assert "schema" in body["_links"]


class TestErrorHandlerMiddleware:
    """Test error handler middleware functionality."""

    def setup_method(self):
        self.app = Flask(__name__)
        self.app.config['ENVIRONMENT'] = 'test'
        ErrorHandlerMiddleware(self.app, "https://api.example.com")
        register_custom_error_handlers(self.app, HalFormatter("https://api.example.com"))

        @self.app.route('/raise/<kind>')
        def raise_error(kind):
            errors = {
                "validation": ValidationException("Bad input"),
                "auth": AuthenticationException("Access token required"),
                "limit": LimitReached(),
                "storage": PersistenceFailure(),
                "service": ServiceNotFound("abc"),
                "crash": RuntimeError("boom")
            }
            raise errors[kind]

        self.client = self.app.test_client()

    @pytest.mark.parametrize("kind,status,error", [
        ("validation", 400, "Bad input"),
        ("auth", 401, "Access token required"),
        ("limit", 400, "Daily token limit reached. Please try again tomorrow."),
        ("storage", 503, "Could not issue a token right now. Please try again."),
        ("service", 404, "Service not found")
    ])
    def test_application_errors(self, kind, status, error):
        response = self.client.get(f'/raise/{kind}')

        assert response.status_code == status
        assert response.get_json()["error"] == error
        assert response.get_json()["status"] == status

    def test_unexpected_error(self):
        response = self.client.get('/raise/crash')

        assert response.status_code == 500
        assert "RuntimeError" in response.get_json()["detail"]

    def test_unknown_route(self):
        response = self.client.get('/nowhere')

        assert response.status_code == 404
        assert response.get_json()["type"].endswith("resource-not-found")

    def test_exception_attributes(self):
        assert AuthorizationException("x").status_code == 403
        assert NotFoundException("x").error_type == "resource-not-found"


class TestCORSMiddleware:
    """Test CORS middleware functionality."""

    def setup_method(self):
        self.app = Flask(__name__)

    def test_cors_configuration(self):
        cors_middleware = configure_cors(
            self.app,
            allowed_origins=["http://localhost:3000"],
            allow_credentials=True
        )

        assert isinstance(cors_middleware, CORSMiddleware)
        assert "http://localhost:3000" in cors_middleware.allowed_origins
        assert cors_middleware.allow_credentials is True

    def test_is_origin_allowed(self):
        cors_middleware = CORSMiddleware(
            self.app,
            allowed_origins=["http://localhost:3000", "https://sewa.example.*"]
        )

        assert cors_middleware.is_origin_allowed("http://localhost:3000") is True
        assert cors_middleware.is_origin_allowed("https://sewa.example.org") is True
        assert cors_middleware.is_origin_allowed("http://malicious.com") is False
        assert cors_middleware.is_origin_allowed(None) is False

    def test_frontend_url_from_environment(self, monkeypatch):
        monkeypatch.setenv('ENVIRONMENT', 'production')
        monkeypatch.setenv('FRONTEND_URL', 'https://sewa.example.org/')

        cors_middleware = CORSMiddleware(self.app)

        assert cors_middleware.allowed_origins == ['https://sewa.example.org']

    def test_preflight_and_exposed_headers(self):
        configure_cors(self.app, allowed_origins=["http://localhost:3000"])

        @self.app.route('/receipt')
        def receipt():
            return "ok"

        client = self.app.test_client()
        preflight = client.options('/receipt', headers={'Origin': 'http://localhost:3000'})
        rejected = client.options('/receipt', headers={'Origin': 'http://evil.test'})
        response = client.get('/receipt', headers={'Origin': 'http://localhost:3000'})

        assert preflight.status_code == 204
        assert rejected.status_code == 403
        assert 'Content-Disposition' in response.headers['Access-Control-Expose-Headers']


class TestRateLimiter:
    """Test rate limiter functionality."""

    def setup_method(self):
        self.redis_service = Mock()
        self.hal_formatter = HalFormatter("https://api.example.com")
        self.rate_limiter = RateLimiter(self.redis_service, self.hal_formatter)

    def test_get_client_identifier_with_user(self):
        user_context = Mock()
        user_context.user_id = "user123"

        assert self.rate_limiter.get_client_identifier(user_context) == "user:user123"

    def test_get_client_identifier_without_user(self):
        app = Flask(__name__)
        with app.test_request_context('/', environ_base={'REMOTE_ADDR': '203.0.113.9'}):
            first = self.rate_limiter.get_client_identifier(None)
        with app.test_request_context('/', environ_base={'REMOTE_ADDR': '203.0.113.10'}):
            second = self.rate_limiter.get_client_identifier(None)

        assert first.startswith("ip:")
        assert first != second

    def test_forwarded_header_ignored_without_trusted_proxy(self):
        app = Flask(__name__)
        identifiers = set()
        for i in range(5):
            with app.test_request_context(
                '/',
                headers={'X-Forwarded-For': f'10.0.0.{i}'},
                environ_base={'REMOTE_ADDR': '203.0.113.9'}
            ):
                identifiers.add(self.rate_limiter.get_client_identifier(None))

        assert len(identifiers) == 1

    def test_trusted_proxy_hop_sets_client_address(self):
        app = Flask(__name__)
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1)

        @app.route('/whoami')
        def whoami():
            return self.rate_limiter.get_client_identifier(None)

        response = app.test_client().get(
            '/whoami',
            headers={'X-Forwarded-For': '1.1.1.1, 10.0.0.5'},
            environ_base={'REMOTE_ADDR': '172.16.0.1'}
        )
        with Flask(__name__).test_request_context('/', environ_base={'REMOTE_ADDR': '10.0.0.5'}):
            expected = self.rate_limiter.get_client_identifier(None)

        assert response.get_data(as_text=True) == expected

    def test_check_rate_limit_within_limit(self):
        self.redis_service.increment.return_value = 6

        result = self.rate_limiter.check_rate_limit("user:123", "test_endpoint", 10, 3600)

        assert result['allowed'] is True
        assert result['remaining'] == 4

    def test_check_rate_limit_exceeded(self):
        self.redis_service.increment.return_value = 11

        result = self.rate_limiter.check_rate_limit("user:123", "test_endpoint", 10, 3600)

        assert result['allowed'] is False
        assert result['remaining'] == 0
        assert result['retry_after'] > 0

    def test_check_rate_limit_redis_failure(self):
        self.redis_service.increment.return_value = None

        result = self.rate_limiter.check_rate_limit("user:123", "test_endpoint", 10, 3600)

        assert result['allowed'] is True

    def test_window_key(self):
        key = self.rate_limiter.get_rate_limit_key("ip:abc", "tokens", 600, now=1200)
        assert key == "rate_limit:ip:abc:tokens:2"

    def test_rate_limit_decorator_exceeded(self):
        app = Flask(__name__)
        app.redis_service = Mock()
        app.redis_service.is_available.return_value = True
        app.redis_service.increment.return_value = 3
        app.hal_formatter = self.hal_formatter

        @rate_limit(2, 600, per_user=False)
        def endpoint():
            return jsonify({"success": True})

        with app.test_request_context('/test'):
            response = endpoint()

        assert response.status_code == 429
        assert response.headers['X-RateLimit-Remaining'] == '0'
        assert 'Retry-After' in response.headers

    def test_rate_limit_skipped_without_redis(self):
        app = Flask(__name__)
        app.redis_service = Mock()
        app.redis_service.is_available.return_value = False

        @rate_limit(1, 600)
        def endpoint():
            return {"success": True}

        with app.test_request_context('/test'):
            assert endpoint() == {"success": True}

        app.redis_service.increment.assert_not_called()


class TestAuthMiddleware:
    """Bearer token checks for protected views."""

    @pytest.fixture(scope="class")
    def auth_service(self):
        return AuthService(superadmin_username="root", superadmin_password="root-password")

    @pytest.fixture
    def app(self, auth_service):
        app = Flask(__name__)
        app.config['ENVIRONMENT'] = 'test'
        ErrorHandlerMiddleware(app, "https://api.example.com")
        register_custom_error_handlers(app, HalFormatter("https://api.example.com"))

        redis_service = Mock()
        redis_service.is_token_blocked.return_value = False
        app.auth_middleware = AuthMiddleware(auth_service, redis_service)

        @app.route('/me')
        @require_auth
        def me(user_context):
            return {"user_id": user_context.user_id}

        @app.route('/system')
        @require_role(UserRole.SUPERADMIN)
        def system(user_context):
            return {"ok": True}

        return app

    def _headers(self, auth_service, claims):
        return {"Authorization": f"Bearer {auth_service.generate_tokens(claims)['access_token']}"}

    def test_missing_token(self, app):
        response = app.test_client().get('/me')

        assert response.status_code == 401
        assert response.get_json()["error"] == "Access token required"

    def test_valid_token(self, app, auth_service):
        headers = self._headers(auth_service, auth_service.superadmin_claims())

        response = app.test_client().get('/me', headers=headers)

        assert response.get_json() == {"user_id": "superadmin"}

    def test_revoked_token(self, app, auth_service):
        app.auth_middleware.redis_service.is_token_blocked.return_value = True
        headers = self._headers(auth_service, auth_service.superadmin_claims())

        response = app.test_client().get('/me', headers=headers)

        assert response.status_code == 401
        assert response.get_json()["error"] == "Token has been revoked"

    def test_garbage_token(self, app):
        response = app.test_client().get('/me', headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401

    def test_role_required(self, app, auth_service):
        claims = dict(auth_service.superadmin_claims(), sub="65f0c0ffee0000000000abcd", role="admin")

        response = app.test_client().get('/system', headers=self._headers(auth_service, claims))

        assert response.status_code == 403
        assert response.get_json()["error"] == "Superadmin access required"
