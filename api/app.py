"""
Sewa Directory API - Flask Application Entry Point

This module initializes the Flask application with OpenAPI 3.0 support,
configures middleware, and wires the services behind the public service
directory, its daily token ledger and the admin dashboards.
"""

import os
import logging
from datetime import datetime
from flask import jsonify
from flask_openapi3 import OpenAPI, Info, Tag
from werkzeug.middleware.proxy_fix import ProxyFix
from pymongo.errors import PyMongoError
from observability.config import setup_observability
from observability.middleware import add_observability_middleware

# Import middleware and utilities
from middleware.cors import configure_cors
from middleware.error_handler import ErrorHandlerMiddleware, register_custom_error_handlers
from middleware.validation import ValidationMiddleware
from middleware.auth import AuthMiddleware
from domain.tokens import resolve_timezone
from services.hal import create_hal_formatter
from services.mongodb import MongoDBService
from services.redis import create_redis_service
from services.auth import AuthService
from services.audit import AuditService
from services.health import HealthCheckService
from services.token_ledger import TokenLedgerService, DEFAULT_MAX_ATTEMPTS
from services.receipt import TokenReceiptRenderer
from services.uploads import UploadStore
from models.responses import HealthCheckResponse

# Initialize observability first
setup_observability()

logger = logging.getLogger(__name__)

# OpenAPI info
info = Info(
    title="Sewa Directory API",
    version=os.getenv('SERVICE_VERSION', '1.0.0'),
    description="Government services directory with daily service tokens"
)

# API tags for organization
tags = [
    Tag(name="Health", description="System health and status")
]

# Environment configuration
ENVIRONMENT = os.getenv('ENVIRONMENT', 'development')
BASE_URL = os.getenv('BASE_URL', 'http://localhost:5000')

validation_middleware = ValidationMiddleware(BASE_URL)

# Create Flask app with OpenAPI
app = OpenAPI(
    __name__,
    info=info,
    doc_prefix='/openapi',
    validation_error_status=400,
    validation_error_callback=validation_middleware.openapi_error_callback
)

# Add observability middleware
add_observability_middleware(app)

app.config['ENVIRONMENT'] = ENVIRONMENT
app.config['DEBUG'] = ENVIRONMENT == 'development'
app.config['DOCS_ENABLED'] = os.getenv('DOCS_ENABLED', 'true').lower() == 'true'
app.config['BASE_URL'] = BASE_URL
app.config['SERVICE_VERSION'] = os.getenv('SERVICE_VERSION', '1.0.0')

# Database configuration
app.config['MONGODB_URI'] = os.getenv('MONGODB_URI', 'mongodb://localhost:27017/sewa_directory_dev')
app.config['MONGODB_DATABASE'] = os.getenv('MONGODB_DATABASE', 'sewa_directory_dev')
app.config['REDIS_URL'] = os.getenv('REDIS_URL', 'redis://localhost:6379')

# Security configuration
app.config['JWT_PRIVATE_KEY'] = os.getenv('JWT_PRIVATE_KEY')
app.config['JWT_PUBLIC_KEY'] = os.getenv('JWT_PUBLIC_KEY')
app.config['SUPERADMIN_USERNAME'] = os.getenv('SUPERADMIN_USERNAME')
app.config['SUPERADMIN_PASSWORD'] = os.getenv('SUPERADMIN_PASSWORD')

# Token ledger configuration
app.config['TOKEN_DAY_TIMEZONE'] = os.getenv('TOKEN_DAY_TIMEZONE', 'UTC')
app.config['TOKEN_CAS_MAX_ATTEMPTS'] = int(os.getenv('TOKEN_CAS_MAX_ATTEMPTS', str(DEFAULT_MAX_ATTEMPTS)))

# Reverse proxies in front of the app; 0 means X-Forwarded-* headers are ignored
app.config['TRUSTED_PROXY_HOPS'] = int(os.getenv('TRUSTED_PROXY_HOPS', '0'))

# Uploads
app.config['UPLOADS_DIR'] = os.getenv('UPLOADS_DIR', os.path.join(os.path.dirname(os.path.abspath(__file__)), 'uploads'))

# Feature flags
app.config['OTEL_ENABLED'] = os.getenv('OTEL_ENABLED', 'true').lower() == 'true'

if app.config['TRUSTED_PROXY_HOPS'] > 0:
    hops = app.config['TRUSTED_PROXY_HOPS']
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=hops, x_proto=hops, x_host=hops)

# Initialize services
mongodb_service = MongoDBService(app.config['MONGODB_URI'], app.config['MONGODB_DATABASE'])
redis_service = create_redis_service(app.config['REDIS_URL'])
auth_service = AuthService(
    app.config['JWT_PRIVATE_KEY'],
    app.config['JWT_PUBLIC_KEY'],
    app.config['SUPERADMIN_USERNAME'],
    app.config['SUPERADMIN_PASSWORD']
)
audit_service = AuditService(mongodb_service)
health_service = HealthCheckService(mongodb_service, redis_service, app.config['SERVICE_VERSION'])
token_ledger = TokenLedgerService(
    mongodb_service,
    tz=resolve_timezone(app.config['TOKEN_DAY_TIMEZONE']),
    max_attempts=app.config['TOKEN_CAS_MAX_ATTEMPTS']
)
receipt_renderer = TokenReceiptRenderer()
upload_store = UploadStore(app.config['UPLOADS_DIR'])

# Initialize middleware
hal_formatter = create_hal_formatter(BASE_URL)
auth_middleware = AuthMiddleware(auth_service, redis_service)
error_handler = ErrorHandlerMiddleware(app, BASE_URL)

# Configure CORS
cors_middleware = configure_cors(app, allow_credentials=True)

# Register custom error handlers
register_custom_error_handlers(app, hal_formatter)

# Make services available to routes
app.mongodb_service = mongodb_service
app.redis_service = redis_service
app.auth_service = auth_service
app.audit_service = audit_service
app.health_service = health_service
app.token_ledger = token_ledger
app.receipt_renderer = receipt_renderer
app.upload_store = upload_store
app.hal_formatter = hal_formatter
app.validation_middleware = validation_middleware
app.auth_middleware = auth_middleware

# Register routes
from routes.auth import auth_bp
from routes.services import services_bp
from routes.bundles import bundles_bp
from routes.assistance import assistance_bp
from routes.admin import admin_bp, uploads_bp
from routes.superadmin import superadmin_bp

app.register_api(auth_bp)
app.register_api(services_bp)
app.register_api(bundles_bp)
app.register_api(assistance_bp)
app.register_api(admin_bp)
app.register_api(uploads_bp)
app.register_api(superadmin_bp)


@app.get('/api/healthz', tags=[tags[0]], responses={200: HealthCheckResponse, 503: HealthCheckResponse})
def health_check():
    """Dependency health; 503 when MongoDB is unreachable."""
    try:
        health_data = app.health_service.get_comprehensive_health()
    except PyMongoError as e:
        logger.error("Health check failed", extra={"error": str(e)})
        health_data = {
            "status": "unhealthy",
            "service": "sewa-directory-api",
            "version": app.config['SERVICE_VERSION'],
            "environment": app.config['ENVIRONMENT'],
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "error": f"Health check service failed: {str(e)}"
        }

    status_code = 503 if health_data["status"] == "unhealthy" else 200

    health_response = hal_formatter.builder.build_resource_response(
        health_data,
        {'self': hal_formatter.builder.link_builder.build_self_link('/api/healthz')}
    )
    return jsonify(health_response), status_code


if __name__ == '__main__':
    # Development server
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=app.config['DEBUG']
    )
