# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.

The application is imported with Redis disabled and tracing off; MongoDB is
never contacted because every endpoint test swaps ``app.mongodb_service``
(and the services built on it) for mocks.
"""

import os
import tempfile
import pytest
from datetime import datetime
from unittest.mock import MagicMock, patch
from bson import ObjectId

# Set test environment before the app module is imported
os.environ['ENVIRONMENT'] = 'test'
os.environ['MONGODB_DATABASE'] = 'sewa_directory_test'
os.environ['REDIS_URL'] = ''
os.environ['OTEL_ENABLED'] = 'false'
os.environ['SUPERADMIN_USERNAME'] = 'root'
os.environ['SUPERADMIN_PASSWORD'] = 'root-password'
os.environ.setdefault('UPLOADS_DIR', tempfile.mkdtemp(prefix='sewa-uploads-'))


@pytest.fixture(scope="session")
def flask_app():
    from app import app
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture
def mock_mongodb(flask_app):
    """Replace the MongoDB service used by routes, the ledger and the audit trail."""
    mongodb = MagicMock()
    mongodb.populate.side_effect = lambda documents, *args, **kwargs: documents
    with patch.object(flask_app, 'mongodb_service', mongodb), \
            patch.object(flask_app.token_ledger, 'mongodb_service', mongodb), \
            patch.object(flask_app.audit_service, 'mongo_service', mongodb):
        yield mongodb


@pytest.fixture
def admin_user_doc():
    """Stored organization admin."""
    return {
        "_id": ObjectId(),
        "organizationName": "Ward Office 4",
        "username": "ward4",
        "password": "$2b$12$not.a.real.hash",
        "location": {"province": "Bagmati", "district": "Kathmandu", "municipality": "Kathmandu"},
        "licenseKey": "LIC-1700000000000-ABCDEFGHI",
        "role": "admin",
        "isActive": True,
        "createdAt": datetime(2024, 1, 1),
        "updatedAt": datetime(2024, 1, 1)
    }


@pytest.fixture
def service_doc(admin_user_doc):
    """Stored service with tokens enabled."""
    return {
        "_id": ObjectId(),
        "serviceName": "Citizenship Certificate",
        "documents": ["Birth certificate", "Parent's citizenship"],
        "procedure": "Submit the form at the ward office",
        "estimatedTime": "1 day",
        "charge": "Free",
        "sampleFormUrl": "",
        "userId": admin_user_doc["_id"],
        "tokensEnabled": True,
        "dailyTokenLimit": 2,
        "tokensIssued": 0,
        "lastTokenReset": datetime(2024, 3, 10, 8, 0),
        "createdAt": datetime(2024, 1, 1),
        "updatedAt": datetime(2024, 1, 1)
    }


@pytest.fixture
def admin_headers(flask_app, admin_user_doc):
    from models.entities import User
    user = User.from_document(admin_user_doc)
    tokens = flask_app.auth_service.generate_tokens(flask_app.auth_service.user_claims(user))
    return {"Authorization": f"Bearer {tokens['access_token']}"}


@pytest.fixture
def superadmin_headers(flask_app):
    tokens = flask_app.auth_service.generate_tokens(flask_app.auth_service.superadmin_claims())
    return {"Authorization": f"Bearer {tokens['access_token']}"}
