# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Superadmin endpoints: accounts, license keys, bundles, assistance requests
and the audit trail.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging
from typing import Any, Dict, List, Optional
from bson import ObjectId

from models.base import ObjectIdPath
from models.requests import (
    UserStatusRequest,
    LicenseKeyRequest,
    KeywordQuery,
    BundleCreate,
    BundleUpdate,
    AssistanceUpdate,
    AuditLogQuery
)
from models.responses import MessageResponse, ErrorResponse
from models.entities import UserContext, LicenseKey
from models.enums import UserRole, AuditEntity, AuditAction
from domain.directory import build_search_query, unique_ids, missing_ids
from domain.licensing import generate_license_keys, can_delete
from services.mongodb import USERS, LICENSE_KEYS, SERVICES, BUNDLES, ASSISTANCE_REQUESTS
from services.audit import AuditFilters
from middleware.auth import require_role
from middleware.error_handler import ValidationException, NotFoundException
from utils.serialization import serialize_document, serialize_documents

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

BUNDLE_SERVICE_FIELDS = ("serviceName", "estimatedTime", "charge")

superadmin_tag = Tag(name="Superadmin", description="System administration")
superadmin_bp = APIBlueprint(
    'superadmin',
    __name__,
    url_prefix='/api/superadmin',
    abp_tags=[superadmin_tag]
)


def _created_by(user_context: UserContext) -> Optional[ObjectId]:
    """The system superadmin has no user document to reference."""
    if user_context.is_superadmin:
        return None
    return ObjectId(user_context.user_id)


def _populate_bundles(bundles: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    mongodb_service = current_app.mongodb_service
    mongodb_service.populate(bundles, "services", SERVICES, BUNDLE_SERVICE_FIELDS)
    mongodb_service.populate(bundles, "createdBy", USERS, ("username",))
    return bundles


def _require_services(service_ids: List[str]) -> List[ObjectId]:
    """Resolve bundle service references; every one must exist."""
    ids = unique_ids(service_ids)
    found = current_app.mongodb_service.find_by_ids(SERVICES, ids, {"_id": 1})
    if missing_ids(ids, [doc["_id"] for doc in found]):
        raise ValidationException("One or more services not found")
    return [ObjectId(service_id) for service_id in ids]


# Users

@superadmin_bp.get('/users')
@require_role(UserRole.SUPERADMIN)
def list_users(user_context: UserContext):
    """All organization accounts, newest first, without password hashes."""
    users = current_app.mongodb_service.find(USERS, {}, {"password": 0}, sort=[("createdAt", -1)])
    return jsonify(serialize_documents(users))


@superadmin_bp.put('/users/<id>/status', responses={404: ErrorResponse})
@require_role(UserRole.SUPERADMIN)
def update_user_status(user_context: UserContext, path: ObjectIdPath, body: UserStatusRequest):
    """Activate or deactivate an account; inactive accounts cannot log in."""
    mongodb_service = current_app.mongodb_service

    before = mongodb_service.find_by_id(USERS, path.id)
    if not before:
        raise NotFoundException("User not found")

    after = mongodb_service.update_by_id(USERS, path.id, {"isActive": body.is_active})
    if not after:
        raise NotFoundException("User not found")

    current_app.audit_service.log_action(
        user_context,
        AuditEntity.USER.value,
        path.id,
        AuditAction.STATUS_CHANGE.value,
        before=before,
        after=after
    )

    logger.info("User status changed", extra={"target_user_id": path.id, "is_active": body.is_active})
    return jsonify(serialize_document(after))


# License keys

@superadmin_bp.get('/license-keys')
@require_role(UserRole.SUPERADMIN)
def list_license_keys(user_context: UserContext):
    """License keys, newest first, with the consuming account."""
    mongodb_service = current_app.mongodb_service

    keys = mongodb_service.find(LICENSE_KEYS, {}, sort=[("createdAt", -1)])
    mongodb_service.populate(keys, "usedBy", USERS, ("username", "organizationName"))
    mongodb_service.populate(keys, "createdBy", USERS, ("username",))

    return jsonify(serialize_documents(keys))


@superadmin_bp.post('/license-keys', responses={400: ErrorResponse})
@require_role(UserRole.SUPERADMIN)
def create_license_keys(user_context: UserContext, body: LicenseKeyRequest):
    """Issue a batch of single-use license keys."""
    with tracer.start_as_current_span("superadmin.create_license_keys", attributes={"license.count": body.count}):
        created_by = _created_by(user_context)
        documents = [
            {
                "_id": ObjectId(),
                "key": key,
                "isUsed": False,
                "usedBy": None,
                "createdBy": created_by,
                "expiresAt": body.expires_at
            }
            for key in generate_license_keys(body.count)
        ]

        current_app.mongodb_service.create_many(LICENSE_KEYS, documents)
        for document in documents:
            current_app.audit_service.log_action(
                user_context,
                AuditEntity.LICENSE_KEY.value,
                document["_id"],
                AuditAction.CREATE.value,
                after=document
            )

        logger.info("License keys issued", extra={"count": len(documents)})
        return jsonify(serialize_documents(documents)), 201


@superadmin_bp.delete('/license-keys/<id>', responses={200: MessageResponse, 400: ErrorResponse, 404: ErrorResponse})
@require_role(UserRole.SUPERADMIN)
def delete_license_key(user_context: UserContext, path: ObjectIdPath):
    """Delete an unused license key; consumed keys stay on record."""
    mongodb_service = current_app.mongodb_service

    key_doc = mongodb_service.find_by_id(LICENSE_KEYS, path.id)
    if not key_doc:
        raise NotFoundException("License key not found")

    if not can_delete(LicenseKey.from_document(key_doc)):
        raise ValidationException("Cannot delete used license key")

    # Registration may claim the key between the check and the delete
    deleted = mongodb_service.delete_by_id(LICENSE_KEYS, path.id, expected={"isUsed": False})
    if not deleted:
        raise ValidationException("Cannot delete used license key")

    current_app.audit_service.log_action(
        user_context,
        AuditEntity.LICENSE_KEY.value,
        path.id,
        AuditAction.DELETE.value,
        before=deleted
    )
    return jsonify({"message": "License key deleted successfully"})


# Services

@superadmin_bp.get('/services')
@require_role(UserRole.SUPERADMIN)
def list_all_services(user_context: UserContext, query: KeywordQuery):
    """All services, optionally filtered by keyword, for building bundles."""
    mongodb_service = current_app.mongodb_service

    services = mongodb_service.find(SERVICES, build_search_query(query.q))
    mongodb_service.populate(services, "userId", USERS, ("organizationName", "location"))
    return jsonify(serialize_documents(services))


# Bundles

@superadmin_bp.get('/bundles')
@require_role(UserRole.SUPERADMIN)
def list_bundles(user_context: UserContext):
    """Every bundle, active or not, newest first."""
    bundles = current_app.mongodb_service.find(BUNDLES, {}, sort=[("createdAt", -1)])
    return jsonify(serialize_documents(_populate_bundles(bundles)))


@superadmin_bp.post('/bundles', responses={400: ErrorResponse})
@require_role(UserRole.SUPERADMIN)
def create_bundle(user_context: UserContext, body: BundleCreate):
    """Create a bundle; every referenced service must exist."""
    with tracer.start_as_current_span("superadmin.create_bundle"):
        bundle = {
            "_id": ObjectId(),
            "bundleName": body.bundle_name,
            "description": body.description,
            "services": _require_services(body.services),
            "location": body.location.model_dump(),
            "createdBy": _created_by(user_context),
            "isActive": True
        }

        current_app.mongodb_service.create(BUNDLES, bundle)
        current_app.audit_service.log_action(
            user_context,
            AuditEntity.BUNDLE.value,
            bundle["_id"],
            AuditAction.CREATE.value,
            after=bundle
        )

        return jsonify(serialize_document(_populate_bundles([dict(bundle)])[0])), 201


@superadmin_bp.put('/bundles/<id>', responses={400: ErrorResponse, 404: ErrorResponse})
@require_role(UserRole.SUPERADMIN)
def update_bundle(user_context: UserContext, path: ObjectIdPath, body: BundleUpdate):
    """Partially update a bundle; omitted fields keep their value."""
    mongodb_service = current_app.mongodb_service

    before = mongodb_service.find_by_id(BUNDLES, path.id)
    if not before:
        raise NotFoundException("Bundle not found")

    updates = body.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
    if "services" in updates:
        updates["services"] = _require_services(body.services)

    after = mongodb_service.update_by_id(BUNDLES, path.id, updates) if updates else before
    if not after:
        raise NotFoundException("Bundle not found")

    if updates:
        current_app.audit_service.log_action(
            user_context,
            AuditEntity.BUNDLE.value,
            path.id,
            AuditAction.UPDATE.value,
            before=before,
            after=after
        )

    return jsonify(serialize_document(_populate_bundles([after])[0]))


@superadmin_bp.delete('/bundles/<id>', responses={200: MessageResponse, 404: ErrorResponse})
@require_role(UserRole.SUPERADMIN)
def delete_bundle(user_context: UserContext, path: ObjectIdPath):
    deleted = current_app.mongodb_service.delete_by_id(BUNDLES, path.id)
    if not deleted:
        raise NotFoundException("Bundle not found")

    current_app.audit_service.log_action(
        user_context,
        AuditEntity.BUNDLE.value,
        path.id,
        AuditAction.DELETE.value,
        before=deleted
    )
    return jsonify({"message": "Bundle deleted successfully"})


# Assistance requests

@superadmin_bp.get('/assistance-requests')
@require_role(UserRole.SUPERADMIN)
def list_assistance_requests(user_context: UserContext):
    """Assistance requests, newest first, with the referenced service or bundle name."""
    mongodb_service = current_app.mongodb_service

    requests = mongodb_service.find(ASSISTANCE_REQUESTS, {}, sort=[("createdAt", -1)])
    mongodb_service.populate(requests, "serviceId", SERVICES, ("serviceName",))
    mongodb_service.populate(requests, "bundleId", BUNDLES, ("bundleName",))

    return jsonify(serialize_documents(requests))


@superadmin_bp.put('/assistance-requests/<id>', responses={404: ErrorResponse})
@require_role(UserRole.SUPERADMIN)
def update_assistance_request(user_context: UserContext, path: ObjectIdPath, body: AssistanceUpdate):
    """Record follow-up status and notes."""
    mongodb_service = current_app.mongodb_service

    before = mongodb_service.find_by_id(ASSISTANCE_REQUESTS, path.id)
    if not before:
        raise NotFoundException("Assistance request not found")

    updates = body.model_dump(exclude_unset=True, exclude_none=True)
    after = mongodb_service.update_by_id(ASSISTANCE_REQUESTS, path.id, updates) if updates else before
    if not after:
        raise NotFoundException("Assistance request not found")

    current_app.audit_service.log_action(
        user_context,
        AuditEntity.ASSISTANCE_REQUEST.value,
        path.id,
        AuditAction.UPDATE.value,
        before=before,
        after=after
    )
    return jsonify(serialize_document(after))


# Audit trail

@superadmin_bp.get('/audit-logs')
@require_role(UserRole.SUPERADMIN)
def list_audit_logs(user_context: UserContext, query: AuditLogQuery):
    """Administrative actions, newest first."""
    filters = AuditFilters(user_id=query.user_id, entity=query.entity, action=query.action)
    result = current_app.audit_service.query_audit_logs(filters, query.page, query.page_size)

    return jsonify(current_app.hal_formatter.format_collection(
        serialize_documents(result.items),
        result.total,
        result.page,
        result.page_size,
        "/api/superadmin/audit-logs",
        {"entity": query.entity, "action": query.action, "user_id": query.user_id}
    ))
