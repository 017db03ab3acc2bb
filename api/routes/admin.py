# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Organization admin endpoints: service listings and sample form uploads.
"""

from flask import request, jsonify, current_app, send_from_directory
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging
from bson import ObjectId

from models.base import ObjectIdPath
from models.requests import ServiceRequest, UploadPath
from models.responses import MessageResponse, UploadResponse, ErrorResponse
from models.entities import UserContext
from models.enums import UserRole, AuditEntity, AuditAction
from domain.tokens import normalize_token_settings
from services.mongodb import SERVICES, UPLOADS
from services.token_ledger import ServiceNotFound
from services.uploads import UploadRejected, UPLOAD_FIELD
from middleware.auth import require_role
from middleware.error_handler import ValidationException, NotFoundException
from utils.serialization import serialize_document

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

admin_tag = Tag(name="Admin", description="Service management for organization admins")
admin_bp = APIBlueprint(
    'admin',
    __name__,
    url_prefix='/api',
    abp_tags=[admin_tag]
)

uploads_tag = Tag(name="Uploads", description="Uploaded sample forms")
uploads_bp = APIBlueprint(
    'uploads',
    __name__,
    url_prefix='/uploads',
    abp_tags=[uploads_tag]
)


def _token_settings_changed(before: dict, after: dict) -> bool:
    return (before.get("tokensEnabled"), before.get("dailyTokenLimit")) != \
        (after.get("tokensEnabled"), after.get("dailyTokenLimit"))


def _require_own_upload(user_context: UserContext, file_url: str) -> None:
    """A service may only point at a sample form its own organization uploaded."""
    if not file_url:
        return

    record = current_app.mongodb_service.find_one(
        UPLOADS,
        {"fileUrl": file_url, "userId": ObjectId(user_context.user_id)}
    )
    if record is None:
        raise ValidationException("Sample form not found or unauthorized")


def _release_sample_form(file_url: str) -> None:
    """Delete a sample form once no service references it any more."""
    if not file_url:
        return

    mongodb_service = current_app.mongodb_service
    if mongodb_service.find_one(SERVICES, {"sampleFormUrl": file_url}, {"_id": 1}) is not None:
        logger.info("Sample form still referenced, keeping it", extra={"file_url": file_url})
        return

    current_app.upload_store.delete(file_url)
    mongodb_service.delete_one(UPLOADS, {"fileUrl": file_url})


@admin_bp.get('/admin/services')
@require_role(UserRole.ADMIN)
def list_own_services(user_context: UserContext):
    """Services listed by the caller's organization, newest first, with today's token availability."""
    services = current_app.mongodb_service.find(
        SERVICES,
        {"userId": ObjectId(user_context.user_id)},
        sort=[("createdAt", -1)]
    )
    token_ledger = current_app.token_ledger
    hal_formatter = current_app.hal_formatter

    listing = []
    for service in services:
        document = serialize_document(service)
        document["tokenAvailability"] = token_ledger.token_availability(service).value
        listing.append(hal_formatter.format_admin_service(document))
    return jsonify(listing)


@admin_bp.post('/admin/services', responses={400: ErrorResponse})
@require_role(UserRole.ADMIN)
def create_service(user_context: UserContext, body: ServiceRequest):
    """
    List a new service.

    Token issuance starts with an empty counter; a service created with
    tokens disabled always stores a limit of 0.
    """
    with tracer.start_as_current_span("admin.create_service", attributes={"user.id": user_context.user_id}) as span:
        tokens_enabled, daily_token_limit = normalize_token_settings(body.tokens_enabled, body.daily_token_limit)
        _require_own_upload(user_context, body.sample_form_url)

        service = {"_id": ObjectId(), **body.descriptive_fields(), "userId": ObjectId(user_context.user_id)}
        service.update(current_app.token_ledger.initial_state(tokens_enabled, daily_token_limit))

        current_app.mongodb_service.create(SERVICES, service)
        current_app.audit_service.log_action(
            user_context,
            AuditEntity.SERVICE.value,
            service["_id"],
            AuditAction.CREATE.value,
            after=service
        )

        span.set_attributes({"service.id": str(service["_id"]), "token.enabled": tokens_enabled})
        return jsonify(current_app.hal_formatter.format_admin_service(serialize_document(service))), 201


@admin_bp.put('/admin/services/<id>', responses={400: ErrorResponse, 404: ErrorResponse, 503: ErrorResponse})
@require_role(UserRole.ADMIN)
def update_service(user_context: UserContext, path: ObjectIdPath, body: ServiceRequest):
    """
    Update one of the caller's services.

    Changing whether tokens are enabled, or the daily limit, restarts the
    day's count in the same write.
    """
    with tracer.start_as_current_span("admin.update_service", attributes={"service.id": path.id}):
        tokens_enabled, daily_token_limit = normalize_token_settings(body.tokens_enabled, body.daily_token_limit)
        _require_own_upload(user_context, body.sample_form_url)

        try:
            before, after = current_app.token_ledger.update_service(
                path.id,
                body.descriptive_fields(),
                tokens_enabled,
                daily_token_limit,
                owner_id=user_context.user_id
            )
        except ServiceNotFound:
            raise NotFoundException("Service not found or unauthorized")

        if before.get("sampleFormUrl") != after.get("sampleFormUrl"):
            _release_sample_form(before.get("sampleFormUrl"))

        action = AuditAction.RECONFIGURE_TOKENS if _token_settings_changed(before, after) else AuditAction.UPDATE
        current_app.audit_service.log_action(
            user_context,
            AuditEntity.SERVICE.value,
            path.id,
            action.value,
            before=before,
            after=after
        )

        return jsonify(current_app.hal_formatter.format_admin_service(serialize_document(after)))


@admin_bp.delete('/admin/services/<id>', responses={200: MessageResponse, 404: ErrorResponse})
@require_role(UserRole.ADMIN)
def delete_service(user_context: UserContext, path: ObjectIdPath):
    """Delete one of the caller's services together with its uploaded sample form."""
    deleted = current_app.mongodb_service.delete_by_id(SERVICES, path.id, owner_id=user_context.user_id)
    if not deleted:
        raise NotFoundException("Service not found or unauthorized")

    _release_sample_form(deleted.get("sampleFormUrl"))
    current_app.audit_service.log_action(
        user_context,
        AuditEntity.SERVICE.value,
        path.id,
        AuditAction.DELETE.value,
        before=deleted
    )

    return jsonify({"message": "Service deleted successfully"})


@admin_bp.post('/upload', responses={200: UploadResponse, 400: ErrorResponse})
@require_role(UserRole.ADMIN)
def upload_sample_form(user_context: UserContext):
    """Upload a sample form PDF (multipart field ``sampleForm``, 5 MB at most)."""
    try:
        file_url = current_app.upload_store.save(request.files.get(UPLOAD_FIELD))
    except UploadRejected as e:
        raise ValidationException(str(e))

    current_app.mongodb_service.create(UPLOADS, {"fileUrl": file_url, "userId": ObjectId(user_context.user_id)})

    logger.info("Sample form uploaded", extra={"user_id": user_context.user_id, "file_url": file_url})
    return jsonify({"message": "File uploaded successfully", "fileUrl": file_url})


@uploads_bp.get('/<filename>')
def serve_upload(path: UploadPath):
    """Serve a previously uploaded sample form."""
    return send_from_directory(current_app.upload_store.uploads_dir, path.filename)
