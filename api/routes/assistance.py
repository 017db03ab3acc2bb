# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Citizen assistance requests.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging
from bson import ObjectId

from models.requests import AssistanceRequestCreate
from models.responses import ErrorResponse
from models.enums import AssistanceStatus, RequestType
from services.mongodb import ASSISTANCE_REQUESTS, SERVICES, BUNDLES
from middleware.rate_limit import rate_limit_public_form
from middleware.error_handler import NotFoundException
from utils.serialization import serialize_document

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

assistance_tag = Tag(name="Assistance", description="Requests for help from citizens")
assistance_bp = APIBlueprint(
    'assistance',
    __name__,
    url_prefix='/api',
    abp_tags=[assistance_tag]
)


@assistance_bp.post('/assistance-request', responses={400: ErrorResponse, 404: ErrorResponse})
@rate_limit_public_form
def create_assistance_request(body: AssistanceRequestCreate):
    """Ask for help with a service or a bundle; the referenced item must exist."""
    with tracer.start_as_current_span(
        "assistance.create",
        attributes={"assistance.request_type": body.request_type}
    ):
        mongodb_service = current_app.mongodb_service
        is_service = body.request_type == RequestType.SERVICE.value

        if is_service:
            if not mongodb_service.find_by_id(SERVICES, body.service_id, projection={"_id": 1}):
                raise NotFoundException("Service not found")
        elif not mongodb_service.find_by_id(BUNDLES, body.bundle_id, projection={"_id": 1}):
            raise NotFoundException("Bundle not found")

        request_doc = {
            "_id": ObjectId(),
            "userName": body.user_name,
            "userContact": body.user_contact,
            "requestType": body.request_type,
            "serviceId": ObjectId(body.service_id) if is_service else None,
            "bundleId": None if is_service else ObjectId(body.bundle_id),
            "status": AssistanceStatus.PENDING.value,
            "notes": ""
        }
        mongodb_service.create(ASSISTANCE_REQUESTS, request_doc)

        logger.info(
            "Assistance request submitted",
            extra={"request_id": str(request_doc["_id"]), "request_type": body.request_type}
        )
        return jsonify({
            "message": "Assistance request submitted successfully",
            "request": serialize_document(request_doc)
        }), 201
