# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Public service directory endpoints, including daily token issuance.
"""

from io import BytesIO
from flask import jsonify, current_app, send_file
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from pymongo.errors import PyMongoError
import logging

from models.base import ObjectIdPath
from models.requests import ServiceSearchQuery, TokenRequest
from models.responses import TokenStatusResponse, LocationsResponse, ErrorResponse
from domain.tokens import PersistenceFailure
from domain.directory import (
    LocationFilter,
    build_search_query,
    filter_by_owner_location,
    group_by_organization,
    collect_locations
)
from services.mongodb import SERVICES, USERS
from services.token_ledger import ServiceNotFound
from services.receipt import build_receipt_content, receipt_filename
from middleware.rate_limit import rate_limit_tokens
from middleware.error_handler import NotFoundException
from utils.serialization import serialize_document, serialize_documents

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

OWNER_FIELDS = ("organizationName", "location")


def _public_service(service):
    document = serialize_document(service)
    document["tokenAvailability"] = current_app.token_ledger.token_availability(service).value
    return current_app.hal_formatter.format_service(document)


directory_tag = Tag(name="Directory", description="Public service search and daily tokens")
services_bp = APIBlueprint(
    'services',
    __name__,
    url_prefix='/api',
    abp_tags=[directory_tag]
)


@services_bp.get('/services')
def search_services(query: ServiceSearchQuery):
    """
    Search services by keyword and by the offering organization's location.

    Location parts match the organization's values exactly, ignoring case.
    """
    with tracer.start_as_current_span("services.search") as span:
        mongodb_service = current_app.mongodb_service

        services = mongodb_service.find(SERVICES, build_search_query(query.q))
        mongodb_service.populate(services, "userId", USERS, OWNER_FIELDS)

        location_filter = LocationFilter(query.province, query.district, query.municipality)
        services = filter_by_owner_location(services, location_filter)

        span.set_attributes({
            "search.keyword": query.q or "",
            "search.result_count": len(services)
        })

        return jsonify([_public_service(service) for service in services])


@services_bp.get('/services/<id>', responses={404: ErrorResponse})
def get_service(path: ObjectIdPath):
    """Service detail with the offering organization."""
    mongodb_service = current_app.mongodb_service

    service = mongodb_service.find_by_id(SERVICES, path.id)
    if not service:
        raise NotFoundException("Service not found")

    mongodb_service.populate([service], "userId", USERS, OWNER_FIELDS)
    return jsonify(_public_service(service))


@services_bp.post('/services/<id>/token', responses={400: ErrorResponse, 404: ErrorResponse, 503: ErrorResponse})
@rate_limit_tokens
def request_token(path: ObjectIdPath, body: TokenRequest):
    """
    Issue the next same-day token for a service and return its PDF receipt.

    Rejected with 400 when the service does not issue tokens or today's
    limit is reached, and with 503 when the counter could not be stored.
    """
    with tracer.start_as_current_span("services.request_token", attributes={"service.id": path.id}) as span:
        mongodb_service = current_app.mongodb_service

        # Everything the receipt needs is read before the counter is written
        try:
            service = mongodb_service.find_by_id(SERVICES, path.id, projection={"userId": 1})
            if service is None:
                raise ServiceNotFound(path.id)
            organization = mongodb_service.find_by_id(
                USERS,
                service.get("userId"),
                projection={name: 1 for name in OWNER_FIELDS}
            )
        except PyMongoError as e:
            logger.error("Failed to load service for token request", extra={"service_id": path.id, "error": str(e)})
            raise PersistenceFailure() from e

        token_ledger = current_app.token_ledger
        issued = token_ledger.request_token(path.id)

        content = build_receipt_content(
            issued.token_number,
            issued.service,
            organization,
            body.user_name,
            body.user_contact,
            issued.issued_at,
            token_ledger.tz
        )
        pdf = current_app.receipt_renderer.render(content)

        span.set_attribute("token.number", issued.token_number)
        return send_file(
            BytesIO(pdf),
            mimetype='application/pdf',
            as_attachment=True,
            download_name=receipt_filename(path.id, issued.token_number, issued.issued_at)
        )


@services_bp.get('/services/<id>/token-status', responses={200: TokenStatusResponse, 404: ErrorResponse})
def token_status(path: ObjectIdPath):
    """Today's token availability for a service."""
    status = current_app.token_ledger.token_status(path.id)
    return jsonify(status.to_dict())


@services_bp.get('/locations', responses={200: LocationsResponse})
def list_locations():
    """Sorted distinct provinces, districts and municipalities of registered organizations."""
    redis_service = current_app.redis_service

    cached = redis_service.get_cached_locations()
    if cached is not None:
        return jsonify(cached)

    users = current_app.mongodb_service.find(USERS, {}, {"location": 1})
    locations = collect_locations(user.get("location") for user in users).to_dict()

    redis_service.cache_locations(locations)
    return jsonify(locations)


@services_bp.get('/organization-services')
def organization_services():
    """Organizations offering the most services, with a summary of each service."""
    mongodb_service = current_app.mongodb_service

    services = mongodb_service.find(SERVICES, {})
    mongodb_service.populate(services, "userId", USERS, OWNER_FIELDS)

    return jsonify(serialize_documents(group_by_organization(services)))
