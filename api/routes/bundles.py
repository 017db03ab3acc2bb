# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Public service bundle listing.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace

from models.requests import LocationQuery
from domain.directory import LocationFilter, build_bundle_query
from services.mongodb import BUNDLES, SERVICES, USERS
from utils.serialization import serialize_documents

tracer = trace.get_tracer(__name__)

bundles_tag = Tag(name="Bundles", description="Curated groups of services")
bundles_bp = APIBlueprint(
    'bundles',
    __name__,
    url_prefix='/api',
    abp_tags=[bundles_tag]
)


@bundles_bp.get('/bundles')
def list_bundles(query: LocationQuery):
    """
    Active bundles, newest first.

    Location parts match anywhere in the bundle's location, ignoring case.
    Each bundle embeds its services and the organizations offering them.
    """
    with tracer.start_as_current_span("bundles.list") as span:
        mongodb_service = current_app.mongodb_service

        location_filter = LocationFilter(query.province, query.district, query.municipality)
        bundles = mongodb_service.find(BUNDLES, build_bundle_query(location_filter), sort=[("createdAt", -1)])
        mongodb_service.populate(bundles, "services", SERVICES)

        # A service shared by several bundles is one document; populate it once
        services = {service["_id"]: service for bundle in bundles for service in bundle.get("services", [])}
        mongodb_service.populate(list(services.values()), "userId", USERS, ("organizationName", "location"))

        span.set_attribute("bundles.count", len(bundles))
        return jsonify(serialize_documents(bundles))
