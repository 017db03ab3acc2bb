# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for Pydantic models.
"""

import pytest
from datetime import datetime
from pydantic import ValidationError
from bson import ObjectId

from models.base import Location, ObjectIdPath, optional_object_id
from models.entities import User, LicenseKey, Service, ServiceBundle, AssistanceRequest, UserContext
from models.enums import UserRole, RequestType
from models.requests import (
    RegisterRequest,
    ServiceRequest,
    BundleCreate,
    BundleUpdate,
    LicenseKeyRequest,
    AssistanceUpdate
)

LOCATION = {"province": "Bagmati", "district": "Kathmandu", "municipality": "Kathmandu"}


class TestLocation:

    def test_strips_whitespace(self):
        location = Location(province=" Bagmati ", district="Kathmandu", municipality="Kathmandu ")

        assert location.province == "Bagmati"
        assert location.display() == "Kathmandu, Kathmandu, Bagmati"

    def test_parts_required(self):
        with pytest.raises(ValidationError):
            Location(province="Bagmati", district="", municipality="Kathmandu")


class TestObjectIdPath:

    def test_valid(self):
        value = str(ObjectId())
        assert ObjectIdPath(id=value).id == value

    def test_invalid(self):
        with pytest.raises(ValidationError):
            ObjectIdPath(id="123")

    def test_optional(self):
        assert optional_object_id("") is None
        with pytest.raises(ValueError):
            optional_object_id("nope")


class TestUserModel:

    def test_from_document(self, admin_user_doc):
        user = User.from_document(admin_user_doc)

        assert user.id == str(admin_user_doc["_id"])
        assert user.role == "admin"
        assert user.location.district == "Kathmandu"

    def test_public_profile_has_no_password(self, admin_user_doc):
        profile = User.from_document(admin_user_doc).public_profile()

        assert "password" not in profile
        assert "passwordHash" not in profile
        assert profile["organizationName"] == "Ward Office 4"

    def test_blank_username(self, admin_user_doc):
        with pytest.raises(ValidationError):
            User.from_document(dict(admin_user_doc, username="   "))


class TestLicenseKeyModel:

    def test_expiry(self):
        key = LicenseKey(key="LIC-1-ABCDEFGHI", expires_at=datetime(2024, 1, 1))

        assert key.is_expired(datetime(2024, 1, 2)) is True
        assert key.is_redeemable(datetime(2023, 12, 31)) is True

    def test_from_document_references(self):
        user_id = ObjectId()
        key = LicenseKey.from_document({"_id": ObjectId(), "key": "LIC-1-A", "isUsed": True, "usedBy": user_id})

        assert key.used_by == str(user_id)
        assert key.created_by is None


class TestServiceModel:

    def test_round_trip(self, service_doc):
        service = Service.from_document(service_doc)

        assert service.tokens_enabled is True
        assert service.to_document()["dailyTokenLimit"] == 2
        assert service.to_document()["userId"] == service_doc["userId"]

    def test_disabled_service_has_no_limit(self, service_doc):
        with pytest.raises(ValidationError):
            Service.from_document(dict(service_doc, tokensEnabled=False, dailyTokenLimit=5))

    def test_negative_counter(self, service_doc):
        with pytest.raises(ValidationError):
            Service.from_document(dict(service_doc, tokensIssued=-1))


class TestBundleAndAssistance:

    def test_bundle_needs_services(self):
        with pytest.raises(ValidationError):
            ServiceBundle(bundle_name="B", services=[], location=LOCATION)

    def test_assistance_reference(self):
        with pytest.raises(ValidationError):
            AssistanceRequest(user_name="Sita", user_contact="98", request_type=RequestType.BUNDLE)

        request = AssistanceRequest(
            user_name="Sita", user_contact="98", request_type=RequestType.SERVICE, service_id="abc"
        )
        assert request.status == "pending"

    def test_user_context_roles(self):
        context = UserContext(user_id="superadmin", username="root", role=UserRole.SUPERADMIN)

        assert context.is_superadmin is True
        assert context.has_role(UserRole.ADMIN) is False


class TestRequestModels:

    def test_register_request_aliases(self):
        body = RegisterRequest.model_validate({
            "organizationName": "Ward Office 4",
            "username": "ward4",
            "password": "secret1",
            "province": "Bagmati",
            "district": "Kathmandu",
            "municipality": "Kathmandu",
            "licenseKey": "LIC-1-ABCDEFGHI"
        })

        assert body.organization_name == "Ward Office 4"
        assert body.location().model_dump() == LOCATION

    def test_register_request_blank_field(self):
        with pytest.raises(ValidationError, match="All fields including license key are required"):
            RegisterRequest.model_validate({"username": "ward4", "password": "secret1"})

    def test_service_request_keeps_raw_token_settings(self):
        body = ServiceRequest.model_validate({
            "serviceName": "Passport",
            "procedure": "Apply",
            "estimatedTime": "2 days",
            "charge": "Rs. 500",
            "documents": ["", "Photo"],
            "tokensEnabled": "true",
            "dailyTokenLimit": "15"
        })

        assert body.tokens_enabled == "true"
        assert body.daily_token_limit == "15"
        assert body.descriptive_fields()["documents"] == ["Photo"]
        assert body.descriptive_fields()["sampleFormUrl"] == ""

    def test_bundle_create_requires_location(self):
        with pytest.raises(ValidationError, match="Bundle name, services, and location are required"):
            BundleCreate.model_validate({"bundleName": "B", "services": ["x"]})

    def test_bundle_update_is_partial(self):
        body = BundleUpdate.model_validate({"bundleName": "Renamed"})

        assert body.model_dump(by_alias=True, exclude_unset=True, exclude_none=True) == {"bundleName": "Renamed"}

    def test_license_key_request_defaults(self):
        body = LicenseKeyRequest.model_validate({})

        assert body.count == 1
        assert body.expires_at is None

    def test_assistance_update_status(self):
        assert AssistanceUpdate.model_validate({"status": "resolved"}).status == "resolved"

        with pytest.raises(ValidationError):
            AssistanceUpdate.model_validate({"status": "archived"})
