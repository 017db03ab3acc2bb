# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Endpoint tests for the public directory: search, locations, organizations,
bundles and assistance requests.
"""

import pytest
from unittest.mock import patch
from bson import ObjectId

from services.mongodb import SERVICES, USERS, BUNDLES, ASSISTANCE_REQUESTS

POKHARA = {"province": "Gandaki", "district": "Kaski", "municipality": "Pokhara"}


@pytest.fixture
def populated_services(mock_mongodb, service_doc, admin_user_doc):
    """Two services whose owners are already populated."""
    owner = {k: admin_user_doc[k] for k in ("_id", "organizationName", "location")}
    other = dict(
        service_doc,
        _id=ObjectId(),
        serviceName="Business Registration",
        tokensEnabled=False,
        userId={"_id": ObjectId(), "organizationName": "Pokhara Metro", "location": POKHARA}
    )
    services = [dict(service_doc, userId=owner), other]
    mock_mongodb.find.return_value = services
    return services


class TestSearch:

    def test_all_services(self, client, populated_services, mock_mongodb):
        response = client.get("/api/services")

        assert response.status_code == 200
        data = response.get_json()
        assert [s["serviceName"] for s in data] == ["Citizenship Certificate", "Business Registration"]
        assert data[0]["userId"]["organizationName"] == "Ward Office 4"
        mock_mongodb.find.assert_called_once_with(SERVICES, {})

    def test_links_follow_token_state(self, client, populated_services):
        data = client.get("/api/services").get_json()

        assert "request-token" in data[0]["_links"]
        assert "request-token" not in data[1]["_links"]

    def test_token_availability_listed(self, client, populated_services):
        data = client.get("/api/services").get_json()

        assert [s["tokenAvailability"] for s in data] == ["available", "disabled"]

    def test_keyword(self, client, populated_services, mock_mongodb):
        client.get("/api/services?q=citizen")

        query = mock_mongodb.find.call_args[0][1]
        assert query["$or"][0]["serviceName"]["$regex"] == "citizen"

    def test_location_filter_is_exact_and_case_insensitive(self, client, populated_services):
        data = client.get("/api/services?municipality=pokhara").get_json()
        assert [s["serviceName"] for s in data] == ["Business Registration"]

        assert client.get("/api/services?municipality=pok").get_json() == []

    def test_service_detail(self, client, mock_mongodb, service_doc):
        mock_mongodb.find_by_id.return_value = service_doc

        response = client.get(f"/api/services/{service_doc['_id']}")

        assert response.status_code == 200
        assert response.get_json()["_id"] == str(service_doc["_id"])
        assert response.get_json()["lastTokenReset"] == "2024-03-10T08:00:00Z"

    def test_service_detail_missing(self, client, mock_mongodb):
        mock_mongodb.find_by_id.return_value = None

        response = client.get(f"/api/services/{ObjectId()}")

        assert response.status_code == 404
        assert response.get_json()["error"] == "Service not found"


class TestLocations:

    def test_distinct_sorted(self, client, mock_mongodb, admin_user_doc):
        mock_mongodb.find.return_value = [
            {"location": POKHARA},
            {"location": admin_user_doc["location"]},
            {"location": POKHARA}
        ]

        response = client.get("/api/locations")

        assert response.get_json() == {
            "provinces": ["Bagmati", "Gandaki"],
            "districts": ["Kaski", "Kathmandu"],
            "municipalities": ["Kathmandu", "Pokhara"]
        }
        mock_mongodb.find.assert_called_once_with(USERS, {}, {"location": 1})

    def test_cached_locations(self, client, flask_app, mock_mongodb):
        cached = {"provinces": ["Bagmati"], "districts": [], "municipalities": []}

        with patch.object(flask_app.redis_service, "get_cached_locations", return_value=cached):
            response = client.get("/api/locations")

        assert response.get_json() == cached
        mock_mongodb.find.assert_not_called()


class TestOrganizationServices:

    def test_grouped(self, client, populated_services):
        response = client.get("/api/organization-services")

        data = response.get_json()
        assert response.status_code == 200
        assert {group["organizationName"] for group in data} == {"Ward Office 4", "Pokhara Metro"}
        assert all(group["totalServices"] == 1 for group in data)
        assert set(data[0]["services"][0]) == {"_id", "serviceName", "estimatedTime", "charge", "tokensEnabled"}


class TestBundles:

    def test_active_bundles_with_services(self, client, mock_mongodb, service_doc):
        bundle = {"_id": ObjectId(), "bundleName": "New Citizen", "services": [service_doc], "isActive": True}
        mock_mongodb.find.return_value = [bundle]

        response = client.get("/api/bundles?district=kath")

        assert response.status_code == 200
        assert response.get_json()[0]["services"][0]["serviceName"] == "Citizenship Certificate"
        collection, query = mock_mongodb.find.call_args[0]
        assert collection == BUNDLES
        assert query["isActive"] is True
        assert query["location.district"] == {"$regex": "kath", "$options": "i"}
        assert mock_mongodb.find.call_args[1]["sort"] == [("createdAt", -1)]

    def test_shared_service_populated_once(self, client, mock_mongodb, service_doc):
        bundles = [
            {"_id": ObjectId(), "bundleName": "A", "services": [service_doc]},
            {"_id": ObjectId(), "bundleName": "B", "services": [service_doc]}
        ]
        mock_mongodb.find.return_value = bundles

        client.get("/api/bundles")

        owner_call = mock_mongodb.populate.call_args_list[1][0]
        assert owner_call[1] == "userId"
        assert owner_call[0] == [service_doc]


class TestAssistanceRequests:

    def test_service_request(self, client, mock_mongodb, service_doc):
        mock_mongodb.find_by_id.return_value = {"_id": service_doc["_id"]}

        response = client.post("/api/assistance-request", json={
            "userName": "Sita",
            "userContact": "9800000000",
            "requestType": "service",
            "serviceId": str(service_doc["_id"])
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data["message"] == "Assistance request submitted successfully"
        assert data["request"]["status"] == "pending"
        assert data["request"]["bundleId"] is None
        collection, stored = mock_mongodb.create.call_args[0]
        assert collection == ASSISTANCE_REQUESTS
        assert stored["serviceId"] == service_doc["_id"]

    def test_unknown_bundle(self, client, mock_mongodb):
        mock_mongodb.find_by_id.return_value = None

        response = client.post("/api/assistance-request", json={
            "userName": "Sita",
            "userContact": "98",
            "requestType": "bundle",
            "bundleId": str(ObjectId())
        })

        assert response.status_code == 404
        assert response.get_json()["error"] == "Bundle not found"

    @pytest.mark.parametrize("body,message", [
        ({"userName": "Sita", "requestType": "service"}, "Name, contact, and request type are required"),
        ({"userName": "Sita", "userContact": "98", "requestType": "other"}, "Request type must be 'service' or 'bundle'"),
        ({"userName": "Sita", "userContact": "98", "requestType": "service"}, "Service ID is required for service requests"),
        ({"userName": "Sita", "userContact": "98", "requestType": "bundle"}, "Bundle ID is required for bundle requests")
    ])
    def test_validation(self, client, mock_mongodb, body, message):
        response = client.post("/api/assistance-request", json=body)

        assert response.status_code == 400
        assert response.get_json()["error"] == message
        mock_mongodb.create.assert_not_called()
