# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Endpoint tests for organization admin service management and uploads.
"""

import pytest
from datetime import datetime
from io import BytesIO
from bson import ObjectId

from services.mongodb import SERVICES, UPLOADS

SERVICE_FORM = {
    "serviceName": "Citizenship Certificate",
    "documents": ["Birth certificate", " ", "Parent's citizenship"],
    "procedure": "Submit the form at the ward office",
    "estimatedTime": "1 day",
    "charge": "Free",
    "tokensEnabled": "true",
    "dailyTokenLimit": "25"
}

PDF_BYTES = b"%PDF-1.4\n%%EOF\n"


@pytest.fixture
def owned_service(mock_mongodb, service_doc):
    """Owner-scoped lookups and compare-and-set against ``service_doc``."""
    def find_by_id(collection, doc_id, owner_id=None, projection=None):
        if str(doc_id) != str(service_doc["_id"]):
            return None
        if owner_id is not None and str(owner_id) != str(service_doc["userId"]):
            return None
        return dict(service_doc)

    def compare_and_set(collection, doc_id, expected, updates):
        if any(service_doc.get(field) != value for field, value in expected.items()):
            return None
        service_doc.update(updates)
        return dict(service_doc)

    mock_mongodb.find_by_id.side_effect = find_by_id
    mock_mongodb.compare_and_set.side_effect = compare_and_set
    return service_doc


@pytest.fixture
def upload_records(mock_mongodb):
    """Upload ownership by file URL, and URLs still used by other services."""
    records = {"owners": {}, "referenced": set()}

    def find_one(collection, filters, projection=None):
        if collection == UPLOADS:
            owner = records["owners"].get(filters["fileUrl"])
            if owner is None or owner != filters["userId"]:
                return None
            return {"fileUrl": filters["fileUrl"], "userId": owner}
        if collection == SERVICES and filters.get("sampleFormUrl") in records["referenced"]:
            return {"_id": ObjectId()}
        return None

    mock_mongodb.find_one.side_effect = find_one
    return records


class TestListAndCreate:

    def test_list_own_services(self, client, mock_mongodb, service_doc, admin_user_doc, admin_headers):
        mock_mongodb.find.return_value = [service_doc]

        response = client.get("/api/admin/services", headers=admin_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert data[0]["serviceName"] == "Citizenship Certificate"
        assert data[0]["_links"]["edit"]["method"] == "PUT"
        assert data[0]["tokenAvailability"] == "available"
        mock_mongodb.find.assert_called_once_with(
            SERVICES, {"userId": admin_user_doc["_id"]}, sort=[("createdAt", -1)]
        )

    def test_exhausted_service_is_flagged(self, client, mock_mongodb, service_doc, admin_headers):
        mock_mongodb.find.return_value = [dict(service_doc, tokensIssued=2, lastTokenReset=datetime.utcnow())]

        data = client.get("/api/admin/services", headers=admin_headers).get_json()

        assert data[0]["tokenAvailability"] == "exhausted"

    def test_requires_admin_token(self, client):
        assert client.get("/api/admin/services").status_code == 401

    def test_superadmin_is_not_an_organization(self, client, mock_mongodb, superadmin_headers):
        response = client.get("/api/admin/services", headers=superadmin_headers)

        assert response.status_code == 403
        assert response.get_json()["error"] == "Organization admin access required"

    def test_create_with_tokens(self, client, mock_mongodb, admin_user_doc, admin_headers):
        response = client.post("/api/admin/services", json=SERVICE_FORM, headers=admin_headers)

        assert response.status_code == 201
        collection, stored = mock_mongodb.create.call_args_list[0][0]
        assert collection == SERVICES
        assert stored["userId"] == admin_user_doc["_id"]
        assert stored["documents"] == ["Birth certificate", "Parent's citizenship"]
        assert stored["tokensEnabled"] is True
        assert stored["dailyTokenLimit"] == 25
        assert stored["tokensIssued"] == 0
        assert isinstance(stored["lastTokenReset"], datetime)
        assert response.get_json()["dailyTokenLimit"] == 25

    def test_create_disabled_stores_zero_limit(self, client, mock_mongodb, admin_headers):
        form = dict(SERVICE_FORM, tokensEnabled="false", dailyTokenLimit="40")

        client.post("/api/admin/services", json=form, headers=admin_headers)

        stored = mock_mongodb.create.call_args_list[0][0][1]
        assert stored["tokensEnabled"] is False
        assert stored["dailyTokenLimit"] == 0

    def test_create_with_own_sample_form(self, client, mock_mongodb, upload_records, admin_user_doc, admin_headers):
        upload_records["owners"]["/uploads/sampleForm-1.pdf"] = admin_user_doc["_id"]

        response = client.post(
            "/api/admin/services",
            json=dict(SERVICE_FORM, sampleFormUrl="/uploads/sampleForm-1.pdf"),
            headers=admin_headers
        )

        assert response.status_code == 201
        assert mock_mongodb.create.call_args_list[0][0][1]["sampleFormUrl"] == "/uploads/sampleForm-1.pdf"

    def test_create_with_foreign_sample_form(self, client, mock_mongodb, upload_records, admin_headers):
        upload_records["owners"]["/uploads/sampleForm-1.pdf"] = ObjectId()

        response = client.post(
            "/api/admin/services",
            json=dict(SERVICE_FORM, sampleFormUrl="/uploads/sampleForm-1.pdf"),
            headers=admin_headers
        )

        assert response.status_code == 400
        assert response.get_json()["error"] == "Sample form not found or unauthorized"
        mock_mongodb.create.assert_not_called()

    def test_create_requires_fields(self, client, mock_mongodb, admin_headers):
        form = dict(SERVICE_FORM)
        del form["procedure"]

        response = client.post("/api/admin/services", json=form, headers=admin_headers)

        assert response.status_code == 400
        mock_mongodb.create.assert_not_called()


class TestUpdate:

    def test_limit_change_resets_counter(self, client, owned_service, mock_mongodb, admin_headers):
        owned_service["tokensIssued"] = 2

        response = client.put(
            f"/api/admin/services/{owned_service['_id']}",
            json=dict(SERVICE_FORM, dailyTokenLimit=10),
            headers=admin_headers
        )

        assert response.status_code == 200
        assert owned_service["dailyTokenLimit"] == 10
        assert owned_service["tokensIssued"] == 0
        audit_entry = mock_mongodb.create.call_args[0][1]
        assert audit_entry["action"] == "reconfigure_tokens"

    def test_descriptive_edit_keeps_counter(self, client, owned_service, mock_mongodb, admin_headers):
        owned_service["tokensIssued"] = 1
        form = dict(SERVICE_FORM, charge="Rs. 100", tokensEnabled=True, dailyTokenLimit=2)

        response = client.put(f"/api/admin/services/{owned_service['_id']}", json=form, headers=admin_headers)

        assert response.status_code == 200
        assert owned_service["charge"] == "Rs. 100"
        assert owned_service["tokensIssued"] == 1
        assert mock_mongodb.create.call_args[0][1]["action"] == "update"

    def test_omitted_toggle_disables_tokens(self, client, owned_service, admin_headers):
        form = {k: v for k, v in SERVICE_FORM.items() if k not in ("tokensEnabled", "dailyTokenLimit")}

        client.put(f"/api/admin/services/{owned_service['_id']}", json=form, headers=admin_headers)

        assert owned_service["tokensEnabled"] is False
        assert owned_service["dailyTokenLimit"] == 0

    def test_other_organizations_service(self, client, owned_service, flask_app, admin_user_doc):
        from models.entities import User
        other = User.from_document(dict(admin_user_doc, _id=ObjectId(), username="ward9"))
        tokens = flask_app.auth_service.generate_tokens(flask_app.auth_service.user_claims(other))

        response = client.put(
            f"/api/admin/services/{owned_service['_id']}",
            json=SERVICE_FORM,
            headers={"Authorization": f"Bearer {tokens['access_token']}"}
        )

        assert response.status_code == 404
        assert response.get_json()["error"] == "Service not found or unauthorized"

    def test_replaced_sample_form_is_deleted(self, client, flask_app, owned_service, upload_records,
                                             mock_mongodb, admin_user_doc, admin_headers):
        old_url = flask_app.upload_store.save(_pdf_file())
        owned_service["sampleFormUrl"] = old_url
        upload_records["owners"]["/uploads/new.pdf"] = admin_user_doc["_id"]

        response = client.put(
            f"/api/admin/services/{owned_service['_id']}",
            json=dict(SERVICE_FORM, sampleFormUrl="/uploads/new.pdf"),
            headers=admin_headers
        )

        assert response.status_code == 200
        assert client.get(old_url).status_code == 404
        mock_mongodb.delete_one.assert_called_once_with(UPLOADS, {"fileUrl": old_url})

    def test_replaced_form_used_elsewhere_is_kept(self, client, flask_app, owned_service, upload_records,
                                                  mock_mongodb, admin_user_doc, admin_headers):
        shared_url = flask_app.upload_store.save(_pdf_file())
        owned_service["sampleFormUrl"] = shared_url
        upload_records["owners"]["/uploads/new.pdf"] = admin_user_doc["_id"]
        upload_records["referenced"].add(shared_url)

        client.put(
            f"/api/admin/services/{owned_service['_id']}",
            json=dict(SERVICE_FORM, sampleFormUrl="/uploads/new.pdf"),
            headers=admin_headers
        )

        assert client.get(shared_url).status_code == 200
        mock_mongodb.delete_one.assert_not_called()

    def test_foreign_sample_form_rejected(self, client, flask_app, owned_service, upload_records,
                                          mock_mongodb, admin_headers):
        foreign_url = flask_app.upload_store.save(_pdf_file())
        upload_records["owners"][foreign_url] = ObjectId()

        response = client.put(
            f"/api/admin/services/{owned_service['_id']}",
            json=dict(SERVICE_FORM, sampleFormUrl=foreign_url),
            headers=admin_headers
        )

        assert response.status_code == 400
        assert response.get_json()["error"] == "Sample form not found or unauthorized"
        mock_mongodb.compare_and_set.assert_not_called()


class TestDelete:

    def test_delete(self, client, mock_mongodb, service_doc, admin_user_doc, admin_headers):
        mock_mongodb.delete_by_id.return_value = service_doc

        response = client.delete(f"/api/admin/services/{service_doc['_id']}", headers=admin_headers)

        assert response.status_code == 200
        assert response.get_json() == {"message": "Service deleted successfully"}
        mock_mongodb.delete_by_id.assert_called_once_with(
            SERVICES, str(service_doc["_id"]), owner_id=str(admin_user_doc["_id"])
        )

    def test_delete_removes_unshared_sample_form(self, client, flask_app, mock_mongodb, upload_records,
                                                 service_doc, admin_headers):
        form_url = flask_app.upload_store.save(_pdf_file())
        mock_mongodb.delete_by_id.return_value = dict(service_doc, sampleFormUrl=form_url)

        client.delete(f"/api/admin/services/{service_doc['_id']}", headers=admin_headers)

        assert client.get(form_url).status_code == 404
        mock_mongodb.delete_one.assert_called_once_with(UPLOADS, {"fileUrl": form_url})

    def test_delete_keeps_sample_form_still_referenced(self, client, flask_app, mock_mongodb, upload_records,
                                                       service_doc, admin_headers):
        form_url = flask_app.upload_store.save(_pdf_file())
        upload_records["referenced"].add(form_url)
        mock_mongodb.delete_by_id.return_value = dict(service_doc, sampleFormUrl=form_url)

        response = client.delete(f"/api/admin/services/{service_doc['_id']}", headers=admin_headers)

        assert response.status_code == 200
        assert client.get(form_url).status_code == 200
        mock_mongodb.delete_one.assert_not_called()

    def test_delete_missing(self, client, mock_mongodb, admin_headers):
        mock_mongodb.delete_by_id.return_value = None

        response = client.delete(f"/api/admin/services/{ObjectId()}", headers=admin_headers)

        assert response.status_code == 404


def _pdf_file():
    from werkzeug.datastructures import FileStorage
    return FileStorage(stream=BytesIO(PDF_BYTES), filename="form.pdf", content_type="application/pdf")


class TestUploads:

    def test_upload_and_download(self, client, mock_mongodb, admin_user_doc, admin_headers):
        response = client.post(
            "/api/upload",
            data={"sampleForm": (BytesIO(PDF_BYTES), "form.pdf", "application/pdf")},
            content_type="multipart/form-data",
            headers=admin_headers
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data["message"] == "File uploaded successfully"
        assert data["fileUrl"].startswith("/uploads/sampleForm-")
        mock_mongodb.create.assert_called_once_with(UPLOADS, {"fileUrl": data["fileUrl"], "userId": admin_user_doc["_id"]})

        download = client.get(data["fileUrl"])
        assert download.status_code == 200
        assert download.data == PDF_BYTES

    def test_rejects_non_pdf(self, client, admin_headers):
        response = client.post(
            "/api/upload",
            data={"sampleForm": (BytesIO(b"GIF89a"), "form.gif", "image/gif")},
            content_type="multipart/form-data",
            headers=admin_headers
        )

        assert response.status_code == 400
        assert response.get_json()["error"] == "Only PDF files are allowed!"

    def test_missing_file(self, client, admin_headers):
        response = client.post("/api/upload", data={}, content_type="multipart/form-data", headers=admin_headers)

        assert response.status_code == 400
        assert response.get_json()["error"] == "No file uploaded"

    def test_unknown_upload(self, client):
        assert client.get("/uploads/missing.pdf").status_code == 404
