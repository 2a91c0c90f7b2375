# custody/tests/test_workflow_api.py

import pytest
from rest_framework import status

from custody.models import Requirement, Storage, WorkflowTransition


pytestmark = pytest.mark.django_db


# ---------------------------------------------------------
# Access
# ---------------------------------------------------------
def test_health_is_public(api_client):
    resp = api_client.get("/lims/health/")

    assert resp.status_code == 200
    assert resp.data["status"] == "ok"


def test_custody_endpoints_require_authentication(api_client, requirement):
    resp = api_client.get("/lims/requirements/")

    assert resp.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN)


# ---------------------------------------------------------
# Requirements
# ---------------------------------------------------------
def test_create_requirement_for_caller(auth_client, requester, plant):
    resp = auth_client.post(
        "/lims/requirements/",
        {"sample_type": "Soil", "expected_quantity": 2, "plant_id": plant.pk},
        format="json",
    )

    assert resp.status_code == 201
    assert resp.data["requester"]["id"] == requester.pk
    assert resp.data["status"] == "DRAFT"
    assert resp.data["code"].startswith("REQ-")
    assert resp.data["plant_code"] == plant.code
    assert resp.data["allowed_next_states"] == ["CANCELLED", "SUBMITTED"]


def test_create_requirement_validates_payload(auth_client):
    resp = auth_client.post("/lims/requirements/", {"expected_quantity": 0}, format="json")

    assert resp.status_code == 400
    assert "sample_type" in resp.data
    assert "expected_quantity" in resp.data


def test_invalid_transition_reports_states(auth_client, requirement):
    resp = auth_client.post(
        f"/lims/requirements/{requirement.pk}/status/",
        {"status": "COMPLETED"},
        format="json",
    )

    assert resp.status_code == 400
    assert resp.data == {
        "status": "Invalid requirement transition: DRAFT -> COMPLETED",
        "kind": "requirement",
        "current": "DRAFT",
        "target": "COMPLETED",
    }


def test_status_change_records_caller(auth_client, requirement, requester):
    resp = auth_client.post(
        f"/lims/requirements/{requirement.pk}/status/",
        {"status": "submitted"},
        format="json",
    )

    assert resp.status_code == 200
    assert resp.data["status"] == "SUBMITTED"
    transition = WorkflowTransition.objects.get(kind="requirement", object_id=requirement.pk)
    assert transition.performed_by == requester


def test_edit_outside_draft_is_forbidden(auth_client, requirement_factory):
    requirement = requirement_factory(status="SUBMITTED")

    resp = auth_client.patch(
        f"/lims/requirements/{requirement.pk}/",
        {"description": "Late edit"},
        format="json",
    )

    assert resp.status_code == 403


def test_put_with_current_status_edits_draft(auth_client, requirement):
    resp = auth_client.put(
        f"/lims/requirements/{requirement.pk}/",
        {"description": "Bagged twice", "status": "draft"},
        format="json",
    )

    assert resp.status_code == 200
    assert resp.data["status"] == "DRAFT"
    assert resp.data["description"] == "Bagged twice"


def test_cancel_status_with_samples_conflicts(auth_client, requirement, sample):
    resp = auth_client.post(
        f"/lims/requirements/{requirement.pk}/status/",
        {"status": "CANCELLED"},
        format="json",
    )

    assert resp.status_code == 409


def test_delete_requirement_soft_cancels(auth_client, requirement):
    resp = auth_client.delete(f"/lims/requirements/{requirement.pk}/")

    assert resp.status_code == 200
    assert resp.data["status"] == "CANCELLED"
    assert Requirement.objects.filter(pk=requirement.pk).exists()


def test_delete_requirement_with_samples_conflicts(auth_client, requirement, sample):
    resp = auth_client.delete(f"/lims/requirements/{requirement.pk}/")

    assert resp.status_code == 409


def test_filter_and_lookups(auth_client, requirement_factory):
    draft = requirement_factory()
    requirement_factory(status="SUBMITTED")

    resp = auth_client.get("/lims/requirements/?status=draft")
    assert resp.status_code == 200
    assert [row["id"] for row in resp.data] == [draft.pk]

    resp = auth_client.get(f"/lims/requirements/by-code/{draft.code}/")
    assert resp.status_code == 200
    assert resp.data["id"] == draft.pk

    resp = auth_client.get("/lims/requirements/history/")
    assert resp.status_code == 200
    assert len(resp.data) == 2


def test_unknown_requirement_is_404(auth_client):
    resp = auth_client.post("/lims/requirements/999999/status/", {"status": "SUBMITTED"}, format="json")

    assert resp.status_code == 404


# ---------------------------------------------------------
# Samples
# ---------------------------------------------------------
def test_sample_reception_flow(auth_client, requirement):
    resp = auth_client.post(
        "/lims/samples/",
        {"requirement_id": requirement.pk, "sample_type": "Soil", "quantity": "1 kg"},
        format="json",
    )
    assert resp.status_code == 201
    sample_id = resp.data["id"]
    qr_code = resp.data["qr_code"]
    assert resp.data["status"] == "EXPECTED"

    resp = auth_client.post(f"/lims/samples/{sample_id}/receive/", {"notes": "Cold chain ok"}, format="json")
    assert resp.status_code == 200
    assert resp.data["status"] == "RECEIVED"
    assert resp.data["received_at"] is not None
    assert resp.data["notes"] == "Cold chain ok"

    resp = auth_client.get(f"/lims/samples/by-qr/{qr_code}/")
    assert resp.status_code == 200
    assert resp.data["id"] == sample_id

    resp = auth_client.get(f"/lims/samples/{sample_id}/history/")
    assert resp.status_code == 200
    assert resp.data["storage"] is None
    assert [t["to_status"] for t in resp.data["transitions"]] == ["RECEIVED"]


def test_sample_derivatives(auth_client, sample):
    resp = auth_client.post(
        f"/lims/samples/{sample.pk}/derivatives/",
        {"is_counter_sample": True},
        format="json",
    )
    assert resp.status_code == 201
    assert resp.data["parent"] == sample.pk
    assert resp.data["parent_qr_code"] == sample.qr_code

    resp = auth_client.get(f"/lims/samples/{sample.pk}/derivatives/")
    assert resp.status_code == 200
    assert len(resp.data) == 1


def test_delete_sample_with_open_analysis_conflicts(auth_client, sample, analysis_factory):
    analysis_factory(sample=sample)

    resp = auth_client.delete(f"/lims/samples/{sample.pk}/")

    assert resp.status_code == 409


def test_deleted_status_with_open_analysis_conflicts(auth_client, sample, analysis_factory):
    analysis_factory(sample=sample)

    resp = auth_client.post(f"/lims/samples/{sample.pk}/status/", {"status": "DELETED"}, format="json")

    assert resp.status_code == 409


def test_edit_deleted_sample_conflicts(auth_client, sample_factory):
    sample = sample_factory(status="DELETED")

    resp = auth_client.patch(f"/lims/samples/{sample.pk}/", {"notes": "x"}, format="json")

    assert resp.status_code == 409


# ---------------------------------------------------------
# Analyses
# ---------------------------------------------------------
def test_analysis_flow(auth_client, sample, analysis_type, analyst):
    resp = auth_client.post(
        "/lims/analyses/",
        {"sample_id": sample.pk, "analysis_type_id": analysis_type.pk},
        format="json",
    )
    assert resp.status_code == 201
    analysis_id = resp.data["id"]

    resp = auth_client.post(f"/lims/analyses/{analysis_id}/start/", {"analyst_id": analyst.pk}, format="json")
    assert resp.status_code == 200
    assert resp.data["status"] == "IN_PROGRESS"
    assert resp.data["analyst"]["id"] == analyst.pk

    resp = auth_client.post(
        f"/lims/analyses/{analysis_id}/complete/",
        {"results": {"moisture_pct": 11.9}},
        format="json",
    )
    assert resp.status_code == 200
    assert resp.data["status"] == "COMPLETED"
    assert resp.data["results"] == {"moisture_pct": 11.9}

    resp = auth_client.post(f"/lims/analyses/{analysis_id}/cancel/", {"reason": "oops"}, format="json")
    assert resp.status_code == 400
    assert resp.data["current"] == "COMPLETED"

    resp = auth_client.get(f"/lims/analyses/by-sample/{sample.pk}/")
    assert resp.status_code == 200
    assert len(resp.data) == 1


def test_inactive_analysis_type_is_rejected(auth_client, sample, inactive_analysis_type):
    resp = auth_client.post(
        "/lims/analyses/",
        {"sample_id": sample.pk, "analysis_type_id": inactive_analysis_type.pk},
        format="json",
    )

    assert resp.status_code == 400
    assert "analysis_type" in resp.data


def test_analyses_cannot_be_deleted(auth_client, sample, analysis_factory):
    analysis = analysis_factory(sample=sample)

    resp = auth_client.delete(f"/lims/analyses/{analysis.pk}/")

    assert resp.status_code == 405


def test_results_on_cancelled_analysis_conflict(auth_client, sample, analysis_factory):
    analysis = analysis_factory(sample=sample, status="CANCELLED")

    resp = auth_client.post(f"/lims/analyses/{analysis.pk}/results/", {"results": {"a": 1}}, format="json")

    assert resp.status_code == 409


# ---------------------------------------------------------
# Storage
# ---------------------------------------------------------
def test_storage_deletion_over_http(auth_client, sample):
    resp = auth_client.post(
        "/lims/storage/",
        {"sample_id": sample.pk, "location": "Bodega A", "shelf": "S1"},
        format="json",
    )
    assert resp.status_code == 201
    storage_id = resp.data["id"]
    assert resp.data["status"] == "OCCUPIED"

    assert auth_client.delete(f"/lims/storage/{storage_id}/").status_code == 409
    assert auth_client.post(f"/lims/storage/{storage_id}/approve-deletion/").status_code == 409
    assert auth_client.post(f"/lims/storage/{storage_id}/request-deletion/").status_code == 200

    resp = auth_client.post(f"/lims/storage/{storage_id}/approve-deletion/")
    assert resp.status_code == 200
    assert resp.data["status"] == "AVAILABLE"

    assert auth_client.delete(f"/lims/storage/{storage_id}/").status_code == 204
    assert not Storage.objects.filter(pk=storage_id).exists()


def test_storage_queries(auth_client, sample, storage_factory):
    storage_factory(sample=sample, shelf="S7", expires_in_days=3)

    resp = auth_client.get("/lims/storage/expiring/?days=5")
    assert resp.status_code == 200
    assert len(resp.data) == 1

    assert auth_client.get("/lims/storage/expiring/?days=abc").status_code == 400

    resp = auth_client.get("/lims/storage/locations/S7/")
    assert resp.status_code == 200
    assert resp.data["occupied"] == 1

    resp = auth_client.get(f"/lims/storage/by-sample/{sample.pk}/")
    assert resp.status_code == 200
    assert resp.data["sample_qr_code"] == sample.qr_code

    resp = auth_client.get("/lims/storage/statistics/")
    assert resp.status_code == 200
    assert resp.data["total"] == 1


# ---------------------------------------------------------
# Workflow introspection
# ---------------------------------------------------------
def test_workflow_definition(auth_client):
    resp = auth_client.get("/lims/workflows/analysis/")

    assert resp.status_code == 200
    assert resp.data["transitions"]["PENDING"] == ["CANCELLED", "IN_PROGRESS"]
    assert resp.data["terminal"] == ["CANCELLED", "COMPLETED"]


def test_workflow_state_and_history(auth_client, sample):
    auth_client.post(f"/lims/samples/{sample.pk}/receive/", {}, format="json")

    resp = auth_client.get(f"/lims/workflows/sample/{sample.pk}/")
    assert resp.status_code == 200
    assert resp.data["current"] == "RECEIVED"
    assert resp.data["allowed"] == ["DELETED", "IN_ANALYSIS", "STORED"]
    assert resp.data["terminal"] is False

    resp = auth_client.get(f"/lims/workflows/sample/{sample.pk}/history/")
    assert resp.status_code == 200
    assert [(h["from_status"], h["to_status"]) for h in resp.data["history"]] == [("EXPECTED", "RECEIVED")]
    assert resp.data["history"][0]["performed_by"]["username"] == "requester"


def test_workflow_unknown_kind_and_object(auth_client):
    assert auth_client.get("/lims/workflows/invoice/").status_code == 400
    assert auth_client.get("/lims/workflows/sample/999999/").status_code == 404


def test_api_home_lists_endpoints(api_client):
    resp = api_client.get("/api/")

    assert resp.status_code == 200
    assert resp.data["endpoints"]["requirements"] == "/lims/requirements/"
