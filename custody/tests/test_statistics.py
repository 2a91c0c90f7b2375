# custody/tests/test_statistics.py

import pytest

from custody.services import statistics as statistics_service


pytestmark = pytest.mark.django_db


@pytest.fixture
def populated(requirement, requirement_factory, sample_factory, analysis_factory, storage_factory):
    requirement_factory(status="SUBMITTED")

    pending = sample_factory(requirement=requirement)
    received = sample_factory(requirement=requirement, status="RECEIVED", sample_type="Water")

    analysis_factory(sample=received)
    analysis_factory(sample=received, status="COMPLETED")
    storage_factory(sample=received)

    return {"pending": pending, "received": received}


def test_dashboard_overview(populated, analyst):
    overview = statistics_service.dashboard_overview()

    assert overview["totals"] == {
        "requirements": 2,
        "samples": 2,
        "analyses": 2,
        "storage": 1,
        "active_users": 2,
    }
    assert overview["pending"] == {"requirements": 1, "samples": 1, "analyses": 1}


def test_requirement_statistics(populated):
    stats = statistics_service.requirement_statistics()

    assert stats["total"] == 2
    assert stats["by_status"] == [
        {"status": "DRAFT", "count": 1},
        {"status": "SUBMITTED", "count": 1},
    ]


def test_sample_statistics(populated):
    stats = statistics_service.sample_statistics()

    assert stats["total"] == 2
    assert {"status": "RECEIVED", "count": 1} in stats["by_status"]
    assert stats["by_type"] == [{"type": "Soil", "count": 1}, {"type": "Water", "count": 1}]


def test_dashboard_endpoint(auth_client, populated):
    resp = auth_client.get("/lims/dashboard/")

    assert resp.status_code == 200
    assert resp.data["totals"]["samples"] == 2
    assert resp.data["requirements"]["total"] == 2
    assert resp.data["samples"]["total"] == 2


def test_statistics_endpoints(auth_client, populated):
    analyses = auth_client.get("/lims/analyses/statistics/")
    events = auth_client.get("/lims/qr/events/statistics/")

    assert analyses.status_code == 200
    assert analyses.data["total"] == 2
    assert events.status_code == 200
    assert events.data == {"total": 0, "by_type": []}
