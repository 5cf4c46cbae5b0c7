from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from registry_api.main import PAGE_BUILDERS, app, registry_client
from registry_core.data import RegistryClient


ROUTES = {
    "/api/dashboard/bubble-risk": {
        "success": True,
        "data": {"riskScore": 80, "currentPriceGrowth": 18.0, "currentIncomeGrowth": 4.0, "trend": "increasing"},
    },
    "/api/dashboard/regional-data": {
        "success": True,
        "data": [
            {"region": "Belgrade", "parcels": 1000, "disputes": 13, "transfers": 1500, "verificationRate": 90},
            {"region": "Niš, City", "parcels": 200, "disputes": 1, "transfers": 50, "verificationRate": 70},
        ],
    },
    "/api/transfers": {"success": True, "data": [], "pagination": {"total": 12}},
    "/api/mortgages": {"success": True, "data": [], "pagination": {"total": 30}},
}


def _handler(request: httpx.Request) -> httpx.Response:
    body = ROUTES.get(request.url.path)
    if body is None:
        return httpx.Response(500, json={"message": "boom"})
    return httpx.Response(200, json=body)


@pytest.fixture
def client():
    app.dependency_overrides[registry_client] = lambda: RegistryClient(
        "http://registry.test", transport=httpx.MockTransport(_handler)
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health():
    r = TestClient(app).get("/meta/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert r.json()["upstream"].endswith("/api")


def test_bubble_risk_payload(client):
    r = client.post("/bubble-risk", json={})
    assert r.status_code == 200
    payload = r.json()
    assert payload["failed"] == []
    assert payload["total"] == 2
    assert {row["region"] for row in payload["table"]} == {"Belgrade", "Niš, City"}
    assert payload["kpis"]


def test_failed_sections_are_reported_not_raised(client):
    # the mock serves neither /dashboard/stats nor /parcels
    r = client.post("/legal-cleanliness", json={})
    assert r.status_code == 200
    assert set(r.json()["failed"]) == {"stats", "parcels"}
    assert r.json()["table"] == []


def test_regions_export_csv(client):
    r = client.post("/export/regions", json={"time_range": "Last 6 months"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert "regions_export_" in r.headers["content-disposition"]
    lines = r.text.split("\n")
    assert lines[0].startswith("Region,Total Parcels,Active Disputes")
    assert lines[2].startswith('"Niš, City",200,')
    assert not r.text.endswith("\n")


def test_unknown_export_page(client):
    r = client.post("/export/bubble-risk", json={})
    assert r.status_code == 404
    assert r.json()["type"] == "NotFound"


FULL_ROUTES = {
    **ROUTES,
    "/api/dashboard/stats": {"success": True, "data": {"parcels": {"verificationRate": 80.0, "pendingRate": 12.0}}},
    "/api/parcels": {
        "success": True,
        "data": [
            {"parcelId": "P-1", "legalStatus": "clean", "restrictions": []},
            {"parcelId": "P-2", "legalStatus": "disputed", "hasMortgage": True, "restrictions": [{"type": "zoning"}]},
        ],
    },
    "/api/mortgages": {
        "success": True,
        "data": [
            {"mortgageId": "MTG-1", "region": "Belgrade", "bank": "UniCredit", "status": "Active", "originalAmount": 1000, "remaining": 800},
            {"mortgageId": "MTG-2", "region": "Srem", "bank": "UniCredit", "status": "Defaulted", "originalAmount": 500},
        ],
        "pagination": {"total": 2},
    },
    "/api/disputes": {
        "success": True,
        "data": [
            {"disputeId": "D-1", "region": "Belgrade", "status": "Open", "claimedAmount": 100},
            {"disputeId": "D-2", "region": "Srem", "status": "Court"},
        ],
    },
    "/api/disputes/stats/summary": {"success": True, "data": {"byStatus": [{"_id": "Open", "count": 7}]}},
    "/api/transfers": {
        "success": True,
        "data": [
            {"transferId": "T-1", "region": "Belgrade", "transferStatus": "initiated", "agreedPrice": 1000},
            {"transferId": "T-2", "region": "Srem", "transferStatus": "completed", "processingTime": 4},
        ],
        "pagination": {"total": 2},
    },
}


@pytest.fixture
def full_client():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = FULL_ROUTES.get(request.url.path)
        if body is None:
            return httpx.Response(503, json={"message": "down"})
        return httpx.Response(200, json=body)

    app.dependency_overrides[registry_client] = lambda: RegistryClient(
        "http://registry.test", transport=httpx.MockTransport(handler)
    )
    yield TestClient(app), seen
    app.dependency_overrides.clear()


def test_legal_cleanliness_endpoint(full_client):
    client, _ = full_client
    r = client.post("/legal-cleanliness", json={"status": "disputed"})
    assert r.status_code == 200
    payload = r.json()
    assert payload["failed"] == []
    assert [row["parcel"] for row in payload["table"]] == ["P-2"]
    assert payload["table"][0]["zoning"] == "bad"
    assert payload["kpis"]["verified_pct"] == 80.0


def test_mortgages_endpoint(full_client):
    client, _ = full_client
    r = client.post("/mortgages", json={"status": "Defaulted"})
    assert r.status_code == 200
    payload = r.json()
    assert [row["mortgage_id"] for row in payload["table"]] == ["MTG-2"]
    assert payload["kpis"]["at_risk_count"] == 1


def test_disputes_endpoint_uses_stats_and_server_filters(full_client):
    client, seen = full_client
    r = client.post("/disputes", json={"region": "Belgrade"})
    assert r.status_code == 200
    payload = r.json()
    assert [row["dispute_id"] for row in payload["table"]] == ["D-1"]
    assert payload["kpis"]["open"] == 7
    call = [req for req in seen if req.url.path == "/api/disputes"][0]
    assert call.url.params["region"] == "Belgrade"


def test_transfers_endpoint(full_client):
    client, _ = full_client
    r = client.post("/transfers", json={"status": "Pending"})
    assert r.status_code == 200
    payload = r.json()
    assert [row["transfer_id"] for row in payload["table"]] == ["T-1"]


def test_page_with_failed_upstream_section(full_client):
    client, _ = full_client
    # /dashboard/subsidy is not served
    r = client.post("/subsidy", json={})
    assert r.status_code == 200
    payload = r.json()
    assert payload["failed"] == ["subsidy"]
    assert payload["kpis"]["allocated_m"] == 125.0


def test_affordability_endpoint(full_client):
    client, _ = full_client
    r = client.post("/affordability", json={"max_ratio": 8})
    assert r.status_code == 200
    assert r.json()["failed"] == ["affordability"]
    assert r.json()["table"] == []


def test_non_finite_policy_is_rejected(client):
    r = client.post(
        "/bubble-risk",
        content='{"policy": {"dispute_weight": 1e999}}',
        headers={"content-type": "application/json"},
    )
    assert r.status_code == 422


def test_disputes_endpoint_without_stats(full_client, monkeypatch):
    client, _ = full_client
    monkeypatch.delitem(FULL_ROUTES, "/api/disputes/stats/summary")
    r = client.post("/disputes", json={})
    assert r.status_code == 200
    payload = r.json()
    assert payload["failed"] == ["stats"]
    assert len(payload["table"]) == 2
    # counted from the rows instead
    assert payload["kpis"]["open"] == 1


def test_unexpected_failure_returns_500(client, monkeypatch):
    async def broken(body, client):
        raise RuntimeError("boom")

    monkeypatch.setitem(PAGE_BUILDERS, "regions", broken)
    r = client.post("/regions", json={})
    assert r.status_code == 500
    assert r.json() == {"error": "boom", "type": "RuntimeError"}
