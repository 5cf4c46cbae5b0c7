from __future__ import annotations

from registry_core.filters import ComplianceFilters
from registry_core.metrics_legal import (
    classify_parcel_compliance,
    compute_legal_cleanliness,
    compute_legal_kpis,
    litigation_rate,
)
from registry_core.records import ParcelComplianceRecord, Restriction, normalize_stats


def test_clean_maps_to_verified(parcels):
    row = classify_parcel_compliance(parcels[0])
    assert row.status == "verified"
    assert row.zoning == "ok"
    assert row.environmental == "ok"
    assert row.occupancy == "ok"
    assert row.mortgage == "clear"
    assert row.flags == ()


def test_other_status_passes_through_and_flags_resolve(parcels):
    row = classify_parcel_compliance(parcels[1])
    assert row.status == "disputed"
    assert row.zoning == "bad"
    assert row.mortgage == "active"
    assert row.flags == ("Zoning violation", "Under court stay")
    assert row.address_line2 == "Kragujevac"


def test_defaults_for_sparse_parcel(parcels):
    row = classify_parcel_compliance(parcels[2])
    assert row.parcel == "abc123"
    assert row.status == "pending"
    assert row.environmental == "warn"
    assert row.hash == "—"
    assert row.address_line1 == "—"
    assert row.flags == ("Environmental clearance missing",)


def test_unknown_restriction_without_description_uses_type():
    parcel = ParcelComplianceRecord(parcel_id="P  1", restrictions=(Restriction(type="heritage"),))
    row = classify_parcel_compliance(parcel)
    assert row.flags == ("heritage",)
    assert row.parcel == "P 1"


def test_litigation_rate():
    assert litigation_rate(78.4, 14.2, 5.8, 1.6) == 1.6
    assert litigation_rate(70, 10, 5, 1.6) == 15.0
    assert litigation_rate(90, 10, 5, 1.6) == 1.6


def test_kpis_fallbacks():
    kpis = compute_legal_kpis(None)
    assert kpis["verified_pct"] == 78.4
    assert kpis["cards"][0]["value"] == "78.4%"
    assert kpis["cards"][2]["sub"] == "1,217 active disputes"
    assert kpis["cards"][3]["sub"] == "Improved from 5.0 days"
    assert [b["key"] for b in kpis["breakdown"]] == ["verified", "pending", "disputed", "litigation"]


def test_kpis_from_stats():
    kpis = compute_legal_kpis(normalize_stats({"parcels": {"verificationRate": 70, "pendingRate": 10}, "disputes": {"activeRate": 5}}))
    assert kpis["litigation_pct"] == 15.0


def test_page_filters(parcels):
    payload = compute_legal_cleanliness(ComplianceFilters(), None, parcels)
    assert payload["total"] == 3
    assert len(payload["table"]) == 3
    assert payload["active_filters"] == 0

    payload = compute_legal_cleanliness(ComplianceFilters(flags="none"), None, parcels)
    assert [r["parcel"] for r in payload["table"]] == ["BG-2024-45892"]

    payload = compute_legal_cleanliness(ComplianceFilters(query="court stay", mortgage="active"), None, parcels)
    assert [r["parcel"] for r in payload["table"]] == ["KG-2024-34567"]
    assert payload["active_filters"] == 2


def test_page_without_parcels_is_empty_state():
    payload = compute_legal_cleanliness(ComplianceFilters(status="verified"), None, None)
    assert payload["table"] == []
    assert payload["kpis"]["dispute_total"] == 1217
