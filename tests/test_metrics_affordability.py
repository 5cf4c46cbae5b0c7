from __future__ import annotations

import pytest

from registry_core.filters import AffordabilityFilters, normalize_affordability_filters
from registry_core.metrics_affordability import affordability_status, compute_affordability, monthly_emi
from registry_core.records import normalize_affordability


@pytest.fixture
def snapshot():
    return normalize_affordability(
        {
            "overallScore": 63,
            "trend": -2.8,
            "averageRatio": 8.3,
            "incomeCategories": {"Middle Income": {"avgIncome": 30000}},
            "avgPricesByRegion": [
                {"region": "Belgrade", "avgPrice": 300000, "count": 20, "affordabilityRatio": 10.0},
                {"region": "Nišava", "avgPrice": 150000, "count": 40, "affordabilityRatio": 5.0},
                {"region": "Bor", "avgPrice": 90000, "count": 0, "affordabilityRatio": 3.0},
                {"region": None, "avgPrice": 1},
            ],
            "interpretation": {"level": "Moderate", "recommendation": "Policy intervention recommended"},
        }
    )


def test_monthly_emi():
    assert monthly_emi(150000) == pytest.approx(966.45, abs=0.05)
    assert monthly_emi(1200, annual_rate=0, years=1) == 100


@pytest.mark.parametrize(
    "price_k,income_k,status",
    [(90, 30, "affordable"), (150, 30, "stressed"), (300, 30, "critical"), (100, 0, "critical")],
)
def test_status_tiers(price_k, income_k, status):
    assert affordability_status(price_k, income_k, 8, 35)[2] == status


def test_zero_income_is_capped():
    ratio, emi_pct, _ = affordability_status(100, 0, 8, 35)
    assert (ratio, emi_pct) == (999.0, 999.0)


def test_city_rows(snapshot):
    payload = compute_affordability(AffordabilityFilters(), snapshot)
    assert payload["total"] == 3
    by_city = {r["city"]: r for r in payload["table"]}
    assert by_city["Belgrade"]["eligible"] == 5
    assert by_city["Belgrade"]["delta_pct"] == -10.0
    assert by_city["Belgrade"]["new_units"] == 10
    assert by_city["Nišava"]["eligible"] == 50
    assert by_city["Nišava"]["new_units"] == 12
    assert by_city["Bor"]["eligible"] == 70
    assert by_city["Bor"]["new_units"] == 50
    assert by_city["Bor"]["status"] == "affordable"
    assert "_ratio" not in by_city["Bor"]
    assert payload["city_options"] == ["All Cities", "Belgrade", "Nišava", "Bor"]


def test_kpis(snapshot):
    cards = compute_affordability(AffordabilityFilters(), snapshot)["kpis"]
    values = {c["label"]: c for c in cards}
    assert values["National HAI"]["value"] == "8.3"
    assert values["Eligible Households"]["value"] == "33%"
    assert values["Affordability Score"]["value"] == "63"
    assert values["Affordability Score"]["sub"] == "Out of 100 · Moderate"
    assert values["Affordability Score"]["delta"] == "-2.8%"
    assert values["Median Ratio"]["value"] == "5x"


def test_simulation_thresholds_reclassify(snapshot):
    payload = compute_affordability(AffordabilityFilters(max_ratio=12, max_emi_pct=80), snapshot)
    assert {r["status"] for r in payload["table"]} == {"affordable"}
    assert payload["kpis"][1]["value"] == "100%"


def test_city_and_query_filters(snapshot):
    payload = compute_affordability(normalize_affordability_filters({"city": "All Cities", "query": "  bel "}), snapshot)
    assert [r["city"] for r in payload["table"]] == ["Belgrade"]
    payload = compute_affordability(AffordabilityFilters(city="Bor"), snapshot)
    assert [r["city"] for r in payload["table"]] == ["Bor"]
    # KPIs always describe every city
    assert payload["kpis"][1]["value"] == "33%"


def test_missing_snapshot():
    payload = compute_affordability(AffordabilityFilters(), None)
    assert payload["table"] == []
    assert all(c["value"] == "—" for c in payload["kpis"])
