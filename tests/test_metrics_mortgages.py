from __future__ import annotations

from datetime import date

from registry_core.filters import MortgageFilters
from registry_core.metrics_mortgages import compute_mortgages, within_range


def test_within_range():
    today = date(2024, 6, 15)
    assert within_range(None, None, today)
    assert not within_range(None, 30, today)
    assert within_range(date(2024, 6, 1), 30, today)
    assert not within_range(date(2024, 4, 1), 30, today)
    assert not within_range(date(2024, 7, 1), 30, today)


def test_all_time_kpis(mortgages, today):
    payload = compute_mortgages(MortgageFilters(), mortgages, today)
    k = payload["kpis"]
    assert k["active_count"] == 1
    assert k["at_risk_count"] == 2
    assert k["total_registered"] == 440000
    assert k["outstanding_active"] == 125000
    assert k["trend_pct"] == 3.5
    assert payload["status_counts"] == [
        {"status": "Active", "count": 1},
        {"status": "Paid", "count": 0},
        {"status": "Defaulted", "count": 1},
        {"status": "Foreclosure", "count": 1},
    ]
    assert payload["bank_counts"][0] == {"bank": "Banca Intesa", "count": 2}
    assert payload["region_options"] == ["All Regions", "Belgrade", "Južna Bačka"]


def test_date_range_drops_unparsable_and_old(mortgages, today):
    payload = compute_mortgages(MortgageFilters(date_range="Last 30 days"), mortgages, today)
    assert [r["mortgage_id"] for r in payload["table"]] == ["MTG-2024-002"]


def test_search_and_status(mortgages, today):
    payload = compute_mortgages(MortgageFilters(query="intesa", status="Foreclosure"), mortgages, today)
    assert [r["mortgage_id"] for r in payload["table"]] == ["MTG-2024-003"]
    assert payload["table"][0]["start_date_display"] == ""


def test_start_date_display(mortgages, today):
    payload = compute_mortgages(MortgageFilters(query="MTG-2024-001"), mortgages, today)
    assert payload["table"][0]["start_date_display"] == "15. 3. 2022."


def test_no_matches(mortgages, today):
    payload = compute_mortgages(MortgageFilters(region="Srem"), mortgages, today)
    assert payload["table"] == []
    assert payload["kpis"]["active_count"] == 0
    assert payload["bank_counts"] == []
