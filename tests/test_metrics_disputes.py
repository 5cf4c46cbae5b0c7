from __future__ import annotations

from registry_core.filters import DisputeFilters
from registry_core.metrics_disputes import compute_disputes, top_regions
from registry_core.records import DisputeRecord, normalize_dispute_stats


def test_range_keeps_undated_rows(disputes, today):
    payload = compute_disputes(DisputeFilters(), disputes, None, today)
    assert [r["dispute_id"] for r in payload["table"]] == ["DSP-1", "DSP-B9C0D1", "DSP-3"]
    assert payload["total"] == 4
    assert payload["filtered_total"] == 3


def test_counted_kpis_without_stats(disputes, today):
    payload = compute_disputes(DisputeFilters(), disputes, None, today)
    k = payload["kpis"]
    assert k["open"] == 1
    assert k["in_court"] == 1
    # 10 and 2 days open
    assert k["avg_days_open"] == 6
    assert k["total_value"] == 1500


def test_stats_override_counts(disputes, today):
    stats = normalize_dispute_stats({"byStatus": [{"_id": "Open", "count": 40}, {"_id": "Court", "count": 7}]})
    k = compute_disputes(DisputeFilters(), disputes, stats, today)["kpis"]
    assert (k["open"], k["in_court"]) == (40, 7)


def test_avg_falls_back_to_stats(today):
    rows = [DisputeRecord(dispute_id="D", status="Resolved")]
    stats = normalize_dispute_stats({"avgResolutionDays": 11.5})
    assert compute_disputes(DisputeFilters(), rows, stats, today)["kpis"]["avg_days_open"] == 12


def test_row_labels(disputes, today):
    rows = compute_disputes(DisputeFilters(time_range="This year"), disputes, None, today)["table"]
    by_id = {r["dispute_id"]: r for r in rows}
    assert by_id["DSP-1"]["filed_date"] == "5. 6. 2024."
    assert by_id["DSP-1"]["days_open"] == "10 days"
    assert by_id["DSP-3"]["days_open"] == "Resolved"
    assert by_id["DSP-3"]["filed_date"] == "—"


def test_status_counts_and_search(disputes, today):
    payload = compute_disputes(DisputeFilters(query="boundary"), disputes, None, today)
    assert [r["dispute_id"] for r in payload["table"]] == ["DSP-B9C0D1"]
    assert payload["status_counts"] == [
        {"status": "Open", "count": 0},
        {"status": "Investigation", "count": 0},
        {"status": "Court", "count": 1},
        {"status": "Resolved", "count": 0},
    ]


def test_paging(today):
    rows = [DisputeRecord(dispute_id=f"D{i}", region="Belgrade") for i in range(23)]
    payload = compute_disputes(DisputeFilters(page=3), rows, None, today)
    assert payload["total_pages"] == 3
    assert [r["dispute_id"] for r in payload["page_rows"]] == ["D20", "D21", "D22"]
    assert compute_disputes(DisputeFilters(page=9), rows, None, today)["page"] == 3


def test_top_regions():
    rows = [{"region": r} for r in ["A", "B", "B", "C", "D", "E", "F", "G", "G", "G"]]
    top = top_regions(rows)
    assert len(top) == 6
    assert top[0] == {"region": "G", "count": 3, "score": 390}
    assert top[1]["region"] == "B"
