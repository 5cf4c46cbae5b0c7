from __future__ import annotations

import math
from dataclasses import asdict
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence

from registry_core.charts import bar_chart, donut_chart
from registry_core.filters import DisputeFilters, filter_rows, frame_of, records_of
from registry_core.records import MISSING, DisputeRecord, DisputeStats, format_dmy, round_half_up


SEARCH_FIELDS = ("dispute_id", "parcel_id", "region", "dispute_type")
RANGE_DAYS = {"Last 7 days": 7, "Last 30 days": 30, "Last 90 days": 90, "This year": 365}
DISPUTE_STATUSES = ("Open", "Investigation", "Court", "Resolved")
PAGE_SIZE = 10
TOP_REGIONS = 6


def days_open(dispute: DisputeRecord, today: date) -> Optional[int]:
    """Whole days since filing; None when resolved or undated."""
    if dispute.status == "Resolved" or dispute.filing_date is None:
        return None
    return max(0, (today - dispute.filing_date).days)


def days_open_label(dispute: DisputeRecord, today: date) -> str:
    if dispute.status == "Resolved":
        return "Resolved"
    days = days_open(dispute, today)
    return f"{days} days" if days is not None else MISSING


def _row(d: DisputeRecord, today: date) -> Dict[str, Any]:
    row = asdict(d)
    row["filed_date"] = format_dmy(d.filing_date)
    row["days_open"] = days_open_label(d, today)
    row["days_open_count"] = days_open(d, today)
    return row


def compute_dispute_kpis(rows: List[Dict[str, Any]], stats: Optional[DisputeStats]) -> Dict[str, Any]:
    stats = stats or DisputeStats()
    open_count = stats.count_for("Open")
    in_court = stats.count_for("Court")
    if open_count is None:
        open_count = sum(1 for r in rows if r["status"] == "Open")
    if in_court is None:
        in_court = sum(1 for r in rows if r["status"] == "Court")

    day_nums = [r["days_open_count"] for r in rows if r["days_open_count"] is not None]
    if day_nums:
        avg = int(round_half_up(sum(day_nums) / len(day_nums)))
    else:
        avg = int(round_half_up(stats.avg_resolution_days or 0))
    return {
        "open": open_count,
        "in_court": in_court,
        "avg_days_open": avg,
        "total_value": float(sum(r["est_value"] or 0 for r in rows)),
    }


def top_regions(rows: List[Dict[str, Any]], limit: int = TOP_REGIONS) -> List[Dict[str, Any]]:
    counts: Dict[str, int] = {}
    for r in rows:
        counts[r["region"]] = counts.get(r["region"], 0) + 1
    items = [{"region": name, "count": c, "score": c * 120 + 30} for name, c in counts.items()]
    items.sort(key=lambda x: x["score"], reverse=True)
    return items[:limit]


def compute_disputes(
    filters: DisputeFilters,
    disputes: Optional[Sequence[DisputeRecord]],
    stats: Optional[DisputeStats] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    today = today or date.today()
    disputes = list(disputes or [])
    cutoff = today - timedelta(days=RANGE_DAYS.get(filters.time_range, 30))
    in_range = [d for d in disputes if d.filing_date is None or d.filing_date >= cutoff]

    df = frame_of(_row(d, today) for d in in_range)
    filtered = filter_rows(
        df,
        query=filters.query,
        search_fields=SEARCH_FIELDS,
        equals={"region": filters.region, "status": filters.status},
    )
    rows = records_of(filtered)

    status_counts = {s: 0 for s in DISPUTE_STATUSES}
    for r in rows:
        status_counts[r["status"]] = status_counts.get(r["status"], 0) + 1
    status_items = [{"status": k, "count": v} for k, v in status_counts.items()]
    regions = top_regions(rows)

    total_pages = max(1, math.ceil(len(rows) / PAGE_SIZE))
    page = min(filters.page, total_pages)
    start = (page - 1) * PAGE_SIZE

    return {
        "filters": asdict(filters),
        "kpis": compute_dispute_kpis(rows, stats),
        "status_counts": status_items,
        "top_regions": regions,
        "table": rows,
        "page_rows": rows[start:start + PAGE_SIZE],
        "page": page,
        "total_pages": total_pages,
        "total": len(disputes),
        "filtered_total": len(rows),
        "charts": {
            "status": donut_chart(status_items, category="status", value="count", title="Disputes by status"),
            "regions": bar_chart(regions, x="region", y="score", title="Top regions"),
        },
    }
