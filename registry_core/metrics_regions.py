from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from registry_core.charts import bar_chart
from registry_core.filters import ALL, RegionFilters, filter_rows, frame_of, records_of
from registry_core.records import RegionRecord, round_half_up


DEFAULT_SELECTED_REGION = "Vojvodina"
SEARCH_FIELDS = (
    "region",
    "total_parcels",
    "active_disputes",
    "pending_transfers",
    "active_mortgages",
    "avg_processing_days",
    "fraud_blocked",
    "dispute_rate",
)
METRIC_COLUMNS = {
    "disputeRate": "dispute_rate",
    "transferVolume": "pending_transfers",
    "processingTime": "avg_processing_days",
}
# (low below, medium below) per metric view
LEVEL_BANDS = {
    "disputeRate": (10, 13),
    "transferVolume": (500, 1200),
    "processingTime": (4, 5.2),
}
HIGH_ATTENTION_RATE = 13


def range_multiplier(time_range: str, today: Optional[date] = None) -> float:
    today = today or date.today()
    if time_range == "Last 30 days":
        return 1 / 6
    if time_range == "Last 3 months":
        return 3 / 6
    if time_range == "YTD":
        return max(1, today.month - 1) / 6
    if time_range == "All time":
        return 2.0
    return 1.0


def region_level(metric_view: str, value: float) -> str:
    low, med = LEVEL_BANDS.get(metric_view, LEVEL_BANDS["disputeRate"])
    if value < low:
        return "low"
    if value < med:
        return "med"
    return "high"


def attention_label(dispute_rate: float) -> str:
    return "High Attention" if dispute_rate >= HIGH_ATTENTION_RATE else "Stable"


def _base_row(r: RegionRecord) -> Dict[str, Any]:
    return {
        "region": r.region,
        "total_parcels": r.parcel_count,
        "active_disputes": r.dispute_count,
        "pending_transfers": r.transfer_count,
        "active_mortgages": r.active_mortgages,
        "avg_processing_days": r.avg_processing_days,
        "fraud_blocked": r.fraud_blocked,
        "dispute_rate": r.dispute_rate,
        "verification_rate": r.verification_rate,
    }


def _scale(row: Dict[str, Any], mult: float) -> Dict[str, Any]:
    out = dict(row)
    for key in ("active_disputes", "pending_transfers", "active_mortgages", "fraud_blocked"):
        out[key] = int(round_half_up(row[key] * mult))
    out["dispute_rate"] = round_half_up(row["dispute_rate"] * min(1.0, mult), 1)
    return out


def select_region(regions: Sequence[RegionRecord], filters: RegionFilters) -> Optional[RegionRecord]:
    """Region filter wins, then an explicit selection, then the default region, then the first row."""
    by_name = {r.region: r for r in regions}
    for name in (filters.region if filters.region != ALL else None, filters.selected_region, DEFAULT_SELECTED_REGION):
        if name and name in by_name:
            return by_name[name]
    return regions[0] if regions else None


def compute_regions(
    filters: RegionFilters,
    regions: Optional[Sequence[RegionRecord]],
    today: Optional[date] = None,
) -> Dict[str, Any]:
    regions = list(regions or [])
    mult = range_multiplier(filters.time_range, today)

    df = frame_of(_base_row(r) for r in regions)
    matched = filter_rows(df, query=filters.query, search_fields=SEARCH_FIELDS, equals={"region": filters.region})

    metric_col = METRIC_COLUMNS[filters.metric_view]
    rows: List[Dict[str, Any]] = []
    for row in records_of(matched):
        scaled = _scale(row, mult)
        scaled["level"] = region_level(filters.metric_view, scaled[metric_col])
        scaled["attention"] = attention_label(scaled["dispute_rate"])
        rows.append(scaled)

    count = len(rows)
    kpis = {
        "total_regions": count,
        "total_parcels": sum(r["total_parcels"] for r in rows),
        "total_disputes": sum(r["active_disputes"] for r in rows),
        "avg_processing_days": (sum(r["avg_processing_days"] for r in rows) / count) if count else 0,
    }

    selected = select_region(regions, filters)
    selected_payload = None
    if selected is not None:
        trend = selected.transfers_trend if filters.metric_view == "transferVolume" else selected.disputes_trend
        selected_payload = {
            **_base_row(selected),
            "attention": attention_label(selected.dispute_rate),
            "trend": [asdict(p) for p in trend],
            "transfers_trend": [asdict(p) for p in selected.transfers_trend],
            "disputes_trend": [asdict(p) for p in selected.disputes_trend],
        }

    chart_items = [{"region": r["region"], "value": r[metric_col]} for r in rows]
    return {
        "filters": asdict(filters),
        "kpis": kpis,
        "multiplier": mult,
        "table": rows,
        "total": len(regions),
        "region_options": ["All Regions"] + [r.region for r in regions],
        "selected": selected_payload,
        "charts": {
            "metric": bar_chart(chart_items, x="region", y="value", title=filters.metric_view),
            "trend": bar_chart(
                selected_payload["trend"] if selected_payload else [],
                x="month",
                y="value",
                title="Last 6 months",
                sort=[p["month"] for p in selected_payload["trend"]] if selected_payload else None,
            ),
        },
    }
