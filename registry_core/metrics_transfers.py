from __future__ import annotations

import math
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from registry_core.charts import bar_chart, donut_chart
from registry_core.filters import TransferFilters, filter_rows, frame_of, records_of
from registry_core.records import MISSING, TransferRecord, round_half_up


SEARCH_FIELDS = ("transfer_id", "parcel_id", "buyer", "seller")
TRANSFER_STATUSES = ("Pending", "Approved", "Completed", "Rejected")
TRANSFER_TYPES = ("Sale", "Inheritance", "Subdivision", "Donation", "Gift", "Exchange", "Other")
RANGE_DAYS = {"Last 7 days": 7, "Last 30 days": 30, "Last 90 days": 90, "This year": 365, "All time": None}
DAILY_BUCKETS = 7


def processing_days(transfer: TransferRecord, now: datetime) -> Optional[int]:
    if transfer.processing_days:
        return transfer.processing_days
    if transfer.created_at is None:
        return None
    return math.ceil((now - transfer.created_at).total_seconds() / 86400)


def format_created(value: Optional[datetime]) -> str:
    if value is None:
        return MISSING
    return f"{value:%b} {value.day:02d}, {value.year}"


def _row(t: TransferRecord, now: datetime) -> Dict[str, Any]:
    row = asdict(t)
    row["processing_days"] = processing_days(t, now)
    row["created_display"] = format_created(t.created_at)
    return row


def compute_transfer_kpis(rows: List[Dict[str, Any]], now: datetime) -> Dict[str, Any]:
    today = now.date()
    completed_today = sum(
        1
        for r in rows
        if r["status"] == "Completed" and r["updated_at"] is not None and r["updated_at"].date() == today
    )
    days = [r["processing_days"] for r in rows if r["processing_days"] is not None]
    avg = int(round_half_up(sum(days) / len(days))) if days else 0
    return {
        "pending": sum(1 for r in rows if r["status"] == "Pending"),
        "completed_today": completed_today,
        "avg_processing_days": avg,
        "total_value": float(sum(r["value"] or 0 for r in rows)),
    }


def _breakdown(rows: List[Dict[str, Any]], key: str, order: Sequence[str]) -> Dict[str, int]:
    counts = {name: 0 for name in order}
    for r in rows:
        counts[r[key]] = counts.get(r[key], 0) + 1
    return counts


def daily_buckets(rows: List[Dict[str, Any]], now: datetime, days: int = DAILY_BUCKETS) -> List[Dict[str, Any]]:
    buckets = []
    index = {}
    for offset in range(days - 1, -1, -1):
        day = (now - timedelta(days=offset)).date()
        bucket = {"date": day.isoformat(), "label": f"{day:%a}", "count": 0, "value": 0.0}
        buckets.append(bucket)
        index[day] = bucket
    for r in rows:
        created = r["created_at"]
        if created is None or created.date() not in index:
            continue
        bucket = index[created.date()]
        bucket["count"] += 1
        bucket["value"] += r["value"] or 0
    return buckets


def compute_transfers(
    filters: TransferFilters,
    transfers: Optional[Sequence[TransferRecord]],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    transfers = list(transfers or [])
    days = RANGE_DAYS.get(filters.time_range)
    cutoff = now - timedelta(days=days) if days is not None else None
    # undated rows stay visible in every range
    in_range = [t for t in transfers if cutoff is None or t.created_at is None or t.created_at >= cutoff]

    df = frame_of(_row(t, now) for t in in_range)
    filtered = filter_rows(
        df,
        query=filters.query,
        search_fields=SEARCH_FIELDS,
        equals={"region": filters.region, "status": filters.status},
    )
    rows = records_of(filtered)

    by_status = _breakdown(rows, "status", TRANSFER_STATUSES)
    by_type = {k: v for k, v in _breakdown(rows, "transfer_type", TRANSFER_TYPES).items() if v > 0}
    status_items = [{"status": k, "count": v} for k, v in by_status.items()]
    type_items = [{"type": k, "count": v} for k, v in by_type.items()]
    daily = daily_buckets(rows, now)

    return {
        "filters": asdict(filters),
        "kpis": compute_transfer_kpis(rows, now),
        "by_status": status_items,
        "by_type": type_items,
        "daily": daily,
        "table": rows,
        "total": len(transfers),
        "charts": {
            "status": donut_chart(status_items, category="status", value="count", title="Transfers by status"),
            "type": donut_chart(type_items, category="type", value="count", title="Transfers by type"),
            "daily": bar_chart(daily, x="label", y="count", title="Last 7 days", sort=[b["label"] for b in daily]),
        },
    }
