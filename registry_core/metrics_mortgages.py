from __future__ import annotations

from dataclasses import asdict
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from registry_core.charts import bar_chart, donut_chart
from registry_core.filters import MortgageFilters, filter_rows, frame_of, records_of
from registry_core.records import MORTGAGE_STATUSES, MortgageRecord, format_dmy


SEARCH_FIELDS = ("mortgage_id", "parcel_id", "bank", "region")
RANGE_DAYS = {"Last 30 days": 30, "Last 90 days": 90, "Last 365 days": 365, "All time": None}
AT_RISK_STATUSES = ("Defaulted", "Foreclosure")
TREND_PCT = 3.5


def within_range(start: Optional[date], days: Optional[int], today: date) -> bool:
    if days is None:
        return True
    if start is None:
        return False
    return today - timedelta(days=days) <= start <= today


def _row(m: MortgageRecord) -> Dict[str, Any]:
    row = asdict(m)
    row["start_date_display"] = format_dmy(m.start_date) if m.start_date else ""
    return row


def compute_mortgage_kpis(df: pd.DataFrame) -> Dict[str, Any]:
    if df.empty:
        return {"active_count": 0, "at_risk_count": 0, "total_registered": 0.0, "outstanding_active": 0.0, "trend_pct": TREND_PCT}
    active = df[df["status"] == "Active"]
    return {
        "active_count": int(len(active)),
        "at_risk_count": int(df["status"].isin(AT_RISK_STATUSES).sum()),
        "total_registered": float(df["original_amount"].fillna(0).sum()),
        "outstanding_active": float(active["remaining"].fillna(0).sum()),
        "trend_pct": TREND_PCT,
    }


def compute_mortgages(
    filters: MortgageFilters,
    mortgages: Optional[Sequence[MortgageRecord]],
    today: Optional[date] = None,
) -> Dict[str, Any]:
    today = today or date.today()
    mortgages = list(mortgages or [])
    days = RANGE_DAYS.get(filters.date_range)
    in_range = [m for m in mortgages if within_range(m.start_date, days, today)]

    df = frame_of(_row(m) for m in in_range)
    filtered = filter_rows(
        df,
        query=filters.query,
        search_fields=SEARCH_FIELDS,
        equals={"region": filters.region, "status": filters.status},
    )

    status_counts = {s: 0 for s in MORTGAGE_STATUSES}
    bank_counts: List[Dict[str, Any]] = []
    if not filtered.empty:
        for status, count in filtered["status"].value_counts(sort=False).items():
            status_counts[status] = status_counts.get(status, 0) + int(count)
        banks = filtered.groupby("bank", sort=False).size().reset_index(name="count")
        # stable: ties keep first-seen order
        banks = banks.sort_values("count", ascending=False, kind="mergesort")
        bank_counts = [{"bank": b, "count": int(c)} for b, c in zip(banks["bank"], banks["count"])]

    status_items = [{"status": k, "count": v} for k, v in status_counts.items()]
    return {
        "filters": asdict(filters),
        "kpis": compute_mortgage_kpis(filtered),
        "status_counts": status_items,
        "bank_counts": bank_counts,
        "table": records_of(filtered),
        "total": len(mortgages),
        "region_options": ["All Regions"] + sorted({m.region for m in mortgages}),
        "status_options": ["All Statuses"] + list(MORTGAGE_STATUSES),
        "charts": {
            "status": donut_chart(status_items, category="status", value="count", title="Mortgages by status"),
            "banks": bar_chart(bank_counts, x="bank", y="count", title="Mortgages by bank", horizontal=True),
        },
    }
