from __future__ import annotations

import csv
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from registry_core.records import text_value


Column = Tuple[str, str]

EXPORT_COLUMNS: Dict[str, List[Column]] = {
    "regions": [
        ("Region", "region"),
        ("Total Parcels", "total_parcels"),
        ("Active Disputes", "active_disputes"),
        ("Pending Transfers", "pending_transfers"),
        ("Active Mortgages", "active_mortgages"),
        ("Avg Processing (Days)", "avg_processing_days"),
        ("Fraud Blocked", "fraud_blocked"),
        ("Dispute Rate (%)", "dispute_rate"),
    ],
    "mortgages": [
        ("Mortgage ID", "mortgage_id"),
        ("Parcel ID", "parcel_id"),
        ("Region", "region"),
        ("Bank", "bank"),
        ("Status", "status"),
        ("Original Amount", "original_amount"),
        ("Remaining", "remaining"),
        ("Monthly", "monthly"),
        ("Start Date", "start_date_display"),
    ],
    "disputes": [
        ("DisputeID", "dispute_id"),
        ("ParcelID", "parcel_id"),
        ("Region", "region"),
        ("Type", "dispute_type"),
        ("Status", "status"),
        ("FiledDate", "filed_date"),
        ("EstValueEUR", "est_value"),
        ("DaysOpen", "days_open"),
    ],
    "transfers": [
        ("Transfer ID", "transfer_id"),
        ("Parcel ID", "parcel_id"),
        ("Region", "region"),
        ("Type", "transfer_type"),
        ("Status", "status"),
        ("Buyer", "buyer"),
        ("Seller", "seller"),
        ("Value (EUR)", "value"),
        ("Processing", "processing"),
        ("Created At", "created_display"),
    ],
}

QUOTING = {
    "regions": csv.QUOTE_MINIMAL,
    "mortgages": csv.QUOTE_MINIMAL,
    "disputes": csv.QUOTE_MINIMAL,
    "transfers": csv.QUOTE_ALL,
}


def _processing_text(row: Dict[str, Any]) -> str:
    days = row.get("processing_days")
    if days is None or pd.isna(days):
        return "In progress"
    return f"{text_value(days)} days"


DERIVED: Dict[str, Dict[str, Callable[[Dict[str, Any]], Any]]] = {
    "transfers": {"processing": _processing_text},
}


def to_csv(rows: Sequence[Dict[str, Any]], columns: Sequence[Column], quoting: int = csv.QUOTE_MINIMAL) -> str:
    """Header line plus one line per row, joined by '\\n' with no trailing newline.

    The header is never quoted. None renders as an empty field and integral floats drop '.0'.
    """
    header = ",".join(h for h, _ in columns)
    if not rows:
        return header
    body = pd.DataFrame(
        [[text_value(row.get(key)) for _, key in columns] for row in rows],
        columns=[h for h, _ in columns],
    )
    text = body.to_csv(index=False, header=False, quoting=quoting, lineterminator="\n")
    return header + "\n" + text.rstrip("\n")


def export_rows(page: str, rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    derived = DERIVED.get(page, {})
    if not derived:
        return list(rows)
    out = []
    for row in rows:
        extra = {key: fn(row) for key, fn in derived.items()}
        out.append({**row, **extra})
    return out


def export_filename(page: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    if page == "transfers":
        return f"transfers_{today.isoformat()}.csv"
    if page == "regions":
        return f"regions_export_{today.isoformat()}.csv"
    return f"{page}_export.csv"


def export_page(page: str, payload: Dict[str, Any], today: Optional[date] = None) -> Tuple[str, str]:
    """Render a page payload's filtered table as CSV. Returns (csv_text, filename)."""
    if page not in EXPORT_COLUMNS:
        raise KeyError(page)
    rows = export_rows(page, payload.get("table") or [])
    text = to_csv(rows, EXPORT_COLUMNS[page], QUOTING[page])
    return text, export_filename(page, today)
