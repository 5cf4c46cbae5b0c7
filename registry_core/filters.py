from __future__ import annotations

import re
from dataclasses import asdict, dataclass, is_dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from registry_core.records import as_float, as_int, text_value


ALL = "all"
FLAG_PRESENCE = ("all", "any", "none")
_ALL_ALIASES = {"", "all", "all regions", "all statuses", "all types", "all banks", "all cities"}

REGION_TIME_RANGES = ("Last 30 days", "Last 3 months", "Last 6 months", "YTD", "All time")
REGION_METRIC_VIEWS = ("disputeRate", "transferVolume", "processingTime")
MORTGAGE_DATE_RANGES = ("Last 30 days", "Last 90 days", "Last 365 days", "All time")
DISPUTE_TIME_RANGES = ("Last 7 days", "Last 30 days", "Last 90 days", "This year")
TRANSFER_TIME_RANGES = ("Last 7 days", "Last 30 days", "Last 90 days", "This year", "All time")
DEFAULT_MAX_RATIO = 8.0
DEFAULT_MAX_EMI_PCT = 35.0


@dataclass(frozen=True)
class BubbleFilters:
    query: str = ""
    status: str = ALL


@dataclass(frozen=True)
class ComplianceFilters:
    query: str = ""
    status: str = ALL
    mortgage: str = ALL
    flags: str = ALL


@dataclass(frozen=True)
class RegionFilters:
    query: str = ""
    region: str = ALL
    time_range: str = "Last 6 months"
    metric_view: str = "disputeRate"
    selected_region: Optional[str] = None


@dataclass(frozen=True)
class MortgageFilters:
    query: str = ""
    region: str = ALL
    status: str = ALL
    date_range: str = "All time"


@dataclass(frozen=True)
class DisputeFilters:
    query: str = ""
    region: str = ALL
    status: str = ALL
    time_range: str = "Last 30 days"
    page: int = 1


@dataclass(frozen=True)
class TransferFilters:
    query: str = ""
    region: str = ALL
    status: str = ALL
    time_range: str = "All time"


@dataclass(frozen=True)
class AffordabilityFilters:
    query: str = ""
    city: str = ALL
    max_ratio: float = DEFAULT_MAX_RATIO
    max_emi_pct: float = DEFAULT_MAX_EMI_PCT


@dataclass(frozen=True)
class SubsidyFilters:
    query: str = ""
    region: str = ALL
    year: Optional[int] = None


def _query(raw: Mapping[str, Any]) -> str:
    return str(raw.get("query") or "").strip()


def _categorical(value: object) -> str:
    if value is None:
        return ALL
    s = str(value).strip()
    if s.lower() in _ALL_ALIASES:
        return ALL
    return s


def _choice(value: object, options: Sequence[str], default: str) -> str:
    s = str(value).strip() if value is not None else ""
    return s if s in options else default


def normalize_bubble_filters(raw: Optional[Mapping[str, Any]]) -> BubbleFilters:
    raw = raw or {}
    return BubbleFilters(query=_query(raw), status=_categorical(raw.get("status")).lower())


def normalize_compliance_filters(raw: Optional[Mapping[str, Any]]) -> ComplianceFilters:
    raw = raw or {}
    mortgage = _categorical(raw.get("mortgage")).lower()
    return ComplianceFilters(
        query=_query(raw),
        status=_categorical(raw.get("status")).lower(),
        mortgage=mortgage if mortgage in (ALL, "active", "clear") else ALL,
        flags=_choice(str(raw.get("flags") or "").lower(), FLAG_PRESENCE, ALL),
    )


def normalize_region_filters(raw: Optional[Mapping[str, Any]]) -> RegionFilters:
    raw = raw or {}
    selected = raw.get("selected_region")
    return RegionFilters(
        query=_query(raw),
        region=_categorical(raw.get("region")),
        time_range=_choice(raw.get("time_range"), REGION_TIME_RANGES, "Last 6 months"),
        metric_view=_choice(raw.get("metric_view"), REGION_METRIC_VIEWS, "disputeRate"),
        selected_region=str(selected).strip() if selected else None,
    )


def normalize_mortgage_filters(raw: Optional[Mapping[str, Any]]) -> MortgageFilters:
    raw = raw or {}
    return MortgageFilters(
        query=_query(raw),
        region=_categorical(raw.get("region")),
        status=_categorical(raw.get("status")),
        date_range=_choice(raw.get("date_range"), MORTGAGE_DATE_RANGES, "All time"),
    )


def normalize_dispute_filters(raw: Optional[Mapping[str, Any]]) -> DisputeFilters:
    raw = raw or {}
    page = raw.get("page", 1)
    try:
        page = int(page)
    except Exception:
        page = 1
    return DisputeFilters(
        query=_query(raw),
        region=_categorical(raw.get("region")),
        status=_categorical(raw.get("status")),
        time_range=_choice(raw.get("time_range"), DISPUTE_TIME_RANGES, "Last 30 days"),
        page=max(1, page),
    )


def normalize_transfer_filters(raw: Optional[Mapping[str, Any]]) -> TransferFilters:
    raw = raw or {}
    return TransferFilters(
        query=_query(raw),
        region=_categorical(raw.get("region")),
        status=_categorical(raw.get("status")),
        time_range=_choice(raw.get("time_range"), TRANSFER_TIME_RANGES, "All time"),
    )


def _positive(value: object, default: float) -> float:
    out = as_float(value)
    return out if out is not None and out > 0 else default


def normalize_affordability_filters(raw: Optional[Mapping[str, Any]]) -> AffordabilityFilters:
    raw = raw or {}
    return AffordabilityFilters(
        query=_query(raw),
        city=_categorical(raw.get("city")),
        max_ratio=_positive(raw.get("max_ratio"), DEFAULT_MAX_RATIO),
        max_emi_pct=_positive(raw.get("max_emi_pct"), DEFAULT_MAX_EMI_PCT),
    )


def normalize_subsidy_filters(raw: Optional[Mapping[str, Any]]) -> SubsidyFilters:
    raw = raw or {}
    year = as_int(raw.get("year"))
    return SubsidyFilters(
        query=_query(raw),
        region=_categorical(raw.get("region")),
        year=year if year is not None and 1900 <= year <= 2100 else None,
    )


def count_active_filters(filters: Any) -> int:
    """Number of non-default filter values (query counts when non-blank)."""
    values = asdict(filters) if is_dataclass(filters) else dict(filters)
    count = 0
    for key in ("query", "status", "mortgage", "flags", "region"):
        value = values.get(key)
        if value is None:
            continue
        if key == "query":
            count += 1 if str(value).strip() else 0
        elif value != ALL:
            count += 1
    return count


# ---------- row filtering ----------
def collapse_ws(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def frame_of(items: Iterable[Any]) -> pd.DataFrame:
    rows = [asdict(item) if is_dataclass(item) else dict(item) for item in items]
    return pd.DataFrame(rows)


def records_of(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """DataFrame -> list of dicts with NaN/NaT replaced by None."""
    if df.empty:
        return []
    out = df.astype(object).where(pd.notna(df), None)
    return out.to_dict(orient="records")


def _matches_any(df: pd.DataFrame, fields: Sequence[str], q: str) -> pd.Series:
    hit = pd.Series(False, index=df.index)
    for f in fields:
        if f not in df.columns:
            continue
        text = df[f].map(text_value).map(collapse_ws).str.lower()
        hit |= text.str.contains(q, regex=False)
    return hit


def filter_rows(
    df: pd.DataFrame,
    *,
    query: str = "",
    search_fields: Sequence[str] = (),
    equals: Optional[Mapping[str, Any]] = None,
    flags_presence: str = ALL,
    flags_field: str = "flags",
) -> pd.DataFrame:
    """AND of text search, categorical equality and flag presence; row order is preserved."""
    if df.empty:
        return df
    mask = pd.Series(True, index=df.index)

    q = collapse_ws(query or "").lower()
    if q and search_fields:
        mask &= _matches_any(df, search_fields, q)

    for column, value in (equals or {}).items():
        if value is None or value == ALL:
            continue
        if column not in df.columns:
            mask &= False
            continue
        mask &= df[column].map(text_value) == str(value)

    if flags_presence in ("any", "none") and flags_field in df.columns:
        has_flags = df[flags_field].map(lambda v: bool(v) if isinstance(v, (list, tuple)) else False)
        mask &= has_flags if flags_presence == "any" else ~has_flags

    return df[mask]
