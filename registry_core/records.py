from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, Optional, Tuple

import pandas as pd

from registry_core.policy import BubbleFallbacks, LegalFallbacks


MISSING = "—"
DEFAULT_TREND_MONTHS = ("Aug", "Sep", "Oct", "Nov", "Dec", "Jan")

RESTRICTION_FLAGS = {
    "mortgage": "Active mortgage",
    "lien": "Lien registered",
    "easement": "Easement recorded",
    "zoning": "Zoning violation",
    "environmental": "Environmental clearance missing",
    "legal": "Legal restriction",
}

MORTGAGE_STATUSES = ("Active", "Paid", "Defaulted", "Foreclosure")
MORTGAGE_STATUS_MAP = {
    "active": "Active",
    "paid": "Paid",
    "paid_off": "Paid",
    "defaulted": "Defaulted",
    "foreclosure": "Foreclosure",
    "foreclosed": "Foreclosure",
}

TRANSFER_STATUS_MAP = {
    "initiated": "Pending",
    "pending_approval": "Pending",
    "approved": "Approved",
    "completed": "Completed",
    "rejected": "Rejected",
    "cancelled": "Rejected",
}
TRANSFER_TYPE_MAP = {
    "sale": "Sale",
    "gift": "Donation",
    "inheritance": "Inheritance",
    "exchange": "Exchange",
    "expropriation": "Other",
    "court_order": "Other",
    "other": "Other",
}

_DMY = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})\.?$")


# ---------- scalar coercion ----------
def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def as_float(value: object, default: Optional[float] = None) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return default
    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if math.isnan(out) or math.isinf(out):
        return default
    return out


def as_int(value: object, default: Optional[int] = None) -> Optional[int]:
    out = as_float(value)
    if out is None:
        return default
    return int(round_half_up(out))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def text_value(value: object) -> str:
    """Render a cell the way the dashboard prints it: integral floats lose '.0', missing is blank."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if not math.isfinite(value):
            return ""
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, (list, tuple)):
        return " ".join(text_value(v) for v in value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value)


def parse_datetime(value: object) -> Optional[datetime]:
    """Parse ISO strings, datetimes and the "15. 3. 2022." form into naive UTC datetimes."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is None else value.astimezone(timezone.utc).replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    s = str(value).strip()
    if not s:
        return None
    match = _DMY.match(re.sub(r"\s", "", s))
    if match:
        day, month, year = (int(g) for g in match.groups())
        try:
            return datetime(year, month, day)
        except ValueError:
            return None
    try:
        ts = pd.to_datetime(s, errors="coerce", utc=True)
    except (TypeError, ValueError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    return ts.tz_convert(None).to_pydatetime()


def parse_date(value: object) -> Optional[date]:
    dt = parse_datetime(value)
    return dt.date() if dt is not None else None


def format_dmy(value: Optional[date]) -> str:
    if value is None:
        return MISSING
    return f"{value.day}. {value.month}. {value.year}."


def _first(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _text(value: object, default: str = MISSING) -> str:
    if value is None:
        return default
    s = str(value)
    return s if s.strip() else default


def _mapping(value: object) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _sequence(value: object) -> list:
    return list(value) if isinstance(value, (list, tuple)) else []


# ---------- regions ----------
@dataclass(frozen=True)
class TrendPoint:
    month: str
    value: int


@dataclass(frozen=True)
class RegionRecord:
    region: str
    parcel_count: int = 0
    dispute_count: int = 0
    transfer_count: int = 0
    verification_rate: float = 0.0
    active_mortgages: int = 0
    avg_processing_days: float = 0.0
    fraud_blocked: int = 0
    transfers_trend: Tuple[TrendPoint, ...] = ()
    disputes_trend: Tuple[TrendPoint, ...] = ()

    @property
    def dispute_rate(self) -> float:
        if self.parcel_count <= 0:
            return 0.0
        return round_half_up(self.dispute_count / self.parcel_count * 100, 1)


def _trend(raw: object) -> Tuple[TrendPoint, ...]:
    points = []
    for item in raw if isinstance(raw, (list, tuple)) else []:
        if not isinstance(item, dict):
            continue
        points.append(TrendPoint(month=_text(item.get("month"), ""), value=as_int(item.get("value"), 0)))
    if not points:
        return tuple(TrendPoint(month=m, value=0) for m in DEFAULT_TREND_MONTHS)
    return tuple(points)


def normalize_region(raw: Dict[str, Any]) -> RegionRecord:
    parcels = max(0, as_int(raw.get("parcels"), 0))
    disputes = min(parcels, max(0, as_int(raw.get("disputes"), 0)))
    active_mortgages = as_int(raw.get("activeMortgages"))
    avg_days = as_float(raw.get("avgProcessingDays"))
    fraud = as_int(raw.get("fraudBlocked"))
    return RegionRecord(
        region=_text(raw.get("region")),
        parcel_count=parcels,
        dispute_count=disputes,
        transfer_count=max(0, as_int(raw.get("transfers"), 0)),
        verification_rate=clamp(as_float(raw.get("verificationRate"), 0.0), 0.0, 100.0),
        active_mortgages=active_mortgages if active_mortgages is not None else int(round_half_up(parcels * 0.035)),
        avg_processing_days=avg_days if avg_days is not None else round_half_up(3.5 + (parcels % 25) / 10, 1),
        fraud_blocked=fraud if fraud is not None else int(round_half_up(disputes * 0.05)),
        transfers_trend=_trend(raw.get("transfersLast6m")),
        disputes_trend=_trend(raw.get("disputesLast6m")),
    )


# ---------- bubble risk ----------
@dataclass(frozen=True)
class MonthlyTrend:
    month: str
    price_growth: float
    income_growth: float


@dataclass(frozen=True)
class BubbleRiskSnapshot:
    risk_score: Optional[int] = None
    price_growth: Optional[float] = None
    income_growth: Optional[float] = None
    growth_gap: Optional[float] = None
    trend: str = "stable"
    monthly_trends: Tuple[MonthlyTrend, ...] = ()
    risk_level: Optional[str] = None
    recommendation: Optional[str] = None
    concerns: Optional[str] = None

    def resolve(self, fallbacks: BubbleFallbacks) -> "BubbleRiskSnapshot":
        """Fill every absent field from the fallbacks, field by field."""
        return replace(
            self,
            risk_score=self.risk_score if self.risk_score is not None else fallbacks.risk_score,
            price_growth=self.price_growth if self.price_growth is not None else fallbacks.price_growth,
            income_growth=self.income_growth if self.income_growth is not None else fallbacks.income_growth,
            growth_gap=self.growth_gap if self.growth_gap is not None else fallbacks.growth_gap,
            risk_level=self.risk_level or fallbacks.risk_level,
            recommendation=self.recommendation or fallbacks.recommendation,
            concerns=self.concerns or fallbacks.concerns,
        )


def normalize_bubble_snapshot(raw: Optional[Dict[str, Any]]) -> BubbleRiskSnapshot:
    raw = _mapping(raw)
    interpretation = _mapping(raw.get("interpretation"))
    score = as_int(raw.get("riskScore"))
    monthly = []
    for item in _sequence(raw.get("monthlyTrends")):
        if not isinstance(item, dict):
            continue
        monthly.append(
            MonthlyTrend(
                month=_text(item.get("month"), ""),
                price_growth=as_float(item.get("priceGrowth"), 0.0),
                income_growth=as_float(item.get("incomeGrowth"), 0.0),
            )
        )
    return BubbleRiskSnapshot(
        risk_score=int(clamp(score, 0, 100)) if score is not None else None,
        price_growth=as_float(raw.get("currentPriceGrowth")),
        income_growth=as_float(raw.get("currentIncomeGrowth")),
        growth_gap=as_float(raw.get("growthGap")),
        trend="increasing" if raw.get("trend") == "increasing" else "stable",
        monthly_trends=tuple(monthly),
        risk_level=interpretation.get("riskLevel"),
        recommendation=interpretation.get("recommendation"),
        concerns=interpretation.get("concerns"),
    )


# ---------- parcels / legal status ----------
@dataclass(frozen=True)
class Restriction:
    type: str
    description: Optional[str] = None


@dataclass(frozen=True)
class ParcelComplianceRecord:
    parcel_id: str
    legal_status_raw: str = "pending"
    restrictions: Tuple[Restriction, ...] = ()
    has_mortgage: bool = False
    blockchain_hash: str = MISSING
    address_line1: str = MISSING
    address_line2: str = MISSING
    region: str = MISSING


def normalize_parcel(raw: Dict[str, Any]) -> ParcelComplianceRecord:
    address = _mapping(raw.get("address"))
    restrictions = tuple(
        Restriction(type=_text(r.get("type"), ""), description=r.get("description") or None)
        for r in _sequence(raw.get("restrictions"))
        if isinstance(r, dict)
    )
    region = _text(raw.get("region"))
    return ParcelComplianceRecord(
        parcel_id=_text(_first(raw, "parcelId", "_id")),
        legal_status_raw=_text(raw.get("legalStatus"), "pending"),
        restrictions=restrictions,
        has_mortgage=bool(raw.get("hasMortgage")),
        blockchain_hash=_text(raw.get("blockchainHash")),
        address_line1=_text(_first(address, "street", "line1")),
        address_line2=_text(_first(address, "city") or raw.get("region")),
        region=region,
    )


@dataclass(frozen=True)
class RegistryStats:
    verification_rate: Optional[float] = None
    pending_rate: Optional[float] = None
    dispute_active_rate: Optional[float] = None
    dispute_total: Optional[int] = None
    avg_registration_days: Optional[float] = None

    def resolve(self, fallbacks: LegalFallbacks) -> "RegistryStats":
        return RegistryStats(
            verification_rate=self.verification_rate if self.verification_rate is not None else fallbacks.verification_rate,
            pending_rate=self.pending_rate if self.pending_rate is not None else fallbacks.pending_rate,
            dispute_active_rate=(
                self.dispute_active_rate if self.dispute_active_rate is not None else fallbacks.disputed_rate
            ),
            dispute_total=self.dispute_total if self.dispute_total is not None else fallbacks.dispute_total,
            avg_registration_days=(
                self.avg_registration_days if self.avg_registration_days is not None else fallbacks.avg_registration_days
            ),
        )


def normalize_stats(raw: Optional[Dict[str, Any]]) -> RegistryStats:
    raw = _mapping(raw)
    parcels = _mapping(raw.get("parcels"))
    disputes = _mapping(raw.get("disputes"))
    return RegistryStats(
        verification_rate=as_float(parcels.get("verificationRate")),
        pending_rate=as_float(parcels.get("pendingRate")),
        dispute_active_rate=as_float(disputes.get("activeRate")),
        dispute_total=as_int(disputes.get("total")),
        avg_registration_days=as_float(parcels.get("avgRegistrationDays")),
    )


# ---------- mortgages ----------
@dataclass(frozen=True)
class MortgageRecord:
    mortgage_id: str
    parcel_id: str = MISSING
    region: str = MISSING
    bank: str = MISSING
    status: str = "Active"
    original_amount: float = 0.0
    remaining: float = 0.0
    monthly: Optional[float] = None
    start_date: Optional[date] = None


def normalize_mortgage(raw: Dict[str, Any]) -> MortgageRecord:
    parcel = _mapping(raw.get("parcel"))
    lender = _mapping(raw.get("lender"))
    status = _text(_first(raw, "status", "mortgageStatus"), "Active")
    return MortgageRecord(
        mortgage_id=_text(_first(raw, "mortgageId", "_id")),
        parcel_id=_text(_first(raw, "parcelId") or parcel.get("parcelId")),
        region=_text(raw.get("region") or parcel.get("region")),
        bank=_text(raw.get("bank") or lender.get("name")),
        status=MORTGAGE_STATUS_MAP.get(status.lower(), status),
        original_amount=as_float(_first(raw, "originalAmount", "principalAmount"), 0.0),
        remaining=as_float(_first(raw, "remaining", "outstandingBalance"), 0.0),
        monthly=as_float(_first(raw, "monthly", "monthlyPayment")),
        start_date=parse_date(_first(raw, "startDate", "originationDate", "registrationDate")),
    )


# ---------- disputes ----------
@dataclass(frozen=True)
class DisputeRecord:
    dispute_id: str
    parcel_id: str = MISSING
    region: str = MISSING
    dispute_type: str = "Other"
    status: str = "Open"
    filing_date: Optional[date] = None
    est_value: float = 0.0
    blockchain_hash: Optional[str] = None


@dataclass(frozen=True)
class DisputeStats:
    by_status: Tuple[Tuple[str, int], ...] = ()
    avg_resolution_days: Optional[float] = None

    def count_for(self, status: str) -> Optional[int]:
        for name, count in self.by_status:
            if name == status:
                return count
        return None


def _title_words(value: str) -> str:
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), value.replace("_", " "))


def normalize_dispute(raw: Dict[str, Any]) -> DisputeRecord:
    parcel = _mapping(raw.get("parcel"))
    dispute_id = raw.get("disputeId")
    if dispute_id is None:
        dispute_id = f"DSP-{str(raw['_id'])[-6:].upper()}" if raw.get("_id") else MISSING
    return DisputeRecord(
        dispute_id=str(dispute_id),
        parcel_id=_text(parcel.get("parcelId")),
        region=_text(_first(raw, "region") or parcel.get("region")),
        dispute_type=_title_words(_text(raw.get("disputeType"), "other")),
        status=_text(raw.get("status"), "Open"),
        filing_date=parse_date(raw.get("filingDate")),
        est_value=as_float(_first(raw, "claimedAmount", "estimatedCost"), 0.0),
        blockchain_hash=parcel.get("blockchainHash"),
    )


def normalize_dispute_stats(raw: Optional[Dict[str, Any]]) -> DisputeStats:
    raw = _mapping(raw)
    by_status = []
    for item in _sequence(raw.get("byStatus")):
        if isinstance(item, dict) and item.get("_id") is not None:
            by_status.append((str(item["_id"]), as_int(item.get("count"), 0)))
    return DisputeStats(by_status=tuple(by_status), avg_resolution_days=as_float(raw.get("avgResolutionDays")))


# ---------- transfers ----------
@dataclass(frozen=True)
class TransferRecord:
    transfer_id: str
    parcel_id: str = MISSING
    region: str = MISSING
    transfer_type: str = "Other"
    status: str = "Pending"
    buyer: str = MISSING
    seller: str = MISSING
    value: float = 0.0
    processing_days: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    notes: str = ""


def owner_name(owner: object) -> str:
    if not owner:
        return MISSING
    if isinstance(owner, str):
        return owner
    owner = _mapping(owner)
    personal = _mapping(owner.get("personalInfo"))
    if owner.get("personalInfo") is not None:
        name = " ".join(p for p in (personal.get("firstName"), personal.get("lastName")) if p)
        return name or owner.get("_id") or MISSING
    company = _mapping(owner.get("corporateInfo")).get("companyName")
    if company:
        return company
    return owner.get("_id") or MISSING


def normalize_transfer(raw: Dict[str, Any]) -> TransferRecord:
    parcel = _mapping(raw.get("parcel"))
    transfer_type = raw.get("transferType")
    status = raw.get("transferStatus")
    processing = as_int(raw.get("processingTime"))
    return TransferRecord(
        transfer_id=_text(raw.get("transferId") or raw.get("_id")),
        parcel_id=_text(parcel.get("parcelId") or parcel.get("_id")),
        region=_text(raw.get("region") or parcel.get("region")),
        transfer_type=TRANSFER_TYPE_MAP.get(transfer_type) or transfer_type or "Other",
        status=TRANSFER_STATUS_MAP.get(status) or status or "Pending",
        buyer=owner_name(raw.get("buyer")),
        seller=owner_name(raw.get("seller")),
        value=as_float(raw.get("agreedPrice") or raw.get("registeredPrice"), 0.0),
        processing_days=processing if processing else None,
        created_at=parse_datetime(raw.get("applicationDate") or raw.get("createdAt")),
        updated_at=parse_datetime(raw.get("updatedAt") or raw.get("applicationDate")),
        notes=str(raw.get("notes") or raw.get("internalNotes") or ""),
    )


# ---------- affordability ----------
MIDDLE_INCOME_EUR = 30000.0


@dataclass(frozen=True)
class RegionPrice:
    region: str
    avg_price: float = 0.0
    count: int = 0
    affordability_ratio: Optional[float] = None


@dataclass(frozen=True)
class AffordabilitySnapshot:
    overall_score: Optional[int] = None
    trend: Optional[float] = None
    average_ratio: Optional[float] = None
    middle_income: float = MIDDLE_INCOME_EUR
    regions: Tuple[RegionPrice, ...] = ()
    level: Optional[str] = None
    recommendation: Optional[str] = None


def normalize_affordability(raw: Optional[Dict[str, Any]]) -> AffordabilitySnapshot:
    raw = _mapping(raw)
    middle = _mapping(_mapping(raw.get("incomeCategories")).get("Middle Income"))
    interpretation = _mapping(raw.get("interpretation"))
    regions = []
    for item in _sequence(raw.get("avgPricesByRegion")):
        if not isinstance(item, dict) or item.get("region") is None:
            continue
        regions.append(
            RegionPrice(
                region=str(item["region"]),
                avg_price=max(0.0, as_float(item.get("avgPrice"), 0.0)),
                count=max(0, as_int(item.get("count"), 0)),
                affordability_ratio=as_float(item.get("affordabilityRatio")),
            )
        )
    score = as_int(raw.get("overallScore"))
    return AffordabilitySnapshot(
        overall_score=int(clamp(score, 0, 100)) if score is not None else None,
        trend=as_float(raw.get("trend")),
        average_ratio=as_float(raw.get("averageRatio")),
        middle_income=max(0.0, as_float(middle.get("avgIncome"), MIDDLE_INCOME_EUR)),
        regions=tuple(regions),
        level=interpretation.get("level"),
        recommendation=interpretation.get("recommendation"),
    )


# ---------- subsidy ----------
@dataclass(frozen=True)
class SubsidyProgram:
    name: str
    allocated: float = 0.0
    disbursed: float = 0.0
    beneficiaries: int = 0
    utilization_rate: Optional[float] = None
    completion_rate: Optional[float] = None


@dataclass(frozen=True)
class SubsidySummary:
    total_allocated: Optional[float] = None
    total_disbursed: Optional[float] = None
    leakage_rate: Optional[float] = None
    fraud_cases: Optional[int] = None
    total_applications: Optional[int] = None
    completed_applications: Optional[int] = None
    programs: Tuple[SubsidyProgram, ...] = ()
    utilization_level: Optional[str] = None
    leakage_level: Optional[str] = None
    recommendation: Optional[str] = None


def normalize_subsidy(raw: Optional[Dict[str, Any]]) -> SubsidySummary:
    raw = _mapping(raw)
    interpretation = _mapping(raw.get("interpretation"))
    programs = []
    for item in _sequence(raw.get("byProgram")):
        if not isinstance(item, dict):
            continue
        programs.append(
            SubsidyProgram(
                name=_text(item.get("programName")),
                allocated=max(0.0, as_float(item.get("allocated"), 0.0)),
                disbursed=max(0.0, as_float(item.get("disbursed"), 0.0)),
                beneficiaries=max(0, as_int(item.get("beneficiaries"), 0)),
                # sent as "71.6" strings
                utilization_rate=as_float(item.get("utilizationRate")),
                completion_rate=as_float(item.get("completionRate")),
            )
        )
    return SubsidySummary(
        total_allocated=as_float(raw.get("totalAllocated")),
        total_disbursed=as_float(raw.get("totalDisbursed")),
        leakage_rate=as_float(raw.get("leakageRate")),
        fraud_cases=as_int(raw.get("fraudulentCases")),
        total_applications=as_int(raw.get("totalApplications")),
        completed_applications=as_int(raw.get("completedApplications")),
        programs=tuple(programs),
        utilization_level=interpretation.get("utilizationLevel"),
        leakage_level=interpretation.get("leakageLevel"),
        recommendation=interpretation.get("recommendation"),
    )


def normalize_many(items: Iterable[Any], normalizer) -> list:
    return [normalizer(item) for item in _sequence(items) if isinstance(item, dict)]
