from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from registry_core.charts import donut_chart
from registry_core.filters import ComplianceFilters, collapse_ws, count_active_filters, filter_rows, frame_of, records_of
from registry_core.policy import LegalFallbacks
from registry_core.records import (
    RESTRICTION_FLAGS,
    ParcelComplianceRecord,
    RegistryStats,
    round_half_up,
    text_value,
)


SEARCH_FIELDS = ("parcel", "address_line1", "address_line2", "hash", "flags")


@dataclass(frozen=True)
class ComplianceRow:
    parcel: str
    address_line1: str
    address_line2: str
    status: str
    zoning: str
    environmental: str
    occupancy: str
    mortgage: str
    hash: str
    flags: Tuple[str, ...]


def _flag_label(restriction) -> str:
    label = RESTRICTION_FLAGS.get(restriction.type)
    if label:
        return label
    return restriction.description or restriction.type


def classify_parcel_compliance(parcel: ParcelComplianceRecord) -> ComplianceRow:
    types = {r.type for r in parcel.restrictions}
    status = "verified" if parcel.legal_status_raw == "clean" else parcel.legal_status_raw
    return ComplianceRow(
        parcel=collapse_ws(parcel.parcel_id),
        address_line1=parcel.address_line1,
        address_line2=parcel.address_line2,
        status=status,
        zoning="bad" if "zoning" in types else "ok",
        environmental="warn" if "environmental" in types else "ok",
        # no occupancy source exists upstream
        occupancy="ok",
        mortgage="active" if parcel.has_mortgage else "clear",
        hash=parcel.blockchain_hash,
        flags=tuple(_flag_label(r) for r in parcel.restrictions),
    )


def litigation_rate(verified: float, pending: float, disputed: float, fallback: float) -> float:
    remainder = round_half_up(max(0.0, 100 - verified - pending - disputed), 1)
    return remainder or fallback


def compute_legal_kpis(stats: Optional[RegistryStats], fallbacks: LegalFallbacks = LegalFallbacks()) -> Dict[str, Any]:
    resolved = (stats or RegistryStats()).resolve(fallbacks)
    verified = resolved.verification_rate
    pending = resolved.pending_rate
    disputed = resolved.dispute_active_rate
    litigation = litigation_rate(verified, pending, disputed, fallbacks.litigation_rate)
    avg_days = resolved.avg_registration_days
    improved_from = round_half_up(avg_days * fallbacks.registration_improvement, 1)

    return {
        "verified_pct": verified,
        "pending_pct": pending,
        "disputed_pct": disputed,
        "litigation_pct": litigation,
        "dispute_total": resolved.dispute_total,
        "avg_registration_days": avg_days,
        "improved_from_days": improved_from,
        "cards": [
            {"label": "Fully Verified", "value": f"{verified:.1f}%", "sub": "Properties legally clean", "tone": "good"},
            {"label": "Pending Checks", "value": f"{pending:.1f}%", "sub": "Awaiting verification", "tone": "warn"},
            {
                "label": "Disputed",
                "value": f"{disputed:.1f}%",
                "sub": f"{resolved.dispute_total:,} active disputes",
                "tone": "bad",
            },
            {
                "label": "Avg Registration",
                "value": f"{text_value(avg_days)} days",
                "sub": f"Improved from {improved_from:.1f} days",
                "tone": "neutral",
            },
        ],
        "breakdown": [
            {"key": "verified", "label": "Verified", "value": verified},
            {"key": "pending", "label": "Pending", "value": pending},
            {"key": "disputed", "label": "Disputed", "value": disputed},
            {"key": "litigation", "label": "Litigation", "value": litigation},
        ],
    }


def compute_legal_cleanliness(
    filters: ComplianceFilters,
    stats: Optional[RegistryStats],
    parcels: Optional[Sequence[ParcelComplianceRecord]],
    fallbacks: LegalFallbacks = LegalFallbacks(),
) -> Dict[str, Any]:
    kpis = compute_legal_kpis(stats, fallbacks)
    rows: List[ComplianceRow] = [classify_parcel_compliance(p) for p in (parcels or [])]
    df = frame_of(rows)
    filtered = filter_rows(
        df,
        query=filters.query,
        search_fields=SEARCH_FIELDS,
        equals={"status": filters.status, "mortgage": filters.mortgage},
        flags_presence=filters.flags,
    )
    return {
        "filters": asdict(filters),
        "kpis": kpis,
        "table": records_of(filtered),
        "total": len(rows),
        "active_filters": count_active_filters(filters),
        "charts": {
            "status": donut_chart(kpis["breakdown"], category="label", value="value", title="Legal status overview"),
        },
    }
