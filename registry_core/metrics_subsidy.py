from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional, Sequence, Tuple

from registry_core.charts import bar_chart, grouped_bar_chart
from registry_core.filters import SubsidyFilters, filter_rows, frame_of, records_of
from registry_core.policy import SubsidyFallbacks
from registry_core.records import SubsidySummary, round_half_up


EUR_MILLION = 1_000_000
# (title, share of flagged cases, average amount per case in €K)
RED_FLAG_SPLITS = (
    ("Premium property subsidy", 0.56, 19.8),
    ("Repeated beneficiary", 0.29, 19.8),
    ("False documentation", 0.15, 28.3),
)
# leakage % every eligibility row is calibrated against
BASELINE_LEAKAGE = 3.2


def to_millions(value: float) -> float:
    return round_half_up(value / EUR_MILLION, 1)


def leakage_tone(pct: float) -> str:
    if pct <= 2.5:
        return "good"
    if pct <= 5:
        return "warn"
    return "bad"


def utilization_level(pct: float) -> str:
    if pct > 80:
        return "High"
    return "Moderate" if pct > 60 else "Low"


def leakage_level(pct: float) -> str:
    if pct > 5:
        return "High Risk"
    return "Moderate Risk" if pct > 2 else "Low Risk"


def _or(value, default):
    return default if value is None else value


def _ratio(part: float, whole: float) -> float:
    return part / whole if whole > 0 else 0.0


def scale_rows(
    defaults: Sequence[Tuple[Any, ...]],
    names: Tuple[str, str, str],
    program_allocated: float,
    program_disbursed: float,
) -> List[Dict[str, Any]]:
    """Spread program totals over fixed label rows in proportion to their default split.

    ``defaults`` rows are (label, allocated €M, utilized €M); with no program totals the
    defaults are returned as-is.
    """
    label_key, alloc_key, util_key = names
    if program_allocated <= 0:
        return [{label_key: d[0], alloc_key: d[1], util_key: d[2]} for d in defaults]
    alloc_ratio = _ratio(program_allocated / EUR_MILLION, sum(d[1] for d in defaults))
    util_ratio = _ratio(program_disbursed / EUR_MILLION, sum(d[2] for d in defaults))
    return [
        {
            label_key: d[0],
            alloc_key: round_half_up(d[1] * alloc_ratio, 1),
            util_key: round_half_up(d[2] * util_ratio, 1),
        }
        for d in defaults
    ]


def eligibility_rows(
    fallbacks: SubsidyFallbacks,
    program_allocated: float,
    program_disbursed: float,
    total_applications: int,
    leakage: float,
) -> List[Dict[str, Any]]:
    rows = []
    scaled = program_allocated > 0
    alloc_ratio = _ratio(program_allocated / EUR_MILLION, sum(r[1] for r in fallbacks.eligibility))
    util_ratio = _ratio(program_disbursed / EUR_MILLION, sum(r[2] for r in fallbacks.eligibility))
    bene_total = sum(r[3] for r in fallbacks.eligibility)
    bene_ratio = total_applications / bene_total if total_applications > 0 else 1.0
    for bracket, allocated, utilized, beneficiaries, util_pct, leak_pct in fallbacks.eligibility:
        if scaled:
            allocated = round_half_up(allocated * alloc_ratio, 1)
            utilized = round_half_up(utilized * util_ratio, 1)
            beneficiaries = int(round_half_up(beneficiaries * bene_ratio))
            # a zero result keeps the calibrated default
            util_pct = min(100, int(round_half_up(util_pct * (util_ratio / max(alloc_ratio, 0.01))))) or util_pct
            leak_pct = round_half_up(leakage * (leak_pct / BASELINE_LEAKAGE), 1) or leak_pct
        rows.append(
            {
                "bracket": bracket,
                "allocated": allocated,
                "utilized": utilized,
                "beneficiaries": beneficiaries,
                "utilization_pct": util_pct,
                "leakage_pct": leak_pct,
                "leakage_tone": leakage_tone(leak_pct),
            }
        )
    return rows


def red_flags(fraud_cases: int, fallbacks: SubsidyFallbacks) -> List[Dict[str, Any]]:
    base = fraud_cases if fraud_cases > 0 else fallbacks.fraud_cases
    return [
        {
            "title": title,
            "cases": int(round_half_up(base * share)),
            "amount": f"€{int(round_half_up(base * share * per_case))}K",
        }
        for title, share, per_case in RED_FLAG_SPLITS
    ]


def compute_subsidy(
    filters: SubsidyFilters,
    summary: Optional[SubsidySummary],
    fallbacks: SubsidyFallbacks = SubsidyFallbacks(),
) -> Dict[str, Any]:
    s = summary or SubsidySummary()
    allocated_m = to_millions(_or(s.total_allocated, fallbacks.total_allocated))
    utilized_m = to_millions(_or(s.total_disbursed, fallbacks.total_disbursed))
    leakage = _or(s.leakage_rate, fallbacks.leakage_rate)
    applications = _or(s.total_applications, fallbacks.total_applications)
    utilized_pct = round_half_up(_ratio(utilized_m, allocated_m) * 100, 1)

    program_allocated = sum(p.allocated for p in s.programs)
    program_disbursed = sum(p.disbursed for p in s.programs)

    delivered = s.completed_applications or fallbacks.completed_applications
    subsidized = applications or fallbacks.total_applications
    delivery_rate = round_half_up(delivered / subsidized * 100, 1) if subsidized > 0 else fallbacks.delivery_rate

    programs = [
        {
            "program": p.name,
            "allocated_m": to_millions(p.allocated),
            "disbursed_m": to_millions(p.disbursed),
            "utilization_rate": _or(p.utilization_rate, round_half_up(_ratio(p.disbursed, p.allocated) * 100, 1)),
            "beneficiaries": p.beneficiaries,
            "completion_rate": p.completion_rate,
        }
        for p in s.programs
    ]
    table = records_of(filter_rows(frame_of(programs), query=filters.query, search_fields=("program",)))

    brackets = scale_rows(fallbacks.income_brackets, ("bracket", "allocated", "utilized"), program_allocated, program_disbursed)
    regions = scale_rows(fallbacks.region_budgets, ("region", "budget", "utilized"), program_allocated, program_disbursed)

    return {
        "filters": asdict(filters),
        "kpis": {
            "total_budget_m": allocated_m,
            "allocated_m": allocated_m,
            "utilized_m": utilized_m,
            "allocated_pct": 100.0 if allocated_m > 0 else 0.0,
            "utilized_pct": utilized_pct,
            "leakage_pct": leakage,
            "cards": [
                {"label": "Total Budget", "value": f"€{allocated_m:.1f}M", "sub": "Allocated this year", "tone": "neutral"},
                {"label": "Utilized", "value": f"€{utilized_m:.1f}M", "sub": f"{utilized_pct:.1f}% of allocation", "tone": "good"},
                {
                    "label": "Leakage",
                    "value": f"{leakage:.1f}%",
                    "sub": s.leakage_level or leakage_level(leakage),
                    "tone": leakage_tone(leakage),
                },
            ],
        },
        "interpretation": {
            "utilization_level": s.utilization_level or utilization_level(utilized_pct),
            "leakage_level": s.leakage_level or leakage_level(leakage),
            "recommendation": s.recommendation
            or ("Immediate audit recommended" if leakage > 3 else "Continue monitoring"),
        },
        "income_brackets": brackets,
        "regions": regions,
        "red_flags": red_flags(_or(s.fraud_cases, fallbacks.fraud_cases), fallbacks),
        "outcome": {
            "units_delivered": delivered,
            "total_subsidized": subsidized,
            "delivery_rate": delivery_rate,
            "delivery_delta": fallbacks.delivery_delta,
            "satisfaction": fallbacks.satisfaction,
        },
        "eligibility": eligibility_rows(fallbacks, program_allocated, program_disbursed, applications, leakage),
        "table": table,
        "total": len(programs),
        "charts": {
            "brackets": grouped_bar_chart(brackets, x="bracket", series=("allocated", "utilized"), title="By income bracket (€M)"),
            "regions": grouped_bar_chart(
                regions, x="region", series=("budget", "utilized"), title="By region (€M)", horizontal=True
            ),
            "programs": bar_chart(
                [{"program": r["program"], "allocated_m": r["allocated_m"]} for r in table],
                x="program",
                y="allocated_m",
                title="Allocation by program (€M)",
            ),
        },
    }
