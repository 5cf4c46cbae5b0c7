from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from registry_core.charts import line_chart
from registry_core.data import BubblePageData
from registry_core.filters import BubbleFilters, filter_rows, frame_of, records_of
from registry_core.policy import DEFAULT_POLICY, BubbleFallbacks, RiskPolicy
from registry_core.records import (
    BubbleRiskSnapshot,
    RegionRecord,
    as_float,
    clamp,
    round_half_up,
    text_value,
)


SEARCH_FIELDS = ("city", "status", "div")
STANDING_ACTIONS = (
    ("Freeze subsidies in overheated zones", "High"),
    ("Increase registration scrutiny for repeat buyers", "High"),
    ("Monitor foreign investment inflows", "Medium"),
)


@dataclass(frozen=True)
class RegionRiskView:
    city: str
    risk: int
    price: str
    income: str
    div: str
    status: str


@dataclass(frozen=True)
class Forecast:
    six: int
    twelve: int
    correction_prob: int
    liquidity_stress: int


@dataclass(frozen=True)
class KpiCard:
    title: str
    value: str
    sub: str
    tone: str
    chip: Optional[str] = None


@dataclass(frozen=True)
class BubbleKpiView:
    risk_score: int
    price_growth: float
    income_growth: float
    growth_gap: float
    divergence: float
    risk_level: str
    rising: bool
    cards: Tuple[KpiCard, ...]
    forecast: Forecast


def divergence_ratio(price_growth: object, income_growth: object, policy: RiskPolicy = DEFAULT_POLICY) -> float:
    price = as_float(price_growth, 0.0)
    income = as_float(income_growth, 0.0)
    if income <= 0:
        return policy.fallback_divergence
    ratio = price / income
    if not math.isfinite(ratio):
        return policy.fallback_divergence
    return round_half_up(ratio, 1)


def tone_of(metric: str, value: float, policy: RiskPolicy = DEFAULT_POLICY) -> str:
    """Map a metric value to danger / warn / neutral."""
    if metric == "divergence":
        return "danger" if value >= policy.divergence_danger else "warn"
    if metric == "price_growth":
        return "danger" if value > policy.price_growth_danger else "warn"
    if metric == "growth_gap":
        return "danger" if value > policy.growth_gap_danger else "warn"
    if metric == "risk":
        if value > policy.risk_danger:
            return "danger"
        return "warn" if value > policy.risk_warn else "neutral"
    if metric == "mortgage_volume":
        return "danger" if value > policy.mortgage_volume_danger else "warn"
    if metric == "transfer_volume":
        return "warn" if value > policy.transfer_volume_warn else "neutral"
    raise ValueError(f"Unknown metric: {metric}")


def risk_tier(score: float, policy: RiskPolicy = DEFAULT_POLICY) -> str:
    if score > policy.tier_high:
        return "high"
    if score > policy.tier_medium:
        return "medium"
    return "low"


def compute_region_risk(
    region: RegionRecord,
    global_risk_score: float,
    global_price_growth: float,
    global_income_growth: float,
    policy: RiskPolicy = DEFAULT_POLICY,
) -> RegionRiskView:
    ratio = region.dispute_count / region.parcel_count if region.parcel_count > 0 else 0.0
    raw = (
        ratio * policy.dispute_weight
        + (100 - region.verification_rate) * policy.verification_weight
        + global_risk_score * policy.global_risk_weight
    )
    # overflowing weights saturate; an undefined sum counts as the top of the scale
    if math.isnan(raw):
        raw = 100.0
    score = int(round_half_up(clamp(raw, 0, 100)))
    div = divergence_ratio(global_price_growth, global_income_growth, policy)
    return RegionRiskView(
        city=region.region,
        risk=score,
        price=f"+{text_value(global_price_growth)}%",
        income=f"+{text_value(global_income_growth)}%",
        div=f"{text_value(div)}x",
        status=risk_tier(score, policy),
    )


def _band(score: float, policy: RiskPolicy, danger: int, warn: int, low: int) -> int:
    if score > policy.risk_danger:
        return danger
    return warn if score > policy.risk_warn else low


def compute_forecast(risk_score: float, policy: RiskPolicy = DEFAULT_POLICY) -> Forecast:
    return Forecast(
        six=int(min(100, round_half_up(risk_score * policy.forecast_6m_multiplier))),
        twelve=int(min(100, round_half_up(risk_score * policy.forecast_12m_multiplier))),
        correction_prob=_band(risk_score, policy, 55, 42, 22),
        liquidity_stress=_band(risk_score, policy, 48, 35, 18),
    )


def compute_bubble_kpis(
    snapshot: Optional[BubbleRiskSnapshot],
    fallbacks: BubbleFallbacks = BubbleFallbacks(),
    policy: RiskPolicy = DEFAULT_POLICY,
) -> BubbleKpiView:
    resolved = (snapshot or BubbleRiskSnapshot()).resolve(fallbacks)
    risk = resolved.risk_score
    price = resolved.price_growth
    income = resolved.income_growth
    gap = resolved.growth_gap
    div = divergence_ratio(price, income, policy)
    rising = resolved.trend == "increasing"

    cards = (
        KpiCard("Price vs Income Divergence", f"{text_value(div)}x", ">3x = Warning", tone_of("divergence", div, policy)),
        KpiCard(
            "Avg Price Growth (YoY)",
            f"{text_value(price)}%",
            f"vs {text_value(income)}% income growth",
            tone_of("price_growth", price, policy),
        ),
        KpiCard("Growth Gap", f"{round_half_up(gap, 1):.1f}%", ">10% = Elevated speculation", tone_of("growth_gap", gap, policy)),
        KpiCard(
            "Overall Risk Score",
            f"{risk}/100",
            resolved.risk_level,
            tone_of("risk", risk, policy),
            chip="↑ Rising" if rising else None,
        ),
    )
    return BubbleKpiView(
        risk_score=risk,
        price_growth=price,
        income_growth=income,
        growth_gap=gap,
        divergence=div,
        risk_level=resolved.risk_level,
        rising=rising,
        cards=cards,
        forecast=compute_forecast(risk, policy),
    )


def _volume_display(total: Optional[int], fallback: int) -> str:
    return f"{total:,}" if total and total > 0 else f"{fallback:,}"


def compute_stress_signals(
    kpis: BubbleKpiView,
    snapshot: Optional[BubbleRiskSnapshot],
    mortgage_total: Optional[int],
    transfer_total: Optional[int],
    fallbacks: BubbleFallbacks = BubbleFallbacks(),
    policy: RiskPolicy = DEFAULT_POLICY,
) -> List[KpiCard]:
    snapshot = snapshot or BubbleRiskSnapshot()
    mortgages = mortgage_total or 0
    transfers = transfer_total or 0
    gap_text = f"{round_half_up(kpis.growth_gap, 1):.1f}"
    return [
        KpiCard(
            "Rapid price appreciation (YoY)",
            f"{text_value(kpis.price_growth)}%",
            f"vs {text_value(kpis.income_growth)}% income, gap: {gap_text}%",
            tone_of("price_growth", kpis.price_growth, policy),
        ),
        KpiCard(
            "Active mortgage registrations",
            _volume_display(mortgages, fallbacks.mortgage_total),
            "Debt-backed purchase activity",
            tone_of("mortgage_volume", mortgages, policy),
        ),
        KpiCard(
            "Property transfers registered",
            _volume_display(transfers, fallbacks.transfer_total),
            "Total active transfer records",
            tone_of("transfer_volume", transfers, policy),
        ),
        KpiCard(
            "Price-income divergence trend",
            "↑ Increasing" if snapshot.trend == "increasing" else "→ Stable",
            snapshot.concerns or fallbacks.concerns,
            tone_of("growth_gap", kpis.growth_gap, policy),
        ),
        KpiCard(
            "Overall bubble risk",
            f"{kpis.risk_score}/100",
            snapshot.recommendation or fallbacks.recommendation,
            "danger" if kpis.risk_score > policy.risk_danger else "warn",
        ),
    ]


def compute_actions(snapshot: Optional[BubbleRiskSnapshot], fallbacks: BubbleFallbacks = BubbleFallbacks()) -> List[Dict[str, str]]:
    headline = (snapshot.recommendation if snapshot else None) or fallbacks.headline_action
    actions = [{"title": headline, "priority": "High"}]
    actions.extend({"title": title, "priority": priority} for title, priority in STANDING_ACTIONS)
    return actions


def _trend_series(snapshot: Optional[BubbleRiskSnapshot], fallbacks: BubbleFallbacks) -> Tuple[List[str], Dict[str, Sequence[float]]]:
    monthly = snapshot.monthly_trends if snapshot else ()
    if monthly:
        labels = [m.month for m in monthly]
        series = {
            "Price Growth %": [m.price_growth for m in monthly],
            "Income Growth %": [m.income_growth for m in monthly],
        }
    else:
        labels = list(fallbacks.monthly_labels)
        series = {
            "Price Growth %": list(fallbacks.price_series),
            "Income Growth %": list(fallbacks.income_series),
        }
    return labels, series


def compute_bubble_risk(
    filters: BubbleFilters,
    data: BubblePageData,
    policy: RiskPolicy = DEFAULT_POLICY,
    fallbacks: BubbleFallbacks = BubbleFallbacks(),
) -> Dict[str, Any]:
    kpis = compute_bubble_kpis(data.snapshot, fallbacks, policy)
    views = [
        compute_region_risk(r, kpis.risk_score, kpis.price_growth, kpis.income_growth, policy)
        for r in (data.regions or [])
    ]
    df = frame_of(views)
    filtered = filter_rows(df, query=filters.query, search_fields=SEARCH_FIELDS, equals={"status": filters.status})
    labels, series = _trend_series(data.snapshot, fallbacks)

    return {
        "filters": asdict(filters),
        "kpis": [asdict(c) for c in kpis.cards],
        "summary": {
            "risk_score": kpis.risk_score,
            "price_growth": kpis.price_growth,
            "income_growth": kpis.income_growth,
            "growth_gap": kpis.growth_gap,
            "divergence": kpis.divergence,
            "risk_level": kpis.risk_level,
            "rising": kpis.rising,
        },
        "forecast": asdict(kpis.forecast),
        "stress_signals": [
            asdict(c)
            for c in compute_stress_signals(kpis, data.snapshot, data.mortgage_total, data.transfer_total, fallbacks, policy)
        ],
        "trend": {"labels": labels, "series": {k: list(v) for k, v in series.items()}},
        "table": records_of(filtered),
        "total": len(views),
        "actions": compute_actions(data.snapshot, fallbacks),
        "failed": list(data.failed),
        "charts": {
            "trend": line_chart(labels, series, title="Price vs Income Growth", y_title="YoY %"),
        },
    }
