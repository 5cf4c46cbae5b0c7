from __future__ import annotations

import math
from dataclasses import dataclass, fields
from typing import Optional, Tuple


@dataclass(frozen=True)
class RiskPolicy:
    dispute_weight: float = 5000.0
    verification_weight: float = 0.6
    global_risk_weight: float = 0.3
    tier_high: float = 65.0
    tier_medium: float = 45.0
    fallback_divergence: float = 4.2
    divergence_danger: float = 3.0
    price_growth_danger: float = 15.0
    growth_gap_danger: float = 10.0
    risk_danger: float = 70.0
    risk_warn: float = 50.0
    forecast_6m_multiplier: float = 0.92
    forecast_12m_multiplier: float = 1.09
    mortgage_volume_danger: float = 1000.0
    transfer_volume_warn: float = 500.0


@dataclass(frozen=True)
class BubbleFallbacks:
    risk_score: int = 68
    price_growth: float = 18.4
    income_growth: float = 4.4
    growth_gap: float = 14.0
    risk_level: str = "Moderate Risk"
    recommendation: str = "Monitor closely"
    concerns: str = "Monitor closely"
    headline_action: str = "Tighten LTV norms in overheated regions"
    mortgage_total: int = 8920
    transfer_total: int = 3456
    monthly_labels: Tuple[str, ...] = (
        "Jul 23", "Aug 23", "Sep 23", "Oct 23", "Nov 23", "Dec 23", "Jan 24", "Feb 24", "Apr 24",
    )
    price_series: Tuple[float, ...] = (8.2, 9.1, 10.4, 11.8, 13.2, 14.6, 15.9, 16.3, 18.4)
    income_series: Tuple[float, ...] = (3.6, 3.8, 3.9, 4.1, 4.2, 4.3, 4.4, 4.5, 4.6)


@dataclass(frozen=True)
class LegalFallbacks:
    verification_rate: float = 78.4
    pending_rate: float = 14.2
    disputed_rate: float = 5.8
    litigation_rate: float = 1.6
    dispute_total: int = 1217
    avg_registration_days: float = 4.2
    registration_improvement: float = 1.185


DEFAULT_POLICY = RiskPolicy()


def normalize_policy(raw: Optional[dict]) -> RiskPolicy:
    """Build a RiskPolicy from a partial dict; bad or non-finite entries keep the default."""
    raw = raw or {}
    values = {}
    for f in fields(RiskPolicy):
        default = getattr(DEFAULT_POLICY, f.name)
        value = raw.get(f.name)
        if value is None:
            values[f.name] = default
            continue
        try:
            value = float(value)
        except (TypeError, ValueError):
            value = default
        values[f.name] = value if math.isfinite(value) else default
    return RiskPolicy(**values)


@dataclass(frozen=True)
class SubsidyFallbacks:
    total_allocated: float = 125_000_000.0
    total_disbursed: float = 76_200_000.0
    leakage_rate: float = 3.2
    fraud_cases: int = 80
    total_applications: int = 12450
    completed_applications: int = 8920
    delivery_rate: float = 71.6
    delivery_delta: float = 2.4
    satisfaction: float = 7.8
    # (bracket, allocated €M, utilized €M)
    income_brackets: Tuple[Tuple[str, float, float], ...] = (
        ("< €5,000", 28.5, 24.8),
        ("€5,000 – €10,000", 35.2, 28.1),
        ("€10,000 – €15,000", 22.8, 16.2),
        ("€15,000 – €20,000", 8.5, 5.1),
        ("> €20,000", 3.5, 2.0),
    )
    # (region, budget €M, utilized €M)
    region_budgets: Tuple[Tuple[str, float, float], ...] = (
        ("Belgrade", 45.0, 38.0),
        ("Južna Bačka", 18.0, 14.5),
        ("Nišava", 12.0, 9.0),
        ("Šumadija", 9.0, 6.8),
        ("Severna Bačka", 8.5, 6.5),
        ("Raška", 7.5, 5.5),
        ("Zlatibor", 6.5, 4.8),
        ("Srem", 6.0, 4.5),
        ("Mačva", 5.5, 4.0),
        ("Rasina", 5.0, 3.6),
        ("Pomoravlje", 4.5, 3.2),
        ("Zapadna Bačka", 4.0, 2.9),
        ("Braničevo", 3.8, 2.6),
        ("Jablanica", 3.5, 2.4),
        ("Moravica", 3.2, 2.2),
        ("Kolubara", 3.0, 2.0),
        ("Južni Banat", 2.8, 1.9),
        ("Srednji Banat", 2.6, 1.7),
        ("Podunavlje", 2.4, 1.6),
        ("Severni Banat", 2.2, 1.5),
        ("Toplica", 2.0, 1.3),
        ("Pčinja", 1.9, 1.2),
        ("Bor", 1.8, 1.1),
        ("Zaječar", 1.7, 1.0),
        ("Pirot", 1.5, 0.9),
    )
    # (bracket, allocated €M, utilized €M, beneficiaries, utilization %, leakage %)
    eligibility: Tuple[Tuple[str, float, float, int, int, float], ...] = (
        ("< €5,000", 28.5, 24.8, 4850, 87, 1.8),
        ("€5,000 – €10,000", 35.2, 28.1, 4200, 80, 2.4),
        ("€10,000 – €15,000", 22.8, 16.2, 2400, 71, 4.2),
        ("€15,000 – €20,000", 8.5, 5.1, 780, 60, 5.8),
        ("> €20,000", 3.5, 2.0, 220, 57, 8.1),
    )
