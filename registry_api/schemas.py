from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PolicyModel(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

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


class BubbleFiltersModel(BaseModel):
    query: str = ""
    status: str = "all"
    region: str = ""
    policy: PolicyModel = Field(default_factory=PolicyModel)


class ComplianceFiltersModel(BaseModel):
    query: str = ""
    status: str = "all"
    mortgage: str = "all"
    flags: str = "all"


class RegionFiltersModel(BaseModel):
    query: str = ""
    region: str = "All Regions"
    time_range: str = "Last 6 months"
    metric_view: str = "disputeRate"
    selected_region: Optional[str] = None


class MortgageFiltersModel(BaseModel):
    query: str = ""
    region: str = "All Regions"
    status: str = "All Statuses"
    date_range: str = "All time"


class DisputeFiltersModel(BaseModel):
    query: str = ""
    region: str = "All Regions"
    status: str = "All Statuses"
    time_range: str = "Last 30 days"
    page: int = 1


class TransferFiltersModel(BaseModel):
    query: str = ""
    region: str = "All Regions"
    status: str = "All Statuses"
    time_range: str = "All time"


class HealthResponse(BaseModel):
    status: str
    upstream: str


class AffordabilityFiltersModel(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    query: str = ""
    city: str = "All Cities"
    max_ratio: float = 8.0
    max_emi_pct: float = 35.0


class SubsidyFiltersModel(BaseModel):
    query: str = ""
    region: str = "All Regions"
    year: Optional[int] = None
