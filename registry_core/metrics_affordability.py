from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional, Tuple

from registry_core.charts import bar_chart, scatter_chart
from registry_core.filters import AffordabilityFilters, filter_rows, frame_of, records_of
from registry_core.records import (
    MIDDLE_INCOME_EUR,
    MISSING,
    AffordabilitySnapshot,
    RegionPrice,
    clamp,
    round_half_up,
    text_value,
)


MORTGAGE_RATE = 0.06
MORTGAGE_YEARS = 25
# ratio / EMI share reported when income is zero
UNAFFORDABLE = 999.0
STATUS_LABELS = {"affordable": "Affordable", "stressed": "Stressed", "critical": "Critical"}


def monthly_emi(price: float, annual_rate: float = MORTGAGE_RATE, years: int = MORTGAGE_YEARS) -> float:
    """Level monthly instalment of an annuity mortgage over ``years``."""
    r = annual_rate / 12
    n = years * 12
    if r == 0:
        return price / n
    growth = (1 + r) ** n
    return price * r * growth / (growth - 1)


def affordability_status(price_k: float, income_k: float, max_ratio: float, max_emi_pct: float) -> Tuple[float, float, str]:
    """(price/income ratio, EMI as % of monthly income, status) for prices and incomes in thousands of EUR.

    Both tests passing is "affordable", one passing is "stressed", neither is "critical".
    """
    price = price_k * 1000
    income_annual = income_k * 1000
    income_monthly = income_annual / 12
    ratio = price / income_annual if income_annual > 0 else UNAFFORDABLE
    emi_pct = monthly_emi(price) / income_monthly * 100 if income_monthly > 0 else UNAFFORDABLE
    by_ratio = ratio <= max_ratio
    by_emi = emi_pct <= max_emi_pct
    if by_ratio and by_emi:
        status = "affordable"
    elif by_ratio or by_emi:
        status = "stressed"
    else:
        status = "critical"
    return ratio, emi_pct, status


def city_row(region: RegionPrice, middle_income: float, filters: AffordabilityFilters) -> Dict[str, Any]:
    price_k = int(round_half_up(region.avg_price / 1000))
    income_k = int(round_half_up(middle_income / 1000))
    backend_ratio = region.affordability_ratio
    if backend_ratio is None:
        backend_ratio = round_half_up(region.avg_price / MIDDLE_INCOME_EUR, 1)
    eligible = max(5, int(round_half_up(100 - backend_ratio * 10)))
    new_units = int(round_half_up(region.count * 0.3)) if region.count else 50
    ratio, emi_pct, status = affordability_status(price_k, income_k, filters.max_ratio, filters.max_emi_pct)
    return {
        "city": region.region,
        "price_k": price_k,
        "income_k": income_k,
        "ratio": round_half_up(ratio, 1),
        "emi_pct": round_half_up(emi_pct, 1),
        "status": status,
        "status_label": STATUS_LABELS[status],
        "eligible": int(clamp(eligible, 5, 95)),
        "new_units": max(10, new_units),
        "delta_pct": round_half_up((backend_ratio - 5) * -2, 1),
        "_ratio": ratio,
    }


def compute_affordability_kpis(snapshot: Optional[AffordabilitySnapshot], cities: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if snapshot is None:
        return [
            {"label": "National HAI", "value": MISSING, "sub": "Price to Income Ratio", "delta": ""},
            {"label": "Eligible Households", "value": MISSING, "sub": "Can afford median home", "delta": ""},
            {"label": "Affordability Score", "value": MISSING, "sub": "Out of 100", "delta": ""},
            {"label": "Median Ratio", "value": MISSING, "sub": "Price / Annual Income", "delta": ""},
        ]
    avg_ratio = snapshot.average_ratio or 0.0
    trend = snapshot.trend or 0.0
    ratios = sorted(c["_ratio"] for c in cities)
    # upper median for even counts
    median = ratios[len(ratios) // 2] if ratios else avg_ratio
    affordable = sum(1 for c in cities if c["status"] == "affordable")
    eligible_pct = int(round_half_up(affordable / len(cities) * 100)) if cities else 0
    delta = f"{'+' if trend > 0 else ''}{text_value(round_half_up(trend, 1))}%" if trend else ""
    return [
        {"label": "National HAI", "value": text_value(round_half_up(avg_ratio, 1)), "sub": "Avg Price to Income Ratio", "delta": ""},
        {"label": "Eligible Households", "value": f"{eligible_pct}%", "sub": "Can afford median home", "delta": ""},
        {
            "label": "Affordability Score",
            "value": str(snapshot.overall_score or 0),
            "sub": f"Out of 100 · {snapshot.level or ''}".rstrip(" ·"),
            "delta": delta,
        },
        {"label": "Median Ratio", "value": f"{text_value(round_half_up(median, 1))}x", "sub": "Price / Annual Income", "delta": ""},
    ]


def compute_affordability(filters: AffordabilityFilters, snapshot: Optional[AffordabilitySnapshot]) -> Dict[str, Any]:
    regions = snapshot.regions if snapshot is not None else ()
    middle_income = snapshot.middle_income if snapshot is not None else MIDDLE_INCOME_EUR
    cities = [city_row(r, middle_income, filters) for r in regions]
    kpis = compute_affordability_kpis(snapshot, cities)

    public = [{k: v for k, v in c.items() if not k.startswith("_")} for c in cities]
    filtered = records_of(
        filter_rows(frame_of(public), query=filters.query, search_fields=("city",), equals={"city": filters.city})
    )
    units = sorted(filtered, key=lambda c: -c["new_units"])

    return {
        "filters": asdict(filters),
        "kpis": kpis,
        "table": filtered,
        "total": len(cities),
        "city_options": ["All Cities"] + [c["city"] for c in cities],
        "total_new_units": sum(c["new_units"] for c in cities),
        "recommendation": snapshot.recommendation if snapshot is not None else None,
        "charts": {
            "price_income": scatter_chart(
                sorted(filtered, key=lambda c: c["income_k"]),
                x="income_k",
                y="price_k",
                color="status_label",
                label="city",
                title="Price vs income by city",
                x_title="Income (€K/yr)",
                y_title="Price (€K)",
            ),
            "new_units": bar_chart(
                [{"city": c["city"], "new_units": c["new_units"]} for c in units],
                x="city",
                y="new_units",
                title="New affordable units",
                sort=[c["city"] for c in units],
            ),
        },
    }
