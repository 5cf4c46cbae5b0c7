from __future__ import annotations

import logging
import math
from datetime import date
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
from fastapi import Body, Depends, FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from registry_api.log_config import configure_logging
from registry_api.schemas import (
    AffordabilityFiltersModel,
    BubbleFiltersModel,
    ComplianceFiltersModel,
    DisputeFiltersModel,
    HealthResponse,
    MortgageFiltersModel,
    RegionFiltersModel,
    SubsidyFiltersModel,
    TransferFiltersModel,
)
from registry_core.config import settings
from registry_core.data import (
    RegistryClient,
    load_affordability_page,
    load_bubble_page,
    load_disputes_page,
    load_legal_page,
    load_mortgages_page,
    load_regions_page,
    load_subsidy_page,
    load_transfers_page,
)
from registry_core.export import EXPORT_COLUMNS, export_page
from registry_core.filters import (
    ALL,
    normalize_affordability_filters,
    normalize_bubble_filters,
    normalize_compliance_filters,
    normalize_dispute_filters,
    normalize_mortgage_filters,
    normalize_region_filters,
    normalize_subsidy_filters,
    normalize_transfer_filters,
)
from registry_core.metrics_affordability import compute_affordability
from registry_core.metrics_bubble import compute_bubble_risk
from registry_core.metrics_disputes import compute_disputes
from registry_core.metrics_legal import compute_legal_cleanliness
from registry_core.metrics_mortgages import compute_mortgages
from registry_core.metrics_regions import compute_regions
from registry_core.metrics_subsidy import compute_subsidy
from registry_core.metrics_transfers import compute_transfers
from registry_core.policy import normalize_policy


configure_logging()
app = FastAPI(title="Land Registry Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def registry_client() -> RegistryClient:
    return RegistryClient()


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                type(pd.NaT): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _error(exc: Exception, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _server_value(value: str) -> str:
    return "" if value == ALL else value


async def _bubble_payload(body: Dict[str, Any], client: RegistryClient) -> Dict[str, Any]:
    f = normalize_bubble_filters(body)
    data = await load_bubble_page(client, body.get("region") or "")
    return compute_bubble_risk(f, data, normalize_policy(body.get("policy")))


async def _legal_payload(body: Dict[str, Any], client: RegistryClient) -> Dict[str, Any]:
    f = normalize_compliance_filters(body)
    data = await load_legal_page(client)
    payload = compute_legal_cleanliness(f, data.stats, data.parcels)
    payload["failed"] = list(data.failed)
    return payload


async def _regions_payload(body: Dict[str, Any], client: RegistryClient) -> Dict[str, Any]:
    f = normalize_region_filters(body)
    data = await load_regions_page(client)
    payload = compute_regions(f, data.regions, date.today())
    payload["failed"] = list(data.failed)
    return payload


async def _mortgages_payload(body: Dict[str, Any], client: RegistryClient) -> Dict[str, Any]:
    f = normalize_mortgage_filters(body)
    data = await load_mortgages_page(client)
    payload = compute_mortgages(f, data.mortgages)
    payload["failed"] = list(data.failed)
    return payload


async def _disputes_payload(body: Dict[str, Any], client: RegistryClient) -> Dict[str, Any]:
    f = normalize_dispute_filters(body)
    data = await load_disputes_page(client, _server_value(f.region), _server_value(f.status))
    payload = compute_disputes(f, data.disputes, data.stats)
    payload["failed"] = list(data.failed)
    return payload


async def _transfers_payload(body: Dict[str, Any], client: RegistryClient) -> Dict[str, Any]:
    f = normalize_transfer_filters(body)
    data = await load_transfers_page(client, _server_value(f.region))
    payload = compute_transfers(f, data.transfers)
    payload["failed"] = list(data.failed)
    return payload


async def _affordability_payload(body: Dict[str, Any], client: RegistryClient) -> Dict[str, Any]:
    f = normalize_affordability_filters(body)
    data = await load_affordability_page(client)
    payload = compute_affordability(f, data.snapshot)
    payload["failed"] = list(data.failed)
    return payload


async def _subsidy_payload(body: Dict[str, Any], client: RegistryClient) -> Dict[str, Any]:
    f = normalize_subsidy_filters(body)
    data = await load_subsidy_page(client, _server_value(f.region), f.year)
    payload = compute_subsidy(f, data.summary)
    payload["failed"] = list(data.failed)
    return payload


PAGE_BUILDERS = {
    "bubble-risk": _bubble_payload,
    "legal-cleanliness": _legal_payload,
    "regions": _regions_payload,
    "mortgages": _mortgages_payload,
    "disputes": _disputes_payload,
    "transfers": _transfers_payload,
    "affordability": _affordability_payload,
    "subsidy": _subsidy_payload,
}


@app.get("/meta/health", response_model=HealthResponse)
def meta_health():
    return HealthResponse(status="ok", upstream=RegistryClient().base_url)


async def _page_response(page: str, filters: BaseModel, client: RegistryClient) -> JSONResponse:
    try:
        return _json(await PAGE_BUILDERS[page](filters.model_dump(), client))
    except Exception as exc:
        logger.exception("%s failed", page)
        return _error(exc)


@app.post("/bubble-risk")
async def bubble_risk(filters: BubbleFiltersModel, client: RegistryClient = Depends(registry_client)):
    return await _page_response("bubble-risk", filters, client)


@app.post("/legal-cleanliness")
async def legal_cleanliness(filters: ComplianceFiltersModel, client: RegistryClient = Depends(registry_client)):
    return await _page_response("legal-cleanliness", filters, client)


@app.post("/regions")
async def regions(filters: RegionFiltersModel, client: RegistryClient = Depends(registry_client)):
    return await _page_response("regions", filters, client)


@app.post("/mortgages")
async def mortgages(filters: MortgageFiltersModel, client: RegistryClient = Depends(registry_client)):
    return await _page_response("mortgages", filters, client)


@app.post("/disputes")
async def disputes(filters: DisputeFiltersModel, client: RegistryClient = Depends(registry_client)):
    return await _page_response("disputes", filters, client)


@app.post("/transfers")
async def transfers(filters: TransferFiltersModel, client: RegistryClient = Depends(registry_client)):
    return await _page_response("transfers", filters, client)


@app.post("/affordability")
async def affordability(filters: AffordabilityFiltersModel, client: RegistryClient = Depends(registry_client)):
    return await _page_response("affordability", filters, client)


@app.post("/subsidy")
async def subsidy(filters: SubsidyFiltersModel, client: RegistryClient = Depends(registry_client)):
    return await _page_response("subsidy", filters, client)


@app.post("/export/{page}")
async def export(
    page: str,
    filters: Optional[Dict[str, Any]] = Body(default=None),
    client: RegistryClient = Depends(registry_client),
):
    if page not in EXPORT_COLUMNS:
        return JSONResponse(status_code=404, content={"error": f"No export for page '{page}'", "type": "NotFound"})
    try:
        payload = await PAGE_BUILDERS[page](filters or {}, client)
        text, filename = export_page(page, payload)
    except Exception as exc:
        logger.exception("export %s failed", page)
        return _error(exc)
    return Response(
        content=text.encode("utf-8"),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
