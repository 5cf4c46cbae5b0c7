from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, List, Optional, Tuple

import httpx

from registry_core.config import settings
from registry_core.records import (
    AffordabilitySnapshot,
    BubbleRiskSnapshot,
    DisputeRecord,
    DisputeStats,
    MortgageRecord,
    ParcelComplianceRecord,
    RegionRecord,
    RegistryStats,
    SubsidySummary,
    TransferRecord,
    as_int,
    normalize_affordability,
    normalize_bubble_snapshot,
    normalize_dispute,
    normalize_dispute_stats,
    normalize_many,
    normalize_mortgage,
    normalize_parcel,
    normalize_region,
    normalize_stats,
    normalize_subsidy,
    normalize_transfer,
)


logger = logging.getLogger(__name__)


class RegistryFetchError(Exception):
    """Upstream registry call failed (transport error, non-2xx, or success=false)."""

    def __init__(self, endpoint: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{endpoint}: {message}")
        self.endpoint = endpoint
        self.message = message
        self.status_code = status_code


def normalize_base_url(url: Optional[str]) -> str:
    raw = (url or "http://localhost:5000/api").rstrip("/")
    return raw if raw.endswith("/api") else raw + "/api"


def _clean_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {k: v for k, v in (params or {}).items() if v not in (None, "")}


class RegistryClient:
    """Thin async client over the registry REST backend; one coroutine per endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = normalize_base_url(base_url or settings.REGISTRY_API_URL)
        self.timeout = timeout if timeout is not None else settings.REGISTRY_HTTP_TIMEOUT
        self.transport = transport

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.get(url, params=_clean_params(params))
        except httpx.HTTPError as exc:
            raise RegistryFetchError(path, str(exc) or exc.__class__.__name__) from exc

        if r.status_code >= 400:
            try:
                body = r.json()
            except ValueError:
                body = {}
            message = body.get("message") if isinstance(body, dict) else None
            raise RegistryFetchError(path, message or f"API error: {r.status_code}", r.status_code)

        try:
            body = r.json()
        except ValueError as exc:
            raise RegistryFetchError(path, "invalid JSON body", r.status_code) from exc
        if not isinstance(body, dict):
            raise RegistryFetchError(path, "unexpected response shape", r.status_code)
        if body.get("success") is False:
            raise RegistryFetchError(path, body.get("message") or "request failed", r.status_code)
        return body

    async def dashboard_stats(self, region: str = "", time_range: str = "") -> Dict[str, Any]:
        body = await self._get("/dashboard/stats", {"region": region, "timeRange": time_range})
        return body.get("data") or {}

    async def regional_data(self) -> List[Dict[str, Any]]:
        body = await self._get("/dashboard/regional-data")
        return body.get("data") or []

    async def bubble_risk(self, region: str = "") -> Dict[str, Any]:
        body = await self._get("/dashboard/bubble-risk", {"region": region})
        return body.get("data") or {}

    async def affordability(self, region: str = "") -> Dict[str, Any]:
        body = await self._get("/dashboard/affordability", {"region": region})
        return body.get("data") or {}

    async def subsidy(self, region: str = "", year: Optional[int] = None) -> Dict[str, Any]:
        body = await self._get("/dashboard/subsidy", {"region": region, "year": year})
        return body.get("data") or {}

    async def dispute_stats(self, region: str = "") -> Dict[str, Any]:
        body = await self._get("/disputes/stats/summary", {"region": region})
        return body.get("data") or {}

    async def parcels(self, limit: Optional[int] = None, **params: Any) -> List[Dict[str, Any]]:
        body = await self._get("/parcels", {"limit": limit or settings.PARCEL_FETCH_LIMIT, **params})
        return body.get("data") or []

    async def mortgages(self, limit: Optional[int] = None, **params: Any) -> List[Dict[str, Any]]:
        body = await self._get("/mortgages", {"limit": limit or settings.PARCEL_FETCH_LIMIT, **params})
        return body.get("data") or []

    async def disputes(self, limit: Optional[int] = None, **params: Any) -> List[Dict[str, Any]]:
        body = await self._get("/disputes", {"page": 1, "limit": limit or settings.PARCEL_FETCH_LIMIT, **params})
        return body.get("data") or []

    async def transfers(self, limit: Optional[int] = None, **params: Any) -> List[Dict[str, Any]]:
        body = await self._get("/transfers", {"limit": limit or settings.PARCEL_FETCH_LIMIT, **params})
        return body.get("data") or []

    async def pagination_total(self, path: str) -> int:
        """Total record count reported by a paginated listing (fetches a single row)."""
        body = await self._get(path, {"limit": 1})
        pagination = body.get("pagination") or {}
        return as_int(pagination.get("total"), 0)


# ---------- page loaders ----------
@dataclass(frozen=True)
class BubblePageData:
    snapshot: Optional[BubbleRiskSnapshot] = None
    regions: Optional[List[RegionRecord]] = None
    transfer_total: Optional[int] = None
    mortgage_total: Optional[int] = None
    failed: Tuple[str, ...] = ()


@dataclass(frozen=True)
class LegalPageData:
    stats: Optional[RegistryStats] = None
    parcels: Optional[List[ParcelComplianceRecord]] = None
    failed: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RegionsPageData:
    regions: Optional[List[RegionRecord]] = None
    failed: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MortgagesPageData:
    mortgages: Optional[List[MortgageRecord]] = None
    failed: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DisputesPageData:
    disputes: Optional[List[DisputeRecord]] = None
    stats: Optional[DisputeStats] = None
    failed: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TransfersPageData:
    transfers: Optional[List[TransferRecord]] = None
    failed: Tuple[str, ...] = ()


async def _settle(sections: Dict[str, Awaitable[Any]]) -> Tuple[Dict[str, Any], Tuple[str, ...]]:
    """Run every section concurrently; a failed section becomes None and is reported, never raised."""
    names = list(sections)
    results = await asyncio.gather(*sections.values(), return_exceptions=True)
    out: Dict[str, Any] = {}
    failed: List[str] = []
    for name, result in zip(names, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            logger.warning("Registry fetch failed for section %s: %s", name, result)
            out[name] = None
            failed.append(name)
        else:
            out[name] = result
    return out, tuple(failed)


def _apply(value: Any, fn):
    return None if value is None else fn(value)


async def load_bubble_page(client: RegistryClient, region: str = "") -> BubblePageData:
    got, failed = await _settle(
        {
            "bubble": client.bubble_risk(region),
            "regions": client.regional_data(),
            "transfers": client.pagination_total("/transfers"),
            "mortgages": client.pagination_total("/mortgages"),
        }
    )
    return BubblePageData(
        snapshot=_apply(got["bubble"], normalize_bubble_snapshot),
        regions=_apply(got["regions"], lambda v: normalize_many(v, normalize_region)),
        transfer_total=got["transfers"],
        mortgage_total=got["mortgages"],
        failed=failed,
    )


async def load_legal_page(client: RegistryClient) -> LegalPageData:
    got, failed = await _settle(
        {
            "stats": client.dashboard_stats(),
            "parcels": client.parcels(),
        }
    )
    return LegalPageData(
        stats=_apply(got["stats"], normalize_stats),
        parcels=_apply(got["parcels"], lambda v: normalize_many(v, normalize_parcel)),
        failed=failed,
    )


async def load_regions_page(client: RegistryClient) -> RegionsPageData:
    got, failed = await _settle({"regions": client.regional_data()})
    return RegionsPageData(
        regions=_apply(got["regions"], lambda v: normalize_many(v, normalize_region)),
        failed=failed,
    )


async def load_mortgages_page(client: RegistryClient) -> MortgagesPageData:
    got, failed = await _settle({"mortgages": client.mortgages()})
    return MortgagesPageData(
        mortgages=_apply(got["mortgages"], lambda v: normalize_many(v, normalize_mortgage)),
        failed=failed,
    )


async def load_disputes_page(client: RegistryClient, region: str = "", status: str = "") -> DisputesPageData:
    got, failed = await _settle(
        {
            "disputes": client.disputes(region=region, status=status),
            "stats": client.dispute_stats(region),
        }
    )
    return DisputesPageData(
        disputes=_apply(got["disputes"], lambda v: normalize_many(v, normalize_dispute)),
        stats=_apply(got["stats"], normalize_dispute_stats),
        failed=failed,
    )


async def load_transfers_page(client: RegistryClient, region: str = "") -> TransfersPageData:
    got, failed = await _settle({"transfers": client.transfers(region=region)})
    return TransfersPageData(
        transfers=_apply(got["transfers"], lambda v: normalize_many(v, normalize_transfer)),
        failed=failed,
    )


@dataclass(frozen=True)
class AffordabilityPageData:
    snapshot: Optional[AffordabilitySnapshot] = None
    failed: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SubsidyPageData:
    summary: Optional[SubsidySummary] = None
    failed: Tuple[str, ...] = ()


async def load_affordability_page(client: RegistryClient, region: str = "") -> AffordabilityPageData:
    got, failed = await _settle({"affordability": client.affordability(region)})
    return AffordabilityPageData(snapshot=_apply(got["affordability"], normalize_affordability), failed=failed)


async def load_subsidy_page(client: RegistryClient, region: str = "", year: Optional[int] = None) -> SubsidyPageData:
    got, failed = await _settle({"subsidy": client.subsidy(region, year)})
    return SubsidyPageData(summary=_apply(got["subsidy"], normalize_subsidy), failed=failed)
