import asyncio
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st

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
from registry_core.export import export_page
from registry_core.filters import (
    DISPUTE_TIME_RANGES,
    MORTGAGE_DATE_RANGES,
    REGION_METRIC_VIEWS,
    REGION_TIME_RANGES,
    TRANSFER_TIME_RANGES,
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
from registry_core.metrics_disputes import DISPUTE_STATUSES, compute_disputes
from registry_core.metrics_legal import compute_legal_cleanliness
from registry_core.metrics_mortgages import compute_mortgages
from registry_core.metrics_regions import compute_regions
from registry_core.metrics_subsidy import compute_subsidy
from registry_core.metrics_transfers import TRANSFER_STATUSES, compute_transfers


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;margin-bottom: 8px;}
        .tone-danger {color: #b91c1c;} .tone-warn {color: #b45309;} .tone-neutral {color: #4b5563;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card-title'>{title}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body


def page_header(title: str, page: Optional[str] = None, payload: Optional[Dict[str, Any]] = None):
    c1, c2 = st.columns([8, 2])
    c1.subheader(title)
    if page and payload is not None and payload.get("table"):
        text, filename = export_page(page, payload)
        c2.download_button("Export CSV", data=text.encode("utf-8"), file_name=filename, mime="text/csv")
    failed = (payload or {}).get("failed") or []
    if failed:
        st.warning(f"Some sections could not be loaded and show fallback values: {', '.join(failed)}")


def render_cards(cards: List[Dict[str, Any]]):
    cols = st.columns(len(cards) or 1)
    for col, c in zip(cols, cards):
        title = c.get("title") or c.get("label")
        col.metric(title, c["value"], help=c.get("sub"))
        if c.get("chip"):
            col.caption(c["chip"])


def render_table(rows: List[Dict[str, Any]], empty_message: str = "No records match your filters."):
    if not rows:
        st.info(empty_message)
        return
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)


def reset_button(keys: List[str]):
    if st.button("Reset filters"):
        for k in keys:
            st.session_state.pop(k, None)
        st.rerun()


@st.cache_data(ttl=60, show_spinner=False)
def fetch_page(name: str, region: str = "", status: str = "", year: Optional[int] = None):
    client = RegistryClient()
    if name == "bubble":
        return asyncio.run(load_bubble_page(client, region))
    if name == "legal":
        return asyncio.run(load_legal_page(client))
    if name == "regions":
        return asyncio.run(load_regions_page(client))
    if name == "mortgages":
        return asyncio.run(load_mortgages_page(client))
    if name == "disputes":
        return asyncio.run(load_disputes_page(client, region, status))
    if name == "affordability":
        return asyncio.run(load_affordability_page(client))
    if name == "subsidy":
        return asyncio.run(load_subsidy_page(client, region, year))
    return asyncio.run(load_transfers_page(client, region))


def _server(value: str) -> str:
    return "" if value == "all" else value


# ---------- pages ----------
def render_bubble_page():
    c1, c2 = st.columns([3, 1])
    query = c1.text_input("Search city, status, divergence", key="bubble_query")
    status = c2.selectbox("Status", ["all", "high", "medium", "low"], key="bubble_status")
    f = normalize_bubble_filters({"query": query, "status": status})
    payload = compute_bubble_risk(f, fetch_page("bubble"))

    page_header("Bubble Risk", payload=payload)
    render_cards(payload["kpis"])
    with card("Price vs income growth"):
        st.vega_lite_chart(payload["charts"]["trend"], use_container_width=True)
    left, right = st.columns(2)
    with left:
        with card("Forecast"):
            fc = payload["forecast"]
            st.write(f"6 months: **{fc['six']}/100**, 12 months: **{fc['twelve']}/100**")
            st.write(f"Correction probability {fc['correction_prob']}%, liquidity stress {fc['liquidity_stress']}%")
        with card("Policy actions"):
            for a in payload["actions"]:
                st.markdown(f"- **{a['priority']}**: {a['title']}")
    with right:
        with card("Stress signals"):
            for s in payload["stress_signals"]:
                st.markdown(f"<span class='tone-{s['tone']}'>**{s['title']}**: {s['value']}</span>  \n{s['sub']}", unsafe_allow_html=True)
    with card(f"Regional risk ({len(payload['table'])} of {payload['total']})"):
        render_table(payload["table"])
    reset_button(["bubble_query", "bubble_status"])


def render_legal_page():
    c1, c2, c3, c4 = st.columns([3, 1, 1, 1])
    raw = {
        "query": c1.text_input("Search parcel, address, hash, flags", key="legal_query"),
        "status": c2.selectbox("Status", ["all", "verified", "pending", "disputed", "litigation"], key="legal_status"),
        "mortgage": c3.selectbox("Mortgage", ["all", "active", "clear"], key="legal_mortgage"),
        "flags": c4.selectbox("Flags", ["all", "any", "none"], key="legal_flags"),
    }
    data = fetch_page("legal")
    payload = compute_legal_cleanliness(normalize_compliance_filters(raw), data.stats, data.parcels)
    payload["failed"] = list(data.failed)

    page_header("Legal Cleanliness", payload=payload)
    render_cards(payload["kpis"]["cards"])
    with card("Legal status overview"):
        st.vega_lite_chart(payload["charts"]["status"], use_container_width=True)
    with card(f"Parcels ({payload['active_filters']} active filters)"):
        render_table(payload["table"])
    reset_button(["legal_query", "legal_status", "legal_mortgage", "legal_flags"])


def render_regions_page():
    data = fetch_page("regions")
    names = ["All Regions"] + [r.region for r in (data.regions or [])]
    c1, c2, c3, c4 = st.columns([3, 2, 2, 2])
    raw = {
        "query": c1.text_input("Search regions", key="regions_query"),
        "region": c2.selectbox("Region", names, key="regions_region"),
        "time_range": c3.selectbox("Range", REGION_TIME_RANGES, index=2, key="regions_range"),
        "metric_view": c4.selectbox("Metric", REGION_METRIC_VIEWS, key="regions_metric"),
    }
    payload = compute_regions(normalize_region_filters(raw), data.regions)
    payload["failed"] = list(data.failed)

    page_header("Regions", "regions", payload)
    k = payload["kpis"]
    cols = st.columns(4)
    cols[0].metric("Regions", k["total_regions"])
    cols[1].metric("Total parcels", f"{k['total_parcels']:,}")
    cols[2].metric("Active disputes", f"{k['total_disputes']:,}")
    cols[3].metric("Avg processing", f"{k['avg_processing_days']:.1f} days")
    left, right = st.columns([3, 2])
    with left:
        with card("By region"):
            st.vega_lite_chart(payload["charts"]["metric"], use_container_width=True)
    with right:
        selected = payload["selected"]
        if selected:
            with card(f"{selected['region']}: {selected['attention']}"):
                st.vega_lite_chart(payload["charts"]["trend"], use_container_width=True)
    render_table(payload["table"])
    reset_button(["regions_query", "regions_region", "regions_range", "regions_metric"])


def render_mortgages_page():
    data = fetch_page("mortgages")
    regions = ["All Regions"] + sorted({m.region for m in (data.mortgages or [])})
    c1, c2, c3, c4 = st.columns([3, 2, 2, 2])
    raw = {
        "query": c1.text_input("Search mortgage, parcel, bank, region", key="mort_query"),
        "region": c2.selectbox("Region", regions, key="mort_region"),
        "status": c3.selectbox("Status", ["All Statuses", "Active", "Paid", "Defaulted", "Foreclosure"], key="mort_status"),
        "date_range": c4.selectbox("Start date", MORTGAGE_DATE_RANGES, index=3, key="mort_range"),
    }
    payload = compute_mortgages(normalize_mortgage_filters(raw), data.mortgages)
    payload["failed"] = list(data.failed)

    page_header("Mortgages", "mortgages", payload)
    k = payload["kpis"]
    cols = st.columns(4)
    cols[0].metric("Active", k["active_count"], delta=f"{k['trend_pct']}%")
    cols[1].metric("At risk", k["at_risk_count"])
    cols[2].metric("Total registered", f"€{k['total_registered']:,.0f}")
    cols[3].metric("Outstanding (active)", f"€{k['outstanding_active']:,.0f}")
    left, right = st.columns(2)
    left.vega_lite_chart(payload["charts"]["status"], use_container_width=True)
    right.vega_lite_chart(payload["charts"]["banks"], use_container_width=True)
    render_table(payload["table"], "No records match your filters. (Try “All time”.)")
    reset_button(["mort_query", "mort_region", "mort_status", "mort_range"])


def render_disputes_page():
    c1, c2, c3, c4 = st.columns([3, 2, 2, 2])
    raw = {
        "query": c1.text_input("Search dispute, parcel, region, type", key="disp_query"),
        "region": c2.text_input("Region", value="All Regions", key="disp_region"),
        "status": c3.selectbox("Status", ["All Statuses", *DISPUTE_STATUSES], key="disp_status"),
        "time_range": c4.selectbox("Filed", DISPUTE_TIME_RANGES, index=1, key="disp_range"),
    }
    f = normalize_dispute_filters({**raw, "page": st.session_state.get("disp_page", 1)})
    data = fetch_page("disputes", _server(f.region), _server(f.status))
    payload = compute_disputes(f, data.disputes, data.stats)
    payload["failed"] = list(data.failed)

    page_header("Disputes", "disputes", payload)
    k = payload["kpis"]
    cols = st.columns(4)
    cols[0].metric("Open disputes", k["open"])
    cols[1].metric("In court", k["in_court"])
    cols[2].metric("Avg. days open", f"{k['avg_days_open']} days")
    cols[3].metric("Total value at stake", f"€{k['total_value']:,.0f}")
    left, right = st.columns(2)
    left.vega_lite_chart(payload["charts"]["status"], use_container_width=True)
    right.vega_lite_chart(payload["charts"]["regions"], use_container_width=True)
    render_table(payload["page_rows"])
    st.number_input("Page", min_value=1, max_value=payload["total_pages"], key="disp_page")
    reset_button(["disp_query", "disp_region", "disp_status", "disp_range", "disp_page"])


def render_transfers_page():
    c1, c2, c3, c4 = st.columns([3, 2, 2, 2])
    raw = {
        "query": c1.text_input("Search transfer, parcel, buyer, seller", key="trf_query"),
        "region": c2.text_input("Region", value="All Regions", key="trf_region"),
        "status": c3.selectbox("Status", ["All Statuses", *TRANSFER_STATUSES], key="trf_status"),
        "time_range": c4.selectbox("Created", TRANSFER_TIME_RANGES, index=4, key="trf_range"),
    }
    f = normalize_transfer_filters(raw)
    data = fetch_page("transfers", _server(f.region))
    payload = compute_transfers(f, data.transfers)
    payload["failed"] = list(data.failed)

    page_header("Transfers", "transfers", payload)
    k = payload["kpis"]
    cols = st.columns(4)
    cols[0].metric("Pending", k["pending"])
    cols[1].metric("Completed today", k["completed_today"])
    cols[2].metric("Avg processing", f"{k['avg_processing_days']} days")
    cols[3].metric("Total value", f"€{k['total_value']:,.0f}")
    c_a, c_b, c_c = st.columns(3)
    c_a.vega_lite_chart(payload["charts"]["status"], use_container_width=True)
    c_b.vega_lite_chart(payload["charts"]["type"], use_container_width=True)
    c_c.vega_lite_chart(payload["charts"]["daily"], use_container_width=True)
    render_table(payload["table"])
    reset_button(["trf_query", "trf_region", "trf_status", "trf_range"])


def render_affordability_page():
    data = fetch_page("affordability")
    cities = ["All Cities"] + [r.region for r in (data.snapshot.regions if data.snapshot else ())]
    c1, c2, c3, c4 = st.columns([3, 2, 2, 2])
    raw = {
        "query": c1.text_input("Search region", key="aff_query"),
        "city": c2.selectbox("City", cities, key="aff_city"),
        "max_ratio": c3.slider("Max price/income", 3.0, 15.0, 8.0, 0.5, key="aff_ratio"),
        "max_emi_pct": c4.slider("Max EMI % of income", 15.0, 60.0, 35.0, 1.0, key="aff_emi"),
    }
    payload = compute_affordability(normalize_affordability_filters(raw), data.snapshot)
    payload["failed"] = list(data.failed)

    page_header("Affordable Housing", payload=payload)
    if payload["recommendation"]:
        st.caption(payload["recommendation"])
    render_cards(payload["kpis"])
    left, right = st.columns(2)
    with left:
        with card(f"Red zone: ratio above {raw['max_ratio']}x"):
            st.vega_lite_chart(payload["charts"]["price_income"], use_container_width=True)
    with right:
        with card(f"New units ({payload['total_new_units']:,} total)"):
            st.vega_lite_chart(payload["charts"]["new_units"], use_container_width=True)
    render_table(payload["table"])
    reset_button(["aff_query", "aff_city", "aff_ratio", "aff_emi"])


def render_subsidy_page():
    c1, c2, c3 = st.columns([3, 2, 1])
    raw = {
        "query": c1.text_input("Search program", key="sub_query"),
        "region": c2.text_input("Region", value="All Regions", key="sub_region"),
        "year": c3.number_input("Year", min_value=2000, max_value=2100, value=None, step=1, key="sub_year"),
    }
    f = normalize_subsidy_filters(raw)
    data = fetch_page("subsidy", _server(f.region), year=f.year)
    payload = compute_subsidy(f, data.summary)
    payload["failed"] = list(data.failed)

    page_header("Subsidy Allocation", payload=payload)
    render_cards(payload["kpis"]["cards"])
    st.caption(payload["interpretation"]["recommendation"])
    left, right = st.columns(2)
    with left:
        with card("Income brackets"):
            st.vega_lite_chart(payload["charts"]["brackets"], use_container_width=True)
        with card("Red flags"):
            for flag in payload["red_flags"]:
                st.markdown(f"- **{flag['title']}**: {flag['cases']} cases, {flag['amount']}")
    with right:
        with card("Regions"):
            st.vega_lite_chart(payload["charts"]["regions"], use_container_width=True)
        with card("Outcome tracking"):
            out = payload["outcome"]
            st.write(f"{out['units_delivered']:,} of {out['total_subsidized']:,} units delivered ({out['delivery_rate']}%)")
    with card("Eligibility matrix"):
        render_table(payload["eligibility"])
    with card("Programs"):
        render_table(payload["table"])
    reset_button(["sub_query", "sub_region", "sub_year"])


# ---------- UI setup ----------
st.set_page_config(page_title="Land Registry Analytics", layout="wide")
inject_base_styles()
st.title("Land Registry Analytics")

PAGES = {
    "Bubble Risk": render_bubble_page,
    "Legal Cleanliness": render_legal_page,
    "Regions": render_regions_page,
    "Mortgages": render_mortgages_page,
    "Disputes": render_disputes_page,
    "Transfers": render_transfers_page,
    "Affordability": render_affordability_page,
    "Subsidy": render_subsidy_page,
}

with st.sidebar:
    st.markdown("### Navigate")
    nav_choice = st.radio("Navigate", list(PAGES), index=0)
    st.markdown("---")
    if st.button("Refresh data"):
        fetch_page.clear()
        st.rerun()

PAGES[nav_choice]()
