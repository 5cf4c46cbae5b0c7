from __future__ import annotations

import pandas as pd

from registry_core.filters import (
    ALL,
    ComplianceFilters,
    RegionFilters,
    count_active_filters,
    filter_rows,
    normalize_compliance_filters,
    normalize_dispute_filters,
    normalize_mortgage_filters,
    normalize_region_filters,
    records_of,
)


def _df():
    return pd.DataFrame(
        [
            {"city": "Belgrade", "status": "high", "flags": ("Zoning violation",)},
            {"city": "Novi Sad", "status": "medium", "flags": ()},
            {"city": "Beočin", "status": "high", "flags": ()},
        ]
    )


def test_query_is_case_insensitive_substring_and_stable():
    out = filter_rows(_df(), query="  BE ", search_fields=("city",))
    assert out["city"].tolist() == ["Belgrade", "Beočin"]


def test_query_is_literal_not_regex():
    out = filter_rows(_df(), query="B.*", search_fields=("city",))
    assert out.empty


def test_sentinels_are_identity():
    df = _df()
    out = filter_rows(df, query="", search_fields=("city",), equals={"status": ALL}, flags_presence=ALL)
    assert out["city"].tolist() == df["city"].tolist()


def test_equality_and_flags_presence():
    df = _df()
    assert filter_rows(df, equals={"status": "high"})["city"].tolist() == ["Belgrade", "Beočin"]
    assert filter_rows(df, flags_presence="any")["city"].tolist() == ["Belgrade"]
    assert filter_rows(df, flags_presence="none")["city"].tolist() == ["Novi Sad", "Beočin"]


def test_query_searches_joined_list_fields():
    out = filter_rows(_df(), query="zoning", search_fields=("city", "flags"))
    assert out["city"].tolist() == ["Belgrade"]


def test_empty_frame_passthrough():
    out = filter_rows(pd.DataFrame(), query="x", search_fields=("city",))
    assert out.empty
    assert records_of(out) == []


def test_records_of_replaces_nan():
    df = pd.DataFrame([{"a": 1.0, "b": None}, {"a": float("nan"), "b": "x"}])
    assert records_of(df) == [{"a": 1.0, "b": None}, {"a": None, "b": "x"}]


def test_normalizers_map_all_labels_to_sentinel():
    assert normalize_mortgage_filters({"region": "All Regions", "status": "All Statuses"}).region == ALL
    assert normalize_region_filters({"time_range": "bogus"}).time_range == "Last 6 months"
    assert normalize_dispute_filters({"page": "0"}).page == 1
    assert normalize_dispute_filters({"page": "x"}).page == 1
    f = normalize_compliance_filters({"status": "Verified", "mortgage": "weird", "flags": "ANY"})
    assert f == ComplianceFilters(status="verified", mortgage=ALL, flags="any")


def test_count_active_filters():
    assert count_active_filters(ComplianceFilters()) == 0
    assert count_active_filters(ComplianceFilters(query="  ", status="pending", flags="none")) == 2
    assert count_active_filters(RegionFilters(query="bel", region="Srem")) == 2
