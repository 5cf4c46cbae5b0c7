from __future__ import annotations

import csv
from datetime import date

import pytest

from registry_core.export import EXPORT_COLUMNS, export_page, to_csv


def test_minimal_quoting_wraps_commas_and_doubles_quotes():
    rows = [{"region": "Belgrade, City", "n": 3.0}, {"region": 'Say "hi"', "n": 2.5}, {"region": "Plain", "n": None}]
    out = to_csv(rows, [("Region", "region"), ("N", "n")])
    assert out == 'Region,N\n"Belgrade, City",3\n"Say ""hi""",2.5\nPlain,'


def test_no_trailing_newline_and_header_only_when_empty():
    assert to_csv([], [("A", "a")]) == "A"
    assert not to_csv([{"a": 1}], [("A", "a")]).endswith("\n")


def test_quote_all_for_transfers_keeps_header_bare():
    out = to_csv([{"a": "x", "b": 1}], [("A", "a"), ("B", "b")], csv.QUOTE_ALL)
    assert out == 'A,B\n"x","1"'


def test_regions_export_columns():
    payload = {
        "table": [
            {
                "region": "Južna Bačka",
                "total_parcels": 1000,
                "active_disputes": 13,
                "pending_transfers": 40,
                "active_mortgages": 35,
                "avg_processing_days": 3.5,
                "fraud_blocked": 1,
                "dispute_rate": 1.3,
            }
        ]
    }
    text, filename = export_page("regions", payload, date(2024, 6, 15))
    assert filename == "regions_export_2024-06-15.csv"
    lines = text.split("\n")
    assert lines[0] == "Region,Total Parcels,Active Disputes,Pending Transfers,Active Mortgages,Avg Processing (Days),Fraud Blocked,Dispute Rate (%)"
    assert lines[1] == "Južna Bačka,1000,13,40,35,3.5,1,1.3"


def test_transfers_export_processing_text():
    payload = {
        "table": [
            {"transfer_id": "T1", "buyer": "Delta, d.o.o.", "value": 120000.0, "processing_days": 3.0, "created_display": "Jun 14, 2024"},
            {"transfer_id": "T2", "processing_days": None},
        ]
    }
    text, filename = export_page("transfers", payload, date(2024, 6, 15))
    assert filename == "transfers_2024-06-15.csv"
    lines = text.split("\n")
    assert lines[0].startswith("Transfer ID,Parcel ID,Region,Type")
    assert lines[1] == '"T1","","","","","Delta, d.o.o.","","120000","3 days","Jun 14, 2024"'
    assert lines[2].endswith('"In progress",""')


def test_every_exportable_page_has_columns():
    assert set(EXPORT_COLUMNS) == {"regions", "mortgages", "disputes", "transfers"}
    with pytest.raises(KeyError):
        export_page("bubble-risk", {"table": []})
