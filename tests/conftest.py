from __future__ import annotations

from datetime import date, datetime

import pytest

from registry_core.records import (
    normalize_dispute,
    normalize_mortgage,
    normalize_parcel,
    normalize_region,
    normalize_transfer,
)


TODAY = date(2024, 6, 15)
NOW = datetime(2024, 6, 15, 12, 0, 0)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def regions():
    return [
        normalize_region({"region": "Belgrade", "parcels": 1000, "disputes": 13, "transfers": 1500, "verificationRate": 100}),
        normalize_region({"region": "Vojvodina", "parcels": 5000, "disputes": 66, "transfers": 400, "verificationRate": "100"}),
        normalize_region({"region": "Nišava", "parcels": 1000, "disputes": 9, "transfers": 700, "verificationRate": 100}),
        normalize_region({"region": "Šumadija", "parcels": 0, "disputes": 0, "transfers": 0, "verificationRate": 50}),
    ]


@pytest.fixture
def parcels():
    return [
        normalize_parcel(
            {
                "parcelId": "BG-2024-45892",
                "legalStatus": "clean",
                "address": {"street": "Knez Mihailova 22", "city": "Belgrade"},
                "blockchainHash": "0x7a8b9c",
                "hasMortgage": False,
                "restrictions": [],
            }
        ),
        normalize_parcel(
            {
                "parcelId": "KG-2024-34567",
                "legalStatus": "disputed",
                "address": {"street": "Kralja Petra 18"},
                "region": "Kragujevac",
                "hasMortgage": True,
                "restrictions": [{"type": "zoning"}, {"type": "custom", "description": "Under court stay"}],
            }
        ),
        normalize_parcel({"_id": "abc123", "restrictions": [{"type": "environmental"}]}),
    ]


@pytest.fixture
def mortgages():
    return [
        normalize_mortgage(
            {
                "mortgageId": "MTG-2024-001",
                "parcelId": "BEL-11111",
                "region": "Belgrade",
                "bank": "Banca Intesa",
                "status": "Active",
                "originalAmount": 150000,
                "remaining": 125000,
                "monthly": 1250,
                "startDate": "15. 3. 2022.",
            }
        ),
        normalize_mortgage(
            {
                "mortgageId": "MTG-2024-002",
                "parcel": {"parcelId": "NS-22222", "region": "Južna Bačka"},
                "lender": {"name": "UniCredit"},
                "mortgageStatus": "defaulted",
                "principalAmount": 90000,
                "outstandingBalance": 60000,
                "originationDate": "2024-06-01T00:00:00Z",
            }
        ),
        normalize_mortgage(
            {
                "mortgageId": "MTG-2024-003",
                "parcelId": "BEL-33333",
                "region": "Belgrade",
                "bank": "Banca Intesa",
                "status": "Foreclosure",
                "originalAmount": 200000,
                "remaining": 180000,
                "startDate": "not a date",
            }
        ),
    ]


@pytest.fixture
def disputes():
    return [
        normalize_dispute(
            {
                "disputeId": "DSP-1",
                "parcel": {"parcelId": "BG-1", "region": "Belgrade"},
                "disputeType": "ownership_claim",
                "status": "Open",
                "filingDate": "2024-06-05T00:00:00Z",
                "claimedAmount": 1000,
            }
        ),
        normalize_dispute(
            {
                "_id": "65f1a2b3c4d5e6f7a8b9c0d1",
                "region": "Niš",
                "disputeType": "boundary",
                "status": "Court",
                "filingDate": "2024-06-13T00:00:00Z",
                "estimatedCost": 500,
            }
        ),
        normalize_dispute({"disputeId": "DSP-3", "region": "Belgrade", "status": "Resolved"}),
        normalize_dispute(
            {"disputeId": "DSP-OLD", "region": "Belgrade", "status": "Open", "filingDate": "2023-01-01T00:00:00Z"}
        ),
    ]


@pytest.fixture
def transfers():
    return [
        normalize_transfer(
            {
                "transferId": "TRF-1",
                "parcel": {"parcelId": "BG-1", "region": "Belgrade"},
                "transferType": "sale",
                "transferStatus": "completed",
                "buyer": {"personalInfo": {"firstName": "Ana", "lastName": "Jovanović"}},
                "seller": {"corporateInfo": {"companyName": "Delta, d.o.o."}},
                "agreedPrice": 120000,
                "processingTime": 3,
                "applicationDate": "2024-06-14T09:00:00Z",
                "updatedAt": "2024-06-15T08:00:00Z",
            }
        ),
        normalize_transfer(
            {
                "transferId": "TRF-2",
                "region": "Niš",
                "transferType": "gift",
                "transferStatus": "pending_approval",
                "buyer": "Marko",
                "registeredPrice": 40000,
                "applicationDate": "2024-06-13T12:00:00Z",
            }
        ),
        normalize_transfer(
            {
                "transferId": "TRF-3",
                "region": "Belgrade",
                "transferType": "court_order",
                "transferStatus": "cancelled",
                "applicationDate": "2023-01-10T00:00:00Z",
                "processingTime": 10,
            }
        ),
    ]
