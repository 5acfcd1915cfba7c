"""Unit tests for report row normalization."""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import date

import pytest

from sp_reports.utils import report_types
from sp_reports.utils.normalizers import (
    DateWindowFilter,
    InboundNoncomplianceItem,
    LedgerSummaryItem,
    MerchantListingItem,
    RestockRecommendationItem,
    StrandedInventoryItem,
    fold_header,
    normalize_rows,
    parse_decimal,
    parse_int,
    parse_report_date,
)
from sp_reports.utils.tsv_parser import parse_report_tsv

STRANDED_PAYLOAD = (
    "asin\tstatus-primary\tstranded-reason\n"
    "A1\tactive\tno-buyer\n"
    "A2\tinactive\tno-inventory\n"
)

TODAY = date(2026, 3, 15)


def test_stranded_inventory_example() -> None:
    """The stranded inventory payload should normalize to two canonical items."""
    rows = parse_report_tsv(STRANDED_PAYLOAD)

    items = normalize_rows(report_types.STRANDED_INVENTORY, rows)

    assert items == [
        StrandedInventoryItem(asin="A1", status_primary="active", stranded_reason="no-buyer"),
        StrandedInventoryItem(asin="A2", status_primary="inactive", stranded_reason="no-inventory"),
    ]


def test_items_are_immutable() -> None:
    """Normalized items should be frozen."""
    item = StrandedInventoryItem(asin="A1")

    with pytest.raises(FrozenInstanceError):
        item.asin = "A2"


@pytest.mark.parametrize("header", ["Merchant SKU", "merchant-sku", "merchant_sku", " MERCHANT  SKU "])
def test_header_variants_fold_to_one_field(header) -> None:
    """Casing and punctuation differences should not matter."""
    assert fold_header(header) == "merchant_sku"

    items = normalize_rows(report_types.RESTOCK_RECOMMENDATIONS, [{header: "SKU-1"}])

    assert items[0].merchant_sku == "SKU-1"


def test_restock_long_headers_and_numbers() -> None:
    """Restock headers with extra wording should map onto their fields."""
    row = {
        "Product Name": "Widget",
        "FNSKU": "X001",
        "Merchant SKU": "W-1",
        "ASIN": "B001",
        "Supplier part no.": "P-9",
        "Price": "1,299.50",
        "Sales last 30 days": "2400.00",
        "Units Sold Last 30 Days": "12",
        "Total Units": "40",
        "Total Days of Supply (including units from open shipments)": "95",
        "Days of Supply at Amazon Fulfillment Network": "60",
        "Recommended replenishment qty": "",
    }

    item = normalize_rows(report_types.RESTOCK_RECOMMENDATIONS, [row])[0]

    assert isinstance(item, RestockRecommendationItem)
    assert item.supplier_part_no == "P-9"
    assert item.price == 1299.5
    assert item.units_sold_last_30_days == 12
    assert item.total_days_of_supply == "95"
    assert item.days_of_supply_at_amazon == "60"
    assert item.recommended_replenishment_qty == 0


def test_missing_fields_get_type_defaults() -> None:
    """Absent text fields become "", quantities 0 and amounts 0.0."""
    item = normalize_rows(report_types.MERCHANT_LISTINGS, [{"seller-sku": "S1"}])[0]

    assert item == MerchantListingItem(sku="S1")
    assert item.price == 0.0
    assert item.quantity == 0
    assert item.item_name == ""


def test_merchant_listing_aliases() -> None:
    """asin1 and seller-sku should map onto asin and sku."""
    row = {"item-name": "Widget", "seller-sku": "S1", "price": "9.99", "quantity": "3", "asin1": "B001"}

    item = normalize_rows(report_types.MERCHANT_LISTINGS, [row])[0]

    assert (item.asin, item.sku, item.price, item.quantity) == ("B001", "S1", 9.99, 3)


def test_reimbursements_require_reimbursement_id() -> None:
    """Rows without a reimbursement id should be dropped."""
    rows = [
        {"reimbursement-id": "R1", "amount-total": "12.34", "quantity-reimbursed-total": "2"},
        {"reimbursement-id": "", "amount-total": "1"},
    ]

    items = normalize_rows(report_types.REIMBURSEMENTS, rows)

    assert len(items) == 1
    assert items[0].amount_total == 12.34
    assert items[0].quantity_reimbursed_total == 2


def test_ledger_summary_transfer_header() -> None:
    """The slash in the warehouse transfer header should be matched explicitly."""
    row = {"Date": "03/2026", "ASIN": "B001", "Warehouse Transfer In/Out": "-4", "Ending Warehouse Balance": "10"}

    item = normalize_rows(report_types.LEDGER_SUMMARY, [row])[0]

    assert isinstance(item, LedgerSummaryItem)
    assert item.warehouse_transfer_in_out == -4
    assert item.ending_warehouse_balance == 10


def test_inbound_noncompliance_keeps_trailing_thirty_days() -> None:
    """Only issues reported within the last 30 days should be kept."""
    rows = [
        {"issue-reported-date": "2026-03-10T08:00:00Z", "asin": "IN", "quantity": "3"},
        {"issue-reported-date": "2026-02-13", "asin": "EDGE"},
        {"issue-reported-date": "2026-01-01", "asin": "OLD"},
        {"issue-reported-date": "2026-04-01", "asin": "FUTURE"},
        {"issue-reported-date": "", "asin": "NODATE"},
    ]

    items = normalize_rows(report_types.INBOUND_NONCOMPLIANCE, rows, today=TODAY)

    assert [item.asin for item in items] == ["IN", "EDGE"]
    assert items[0] == InboundNoncomplianceItem(
        issue_reported_date="2026-03-10T08:00:00Z", asin="IN", problem_quantity=3
    )


def test_inverted_date_window_keeps_nothing() -> None:
    """The historical reversed comparison can never match any date."""
    corrected = DateWindowFilter("issue_reported_date", days=30)
    inverted = DateWindowFilter("issue_reported_date", days=30, inverted=True)

    for value in ("2026-03-15", "2026-03-01", "2026-02-13", "2026-01-01", "2026-05-01"):
        item = InboundNoncomplianceItem(issue_reported_date=value)
        assert inverted(item, TODAY) is False

    assert corrected(InboundNoncomplianceItem(issue_reported_date="2026-03-15"), TODAY) is True
    assert corrected(InboundNoncomplianceItem(issue_reported_date="2026-02-13"), TODAY) is True
    assert corrected(InboundNoncomplianceItem(issue_reported_date="2026-02-12"), TODAY) is False


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("2026-03-01", date(2026, 3, 1)),
        ("03/01/2026", date(2026, 3, 1)),
        ("2026-03-01T23:59:59+00:00", date(2026, 3, 1)),
        ("01.03.2026", date(2026, 3, 1)),
        ("not a date", None),
        ("", None),
    ],
)
def test_parse_report_date(value, expected) -> None:
    assert parse_report_date(value) == expected


def test_number_parsing_tolerates_report_noise() -> None:
    """Commas, decimals and placeholders should not break number parsing."""
    assert parse_int("1,024") == 1024
    assert parse_int("3.0") == 3
    assert parse_int("N/A") == 0
    assert parse_int("abc") == 0
    assert parse_decimal("--") == 0.0
    assert parse_decimal("2,500.75") == 2500.75


def test_unknown_report_type_has_no_normalizer() -> None:
    with pytest.raises(ValueError):
        normalize_rows("GET_NOT_A_REPORT", [])
