"""
Report Row Normalizers
Maps raw report rows onto canonical, immutable per-report-type items.

Amazon is inconsistent about header casing and punctuation across report
versions ("Merchant SKU", "merchant-sku", "merchant_sku"). Headers are folded
(lower-case, hyphens and whitespace to underscores) before matching, and each
canonical field lists any extra variants that do not fold to its name.

Missing fields get a type-appropriate default taken from the item class:
"" for text, 0 for quantities, 0.0 for amounts.
"""

import re
import logging
from dataclasses import asdict, dataclass, fields
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from sp_reports.utils import report_types

logger = logging.getLogger(__name__)

EMPTY_VALUES = {"", "N/A", "n/a", "--"}


def fold_header(header: str) -> str:
    """Fold a header to its matching key: lower-case, '-' and whitespace -> '_'."""
    return re.sub(r"[\s\-]+", "_", header.strip().lower())


def parse_int(value: Any) -> int:
    """Parse to int, treating empty or unparseable values as 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    text = str(value).strip().replace(",", "")
    if text in EMPTY_VALUES:
        return 0
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return int(float(text))
    except (ValueError, OverflowError):
        return 0


def parse_decimal(value: Any) -> float:
    """Parse to float, treating empty or unparseable values as 0.0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "")
    if text in EMPTY_VALUES:
        return 0.0
    try:
        return float(text)
    except ValueError:
        return 0.0


def parse_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _coerce(value: Any, default: Any) -> Any:
    if isinstance(default, bool):
        return bool(value) if value is not None else default
    if isinstance(default, int):
        return parse_int(value)
    if isinstance(default, float):
        return parse_decimal(value)
    return parse_text(value)


class ReportItem:
    """Serialisation helpers shared by all canonical item classes."""

    def to_record(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ReportItem":
        """Build an item from a stored record, filling defaults for absent keys."""
        values = {}
        for field in fields(cls):
            values[field.name] = _coerce(record.get(field.name), field.default)
        return cls(**values)


# =============================================================================
# Canonical items
# =============================================================================

@dataclass(frozen=True)
class StrandedInventoryItem(ReportItem):
    asin: str = ""
    status_primary: str = ""
    stranded_reason: str = ""


@dataclass(frozen=True)
class InboundNoncomplianceItem(ReportItem):
    issue_reported_date: str = ""
    shipment_creation_date: str = ""
    shipment_id: str = ""
    asin: str = ""
    fnsku: str = ""
    problem_type: str = ""
    problem_quantity: int = 0


@dataclass(frozen=True)
class RestockRecommendationItem(ReportItem):
    asin: str = ""
    fnsku: str = ""
    merchant_sku: str = ""
    product_name: str = ""
    condition: str = ""
    supplier: str = ""
    supplier_part_no: str = ""
    currency_code: str = ""
    price: float = 0.0
    sales_last_30_days: float = 0.0
    units_sold_last_30_days: int = 0
    total_units: int = 0
    inbound: int = 0
    available: int = 0
    fc_transfer: int = 0
    fc_processing: int = 0
    customer_order: int = 0
    unfulfillable: int = 0
    working: int = 0
    shipped: int = 0
    receiving: int = 0
    fulfilled_by: str = ""
    total_days_of_supply: str = ""
    days_of_supply_at_amazon: str = ""
    alert: str = ""
    recommended_replenishment_qty: int = 0
    recommended_ship_date: str = ""
    unit_storage_size: str = ""


@dataclass(frozen=True)
class MerchantListingItem(ReportItem):
    asin: str = ""
    sku: str = ""
    item_name: str = ""
    price: float = 0.0
    quantity: int = 0
    status: str = ""
    fulfillment_channel: str = ""


@dataclass(frozen=True)
class ReimbursementItem(ReportItem):
    approval_date: str = ""
    reimbursement_id: str = ""
    case_id: str = ""
    amazon_order_id: str = ""
    reason: str = ""
    sku: str = ""
    fnsku: str = ""
    asin: str = ""
    product_name: str = ""
    condition: str = ""
    currency_unit: str = ""
    amount_per_unit: float = 0.0
    amount_total: float = 0.0
    quantity_reimbursed_cash: int = 0
    quantity_reimbursed_inventory: int = 0
    quantity_reimbursed_total: int = 0
    original_reimbursement_id: str = ""
    original_reimbursement_type: str = ""


@dataclass(frozen=True)
class LedgerSummaryItem(ReportItem):
    date: str = ""
    fnsku: str = ""
    asin: str = ""
    msku: str = ""
    title: str = ""
    disposition: str = ""
    starting_warehouse_balance: int = 0
    in_transit_between_warehouses: int = 0
    receipts: int = 0
    customer_shipments: int = 0
    customer_returns: int = 0
    vendor_returns: int = 0
    warehouse_transfer_in_out: int = 0
    found: int = 0
    lost: int = 0
    damaged: int = 0
    disposed: int = 0
    other_events: int = 0
    ending_warehouse_balance: int = 0
    unknown_events: int = 0
    location: str = ""
    store: str = ""


# =============================================================================
# Row filters
# =============================================================================

DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%Y-%m-%d %H:%M:%S", "%d.%m.%Y")


def parse_report_date(value: str) -> Optional[date]:
    """Parse the date formats Amazon uses in flat-file reports. None if unparseable."""
    text = (value or "").strip()
    if not text:
        return None

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


class DateWindowFilter:
    """
    Keeps items whose date field falls in the trailing window
    [today - days, today], both ends inclusive.

    inverted=True reproduces the comparison the dashboard used historically
    (date >= today and date <= today - days). That predicate can never be
    true; it exists so the two readings can be compared side by side.
    """

    def __init__(self, field_name: str, days: int = 30, inverted: bool = False):
        self.field_name = field_name
        self.days = days
        self.inverted = inverted

    def __call__(self, item: ReportItem, today: date) -> bool:
        item_date = parse_report_date(getattr(item, self.field_name))
        if item_date is None:
            return False

        window_start = today - timedelta(days=self.days)
        if self.inverted:
            return item_date >= today and item_date <= window_start
        return window_start <= item_date <= today


# =============================================================================
# Schemas
# =============================================================================

@dataclass(frozen=True)
class ReportSchema:
    item_class: Type[ReportItem]
    # Extra header variants per field, beyond the field name itself
    header_variants: Dict[str, Tuple[str, ...]]
    row_filter: Optional[Callable[[ReportItem, date], bool]] = None
    # Rows missing this field are dropped
    required_field: Optional[str] = None

    def field_headers(self) -> Dict[str, Tuple[str, ...]]:
        """Folded header keys accepted for each canonical field."""
        accepted = {}
        for field in fields(self.item_class):
            variants = (field.name,) + self.header_variants.get(field.name, ())
            accepted[field.name] = tuple(fold_header(v) for v in variants)
        return accepted


REPORT_SCHEMAS: Dict[str, ReportSchema] = {
    report_types.STRANDED_INVENTORY: ReportSchema(
        item_class=StrandedInventoryItem,
        header_variants={},
    ),
    report_types.INBOUND_NONCOMPLIANCE: ReportSchema(
        item_class=InboundNoncomplianceItem,
        header_variants={
            "problem_quantity": ("quantity",),
        },
        row_filter=DateWindowFilter("issue_reported_date", days=30),
    ),
    report_types.RESTOCK_RECOMMENDATIONS: ReportSchema(
        item_class=RestockRecommendationItem,
        header_variants={
            "supplier_part_no": ("Supplier part no.",),
            "total_days_of_supply": ("Total Days of Supply (including units from open shipments)",),
            "days_of_supply_at_amazon": ("Days of Supply at Amazon Fulfillment Network",),
        },
    ),
    report_types.MERCHANT_LISTINGS: ReportSchema(
        item_class=MerchantListingItem,
        header_variants={
            "asin": ("asin1",),
            "sku": ("seller-sku",),
        },
    ),
    report_types.REIMBURSEMENTS: ReportSchema(
        item_class=ReimbursementItem,
        header_variants={},
        required_field="reimbursement_id",
    ),
    report_types.LEDGER_SUMMARY: ReportSchema(
        item_class=LedgerSummaryItem,
        header_variants={
            "warehouse_transfer_in_out": ("Warehouse Transfer In/Out",),
        },
    ),
}


def get_schema(report_type: str) -> ReportSchema:
    schema = REPORT_SCHEMAS.get(report_type)
    if schema is None:
        raise ValueError(f"No normalizer for report type: {report_type}")
    return schema


def item_class_for(report_type: str) -> Type[ReportItem]:
    return get_schema(report_type).item_class


def normalize_row(schema: ReportSchema, row: Dict[str, str]) -> ReportItem:
    """Map one raw row onto the schema's item class."""
    folded = {}
    for header, value in row.items():
        if header is None:
            continue
        folded.setdefault(fold_header(header), value)

    record = {}
    for name, accepted in schema.field_headers().items():
        for key in accepted:
            if key in folded:
                record[name] = folded[key]
                break
    return schema.item_class.from_record(record)


def normalize_rows(
    report_type: str,
    rows: List[Dict[str, str]],
    today: Optional[date] = None
) -> List[ReportItem]:
    """
    Normalize parsed report rows for a report type.

    Args:
        report_type: SP-API report type constant
        rows: Row dictionaries from the TSV parser
        today: Reference date for date-window filters (defaults to date.today())

    Returns:
        List of canonical items
    """
    schema = get_schema(report_type)
    today = today or date.today()

    items = []
    dropped = 0
    for row in rows:
        item = normalize_row(schema, row)
        if schema.required_field and not getattr(item, schema.required_field):
            dropped += 1
            continue
        if schema.row_filter is not None and not schema.row_filter(item, today):
            dropped += 1
            continue
        items.append(item)

    logger.info(f"[{report_type}] Normalized {len(items)} items ({dropped} rows filtered out)")
    return items
