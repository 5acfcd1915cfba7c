"""
SP-API Report Types
Per-report-type request policy: lookback window and polling overrides.

Each report type reflects Amazon's data-latency guarantees for that report.
Settled-data reports end their window hours or days before "now"; snapshot
style reports end 2 minutes before "now".
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

# Amazon Marketplace IDs
MARKETPLACE_IDS = {
    "US": {"id": "ATVPDKIKX0DER", "region": "NA"},
    "CA": {"id": "A2EUQ1WTGCTBG2", "region": "NA"},
    "MX": {"id": "A1AM78C64UM0Y8", "region": "NA"},
    "BR": {"id": "A2Q3Y263D00KWC", "region": "NA"},
    "UK": {"id": "A1F83G8C2ARO7P", "region": "EU"},
    "DE": {"id": "A1PA6795UKMFR9", "region": "EU"},
    "FR": {"id": "A13V1IB3VIYZZH", "region": "EU"},
    "IT": {"id": "APJ6JRA9NG5V4", "region": "EU"},
    "ES": {"id": "A1RKKUPIHCS9HS", "region": "EU"},
    "UAE": {"id": "A2VIGQ35RCS4UG", "region": "EU"},
    "AU": {"id": "A39IBJ37TRP1C6", "region": "FE"},
    "JP": {"id": "A1VC38T7YXB528", "region": "FE"}
}

# Country aliases seen in seller account records
COUNTRY_ALIASES = {
    "USA": "US",
    "GB": "UK",
    "AE": "UAE"
}

STRANDED_INVENTORY = "GET_STRANDED_INVENTORY_UI_DATA"
INBOUND_NONCOMPLIANCE = "GET_FBA_FULFILLMENT_INBOUND_NONCOMPLIANCE_DATA"
RESTOCK_RECOMMENDATIONS = "GET_RESTOCK_INVENTORY_RECOMMENDATIONS_REPORT"
MERCHANT_LISTINGS = "GET_MERCHANT_LISTINGS_ALL_DATA"
REIMBURSEMENTS = "GET_FBA_REIMBURSEMENTS_DATA"
LEDGER_SUMMARY = "GET_LEDGER_SUMMARY_VIEW_DATA"

# end_offset: how far before "now" the window ends
# start_offset: how far before the window end it starts
# poll_interval, max_poll_attempts: optional overrides of the pipeline-wide defaults
REPORT_TYPES: Dict[str, Dict] = {
    STRANDED_INVENTORY: {
        "end_offset": timedelta(minutes=2),
        "start_offset": timedelta(days=30),
    },
    RESTOCK_RECOMMENDATIONS: {
        "end_offset": timedelta(minutes=2),
        "start_offset": timedelta(days=30),
    },
    MERCHANT_LISTINGS: {
        "end_offset": timedelta(minutes=2),
        "start_offset": timedelta(days=30),
    },
    INBOUND_NONCOMPLIANCE: {
        "end_offset": timedelta(hours=72),
        # 6 months before now, expressed relative to the window end
        "start_offset": timedelta(days=180) - timedelta(hours=72),
        # Polled once a minute
        "poll_interval": 60.0,
    },
    REIMBURSEMENTS: {
        # Lost inventory reconciliation needs 9 months of reimbursements
        "end_offset": timedelta(0),
        "start_offset": timedelta(days=270),
    },
    LEDGER_SUMMARY: {
        "end_offset": timedelta(hours=24),
        "start_offset": timedelta(days=30),
    },
}


def get_report_policy(report_type: str) -> Dict:
    """
    Look up the policy for a report type.

    Raises:
        ValueError: If the report type is not supported
    """
    policy = REPORT_TYPES.get(report_type)
    if policy is None:
        raise ValueError(
            f"Unsupported report type: {report_type}. "
            f"Must be one of: {', '.join(sorted(REPORT_TYPES))}"
        )
    return policy


def report_window(
    report_type: str,
    now: Optional[datetime] = None
) -> Tuple[datetime, datetime]:
    """
    Compute (dataStartTime, dataEndTime) for a report type.

    Args:
        report_type: SP-API report type constant
        now: Reference time (defaults to current UTC time)

    Returns:
        Tuple of timezone-aware UTC datetimes
    """
    policy = get_report_policy(report_type)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    end = now - policy["end_offset"]
    start = end - policy["start_offset"]
    return start, end


def format_report_time(value: datetime) -> str:
    """Format a datetime as the ISO 8601 UTC string the Reports API expects."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + \
        f"{value.microsecond // 1000:03d}Z"


def marketplace_ids_for(country: str) -> list:
    """
    Resolve a country code to its Amazon marketplace ID list.

    Raises:
        ValueError: If the country code is unknown
    """
    code = country.upper()
    code = COUNTRY_ALIASES.get(code, code)
    marketplace_info = MARKETPLACE_IDS.get(code)
    if not marketplace_info:
        raise ValueError(f"Invalid marketplace code: {country}")
    return [marketplace_info["id"]]
