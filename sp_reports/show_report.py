#!/usr/bin/env python3
"""
Show Stored Report Data

Resolves the current data for a scope the same way dashboard features do:
newest batch first, legacy document as fallback.

Usage:
    sp-show-report --report-type GET_STRANDED_INVENTORY_UI_DATA --user-id U1 --country US --region NA
    sp-show-report ... --json             # Print all items as JSON
"""

import sys
import json
import argparse
import logging

from sp_reports.utils.batch_reader import resolve_report_data
from sp_reports.utils.db import BatchScope, ReportStore
from sp_reports.utils.report_types import REPORT_TYPES

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main(argv=None, store: ReportStore = None) -> int:
    parser = argparse.ArgumentParser(description="Show the current stored data for a report scope")
    parser.add_argument("--report-type", required=True, choices=sorted(REPORT_TYPES))
    parser.add_argument("--user-id", required=True)
    parser.add_argument("--country", required=True)
    parser.add_argument("--region", default="NA", choices=["NA", "EU", "FE", "UAE"])
    parser.add_argument("--json", action="store_true", help="Print items as JSON")
    args = parser.parse_args(argv)

    scope = BatchScope(args.user_id, args.country.upper(), args.region.upper())
    data = resolve_report_data(store or ReportStore(), args.report_type, scope)

    if data is None:
        print(f"No data for {args.report_type} ({scope.user_id} {scope.country}/{scope.region})")
        return 0

    if args.json:
        print(json.dumps(data.to_records(), indent=2))
        return 0

    print(f"{args.report_type}: {data.item_count} items")
    print(f"  Source: {data.source}  Batch: {data.batch_id or '-'}  Created: {data.created_at}")
    for record in data.to_records()[:5]:
        print(f"    {record}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
