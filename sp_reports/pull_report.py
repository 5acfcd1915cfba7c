#!/usr/bin/env python3
"""
Pull a Flat-File Report from SP-API

Uses the standard CREATE → POLL → DOWNLOAD pattern, then parses the TSV,
normalizes it and saves it as a new batch for the seller's scope.

Supported report types:
    GET_STRANDED_INVENTORY_UI_DATA
    GET_FBA_FULFILLMENT_INBOUND_NONCOMPLIANCE_DATA
    GET_RESTOCK_INVENTORY_RECOMMENDATIONS_REPORT
    GET_MERCHANT_LISTINGS_ALL_DATA
    GET_FBA_REIMBURSEMENTS_DATA
    GET_LEDGER_SUMMARY_VIEW_DATA

Usage:
    sp-pull-report --report-type GET_STRANDED_INVENTORY_UI_DATA --user-id U1 --country US --region NA
    sp-pull-report ... --marketplace-id ATVPDKIKX0DER --marketplace-id A2EUQ1WTGCTBG2
    sp-pull-report ... --poll-interval 10 --max-attempts 60
    sp-pull-report ... --dry-run              # Pull and parse without DB writes

Environment Variables:
    SP_API_ACCESS_TOKEN   - Access token for the seller (if --access-token is not given)
    SUPABASE_URL          - Supabase project URL
    SUPABASE_SERVICE_KEY  - Supabase service role key
    SP_API_POLL_INTERVAL, SP_API_MAX_POLL_ATTEMPTS, REPORT_BATCH_RETENTION (optional)
"""

import os
import sys
import argparse
import logging
from dataclasses import replace

from sp_reports.utils.api_client import SPAPIClient, SPAPIError
from sp_reports.utils.batch_writer import BatchWriteError
from sp_reports.utils.config import PipelineConfig
from sp_reports.utils.db import BatchScope, ReportStore
from sp_reports.utils.pipeline import run_report_pipeline
from sp_reports.utils.report_types import REPORT_TYPES, marketplace_ids_for
from sp_reports.utils.retention import get_retention_worker

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Pull a flat-file report from SP-API and store it as a batch"
    )
    parser.add_argument(
        "--report-type",
        required=True,
        choices=sorted(REPORT_TYPES),
        help="SP-API report type"
    )
    parser.add_argument("--user-id", required=True, help="Owner of the stored data")
    parser.add_argument("--country", required=True, help="Country code, e.g. US, UK, DE")
    parser.add_argument(
        "--region",
        type=str,
        default="NA",
        choices=["NA", "EU", "FE", "UAE"],
        help="Region to pull. Default: NA"
    )
    parser.add_argument(
        "--marketplace-id",
        action="append",
        dest="marketplace_ids",
        help="Amazon marketplace ID (repeatable). Default: resolved from --country"
    )
    parser.add_argument(
        "--access-token",
        type=str,
        help="SP-API access token. Default: SP_API_ACCESS_TOKEN"
    )
    parser.add_argument("--poll-interval", type=float, help="Seconds between status checks")
    parser.add_argument("--max-attempts", type=int, help="Status checks before giving up")
    parser.add_argument("--retention", type=int, help="Batches to keep for this scope")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Pull data but don't write to database"
    )
    return parser


def build_config(args) -> PipelineConfig:
    config = PipelineConfig.from_env().for_report_type(args.report_type)
    overrides = {}
    if args.poll_interval is not None:
        overrides["poll_interval"] = args.poll_interval
    if args.max_attempts is not None:
        overrides["max_poll_attempts"] = args.max_attempts
    if args.retention is not None:
        overrides["retention_count"] = args.retention
    return replace(config, **overrides) if overrides else config


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    access_token = args.access_token or os.environ.get("SP_API_ACCESS_TOKEN")
    if not access_token:
        print("Error: No access token. Pass --access-token or set SP_API_ACCESS_TOKEN")
        return 1

    try:
        marketplace_ids = args.marketplace_ids or marketplace_ids_for(args.country)
        scope = BatchScope(args.user_id, args.country.upper(), args.region.upper())
        config = build_config(args)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    print("=" * 60)
    print(f"REPORT PULL: {args.report_type}")
    print(f"User: {scope.user_id}  Country: {scope.country}  Region: {scope.region}")
    print(f"Marketplaces: {', '.join(marketplace_ids)}")
    print(f"Polling: every {config.poll_interval}s, up to {config.max_poll_attempts} checks")
    print(f"Retention: {config.retention_count} batches")
    print(f"Dry run: {args.dry_run}")
    print("=" * 60)

    client = SPAPIClient(access_token, region=scope.region)
    worker = get_retention_worker()

    try:
        result = run_report_pipeline(
            client,
            args.report_type,
            scope,
            marketplace_ids,
            store=None if args.dry_run else ReportStore(),
            config=config,
            worker=worker,
            dry_run=args.dry_run
        )
    except SPAPIError as e:
        print(f"\n  ✗ SP-API error: {e}")
        return 1
    except BatchWriteError as e:
        print(f"\n  ✗ Save failed for batch {e.batch_id}: {e}")
        return 1
    finally:
        worker.drain(timeout=60)

    print("\n" + "=" * 60)
    print("SUMMARY")
    print("=" * 60)

    if not result.success:
        print(f"  ✗ {result.message} (report {result.report_id}, {result.reason})")
        return 1

    if args.dry_run:
        print(f"  [DRY RUN] Would save {result.item_count} items")
        for item in (result.items or [])[:3]:
            print(f"    {item.to_record()}")
    else:
        print(f"  ✓ {result.item_count} items saved in batch {result.batch_id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
