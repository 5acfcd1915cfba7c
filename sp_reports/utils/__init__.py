# SP-API Report Sync Utilities
# Helper modules for pulling flat-file reports and storing them as batches

from .reports import request_report, poll_report_status, fetch_report_payload
from .tsv_parser import parse_report_tsv
from .normalizers import normalize_rows
from .batch_writer import save_report_batch
from .batch_reader import resolve_report_data
from .pipeline import run_report_pipeline
