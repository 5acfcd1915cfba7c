"""
Report TSV Parser
Turns a raw flat-file report payload into a list of row dictionaries.

Amazon flat-file reports are tab-separated with a header row first. They are
not always well formed: blank lines, rows with more or fewer cells than the
header, and stray quote characters in product titles all occur in practice.

Two strategies:
- tolerant: csv module, header-driven, relaxed column count, skips records
  the csv module rejects
- legacy: split on newlines and tabs, zip cells with headers by position.
  Only used when the tolerant strategy raises.
"""

import csv
import gzip
import io
import logging
from typing import Dict, List, Union

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"


class ReportParseError(Exception):
    """The tolerant parser could not read the payload at all."""
    pass


def decode_payload(payload: Union[bytes, str]) -> str:
    """
    Decode a report payload to text.

    Gzip is detected by magic bytes. Amazon reports may use different
    encodings - try UTF-8 first, then CP1252 (Windows-1252). Bytes CP1252
    leaves undefined become U+FFFD.
    """
    if isinstance(payload, str):
        return payload

    if payload[:2] == GZIP_MAGIC:
        payload = gzip.decompress(payload)

    try:
        return payload.decode("utf-8-sig")
    except UnicodeDecodeError:
        return payload.decode("cp1252", errors="replace")


def _clean_header(header: str) -> str:
    header = header.strip()
    if len(header) >= 2 and header.startswith('"') and header.endswith('"'):
        header = header[1:-1]
    return header


def _is_blank(values: List[str]) -> bool:
    return all(not value.strip() for value in values)


def parse_tsv_tolerant(text: str, report_type: str = "report") -> List[Dict[str, str]]:
    """
    Header-driven TSV parse.

    Rows shorter than the header get "" for the missing cells; cells beyond
    the header are dropped. A record the csv module cannot read is skipped.

    Raises:
        ReportParseError: If the header row itself cannot be read
    """
    reader = csv.reader(io.StringIO(text), delimiter="\t", quoting=csv.QUOTE_NONE)

    headers = None
    rows: List[Dict[str, str]] = []
    skipped = 0

    while True:
        try:
            values = next(reader)
        except StopIteration:
            break
        except csv.Error as e:
            if headers is None:
                raise ReportParseError(f"Unreadable header row: {e}") from e
            skipped += 1
            logger.warning(f"[{report_type}] Skipping malformed record near line {reader.line_num}: {e}")
            continue

        if not values or _is_blank(values):
            continue

        if headers is None:
            headers = [_clean_header(h) for h in values]
            continue

        row = {}
        for index, header in enumerate(headers):
            row[header] = values[index].strip() if index < len(values) else ""
        rows.append(row)

    if skipped:
        logger.warning(f"[{report_type}] Skipped {skipped} malformed records")

    return rows


def parse_tsv_legacy(text: str) -> List[Dict[str, str]]:
    """Naive split-by-newline, split-by-tab parse with positional header zipping."""
    lines = [line for line in text.split("\n") if line.strip()]
    if not lines:
        return []

    headers = [_clean_header(h) for h in lines[0].rstrip("\r").split("\t")]

    rows = []
    for line in lines[1:]:
        values = line.rstrip("\r").split("\t")
        rows.append({
            header: (values[index].strip() if index < len(values) else "")
            for index, header in enumerate(headers)
        })
    return rows


def parse_report_tsv(
    payload: Union[bytes, str],
    report_type: str = "report"
) -> List[Dict[str, str]]:
    """
    Parse a report payload into row dictionaries.

    An empty or whitespace-only payload yields [] with a warning. Parse
    failures never raise: the legacy strategy is tried, and if that also
    fails the result is [].

    Args:
        payload: Raw report bytes (optionally gzipped) or decoded text
        report_type: Used to tag log lines

    Returns:
        List of dictionaries, one per data row
    """
    try:
        text = decode_payload(payload)
    except (OSError, EOFError) as e:
        logger.error(f"[{report_type}] Failed to decompress report payload: {e}")
        return []

    if not text or not text.strip():
        logger.warning(f"[{report_type}] Report payload is empty")
        return []

    try:
        rows = parse_tsv_tolerant(text, report_type=report_type)
        logger.info(f"[{report_type}] TSV parsed successfully: {len(rows)} rows")
        return rows
    except (ReportParseError, csv.Error, ValueError) as e:
        logger.error(f"[{report_type}] TSV parsing failed, trying legacy parser: {e}")

    try:
        rows = parse_tsv_legacy(text)
        logger.info(f"[{report_type}] Legacy TSV parse recovered {len(rows)} rows")
        return rows
    except (IndexError, ValueError) as e:
        logger.error(f"[{report_type}] Legacy TSV parsing also failed: {e}")
        logger.warning(f"[{report_type}] Returning empty result after parse failure")
        return []
