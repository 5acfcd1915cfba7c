"""Unit tests for flat-file report parsing."""

from __future__ import annotations

import csv
import gzip
import logging

import pytest

from sp_reports.utils import tsv_parser
from sp_reports.utils.tsv_parser import (
    ReportParseError,
    decode_payload,
    parse_report_tsv,
    parse_tsv_legacy,
)

PARSER_LOGGER = "sp_reports.utils.tsv_parser"


def _payload(headers, rows) -> str:
    lines = ["\t".join(headers)] + ["\t".join(row) for row in rows]
    return "\n".join(lines) + "\n"


def _warnings(caplog):
    return [r for r in caplog.records if r.name == PARSER_LOGGER and r.levelno == logging.WARNING]


def test_parses_every_row_with_every_header() -> None:
    """N well-formed rows under H headers should give N dicts with H keys."""
    headers = ["sku", "fnsku", "asin", "product-name", "quantity"]
    rows = [[f"SKU{i}", f"X{i}", f"B{i:09d}", f"Widget {i}", str(i)] for i in range(25)]

    parsed = parse_report_tsv(_payload(headers, rows).encode("utf-8"))

    assert len(parsed) == 25
    assert all(list(row) == headers for row in parsed)
    assert parsed[7] == {
        "sku": "SKU7",
        "fnsku": "X7",
        "asin": "B000000007",
        "product-name": "Widget 7",
        "quantity": "7",
    }


def test_extra_delimiter_does_not_lose_rows() -> None:
    """A row with an extra tab should still produce a row, with the extra cell dropped."""
    payload = "asin\tstatus\nA1\tok\nA2\tok\textra\nA3\tok\n"

    parsed = parse_report_tsv(payload)

    assert [row["asin"] for row in parsed] == ["A1", "A2", "A3"]
    assert parsed[1] == {"asin": "A2", "status": "ok"}


def test_short_rows_are_padded_and_blank_lines_skipped() -> None:
    """Missing trailing cells become empty strings; blank lines are not rows."""
    payload = "asin\tstatus\tnote\r\nA1\tok\r\n\r\n\t\t\r\nA2\tok\tfine\r\n"

    parsed = parse_report_tsv(payload)

    assert parsed == [
        {"asin": "A1", "status": "ok", "note": ""},
        {"asin": "A2", "status": "ok", "note": "fine"},
    ]


def test_quotes_in_titles_are_kept_literally() -> None:
    """Stray quote characters should not swallow following rows."""
    payload = 'asin\ttitle\nA1\t12" Pan "Deluxe\nA2\tLid\n'

    parsed = parse_report_tsv(payload)

    assert len(parsed) == 2
    assert parsed[0]["title"] == '12" Pan "Deluxe'


def test_quoted_headers_are_unwrapped() -> None:
    """Headers wrapped in double quotes should be matched without the quotes."""
    parsed = parse_report_tsv('"asin"\t"sku"\nA1\tS1\n')

    assert parsed == [{"asin": "A1", "sku": "S1"}]


@pytest.mark.parametrize("payload", [b"", "", "   \n\n", b"\n"])
def test_empty_payload_returns_empty_with_one_warning(payload, caplog) -> None:
    """Empty payloads should yield [] and log exactly one warning."""
    caplog.set_level(logging.INFO, logger=PARSER_LOGGER)

    assert parse_report_tsv(payload, report_type="GET_TEST") == []
    assert len(_warnings(caplog)) == 1


def test_unreadable_record_is_skipped() -> None:
    """A record the csv module rejects should be skipped, not abort the parse."""
    previous_limit = csv.field_size_limit()
    csv.field_size_limit(20)
    try:
        payload = "asin\tsku\nA1\tS1\nA2\t" + "x" * 50 + "\nA3\tS3\n"
        parsed = parse_report_tsv(payload)
    finally:
        csv.field_size_limit(previous_limit)

    assert [row["asin"] for row in parsed] == ["A1", "A3"]


def test_falls_back_to_legacy_parser(monkeypatch) -> None:
    """When the tolerant parser raises, the legacy split parser should answer."""

    def broken(text, report_type="report"):
        raise ReportParseError("boom")

    monkeypatch.setattr(tsv_parser, "parse_tsv_tolerant", broken)

    parsed = parse_report_tsv("asin\tsku\nA1\tS1\n")

    assert parsed == [{"asin": "A1", "sku": "S1"}]


def test_both_parsers_failing_returns_empty(monkeypatch, caplog) -> None:
    """If the legacy parser also fails the result is [] with a warning."""

    def broken_tolerant(text, report_type="report"):
        raise csv.Error("boom")

    def broken_legacy(text):
        raise IndexError("boom")

    monkeypatch.setattr(tsv_parser, "parse_tsv_tolerant", broken_tolerant)
    monkeypatch.setattr(tsv_parser, "parse_tsv_legacy", broken_legacy)
    caplog.set_level(logging.INFO, logger=PARSER_LOGGER)

    assert parse_report_tsv("asin\nA1\n") == []
    assert len(_warnings(caplog)) == 1


def test_legacy_parser_pads_short_rows() -> None:
    """The legacy parser should zip cells with headers by position."""
    assert parse_tsv_legacy("a\tb\r\n1\r\n") == [{"a": "1", "b": ""}]


def test_decode_handles_gzip_bom_and_cp1252() -> None:
    """Payloads may be gzipped, carry a BOM, or be Windows-1252 encoded."""
    assert decode_payload(gzip.compress("asin\n".encode("utf-8"))) == "asin\n"
    assert decode_payload("\ufeffasin\n".encode("utf-8")) == "asin\n"
    assert decode_payload("café\n".encode("cp1252")) == "café\n"


def test_corrupt_gzip_returns_empty() -> None:
    """A truncated gzip payload should not raise."""
    assert parse_report_tsv(gzip.compress(b"asin\nA1\n")[:12]) == []


def test_bytes_undefined_in_cp1252_do_not_raise() -> None:
    """Non-UTF-8 payloads with bytes CP1252 cannot map should still parse."""
    parsed = parse_report_tsv(b"asin\tstatus\n\x81\x8d\tactive\nA2\t\x90\x9d\x8f\n")

    assert parsed == [
        {"asin": "\ufffd\ufffd", "status": "active"},
        {"asin": "A2", "status": "\ufffd\ufffd\ufffd"},
    ]
