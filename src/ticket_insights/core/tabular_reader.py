"""Decode CSV text or spreadsheet workbooks into a rectangular grid of cells."""

from __future__ import annotations

import enum
import io
import logging
import re
import zipfile
from datetime import date, datetime
from pathlib import Path

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ticket_insights.core.data_models import CellValue
from ticket_insights.core.errors import (
    NoSheetError,
    SizeExceededError,
    UnreadableSourceError,
    UnsupportedFormatError,
)

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 50 * 1024 * 1024  # 50 MiB

_LINE_BREAK = re.compile(r"\r?\n")

_ACCEPTED_CONTENT_TYPES = frozenset(
    {
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-excel",
        "application/octet-stream",  # some clients report this for .xlsx
        "text/csv",
        "application/csv",
        "text/plain",
    }
)


class SourceFormat(enum.Enum):
    CSV = "csv"
    WORKBOOK = "workbook"


_EXTENSIONS: dict[str, SourceFormat] = {
    ".csv": SourceFormat.CSV,
    ".xlsx": SourceFormat.WORKBOOK,
    ".xls": SourceFormat.WORKBOOK,
}

Grid = list[list[CellValue]]


# -- format checks ------------------------------------------------------------


def detect_format(filename: str, content_type: str | None = None) -> SourceFormat:
    """Return the source format implied by *filename* (and *content_type*)."""
    suffix = Path(filename.lower()).suffix
    fmt = _EXTENSIONS.get(suffix)
    if fmt is None:
        raise UnsupportedFormatError(
            "Invalid file format. Please upload a valid XLSX or CSV file."
        )
    if content_type and content_type not in _ACCEPTED_CONTENT_TYPES:
        logger.debug("Rejecting %s with content type %s", filename, content_type)
        raise UnsupportedFormatError(
            f"Unsupported content type {content_type!r} for {filename}"
        )
    return fmt


def check_size(size: int, max_bytes: int = MAX_FILE_SIZE) -> None:
    """Raise :class:`SizeExceededError` when *size* is over *max_bytes*."""
    if size > max_bytes:
        raise SizeExceededError(size, max_bytes)


# -- CSV ----------------------------------------------------------------------


def parse_csv_text(text: str) -> list[list[str]]:
    """Split CSV *text* into rows of trimmed fields, dropping blank lines."""
    rows: list[list[str]] = []
    for line in _LINE_BREAK.split(text):
        if not line.strip():
            continue
        rows.append(parse_csv_row(line))
    return rows


def parse_csv_row(line: str) -> list[str]:
    """Split one CSV line, honouring ``"..."`` spans and ``""`` escapes."""
    # Not the csv module: lines are split on breaks before quotes are seen,
    # so a quoted field never spans rows.
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    while i < len(line):
        char = line[i]
        if char == '"':
            if in_quotes and line[i + 1 : i + 2] == '"':
                current.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1
    fields.append("".join(current).strip())
    return fields


# -- workbook -----------------------------------------------------------------


def read_workbook(data: bytes) -> Grid:
    """Read the first sheet of a workbook into a grid.

    Date cells keep their ``datetime`` value; every other cell becomes a
    string, with ``""`` for empty cells.
    """
    try:
        wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise UnreadableSourceError(f"Failed to read workbook: {exc}") from exc

    try:
        if not wb.sheetnames:
            raise NoSheetError()
        sheet = wb[wb.sheetnames[0]]
        logger.debug("Reading worksheet %r", sheet.title)
        grid: Grid = [
            [_workbook_cell(value) for value in row]
            for row in sheet.iter_rows(values_only=True)
        ]
    finally:
        wb.close()
    return grid


def _workbook_cell(value: object) -> CellValue:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# -- entry points -------------------------------------------------------------


def read_source(
    data: bytes,
    filename: str,
    content_type: str | None = None,
    max_bytes: int = MAX_FILE_SIZE,
) -> Grid:
    """Validate and decode *data* into a grid of raw cell values."""
    check_size(len(data), max_bytes)
    fmt = detect_format(filename, content_type)
    logger.debug("Decoding %s as %s (%d bytes)", filename, fmt.value, len(data))

    if fmt is SourceFormat.CSV:
        grid: Grid = list(parse_csv_text(data.decode("utf-8-sig", errors="replace")))
    else:
        grid = read_workbook(data)

    if not grid:
        raise UnreadableSourceError("No data found in the file")
    logger.info("Read %d row(s) from %s", len(grid), filename)
    return grid


def read_path(path: str | Path, max_bytes: int = MAX_FILE_SIZE) -> Grid:
    """Read a CSV or workbook file from disk."""
    path = Path(path)
    check_size(path.stat().st_size, max_bytes)
    return read_source(path.read_bytes(), path.name, max_bytes=max_bytes)
