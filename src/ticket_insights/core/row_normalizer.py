"""Turn a raw cell grid into canonical :class:`RawTicket` records."""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence
from datetime import date, datetime, timezone

from dateutil.parser import parse as dt_parse
from openpyxl.utils.datetime import from_excel

from ticket_insights.core.column_resolver import (
    COLUMN_SYNONYMS,
    REQUIRED_FIELDS,
    ColumnMapping,
    SynonymTable,
    normalize_headers,
    resolve_columns,
)
from ticket_insights.core.data_models import CellValue, ExportMetadata, RawExport, RawTicket
from ticket_insights.core.errors import InsufficientRowsError, NoValidRowsError

logger = logging.getLogger(__name__)

TICKET_KEY_PATTERN = re.compile(r"^[A-Z]+-\d+$")

_SPRINT_DELIMITERS = (",", ";", "|")
_SPRINT_NAME = re.compile(r"name=([^,\]]+)")

# Fills date parts a string leaves out, so results never depend on today.
_PARSE_DEFAULT = datetime(1970, 1, 1)


def is_ticket_key(text: str) -> bool:
    """Return True when *text* looks like ``PROJ-123``."""
    return bool(TICKET_KEY_PATTERN.match(text.strip()))


def to_iso(value: datetime) -> str:
    """Format *value* as a UTC ISO-8601 string with millisecond precision.

    Naive datetimes are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


# -- cell parsers -------------------------------------------------------------
# None of these raise; an undecodable cell becomes None.


def parse_string(value: CellValue) -> str | None:
    if value is None or value == "":
        return None
    text = str(value).strip()
    return text or None


def parse_number(value: CellValue) -> float | None:
    if value is None or value == "" or isinstance(value, (bool, date)):
        return None
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def parse_date(value: CellValue) -> str | None:
    """Decode a native date, a date string or a spreadsheet serial number."""
    if value is None or value == "" or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, date):
        return to_iso(datetime(value.year, value.month, value.day))

    if isinstance(value, str):
        try:
            return to_iso(dt_parse(value.strip(), default=_PARSE_DEFAULT))
        except (ValueError, OverflowError):
            return None

    if isinstance(value, (int, float)):
        try:
            decoded = from_excel(value)
        except (ValueError, OverflowError, TypeError):
            decoded = None
        if isinstance(decoded, datetime):
            return to_iso(decoded)
        # Not a usable serial: treat as a millisecond timestamp.
        try:
            return to_iso(datetime.fromtimestamp(value / 1000, tz=timezone.utc))
        except (ValueError, OverflowError, OSError):
            return None

    return None


def parse_sprints(value: CellValue) -> list[str]:
    """Split a sprint cell into sprint names.

    The first delimiter found among ``,`` ``;`` ``|`` wins.  Without a
    delimiter, ``name=...`` payloads (Jira's serialized sprint objects)
    are extracted, else the whole value is one sprint.
    """
    if value is None or value == "":
        return []

    text = str(value)
    for delimiter in _SPRINT_DELIMITERS:
        if delimiter in text:
            return [s.strip() for s in text.split(delimiter) if s.strip()]

    names = _SPRINT_NAME.findall(text)
    if names:
        return [n.strip() for n in names]

    text = text.strip()
    return [text] if text else []


# -- rows ---------------------------------------------------------------------


def is_empty_row(row: Sequence[CellValue]) -> bool:
    return all(cell is None or str(cell).strip() == "" for cell in row)


def parse_ticket_row(row: Sequence[CellValue], mapping: ColumnMapping) -> RawTicket | None:
    """Build a ticket from one row, or return None if a required field is absent."""

    def cell(name: str) -> CellValue:
        idx = mapping.index(name)
        if idx is None or idx >= len(row):
            return None
        return row[idx]

    key = parse_string(cell("key"))
    summary = parse_string(cell("summary"))
    issue_type = parse_string(cell("issue_type"))
    status = parse_string(cell("status"))
    created = parse_date(cell("created"))
    if not (key and summary and issue_type and status and created):
        return None

    return RawTicket(
        key=key,
        summary=summary,
        issue_type=issue_type,
        status=status,
        created=created,
        sprints=parse_sprints(cell("sprints")),
        parent=parse_string(cell("parent")),
        parent_key=parse_string(cell("parent_key")),
        parent_summary=parse_string(cell("parent_summary")),
        team=parse_string(cell("team")),
        story_points=parse_number(cell("story_points")),
        resolved=parse_date(cell("resolved")),
        origin_ticket_type=parse_string(cell("origin_ticket_type")),
    )


def _missing_reason(row: Sequence[CellValue], mapping: ColumnMapping) -> str:
    missing = []
    for name in REQUIRED_FIELDS:
        idx = mapping.index(name)
        value = row[idx] if idx is not None and idx < len(row) else None
        parsed = parse_date(value) if name == "created" else parse_string(value)
        if not parsed:
            missing.append(name)
    return f"missing or invalid {', '.join(missing)}"


def normalize_rows(
    grid: Sequence[Sequence[CellValue]],
    synonyms: SynonymTable = COLUMN_SYNONYMS,
    now: datetime | None = None,
) -> RawExport:
    """Resolve the header row and parse every data row into a ticket.

    Rows lacking a required field or carrying a malformed key are skipped
    with a warning.  Raises :class:`InsufficientRowsError` for grids without
    a data row and :class:`NoValidRowsError` when every row was skipped.
    """
    if len(grid) < 2:
        raise InsufficientRowsError()

    mapping = resolve_columns(normalize_headers(grid[0]), synonyms)
    tickets: list[RawTicket] = []

    for i, row in enumerate(grid[1:], start=2):
        if not row or is_empty_row(row):
            continue
        ticket = parse_ticket_row(row, mapping)
        if ticket is None:
            logger.warning("Skipping row %d: %s", i, _missing_reason(row, mapping))
            continue
        if not TICKET_KEY_PATTERN.match(ticket.key):
            logger.warning("Skipping row %d: invalid ticket key format %r", i, ticket.key)
            continue
        tickets.append(ticket)

    if not tickets:
        raise NoValidRowsError()

    logger.info("Parsed %d ticket(s) from %d data row(s)", len(tickets), len(grid) - 1)
    return RawExport(tickets=tickets, metadata=extract_metadata(tickets, now))


def extract_metadata(tickets: Sequence[RawTicket], now: datetime | None = None) -> ExportMetadata:
    """Collect the sorted distinct project prefixes of *tickets*."""
    prefixes = {t.key.split("-")[0] for t in tickets}
    return ExportMetadata(
        export_date=to_iso(now or datetime.now(tz=timezone.utc)),
        project_keys=sorted(p for p in prefixes if p),
    )
