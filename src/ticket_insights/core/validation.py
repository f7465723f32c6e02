"""Integrity checks over parsed tickets before transformation."""

from __future__ import annotations

import logging

from dateutil.parser import parse as dt_parse

from ticket_insights.core.column_resolver import REQUIRED_FIELDS
from ticket_insights.core.data_models import RawExport, RawTicket, ValidationResult
from ticket_insights.core.row_normalizer import TICKET_KEY_PATTERN

logger = logging.getLogger(__name__)

KNOWN_ISSUE_TYPES = frozenset(
    {"Story", "Bug", "Task", "Epic", "Sub-task", "Improvement", "New Feature"}
)

KNOWN_STATUSES = frozenset(
    {
        "To Do",
        "In Progress",
        "Done",
        "Closed",
        "Resolved",
        "Open",
        "Reopened",
        "In Review",
        "Testing",
    }
)


def _is_date(value: str) -> bool:
    try:
        dt_parse(value)
    except (ValueError, OverflowError):
        return False
    return True


def validate_ticket(ticket: RawTicket) -> ValidationResult:
    """Check one ticket; unknown issue types and statuses are only warnings."""
    result = ValidationResult()

    for name in REQUIRED_FIELDS:
        if not getattr(ticket, name, None):
            result.errors.append(f"Missing required field: {name}")

    if ticket.key and not TICKET_KEY_PATTERN.match(ticket.key):
        result.errors.append(f"Invalid ticket key format: {ticket.key}")

    if ticket.issue_type and ticket.issue_type not in KNOWN_ISSUE_TYPES:
        result.warnings.append(f"Unknown issue type: {ticket.issue_type}")

    if ticket.status and ticket.status not in KNOWN_STATUSES:
        result.warnings.append(f"Unknown status: {ticket.status}")

    if ticket.story_points is not None and ticket.story_points < 0:
        result.errors.append(f"Invalid story points value: {ticket.story_points:g}")

    if ticket.created and not _is_date(ticket.created):
        result.errors.append(f"Invalid created date format: {ticket.created}")

    if ticket.resolved and not _is_date(ticket.resolved):
        result.errors.append(f"Invalid resolved date format: {ticket.resolved}")

    result.is_valid = not result.errors
    return result


def validate_raw_export(export: RawExport) -> ValidationResult:
    """Validate every ticket in *export* and the export metadata."""
    result = ValidationResult()

    if not export.tickets:
        result.warnings.append("No tickets found in data")

    if not export.metadata.export_date:
        result.warnings.append("Missing export date in metadata")

    valid = 0
    for i, ticket in enumerate(export.tickets):
        ticket_result = validate_ticket(ticket)
        if ticket_result.is_valid:
            valid += 1
        else:
            result.errors.append(f"Ticket {i}: {', '.join(ticket_result.errors)}")
        result.warnings.extend(f"Ticket {i}: {w}" for w in ticket_result.warnings)

    if export.tickets and valid == 0:
        result.errors.append("No valid tickets found in data")

    result.is_valid = not result.errors
    logger.debug(
        "Validated %d ticket(s): %d error(s), %d warning(s)",
        len(export.tickets), len(result.errors), len(result.warnings),
    )
    return result
