"""Per-ticket derived metrics: duration, sprint count, escaped bugs."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone

from dateutil.parser import isoparse

from ticket_insights.core.data_models import DerivedTicket, RawTicket

logger = logging.getLogger(__name__)

# Substrings of an origin type that mark a bug as found outside development.
ESCAPED_BUG_INDICATORS: tuple[str, ...] = (
    "regression testing",
    "uat",
    "user acceptance testing",
    "production",
    "customer",
    "external",
    "qa",
    "testing",
)

_SECONDS_PER_DAY = 86400


def parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 string from the normalizer into an aware UTC datetime."""
    dt = isoparse(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _optional_instant(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return parse_instant(value)
    except (ValueError, OverflowError):
        logger.debug("Ignoring unparseable resolved date %r", value)
        return None


def calculate_duration(created: datetime, resolved: datetime | None) -> int | None:
    """Whole days from *created* to *resolved*, rounded up and never negative."""
    if resolved is None:
        return None
    days = math.ceil((resolved - created).total_seconds() / _SECONDS_PER_DAY)
    return max(0, days)


def count_sprints(sprints: Iterable[str]) -> int:
    return len({s.strip() for s in sprints if s and s.strip()})


def is_escaped_bug(
    issue_type: str,
    origin_ticket_type: str | None,
    indicators: Sequence[str] = ESCAPED_BUG_INDICATORS,
) -> bool:
    if issue_type.lower() != "bug" or not origin_ticket_type:
        return False
    origin = origin_ticket_type.lower()
    return any(indicator in origin for indicator in indicators)


def normalize_story_points(value: float | None) -> float:
    if value is None or math.isnan(value):
        return 0.0
    return max(0.0, value)


def transform_ticket(
    raw: RawTicket,
    indicators: Sequence[str] = ESCAPED_BUG_INDICATORS,
) -> DerivedTicket:
    """Compute the derived metrics of one ticket."""
    created = parse_instant(raw.created)
    resolved = _optional_instant(raw.resolved)

    return DerivedTicket(
        key=raw.key,
        summary=raw.summary,
        issue_type=raw.issue_type,
        status=raw.status,
        parent_key=raw.parent_key,
        story_points=normalize_story_points(raw.story_points),
        created_date=created,
        resolved_date=resolved,
        duration=calculate_duration(created, resolved),
        sprint_count=count_sprints(raw.sprints),
        is_escaped_bug=is_escaped_bug(raw.issue_type, raw.origin_ticket_type, indicators),
        summary_length=len(raw.summary),
        parent=raw.parent,
        parent_summary=raw.parent_summary,
        team=raw.team,
        origin_ticket_type=raw.origin_ticket_type,
    )


def transform_tickets(
    raws: Iterable[RawTicket],
    indicators: Sequence[str] = ESCAPED_BUG_INDICATORS,
) -> list[DerivedTicket]:
    """Transform every ticket; a ticket whose dates fail to parse is skipped."""
    derived: list[DerivedTicket] = []
    for raw in raws:
        try:
            derived.append(transform_ticket(raw, indicators))
        except (ValueError, OverflowError) as exc:
            logger.warning("Skipping ticket %s: %s", raw.key, exc)
    logger.debug("Transformed %d ticket(s)", len(derived))
    return derived
