"""Epic aggregation, team extraction, and date range over derived tickets."""

from __future__ import annotations

import logging
from collections.abc import Collection, Sequence
from datetime import datetime, timezone

from ticket_insights.core.data_models import (
    DateRange,
    DerivedTicket,
    Epic,
    ProcessedData,
    RawExport,
    RawTicket,
)
from ticket_insights.core.transformer import ESCAPED_BUG_INDICATORS, transform_tickets

logger = logging.getLogger(__name__)

CLOSED_STATUSES: frozenset[str] = frozenset({"done", "closed", "resolved"})


def is_closed(status: str, closed_statuses: Collection[str] = CLOSED_STATUSES) -> bool:
    return status.lower() in closed_statuses


def build_epics(
    tickets: Sequence[DerivedTicket],
    raw_tickets: Sequence[RawTicket],
    closed_statuses: Collection[str] = CLOSED_STATUSES,
) -> list[Epic]:
    """Aggregate tickets into epics keyed by parent key.

    Epics come from Epic-typed tickets first, then from any raw ticket that
    names both a parent key and a parent summary.  Only epics with at least
    one member are returned.
    """
    epics: dict[str, Epic] = {}

    for ticket in tickets:
        if ticket.issue_type.lower() == "epic":
            epics[ticket.key] = Epic(key=ticket.key, name=ticket.summary)

    for raw in raw_tickets:
        if raw.parent_key and raw.parent_summary and raw.parent_key not in epics:
            epics[raw.parent_key] = Epic(key=raw.parent_key, name=raw.parent_summary)

    for ticket in tickets:
        epic = epics.get(ticket.parent_key) if ticket.parent_key else None
        if epic is None:
            continue
        epic.ticket_count += 1
        epic.total_story_points += ticket.story_points
        if is_closed(ticket.status, closed_statuses):
            epic.completed_tickets += 1

    populated = [e for e in epics.values() if e.ticket_count > 0]
    logger.debug("Built %d epic(s), %d with members", len(epics), len(populated))
    return populated


def extract_teams(raw_tickets: Sequence[RawTicket]) -> list[str]:
    """Distinct team labels, splitting comma-joined values, sorted."""
    teams: set[str] = set()
    for raw in raw_tickets:
        if not raw.team:
            continue
        teams.update(t.strip() for t in raw.team.split(",") if t.strip())
    return sorted(teams)


def calculate_date_range(
    tickets: Sequence[DerivedTicket], now: datetime | None = None
) -> DateRange:
    """Span of every created and resolved instant; ``now`` when empty."""
    instants = [t.created_date for t in tickets]
    instants.extend(t.resolved_date for t in tickets if t.resolved_date is not None)
    if not instants:
        now = now or datetime.now(tz=timezone.utc)
        return DateRange(start=now, end=now)
    return DateRange(start=min(instants), end=max(instants))


def transform_raw_export(
    export: RawExport,
    closed_statuses: Collection[str] = CLOSED_STATUSES,
    indicators: Sequence[str] = ESCAPED_BUG_INDICATORS,
) -> ProcessedData:
    """Derive tickets and build epics, teams and the date range."""
    tickets = transform_tickets(export.tickets, indicators)
    data = ProcessedData(
        tickets=tickets,
        epics=build_epics(tickets, export.tickets, closed_statuses),
        teams=extract_teams(export.tickets),
        date_range=calculate_date_range(tickets),
    )
    logger.info(
        "Transformed %d ticket(s) into %d epic(s) across %d team(s)",
        len(data.tickets), len(data.epics), len(data.teams),
    )
    return data
