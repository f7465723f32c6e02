"""Tests for ticket_insights.core.transformer."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

from ticket_insights.core.data_models import RawTicket
from ticket_insights.core.transformer import (
    calculate_duration,
    count_sprints,
    is_escaped_bug,
    normalize_story_points,
    parse_instant,
    transform_ticket,
    transform_tickets,
)

_T0 = datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)


def _make_raw(**overrides: object) -> RawTicket:
    fields: dict[str, object] = {
        "key": "ABC-1",
        "summary": "Fix login",
        "issue_type": "Bug",
        "status": "Done",
        "created": "2024-01-15T08:00:00.000Z",
    }
    fields.update(overrides)
    return RawTicket(**fields)  # type: ignore[arg-type]


class TestCalculateDuration:
    """Whole days, rounded up, clamped at zero."""

    def test_unresolved(self) -> None:
        assert calculate_duration(_T0, None) is None

    def test_partial_day_rounds_up(self) -> None:
        assert calculate_duration(_T0, _T0 + timedelta(hours=8)) == 1

    def test_exact_days(self) -> None:
        assert calculate_duration(_T0, _T0 + timedelta(days=2)) == 2

    def test_same_instant(self) -> None:
        assert calculate_duration(_T0, _T0) == 0

    def test_resolved_before_created_clamps(self) -> None:
        assert calculate_duration(_T0, _T0 - timedelta(days=3)) == 0


class TestTicketMetrics:
    def test_count_sprints_dedups(self) -> None:
        assert count_sprints(["Sprint 1", "Sprint 1", " Sprint 2 ", ""]) == 2

    def test_count_sprints_empty(self) -> None:
        assert count_sprints([]) == 0

    @pytest.mark.parametrize(
        ("issue_type", "origin", "expected"),
        [
            ("Bug", "UAT", True),
            ("bug", "Found in Production", True),
            ("Bug", "Regression Testing", True),
            ("Bug", "Development", False),
            ("Bug", None, False),
            ("Story", "Production", False),
        ],
    )
    def test_is_escaped_bug(self, issue_type: str, origin: str | None, expected: bool) -> None:
        assert is_escaped_bug(issue_type, origin) is expected

    def test_custom_indicators(self) -> None:
        assert is_escaped_bug("Bug", "Pen test", indicators=("pen test",))
        assert not is_escaped_bug("Bug", "UAT", indicators=("pen test",))

    def test_normalize_story_points(self) -> None:
        assert normalize_story_points(None) == 0.0
        assert normalize_story_points(-2.0) == 0.0
        assert normalize_story_points(3.5) == 3.5


class TestTransformTicket:
    def test_parse_instant(self) -> None:
        assert parse_instant("2024-01-15T08:00:00.000Z") == _T0
        assert parse_instant("2024-01-15T08:00:00").tzinfo is not None

    def test_derived_fields(self) -> None:
        raw = _make_raw(
            resolved="2024-01-17T08:00:00.000Z",
            sprints=["S1", "S2", "S1"],
            story_points=5.0,
            origin_ticket_type="UAT",
            parent_key="ABC-100",
        )
        ticket = transform_ticket(raw)
        assert ticket.created_date == _T0
        assert ticket.duration == 2
        assert ticket.sprint_count == 2
        assert ticket.story_points == 5.0
        assert ticket.is_escaped_bug is True
        assert ticket.summary_length == len("Fix login")
        assert ticket.parent_key == "ABC-100"

    def test_unparseable_resolved_is_dropped(self) -> None:
        ticket = transform_ticket(_make_raw(resolved="not a date"))
        assert ticket.resolved_date is None
        assert ticket.duration is None

    def test_bad_created_skips_ticket(self, caplog: pytest.LogCaptureFixture) -> None:
        raws = [_make_raw(), _make_raw(key="ABC-2", created="garbage")]
        with caplog.at_level(logging.WARNING):
            derived = transform_tickets(raws)
        assert [t.key for t in derived] == ["ABC-1"]
        assert "Skipping ticket ABC-2" in caplog.text
