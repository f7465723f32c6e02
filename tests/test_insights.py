"""Tests for ticket_insights.core.insights."""

from __future__ import annotations

import itertools
from datetime import date, datetime, timezone

import pytest

from ticket_insights.core.data_models import DateRange, DerivedTicket, Epic, ProcessedData
from ticket_insights.core.errors import EmptyTicketSetError
from ticket_insights.core.insights import (
    InsightsEngine,
    busiest_closure_days,
    busiest_creation_days,
    calculate_bug_stats,
    calculate_escaped_bug_stats,
    calculate_monthly_trends,
    count_bugs_by_status,
    find_longest_duration,
    find_longest_summary,
    find_most_recent_bug,
    find_most_sprint_changes,
    find_oldest_open_bug,
    find_shortest_summary,
    rank_epics_by_story_points,
    rank_epics_by_ticket_count,
)


def _dt(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def _make_ticket(
    key: str = "ABC-1",
    issue_type: str = "Story",
    status: str = "Open",
    summary: str | None = None,
    created: datetime | None = None,
    resolved: datetime | None = None,
    duration: int | None = None,
    sprint_count: int = 0,
    escaped: bool = False,
    story_points: float = 0.0,
) -> DerivedTicket:
    summary = summary if summary is not None else f"Ticket {key}"
    if duration is None and resolved is not None and created is not None:
        duration = max(0, (resolved - created).days)
    return DerivedTicket(
        key=key,
        summary=summary,
        issue_type=issue_type,
        status=status,
        parent_key=None,
        story_points=story_points,
        created_date=created or _dt(2024, 1, 1),
        resolved_date=resolved,
        duration=duration,
        sprint_count=sprint_count,
        is_escaped_bug=escaped,
        summary_length=len(summary),
    )


def _make_data(tickets: list[DerivedTicket], epics: list[Epic] | None = None) -> ProcessedData:
    return ProcessedData(
        tickets=tickets,
        epics=epics or [],
        teams=[],
        date_range=DateRange(start=_dt(2024, 1, 1), end=_dt(2024, 6, 1)),
    )


class TestEpicRankings:
    """Rankings are deterministic regardless of input order."""

    EPICS = [
        Epic(key="E-3", name="c", ticket_count=5, total_story_points=10),
        Epic(key="E-1", name="a", ticket_count=5, total_story_points=20),
        Epic(key="E-2", name="b", ticket_count=7, total_story_points=10),
        Epic(key="E-4", name="d", ticket_count=1, total_story_points=1),
    ]

    def test_by_ticket_count(self) -> None:
        assert [e.key for e in rank_epics_by_ticket_count(self.EPICS)] == ["E-2", "E-1", "E-3"]

    def test_by_story_points(self) -> None:
        assert [e.key for e in rank_epics_by_story_points(self.EPICS)] == ["E-1", "E-2", "E-3"]

    def test_permutation_invariance(self) -> None:
        expected_count = rank_epics_by_ticket_count(self.EPICS)
        expected_points = rank_epics_by_story_points(self.EPICS)
        for perm in itertools.permutations(self.EPICS):
            assert rank_epics_by_ticket_count(perm) == expected_count
            assert rank_epics_by_story_points(perm) == expected_points

    def test_limit(self) -> None:
        assert len(rank_epics_by_ticket_count(self.EPICS, limit=2)) == 2


class TestExtremalTickets:
    def test_most_sprint_changes_tie_goes_to_smallest_key(self) -> None:
        tickets = [
            _make_ticket("ABC-9", sprint_count=4),
            _make_ticket("ABC-2", sprint_count=4),
            _make_ticket("ABC-1", sprint_count=1),
        ]
        assert find_most_sprint_changes(tickets).key == "ABC-2"

    def test_longest_duration(self) -> None:
        tickets = [
            _make_ticket("ABC-1", duration=3),
            _make_ticket("ABC-2", duration=10),
            _make_ticket("ABC-3"),
        ]
        assert find_longest_duration(tickets).key == "ABC-2"  # type: ignore[union-attr]

    def test_longest_duration_none_when_unresolved(self) -> None:
        assert find_longest_duration([_make_ticket()]) is None

    def test_summaries(self) -> None:
        tickets = [
            _make_ticket("ABC-1", summary="medium text"),
            _make_ticket("ABC-2", summary="a much longer summary"),
            _make_ticket("ABC-3", summary="tiny"),
            _make_ticket("ABC-4", summary="tiny"),
        ]
        assert find_longest_summary(tickets).key == "ABC-2"
        assert find_shortest_summary(tickets).key == "ABC-3"

    def test_empty_set_raises(self) -> None:
        with pytest.raises(EmptyTicketSetError):
            find_most_sprint_changes([])
        with pytest.raises(EmptyTicketSetError):
            find_longest_summary([])


class TestBusiestDays:
    def test_creation_days_ranked(self) -> None:
        tickets = [
            _make_ticket("A-1", created=_dt(2024, 1, 1, 9)),
            _make_ticket("A-2", created=_dt(2024, 1, 1, 17)),
            _make_ticket("A-3", created=_dt(2024, 1, 2)),
            _make_ticket("A-4", created=_dt(2024, 1, 3)),
        ]
        days = busiest_creation_days(tickets)
        assert days[0].date == date(2024, 1, 1)
        assert days[0].count == 2
        # Ties favour the more recent day.
        assert [d.date for d in days[1:]] == [date(2024, 1, 3), date(2024, 1, 2)]

    def test_closure_days_skip_unresolved(self) -> None:
        tickets = [
            _make_ticket("A-1", resolved=_dt(2024, 2, 1)),
            _make_ticket("A-2"),
        ]
        days = busiest_closure_days(tickets)
        assert [(d.date, d.count) for d in days] == [(date(2024, 2, 1), 1)]

    def test_limit(self) -> None:
        tickets = [_make_ticket(f"A-{i}", created=_dt(2024, 1, i + 1)) for i in range(8)]
        assert len(busiest_creation_days(tickets, limit=5)) == 5


class TestMonthlyTrends:
    """Created/closed per month with a non-negative running open balance."""

    def _bugs(self) -> list[DerivedTicket]:
        return [
            _make_ticket("B-1", "Bug", created=_dt(2024, 1, 5), resolved=_dt(2024, 3, 2)),
            _make_ticket("B-2", "Bug", created=_dt(2024, 1, 20)),
            _make_ticket("B-3", "Bug", created=_dt(2024, 2, 10), resolved=_dt(2024, 3, 1)),
            _make_ticket("B-4", "Bug", created=_dt(2023, 12, 1), resolved=_dt(2024, 3, 15)),
        ]

    def test_months_in_order(self) -> None:
        points = calculate_monthly_trends(self._bugs())
        assert [(p.month, p.year) for p in points] == [
            ("December", 2023),
            ("January", 2024),
            ("February", 2024),
            ("March", 2024),
        ]
        assert [(p.created, p.closed) for p in points] == [(1, 0), (2, 0), (1, 0), (0, 3)]

    def test_cumulative_identity(self) -> None:
        points = calculate_monthly_trends(self._bugs())
        previous = 0
        for point in points:
            assert point.cumulative_open == max(0, previous + point.created - point.closed)
            previous = point.cumulative_open
        assert [p.cumulative_open for p in points] == [1, 3, 4, 1]

    def test_floor_at_zero(self) -> None:
        bugs = [
            _make_ticket("B-1", "Bug", created=_dt(2024, 1, 1), resolved=_dt(2024, 1, 2)),
            _make_ticket("B-2", "Bug", created=_dt(2023, 11, 1), resolved=_dt(2024, 2, 1)),
            _make_ticket("B-3", "Bug", created=_dt(2023, 10, 1), resolved=_dt(2024, 2, 1)),
        ]
        points = calculate_monthly_trends(bugs)
        assert all(p.cumulative_open >= 0 for p in points)
        assert points[-1].cumulative_open == 0

    def test_empty(self) -> None:
        assert calculate_monthly_trends([]) == []


class TestBugStatistics:
    def test_bug_stats(self) -> None:
        bugs = [
            _make_ticket("B-1", "Bug", status="Done", duration=1),
            _make_ticket("B-2", "Bug", status="Closed", duration=2),
            _make_ticket("B-3", "Bug", status="Open"),
        ]
        stats = calculate_bug_stats(bugs)
        assert stats.total_created == 3
        assert stats.total_closed == 2
        assert stats.total_open == 1
        assert stats.average_resolution_time == 2  # 1.5 rounds half up

    def test_average_none_without_durations(self) -> None:
        stats = calculate_bug_stats([_make_ticket("B-1", "Bug", status="Done")])
        assert stats.average_resolution_time is None

    def test_escaped_stats(self) -> None:
        escaped = [_make_ticket("B-1", "Bug", status="Done", escaped=True)]
        stats = calculate_escaped_bug_stats(escaped, all_bug_count=3)
        assert stats.total_created == 1
        assert stats.total_closed == 1
        assert stats.total_open == 0
        assert stats.percentage_of_all_bugs == 33

    def test_escaped_stats_without_bugs(self) -> None:
        assert calculate_escaped_bug_stats([], all_bug_count=0).percentage_of_all_bugs == 0

    def test_oldest_open_and_most_recent(self) -> None:
        bugs = [
            _make_ticket("B-2", "Bug", created=_dt(2024, 1, 1)),
            _make_ticket("B-1", "Bug", created=_dt(2024, 1, 1)),
            _make_ticket("B-3", "Bug", created=_dt(2024, 5, 1)),
            _make_ticket("B-4", "Bug", created=_dt(2024, 5, 1)),
        ]
        assert find_oldest_open_bug(bugs).key == "B-1"  # type: ignore[union-attr]
        assert find_most_recent_bug(bugs).key == "B-3"  # type: ignore[union-attr]
        assert find_oldest_open_bug([]) is None
        assert find_most_recent_bug([]) is None

    def test_bugs_by_status(self) -> None:
        bugs = [
            _make_ticket("B-1", "Bug", status="Open"),
            _make_ticket("B-2", "Bug", status="Done"),
            _make_ticket("B-3", "Bug", status="Done"),
        ]
        assert [(s.status, s.count) for s in count_bugs_by_status(bugs)] == [("Done", 2), ("Open", 1)]


class TestInsightsEngine:
    def _engine(self, **kwargs: object) -> InsightsEngine:
        return InsightsEngine(clock=lambda: _dt(2024, 7, 1), **kwargs)  # type: ignore[arg-type]

    def test_generate_all_insights(self) -> None:
        tickets = [
            _make_ticket("ABC-1", "Story", status="Done", story_points=5,
                         created=_dt(2024, 1, 1), resolved=_dt(2024, 1, 4)),
            _make_ticket("ABC-2", "Bug", status="Open", escaped=True, created=_dt(2024, 2, 1)),
            _make_ticket("ABC-3", "Bug", status="Done", created=_dt(2024, 2, 2), resolved=_dt(2024, 2, 3)),
        ]
        epics = [Epic(key="ABC-100", name="Epic", ticket_count=1, total_story_points=5, completed_tickets=1)]
        bundle = self._engine().generate_all_insights(_make_data(tickets, epics))

        assert bundle.metadata.total_tickets == 3
        assert bundle.metadata.generated_at == _dt(2024, 7, 1)
        assert [e.key for e in bundle.epic.top_by_ticket_count] == ["ABC-100"]
        assert bundle.ticket.longest_duration.key == "ABC-1"  # type: ignore[union-attr]
        assert bundle.bug.all_bug_stats.total_created == 2
        assert bundle.bug.escaped_bug_stats.percentage_of_all_bugs == 50
        assert bundle.bug.oldest_open_bug.key == "ABC-2"  # type: ignore[union-attr]
        assert [a.title for a in bundle.achievements] == [
            "Story Points Delivered",
            "Epics Completed",
            "Tickets Completed",
        ]
        assert [i.title for i in bundle.improvement_areas] == ["Bug Detection"]

    def test_custom_rules(self) -> None:
        engine = self._engine(achievement_rules=(), improvement_rules=())
        bundle = engine.generate_all_insights(_make_data([_make_ticket(story_points=3)]))
        assert bundle.achievements == []
        assert bundle.improvement_areas == []

    def test_top_days_setting(self) -> None:
        tickets = [_make_ticket(f"A-{i}", created=_dt(2024, 1, i + 1)) for i in range(6)]
        insights = self._engine(top_days=2).generate_ticket_insights(_make_data(tickets))
        assert len(insights.busiest_creation_days) == 2

    def test_empty_data_raises(self) -> None:
        with pytest.raises(EmptyTicketSetError, match="No tickets available"):
            self._engine().generate_all_insights(_make_data([]))
