"""Rankings, extremal tickets, busiest days, bug trends and heuristics."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Collection, Iterable, Sequence
from datetime import date, datetime, timezone

from ticket_insights.core.aggregation import CLOSED_STATUSES, is_closed
from ticket_insights.core.data_models import (
    Achievement,
    BugInsights,
    BugStats,
    DayStatistic,
    DerivedTicket,
    Epic,
    EpicInsights,
    EscapedBugStats,
    ImprovementArea,
    InsightsBundle,
    InsightsMetadata,
    MonthlyTrendPoint,
    ProcessedData,
    StatusCount,
    TicketInsights,
)
from ticket_insights.core.errors import EmptyTicketSetError
from ticket_insights.core.heuristics import (
    ACHIEVEMENT_RULES,
    DEFAULT_THRESHOLDS,
    IMPROVEMENT_RULES,
    AchievementRule,
    HeuristicThresholds,
    ImprovementRule,
    is_bug,
)

logger = logging.getLogger(__name__)

TOP_EPICS = 3
TOP_DAYS = 5

_MONTHS_FULL = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


# -- epic rankings ------------------------------------------------------------


def rank_epics_by_ticket_count(epics: Iterable[Epic], limit: int = TOP_EPICS) -> list[Epic]:
    return sorted(epics, key=lambda e: (-e.ticket_count, e.key))[:limit]


def rank_epics_by_story_points(epics: Iterable[Epic], limit: int = TOP_EPICS) -> list[Epic]:
    return sorted(epics, key=lambda e: (-e.total_story_points, e.key))[:limit]


# -- extremal tickets ---------------------------------------------------------
# Ties always go to the alphabetically smallest key.


def _require(tickets: Sequence[DerivedTicket]) -> None:
    if not tickets:
        raise EmptyTicketSetError()


def find_most_sprint_changes(tickets: Sequence[DerivedTicket]) -> DerivedTicket:
    _require(tickets)
    return min(tickets, key=lambda t: (-t.sprint_count, t.key))


def find_longest_duration(tickets: Sequence[DerivedTicket]) -> DerivedTicket | None:
    """Longest resolved ticket, or None when no ticket has a duration."""
    resolved = [t for t in tickets if t.duration is not None]
    if not resolved:
        return None
    return min(resolved, key=lambda t: (-(t.duration or 0), t.key))


def find_longest_summary(tickets: Sequence[DerivedTicket]) -> DerivedTicket:
    _require(tickets)
    return min(tickets, key=lambda t: (-t.summary_length, t.key))


def find_shortest_summary(tickets: Sequence[DerivedTicket]) -> DerivedTicket:
    _require(tickets)
    return min(tickets, key=lambda t: (t.summary_length, t.key))


# -- busiest days -------------------------------------------------------------


def _utc_day(value: datetime) -> date:
    return value.astimezone(timezone.utc).date()


def _busiest_days(days: Iterable[date], limit: int) -> list[DayStatistic]:
    counts = Counter(days)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], -item[0].toordinal()))
    return [DayStatistic(date=day, count=count) for day, count in ranked[:limit]]


def busiest_creation_days(
    tickets: Iterable[DerivedTicket], limit: int = TOP_DAYS
) -> list[DayStatistic]:
    """Days with the most tickets created; ties favour the more recent day."""
    return _busiest_days((_utc_day(t.created_date) for t in tickets), limit)


def busiest_closure_days(
    tickets: Iterable[DerivedTicket], limit: int = TOP_DAYS
) -> list[DayStatistic]:
    """Days with the most tickets resolved; ties favour the more recent day."""
    return _busiest_days(
        (_utc_day(t.resolved_date) for t in tickets if t.resolved_date is not None), limit
    )


# -- bug trends and statistics ------------------------------------------------


def _month_key(value: datetime) -> tuple[int, int]:
    value = value.astimezone(timezone.utc)
    return value.year, value.month


def calculate_monthly_trends(bugs: Iterable[DerivedTicket]) -> list[MonthlyTrendPoint]:
    """Created/closed counts per month with a running open balance.

    The open balance is floored at zero month by month, so a month that
    closes more than it opens resets the balance rather than carrying a
    deficit forward.
    """
    created: Counter[tuple[int, int]] = Counter()
    closed: Counter[tuple[int, int]] = Counter()
    for bug in bugs:
        created[_month_key(bug.created_date)] += 1
        if bug.resolved_date is not None:
            closed[_month_key(bug.resolved_date)] += 1

    points: list[MonthlyTrendPoint] = []
    open_count = 0
    for year, month in sorted(set(created) | set(closed)):
        c, d = created[(year, month)], closed[(year, month)]
        open_count = max(0, open_count + c - d)
        points.append(
            MonthlyTrendPoint(
                month=_MONTHS_FULL[month - 1],
                year=year,
                created=c,
                closed=d,
                cumulative_open=open_count,
            )
        )
    return points


def average_resolution_time(closed_bugs: Iterable[DerivedTicket]) -> int | None:
    durations = [b.duration for b in closed_bugs if b.duration is not None]
    if not durations:
        return None
    return _round_half_up(sum(durations) / len(durations))


def _round_half_up(value: float) -> int:
    # .5 rounds up, unlike round().
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def calculate_bug_stats(
    bugs: Sequence[DerivedTicket], closed_statuses: Collection[str] = CLOSED_STATUSES
) -> BugStats:
    closed = [b for b in bugs if is_closed(b.status, closed_statuses)]
    return BugStats(
        total_created=len(bugs),
        total_closed=len(closed),
        total_open=len(bugs) - len(closed),
        average_resolution_time=average_resolution_time(closed),
    )


def calculate_escaped_bug_stats(
    escaped: Sequence[DerivedTicket],
    all_bug_count: int,
    closed_statuses: Collection[str] = CLOSED_STATUSES,
) -> EscapedBugStats:
    closed = sum(1 for b in escaped if is_closed(b.status, closed_statuses))
    pct = _round_half_up(len(escaped) / all_bug_count * 100) if all_bug_count else 0
    return EscapedBugStats(
        total_created=len(escaped),
        total_closed=closed,
        total_open=len(escaped) - closed,
        percentage_of_all_bugs=pct,
    )


def find_oldest_open_bug(open_bugs: Sequence[DerivedTicket]) -> DerivedTicket | None:
    if not open_bugs:
        return None
    return min(open_bugs, key=lambda b: (b.created_date, b.key))


def find_most_recent_bug(bugs: Sequence[DerivedTicket]) -> DerivedTicket | None:
    if not bugs:
        return None
    latest = max(b.created_date for b in bugs)
    return min((b for b in bugs if b.created_date == latest), key=lambda b: b.key)


def count_bugs_by_status(bugs: Iterable[DerivedTicket]) -> list[StatusCount]:
    """Bug count per literal status, most common first."""
    counts = Counter(b.status for b in bugs)
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    return [StatusCount(status=status, count=count) for status, count in ranked]


# -- engine -------------------------------------------------------------------


class InsightsEngine:
    """Compute an :class:`InsightsBundle` from processed ticket data.

    Thresholds, rule sets and list sizes are constructor inputs so callers
    can run the same data through alternate tables.
    """

    def __init__(
        self,
        thresholds: HeuristicThresholds = DEFAULT_THRESHOLDS,
        achievement_rules: Sequence[AchievementRule] = ACHIEVEMENT_RULES,
        improvement_rules: Sequence[ImprovementRule] = IMPROVEMENT_RULES,
        top_epics: int = TOP_EPICS,
        top_days: int = TOP_DAYS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._thresholds = thresholds
        self._achievement_rules = tuple(achievement_rules)
        self._improvement_rules = tuple(improvement_rules)
        self._top_epics = top_epics
        self._top_days = top_days
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))

    @property
    def thresholds(self) -> HeuristicThresholds:
        return self._thresholds

    # -- public API -----------------------------------------------------------

    def generate_all_insights(self, data: ProcessedData) -> InsightsBundle:
        """Run every insight over *data*.

        Raises :class:`EmptyTicketSetError` when *data* holds no tickets.
        """
        bundle = InsightsBundle(
            epic=self.generate_epic_insights(data),
            ticket=self.generate_ticket_insights(data),
            bug=self.generate_bug_insights(data),
            achievements=self.generate_achievements(data),
            improvement_areas=self.generate_improvement_areas(data),
            metadata=InsightsMetadata(
                generated_at=self._clock(),
                total_tickets=len(data.tickets),
                date_range=data.date_range,
            ),
        )
        logger.info(
            "Generated insights for %d ticket(s): %d achievement(s), %d improvement area(s)",
            len(data.tickets), len(bundle.achievements), len(bundle.improvement_areas),
        )
        return bundle

    def generate_epic_insights(self, data: ProcessedData) -> EpicInsights:
        return EpicInsights(
            top_by_ticket_count=rank_epics_by_ticket_count(data.epics, self._top_epics),
            top_by_story_points=rank_epics_by_story_points(data.epics, self._top_epics),
        )

    def generate_ticket_insights(self, data: ProcessedData) -> TicketInsights:
        tickets = data.tickets
        _require(tickets)
        return TicketInsights(
            most_sprint_changes=find_most_sprint_changes(tickets),
            longest_duration=find_longest_duration(tickets),
            longest_summary=find_longest_summary(tickets),
            shortest_summary=find_shortest_summary(tickets),
            busiest_creation_days=busiest_creation_days(tickets, self._top_days),
            busiest_closure_days=busiest_closure_days(tickets, self._top_days),
        )

    def generate_bug_insights(self, data: ProcessedData) -> BugInsights:
        closed_statuses = self._thresholds.closed_statuses
        all_bugs = [t for t in data.tickets if is_bug(t)]
        escaped = [t for t in data.tickets if t.is_escaped_bug]
        open_bugs = [b for b in all_bugs if not is_closed(b.status, closed_statuses)]
        logger.debug("Bug insights over %d bug(s), %d escaped", len(all_bugs), len(escaped))

        return BugInsights(
            all_bug_stats=calculate_bug_stats(all_bugs, closed_statuses),
            escaped_bug_stats=calculate_escaped_bug_stats(escaped, len(all_bugs), closed_statuses),
            monthly_trends=calculate_monthly_trends(escaped),
            all_bug_monthly_trends=calculate_monthly_trends(all_bugs),
            oldest_open_bug=find_oldest_open_bug(open_bugs),
            most_recent_bug=find_most_recent_bug(all_bugs),
            bugs_by_status=count_bugs_by_status(all_bugs),
        )

    def generate_achievements(self, data: ProcessedData) -> list[Achievement]:
        results = (rule(data.tickets, data.epics, self._thresholds) for rule in self._achievement_rules)
        return [r for r in results if r is not None]

    def generate_improvement_areas(self, data: ProcessedData) -> list[ImprovementArea]:
        results = (rule(data.tickets, data.epics, self._thresholds) for rule in self._improvement_rules)
        return [r for r in results if r is not None]


def generate_all_insights(data: ProcessedData) -> InsightsBundle:
    """Shortcut for ``InsightsEngine().generate_all_insights(data)``."""
    return InsightsEngine().generate_all_insights(data)
