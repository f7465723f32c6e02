"""Threshold rules that turn ticket statistics into achievements and improvement areas.

Each rule is a pure function ``(tickets, epics, thresholds) -> item | None``
so rules can be tested, reordered or replaced independently.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from ticket_insights.core.aggregation import CLOSED_STATUSES, is_closed
from ticket_insights.core.data_models import (
    Achievement,
    DerivedTicket,
    Epic,
    ImprovementArea,
    Severity,
)


@dataclass(frozen=True)
class HeuristicThresholds:
    """Tunable limits used by the rules below (percentages are 0-100)."""

    closed_statuses: frozenset[str] = CLOSED_STATUSES
    sprint_change_limit: int = 3
    sprint_change_high_pct: float = 15.0
    sprint_change_medium_pct: float = 8.0
    long_duration_days: int = 30
    long_duration_high_pct: float = 20.0
    long_duration_medium_pct: float = 10.0
    quality_max_escaped_pct: float = 20.0
    escaped_warning_pct: float = 30.0
    escaped_high_pct: float = 50.0


DEFAULT_THRESHOLDS = HeuristicThresholds()

AchievementRule = Callable[
    [Sequence[DerivedTicket], Sequence[Epic], HeuristicThresholds], Achievement | None
]
ImprovementRule = Callable[
    [Sequence[DerivedTicket], Sequence[Epic], HeuristicThresholds], ImprovementArea | None
]


def _fmt_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def is_bug(ticket: DerivedTicket) -> bool:
    return ticket.issue_type.lower() == "bug"


def escaped_bug_ratio(tickets: Sequence[DerivedTicket]) -> float | None:
    """Percentage of bugs flagged as escaped, or None when there are no bugs."""
    bugs = sum(1 for t in tickets if is_bug(t))
    if not bugs:
        return None
    escaped = sum(1 for t in tickets if t.is_escaped_bug)
    return escaped / bugs * 100


# -- achievements -------------------------------------------------------------


def story_points_delivered(
    tickets: Sequence[DerivedTicket], epics: Sequence[Epic], thresholds: HeuristicThresholds
) -> Achievement | None:
    total = sum(t.story_points for t in tickets)
    if total <= 0:
        return None
    value = _fmt_number(total)
    return Achievement(
        title="Story Points Delivered",
        description=f"Team delivered {value} story points across all completed work",
        value=value,
        icon="\U0001f3af",
        category="performance",
    )


def epics_completed(
    tickets: Sequence[DerivedTicket], epics: Sequence[Epic], thresholds: HeuristicThresholds
) -> Achievement | None:
    done = sum(1 for e in epics if e.ticket_count > 0 and e.completed_tickets == e.ticket_count)
    if not done:
        return None
    plural = "s" if done > 1 else ""
    return Achievement(
        title="Epics Completed",
        description=f"Successfully completed {done} epic{plural}",
        value=str(done),
        icon="\U0001f3c6",
        category="milestone",
    )


def tickets_completed(
    tickets: Sequence[DerivedTicket], epics: Sequence[Epic], thresholds: HeuristicThresholds
) -> Achievement | None:
    closed = sum(1 for t in tickets if is_closed(t.status, thresholds.closed_statuses))
    if not closed:
        return None
    return Achievement(
        title="Tickets Completed",
        description=f"Closed {closed} tickets during this period",
        value=str(closed),
        icon="✅",
        category="performance",
    )


def quality_focus(
    tickets: Sequence[DerivedTicket], epics: Sequence[Epic], thresholds: HeuristicThresholds
) -> Achievement | None:
    ratio = escaped_bug_ratio(tickets)
    if ratio is None or ratio >= thresholds.quality_max_escaped_pct:
        return None
    return Achievement(
        title="Quality Focus",
        description=f"Only {ratio:.1f}% of bugs were found externally",
        value=f"{100 - ratio:.1f}%",
        icon="\U0001f6e1️",
        category="quality",
    )


# -- improvement areas --------------------------------------------------------


def _severity(pct: float, high: float, medium: float) -> Severity:
    if pct > high:
        return "high"
    if pct > medium:
        return "medium"
    return "low"


def sprint_stability(
    tickets: Sequence[DerivedTicket], epics: Sequence[Epic], thresholds: HeuristicThresholds
) -> ImprovementArea | None:
    limit = thresholds.sprint_change_limit
    moved = sum(1 for t in tickets if t.sprint_count > limit)
    if not moved:
        return None
    pct = moved / len(tickets) * 100
    return ImprovementArea(
        title="Sprint Stability",
        description=f"{moved} tickets ({pct:.1f}%) moved across more than {limit} sprints",
        suggestion=(
            "Consider improving sprint planning and scope definition to reduce ticket movement"
        ),
        severity=_severity(
            pct, thresholds.sprint_change_high_pct, thresholds.sprint_change_medium_pct
        ),
        category="process",
    )


def ticket_duration(
    tickets: Sequence[DerivedTicket], epics: Sequence[Epic], thresholds: HeuristicThresholds
) -> ImprovementArea | None:
    days = thresholds.long_duration_days
    slow = sum(1 for t in tickets if t.duration is not None and t.duration > days)
    if not slow:
        return None
    pct = slow / len(tickets) * 100
    return ImprovementArea(
        title="Ticket Duration",
        description=f"{slow} tickets ({pct:.1f}%) took more than {days} days to complete",
        suggestion=(
            "Consider breaking down large tickets or identifying blockers that cause delays"
        ),
        severity=_severity(
            pct, thresholds.long_duration_high_pct, thresholds.long_duration_medium_pct
        ),
        category="efficiency",
    )


def bug_detection(
    tickets: Sequence[DerivedTicket], epics: Sequence[Epic], thresholds: HeuristicThresholds
) -> ImprovementArea | None:
    ratio = escaped_bug_ratio(tickets)
    if ratio is None or ratio <= thresholds.escaped_warning_pct:
        return None
    return ImprovementArea(
        title="Bug Detection",
        description=f"{ratio:.1f}% of bugs were found externally (UAT, production, etc.)",
        suggestion="Consider strengthening testing processes and code review practices",
        severity="high" if ratio > thresholds.escaped_high_pct else "medium",
        category="quality",
    )


ACHIEVEMENT_RULES: tuple[AchievementRule, ...] = (
    story_points_delivered,
    epics_completed,
    tickets_completed,
    quality_focus,
)

IMPROVEMENT_RULES: tuple[ImprovementRule, ...] = (
    sprint_stability,
    ticket_duration,
    bug_detection,
)
