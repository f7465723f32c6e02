"""Data models for Ticket Insights."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal, Union

# A single decoded spreadsheet/CSV cell.
CellValue = Union[str, int, float, datetime, date, None]


@dataclass
class RawTicket:
    """A ticket as read from one export row, before any derivation."""

    key: str
    summary: str
    issue_type: str
    status: str
    created: str  # ISO-8601
    sprints: list[str] = field(default_factory=list)
    parent: str | None = None
    parent_key: str | None = None
    parent_summary: str | None = None
    team: str | None = None
    story_points: float | None = None
    resolved: str | None = None
    origin_ticket_type: str | None = None


@dataclass
class ExportMetadata:
    """Per-file facts collected while normalizing rows."""

    export_date: str
    project_keys: list[str] = field(default_factory=list)


@dataclass
class RawExport:
    """All tickets parsed from one source plus its metadata."""

    tickets: list[RawTicket]
    metadata: ExportMetadata


@dataclass
class DerivedTicket:
    """A ticket with computed metrics."""

    key: str
    summary: str
    issue_type: str
    status: str
    parent_key: str | None
    story_points: float
    created_date: datetime
    resolved_date: datetime | None
    duration: int | None  # whole days, None while unresolved
    sprint_count: int
    is_escaped_bug: bool
    summary_length: int
    parent: str | None = None
    parent_summary: str | None = None
    team: str | None = None
    origin_ticket_type: str | None = None


@dataclass
class Epic:
    """Aggregated totals for a parent grouping."""

    key: str
    name: str
    ticket_count: int = 0
    total_story_points: float = 0.0
    completed_tickets: int = 0


@dataclass
class DateRange:
    start: datetime
    end: datetime


@dataclass
class ProcessedData:
    """Output of the transformation stage, input of the insights engine."""

    tickets: list[DerivedTicket]
    epics: list[Epic]
    teams: list[str]
    date_range: DateRange


@dataclass
class DayStatistic:
    date: date
    count: int


@dataclass
class MonthlyTrendPoint:
    month: str  # English month name, e.g. "January"
    year: int
    created: int
    closed: int
    cumulative_open: int


@dataclass
class StatusCount:
    status: str
    count: int


@dataclass
class BugStats:
    total_created: int = 0
    total_closed: int = 0
    total_open: int = 0
    average_resolution_time: int | None = None


@dataclass
class EscapedBugStats:
    total_created: int = 0
    total_closed: int = 0
    total_open: int = 0
    percentage_of_all_bugs: int = 0


@dataclass
class EpicInsights:
    top_by_ticket_count: list[Epic] = field(default_factory=list)
    top_by_story_points: list[Epic] = field(default_factory=list)


@dataclass
class TicketInsights:
    most_sprint_changes: DerivedTicket
    longest_duration: DerivedTicket | None
    longest_summary: DerivedTicket
    shortest_summary: DerivedTicket
    busiest_creation_days: list[DayStatistic] = field(default_factory=list)
    busiest_closure_days: list[DayStatistic] = field(default_factory=list)


@dataclass
class BugInsights:
    all_bug_stats: BugStats
    escaped_bug_stats: EscapedBugStats
    monthly_trends: list[MonthlyTrendPoint] = field(default_factory=list)
    all_bug_monthly_trends: list[MonthlyTrendPoint] = field(default_factory=list)
    oldest_open_bug: DerivedTicket | None = None
    most_recent_bug: DerivedTicket | None = None
    bugs_by_status: list[StatusCount] = field(default_factory=list)


AchievementCategory = Literal["milestone", "performance", "quality"]
Severity = Literal["low", "medium", "high"]
ImprovementCategory = Literal["process", "quality", "efficiency"]


@dataclass
class Achievement:
    title: str
    description: str
    value: str
    icon: str
    category: AchievementCategory


@dataclass
class ImprovementArea:
    title: str
    description: str
    suggestion: str
    severity: Severity
    category: ImprovementCategory


@dataclass
class InsightsMetadata:
    generated_at: datetime
    total_tickets: int
    date_range: DateRange


@dataclass
class InsightsBundle:
    """Everything the presentation layer needs for one uploaded source."""

    epic: EpicInsights
    ticket: TicketInsights
    bug: BugInsights
    achievements: list[Achievement]
    improvement_areas: list[ImprovementArea]
    metadata: InsightsMetadata


@dataclass
class ValidationResult:
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
