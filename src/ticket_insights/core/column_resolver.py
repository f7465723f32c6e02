"""Map free-text export headers onto canonical ticket fields."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from ticket_insights.core.errors import MissingColumnsError

logger = logging.getLogger(__name__)

# Ordered (field, synonyms) pairs, resolved in this order.
COLUMN_SYNONYMS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("key", ("key", "issue key", "ticket key", "id")),
    ("summary", ("summary", "title", "description")),
    ("issue_type", ("issue type", "type", "issuetype")),
    ("status", ("status", "state")),
    ("parent", ("parent", "epic link", "epic")),
    ("parent_key", ("parent key",)),
    ("parent_summary", ("parent summary", "epic summary", "parent title")),
    (
        "team",
        (
            "custom field (team (migrated))",
            "team (migrated)",
            "team",
            "custom field (team)",
        ),
    ),
    ("story_points", ("story points", "points", "estimate", "story point estimate")),
    ("created", ("created", "creation date", "date created")),
    ("resolved", ("resolved", "resolution date", "date resolved", "closed")),
    ("sprints", ("sprint", "sprints", "sprint name")),
    ("origin_ticket_type", ("origin ticket type", "origin type", "original type")),
)

REQUIRED_FIELDS: tuple[str, ...] = ("key", "summary", "issue_type", "status", "created")

SynonymTable = Sequence[tuple[str, Sequence[str]]]


@dataclass(frozen=True)
class ColumnMapping:
    """Resolved column index per canonical field.

    Every field of the synonym table appears in ``columns``; unresolved
    fields map to ``None``.
    """

    columns: dict[str, int | None] = field(default_factory=dict)

    def index(self, name: str) -> int | None:
        return self.columns.get(name)

    @property
    def resolved(self) -> dict[str, int]:
        return {k: v for k, v in self.columns.items() if v is not None}

    @property
    def unresolved(self) -> list[str]:
        return [k for k, v in self.columns.items() if v is None]


def normalize_headers(header_row: Sequence[object]) -> list[str]:
    """Lower-case and trim every header cell."""
    return ["" if h is None else str(h).strip().lower() for h in header_row]


def resolve_columns(
    headers: Sequence[str],
    synonyms: SynonymTable = COLUMN_SYNONYMS,
    required: Sequence[str] = REQUIRED_FIELDS,
) -> ColumnMapping:
    """Assign each field the first header containing one of its synonyms.

    Fields are scanned independently in table order, so one header may
    satisfy several fields (``"parent key"`` feeds both ``parent`` and
    ``parent_key``).  *headers* are expected lower-cased and trimmed (see
    :func:`normalize_headers`).  Raises :class:`MissingColumnsError` naming
    every required field left unresolved.
    """
    columns: dict[str, int | None] = {}
    for name, names in synonyms:
        columns[name] = next(
            (idx for idx, header in enumerate(headers) if any(syn in header for syn in names)),
            None,
        )

    mapping = ColumnMapping(columns)
    missing = [name for name in required if mapping.index(name) is None]
    if missing:
        logger.debug("Unresolved required columns %s in headers %s", missing, list(headers))
        raise MissingColumnsError(missing)

    logger.debug("Column mapping: %s", mapping.resolved)
    return mapping
