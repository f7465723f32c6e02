"""Serialise an :class:`InsightsBundle` to plain JSON-ready structures."""

from __future__ import annotations

import dataclasses
import json
from datetime import date, datetime
from typing import Any

from ticket_insights.core.data_models import InsightsBundle
from ticket_insights.core.row_normalizer import to_iso


def _plain(value: Any) -> Any:
    # datetime is a date subclass, so check it first.
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def bundle_to_dict(bundle: InsightsBundle) -> dict[str, Any]:
    """Return *bundle* as nested dicts with ISO-8601 instants and dates."""
    return _plain(dataclasses.asdict(bundle))


def bundle_to_json(bundle: InsightsBundle, indent: int | None = 2) -> str:
    return json.dumps(bundle_to_dict(bundle), indent=indent, ensure_ascii=False)
