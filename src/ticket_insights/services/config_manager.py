"""JSON-based settings persistence via platformdirs."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from ticket_insights.core.heuristics import HeuristicThresholds
from ticket_insights.core.pipeline import PipelineSettings

logger = logging.getLogger(__name__)

APP_NAME = "ticket-insights"
CONFIG_FILENAME = "config.json"

_DEFAULTS: dict[str, Any] = {
    "max_file_size_mb": 50,
    "top_epics": 3,
    "top_days": 5,
    "closed_statuses": ["done", "closed", "resolved"],
    "sprint_change_limit": 3,
    "long_duration_days": 30,
    "output_indent": 2,
}


class ConfigManager:
    """Read/write JSON configuration stored in the platform config directory."""

    def __init__(self) -> None:
        self._dir = Path(user_config_dir(APP_NAME, appauthor=False))
        self._path = self._dir / CONFIG_FILENAME
        self._data: dict[str, Any] = dict(_DEFAULTS)
        self._load()
        logger.debug("Config loaded from %s", self._path)

    # -- public API -----------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Return a config value, falling back to *default*."""
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a config value and persist to disk."""
        self._data[key] = value
        self._save()

    def update(self, values: dict[str, Any]) -> None:
        """Bulk-update config values and persist."""
        self._data.update(values)
        self._save()

    def reset(self) -> None:
        """Reset all values to defaults and persist."""
        logger.info("Resetting config to defaults")
        self._data = dict(_DEFAULTS)
        self._save()

    @property
    def data(self) -> dict[str, Any]:
        """Return a shallow copy of all configuration."""
        return dict(self._data)

    def pipeline_settings(self) -> PipelineSettings:
        """Build :class:`PipelineSettings` from the stored values."""
        thresholds = HeuristicThresholds(
            closed_statuses=frozenset(s.lower() for s in self._get_list("closed_statuses")),
            sprint_change_limit=self._get_int("sprint_change_limit"),
            long_duration_days=self._get_int("long_duration_days"),
        )
        return PipelineSettings(
            max_file_size=self._get_int("max_file_size_mb") * 1024 * 1024,
            top_epics=self._get_int("top_epics"),
            top_days=self._get_int("top_days"),
            thresholds=thresholds,
        )

    # -- internals ------------------------------------------------------------

    def _get_int(self, key: str) -> int:
        value = self._data.get(key)
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning("Invalid %s=%r in config, using default", key, value)
            return int(_DEFAULTS[key])

    def _get_list(self, key: str) -> list[str]:
        value = self._data.get(key)
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return value
        logger.warning("Invalid %s=%r in config, using default", key, value)
        return list(_DEFAULTS[key])

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            with open(self._path, encoding="utf-8") as fh:
                stored = json.load(fh)
            if isinstance(stored, dict):
                self._data.update(stored)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to load config from %s: %s", self._path, exc)

    def _save(self) -> None:
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, indent=2, default=str)
        except OSError as exc:
            logger.warning("Failed to save config to %s: %s", self._path, exc)
