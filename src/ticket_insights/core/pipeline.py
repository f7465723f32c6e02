"""End-to-end pipeline: source bytes in, :class:`InsightsBundle` out.

The stages are pure functions over fresh data, so a run can execute inline
(:func:`process_source`) or on a background thread (:class:`PipelineWorker`)
with identical results.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from ticket_insights.core.aggregation import transform_raw_export
from ticket_insights.core.data_models import InsightsBundle
from ticket_insights.core.heuristics import DEFAULT_THRESHOLDS, HeuristicThresholds
from ticket_insights.core.insights import TOP_DAYS, TOP_EPICS, InsightsEngine
from ticket_insights.core.row_normalizer import normalize_rows
from ticket_insights.core.tabular_reader import MAX_FILE_SIZE, check_size, read_source
from ticket_insights.core.validation import validate_raw_export

logger = logging.getLogger(__name__)

Stage = Literal["parsing", "transforming", "analyzing", "complete"]
ProgressCallback = Callable[[str, int], None]


@dataclass(frozen=True)
class PipelineSettings:
    """Immutable snapshot of the settings a pipeline run needs."""

    max_file_size: int = MAX_FILE_SIZE
    top_epics: int = TOP_EPICS
    top_days: int = TOP_DAYS
    thresholds: HeuristicThresholds = DEFAULT_THRESHOLDS


class _ProgressReporter:
    """Forward progress to a callback, never letting a stage's percent drop."""

    def __init__(self, callback: ProgressCallback | None) -> None:
        self._callback = callback
        self._last: dict[str, int] = {}

    def __call__(self, stage: Stage, percent: int) -> None:
        percent = max(percent, self._last.get(stage, 0))
        self._last[stage] = percent
        logger.debug("Progress %s: %d%%", stage, percent)
        if self._callback is not None:
            self._callback(stage, percent)


def process_source(
    data: bytes,
    filename: str,
    content_type: str | None = None,
    *,
    settings: PipelineSettings | None = None,
    on_progress: ProgressCallback | None = None,
) -> InsightsBundle:
    """Parse, transform and analyse one uploaded source.

    Raises a :class:`~ticket_insights.core.errors.TicketInsightsError`
    subclass on any terminal failure.
    """
    settings = settings or PipelineSettings()
    progress = _ProgressReporter(on_progress)
    logger.info("Processing %s (%d bytes)", filename, len(data))

    progress("parsing", 10)
    grid = read_source(data, filename, content_type, max_bytes=settings.max_file_size)
    progress("parsing", 60)
    export = normalize_rows(grid)
    progress("parsing", 90)

    validation = validate_raw_export(export)
    for message in (*validation.errors, *validation.warnings):
        logger.warning("Validation: %s", message)
    progress("parsing", 100)

    progress("transforming", 10)
    processed = transform_raw_export(export, closed_statuses=settings.thresholds.closed_statuses)
    progress("transforming", 100)

    progress("analyzing", 10)
    engine = InsightsEngine(
        thresholds=settings.thresholds,
        top_epics=settings.top_epics,
        top_days=settings.top_days,
    )
    bundle = engine.generate_all_insights(processed)
    progress("analyzing", 100)
    progress("complete", 100)
    return bundle


def process_file(
    path: str | Path,
    *,
    settings: PipelineSettings | None = None,
    on_progress: ProgressCallback | None = None,
) -> InsightsBundle:
    """Run :func:`process_source` over a file on disk."""
    path = Path(path)
    settings = settings or PipelineSettings()
    check_size(path.stat().st_size, settings.max_file_size)
    return process_source(
        path.read_bytes(), path.name, settings=settings, on_progress=on_progress
    )


# -- background execution -----------------------------------------------------


@dataclass(frozen=True)
class PipelineMessage:
    """A progress, completion or error notice for one submitted run."""

    id: str
    type: Literal["progress", "complete", "error"]
    stage: str | None = None
    progress: int | None = None
    error: str | None = None


MessageListener = Callable[[PipelineMessage], None]


class PipelineWorker:
    """Run pipelines on a thread pool, keyed by caller-visible correlation ids."""

    def __init__(
        self,
        settings: PipelineSettings | None = None,
        listener: MessageListener | None = None,
        max_workers: int = 2,
        retain_finished: int = 32,
    ) -> None:
        self._settings = settings or PipelineSettings()
        self._listener = listener
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="pipeline")
        self._futures: dict[str, Future[InsightsBundle]] = {}
        self._finished: deque[str] = deque()
        self._retain_finished = retain_finished
        self._lock = threading.Lock()

    def submit(self, data: bytes, filename: str, content_type: str | None = None) -> str:
        """Queue a run and return its correlation id."""
        run_id = uuid.uuid4().hex[:9]
        future = self._pool.submit(self._run, run_id, data, filename, content_type)
        with self._lock:
            self._futures[run_id] = future
        future.add_done_callback(lambda _: self._on_done(run_id))
        logger.debug("Submitted run %s for %s", run_id, filename)
        return run_id

    def result(self, run_id: str, timeout: float | None = None) -> InsightsBundle:
        """Wait for *run_id* and return its bundle, re-raising its error.

        Only the *retain_finished* most recently finished runs stay
        retrievable; an older or unknown id raises :class:`KeyError`.
        """
        with self._lock:
            future = self._futures[run_id]
        try:
            return future.result(timeout=timeout)
        finally:
            if future.done():
                with self._lock:
                    self._futures.pop(run_id, None)

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> PipelineWorker:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    # -- internals ------------------------------------------------------------

    def _on_done(self, run_id: str) -> None:
        with self._lock:
            self._finished.append(run_id)
            while len(self._finished) > self._retain_finished:
                evicted = self._finished.popleft()
                if self._futures.pop(evicted, None) is not None:
                    logger.debug("Dropped uncollected run %s", evicted)

    def _emit(self, message: PipelineMessage) -> None:
        if self._listener is None:
            return
        try:
            self._listener(message)
        except Exception as exc:  # a broken listener must not fail the run
            logger.warning("Pipeline listener failed for %s: %s", message.id, exc)

    def _run(
        self, run_id: str, data: bytes, filename: str, content_type: str | None
    ) -> InsightsBundle:
        def on_progress(stage: str, percent: int) -> None:
            self._emit(PipelineMessage(run_id, "progress", stage=stage, progress=percent))

        logger.info("Run %s started", run_id)
        try:
            bundle = process_source(
                data, filename, content_type, settings=self._settings, on_progress=on_progress
            )
        except Exception as exc:
            logger.error("Run %s failed: %s", run_id, exc)
            self._emit(PipelineMessage(run_id, "error", error=str(exc)))
            raise
        self._emit(PipelineMessage(run_id, "complete"))
        logger.info("Run %s finished", run_id)
        return bundle
