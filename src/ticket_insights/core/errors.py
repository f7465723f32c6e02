"""Errors raised by the ingestion and insights pipeline.

Every error is terminal for the current run.  ``str(exc)`` is the
user-facing message.
"""

from __future__ import annotations

from collections.abc import Iterable


class TicketInsightsError(Exception):
    """Base class for all pipeline failures."""


class UnsupportedFormatError(TicketInsightsError):
    """The source's extension or content type is not CSV or a workbook."""


class SizeExceededError(TicketInsightsError):
    def __init__(self, size_bytes: int, limit_bytes: int) -> None:
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        limit_mb = limit_bytes / (1024 * 1024)
        super().__init__(f"File size exceeds maximum limit of {limit_mb:g}MB")


class UnreadableSourceError(TicketInsightsError):
    """The source decoded to zero rows or could not be decoded at all."""


class NoSheetError(TicketInsightsError):
    def __init__(self, message: str = "No worksheets found in the file") -> None:
        super().__init__(message)


class InsufficientRowsError(TicketInsightsError):
    def __init__(
        self,
        message: str = "File must contain at least a header row and one data row",
    ) -> None:
        super().__init__(message)


class MissingColumnsError(TicketInsightsError):
    def __init__(self, missing: Iterable[str]) -> None:
        self.missing = tuple(missing)
        super().__init__(f"Required columns not found: {', '.join(self.missing)}")


class NoValidRowsError(TicketInsightsError):
    def __init__(self, message: str = "No valid tickets found in the file") -> None:
        super().__init__(message)


class EmptyTicketSetError(TicketInsightsError):
    def __init__(self, message: str = "No tickets available for analysis") -> None:
        super().__init__(message)

