# core/exceptions.py
"""Error types raised around the generative-text service boundary."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - for type hints only
    from models.run_models import ExtractionResult


class ExtractionServiceError(Exception):
    """Base class for failures talking to the generative-text service."""


class ServiceOverloadedError(ExtractionServiceError):
    """Raised when rate limiting persists after the last retry attempt."""

    def __init__(self, attempts: int, last_error: BaseException | None = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Service overloaded: still rate limited after {attempts} attempts."
        )


class ResponseParseError(ExtractionServiceError):
    """The service answered, but the body is not a usable JSON object."""

    def __init__(self, message: str, raw_text: str = ""):
        self.raw_text = raw_text
        super().__init__(message)


class EmptyResponseError(ResponseParseError):
    """The service answered with an empty body."""

    def __init__(self, raw_text: str = ""):
        super().__init__("Service returned an empty response.", raw_text)


class ExtractionRunError(Exception):
    """A chunk failed while chunk skipping was disabled.

    ``partial`` holds everything consolidated before the failing chunk,
    including the debug log entry describing the failure.
    """

    def __init__(
        self,
        message: str,
        partial: ExtractionResult,
        cause: BaseException | None = None,
    ):
        self.partial = partial
        self.cause = cause
        super().__init__(message)
