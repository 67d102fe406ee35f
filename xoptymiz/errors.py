"""
Error taxonomy for the ingestion pipeline.

Every error keeps the exception that caused it (if any) on ``original_error``
so callers can map failures to transport-level responses.
"""

from typing import Optional


class XoptymizError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(message)
        self.original_error = original_error


class ConfigurationError(XoptymizError):
    """A production collaborator could not be built from the configuration."""


class ExtractionError(XoptymizError):
    """The extractor could not turn the input into normalized content."""


class InvalidInputError(ExtractionError):
    """The caller supplied no usable url, html or text."""


class FetchError(ExtractionError):
    """Fetching a URL failed with a non-2xx status, a timeout or a transport error."""

    def __init__(self,
                 message: str,
                 url: str,
                 status: Optional[int] = None,
                 reason: Optional[str] = None,
                 original_error: Optional[BaseException] = None):
        super().__init__(message, original_error)
        self.url = url
        self.status = status
        self.reason = reason


class AnnotationParseError(XoptymizError):
    """The inference service replied with something other than schema-valid JSON."""


class StoreError(XoptymizError):
    """A graph transaction failed and was rolled back."""


class NotFoundError(XoptymizError):
    """No ingested data exists yet for the requested domain."""


class DeadlineExceededError(XoptymizError):
    """The caller-supplied deadline expired before ingestion finished."""
