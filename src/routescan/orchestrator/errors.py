from __future__ import annotations

from typing import Any, Dict, Optional


class ExtractionError(Exception):
    """Base class for failures that cost a single image its records."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def kind(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class InvalidImageFormat(ExtractionError):
    """Image payload cannot be split into MIME type + data."""


class EmptyServiceResponse(ExtractionError):
    """The service answered without any text content."""


class MalformedResponse(ExtractionError):
    """No recovery strategy produced a JSON object from the service text."""


class ServiceError(ExtractionError):
    """Transport, auth, quota or service-side failure of the extraction call."""
