"""
Custom exception types for the pandago API client.

These exceptions allow callers to distinguish between failures
occurring while obtaining an access token, error responses from
the API itself, and requests that never received a response.
"""

from __future__ import annotations

from typing import Optional


class PandagoError(Exception):
    """Base exception for all pandago client errors."""


class PandagoAuthError(PandagoError):
    """Raised when the token endpoint cannot issue an access token."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PandagoAPIError(PandagoError):
    """Raised when an HTTP request to the pandago API returns an error status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class PandagoNetworkError(PandagoError):
    """Raised when no HTTP response could be obtained at all."""
