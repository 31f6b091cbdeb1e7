"""Value types shared by the synchronous and asynchronous clients."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Optional, Union


class CancelReason(str, Enum):
    """Reasons accepted by the order cancellation endpoint."""

    DELIVERY_ETA_TOO_LONG = "DELIVERY_ETA_TOO_LONG"
    MISTAKE_ERROR = "MISTAKE_ERROR"
    REASON_UNKNOWN = "REASON_UNKNOWN"


@dataclass
class TokenState:
    """The access token cached by a single client instance.

    ``expires_at`` is an absolute epoch timestamp in seconds.  Only the
    client's refresh operation writes to this object.
    """

    access_token: Optional[str] = None
    expires_at: Optional[float] = None

    def needs_refresh(self, now: float) -> bool:
        # A token expiring exactly now is already expired
        if not self.access_token or self.expires_at is None:
            return True
        return self.expires_at <= now

    def update(self, access_token: str, expires_in: float, now: float) -> None:
        self.access_token = access_token
        self.expires_at = now + float(expires_in)

    def invalidate(self) -> None:
        self.access_token = None
        self.expires_at = None


@dataclass(frozen=True)
class RequestDescriptor:
    """Everything needed to issue one HTTP request."""

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    json: Any = None

    def with_headers(self, headers: Mapping[str, str]) -> "RequestDescriptor":
        """Return a copy of this descriptor carrying ``headers``."""
        return replace(self, headers=dict(headers))


@dataclass(frozen=True)
class Ok:
    body: Any


@dataclass(frozen=True)
class HttpError:
    status: int
    message: str


@dataclass(frozen=True)
class TransportError:
    message: str
    cause: Optional[BaseException] = field(default=None, compare=False)


DispatchResult = Union[Ok, HttpError, TransportError]


def extract_message(body: Any) -> Optional[str]:
    """Return the server supplied ``message`` field of an error body, if any."""
    if not isinstance(body, Mapping):
        return None
    message = body.get("message")
    if isinstance(message, str) and message:
        return message
    return None


def result_from_response(status: int, body: Any) -> DispatchResult:
    """Classify a received HTTP response."""
    if status >= 400:
        message = extract_message(body) or f"Request failed with status code {status}"
        return HttpError(status=status, message=message)
    return Ok(body=body)


def decode_body(response: Any) -> Any:
    """Return the parsed JSON body, the text body, or ``None`` when empty.

    Works for both ``requests`` and ``httpx`` responses.
    """
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
