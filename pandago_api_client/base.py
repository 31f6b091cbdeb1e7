"""
Behaviour shared by :class:`~pandago_api_client.PandagoClient` and
:class:`~pandago_api_client.AsyncPandagoClient`.

The two clients differ only in how they perform I/O.  The refresh and
retry decisions and the mapping of failures to exceptions live here.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Union

from .auth import api_headers, parse_token_response
from .config import ClientConfig
from .exceptions import PandagoAPIError, PandagoAuthError, PandagoError, PandagoNetworkError
from .models import (
    CancelReason,
    DispatchResult,
    HttpError,
    RequestDescriptor,
    TokenState,
    TransportError,
)

logger = logging.getLogger(__name__)

MAX_RETRIES = 2
RETRY_STATUS = 403


class BaseClient:
    """Configuration, token cache and retry policy for a pandago client."""

    def __init__(self, config: ClientConfig) -> None:
        self.config = config
        self._token = TokenState()

    @property
    def environment(self) -> str:
        return self.config.environment

    @property
    def auth_url(self) -> str:
        return self.config.auth_url

    @property
    def api_url(self) -> str:
        return self.config.api_url

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    def _log(self, message: str, *args: Any) -> None:
        if self.config.debug:
            logger.info(message, *args)

    # ------------------------------------------------------------------
    # Token state
    # ------------------------------------------------------------------
    def _needs_refresh(self, force: bool = False) -> bool:
        return force or self._token.needs_refresh(time.time())

    def _store_token(self, token_info: Any) -> None:
        """Record a successful token response."""
        try:
            access_token, expires_in = parse_token_response(token_info)
        except PandagoAuthError:
            self._token.invalidate()
            raise
        self._token.update(access_token, expires_in, time.time())
        self._log("Access token refreshed, expires in %ss", expires_in)

    def _token_failure(self, result: DispatchResult) -> PandagoAuthError:
        """Invalidate the cached token and build the error for a failed refresh."""
        self._token.invalidate()
        self._log("Token refresh failed: %s", result)
        if isinstance(result, HttpError):
            return PandagoAuthError(
                f"Authentication failed with status {result.status}: {result.message}",
                status_code=result.status,
            )
        return PandagoAuthError(f"Failed to connect to auth server: {result.message}")

    def _current_headers(self) -> Dict[str, str]:
        assert self._token.access_token is not None
        return api_headers(self._token.access_token)

    # ------------------------------------------------------------------
    # Request building and retry policy
    # ------------------------------------------------------------------
    def _prepare_url(self, path: str) -> str:
        """Join ``path`` to the API base URL unless it is already absolute."""
        if path.startswith("http://") or path.startswith("https://"):
            return path
        clean_path = path.lstrip("/")
        return f"{self.api_url.rstrip('/')}/{clean_path}"

    def _descriptor(
        self,
        method: str,
        path: str,
        headers: Dict[str, str],
        json: Optional[Any] = None,
    ) -> RequestDescriptor:
        return RequestDescriptor(
            method=method.upper(),
            url=self._prepare_url(path),
            headers=headers,
            json=json,
        )

    def _should_retry(self, result: DispatchResult, attempt: int) -> bool:
        return (
            isinstance(result, HttpError)
            and result.status == RETRY_STATUS
            and attempt < MAX_RETRIES
        )

    def _error_for(self, result: DispatchResult) -> PandagoError:
        if isinstance(result, HttpError):
            return PandagoAPIError(result.message, status_code=result.status)
        if isinstance(result, TransportError):
            return PandagoNetworkError(result.message)
        raise TypeError(f"not an error result: {result!r}")

    @staticmethod
    def _cause_of(result: DispatchResult) -> Optional[BaseException]:
        """The transport exception behind ``result``, to chain from."""
        if isinstance(result, TransportError):
            return result.cause
        return None

    def _log_request(self, descriptor: RequestDescriptor, attempt: int) -> None:
        self._log("%s %s (attempt %d)", descriptor.method, descriptor.url, attempt + 1)

    def _log_failure(self, descriptor: RequestDescriptor, result: DispatchResult) -> None:
        self._log("%s %s failed: %s", descriptor.method, descriptor.url, result)

    # ------------------------------------------------------------------
    # Endpoint helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _cancel_body(reason: Union[CancelReason, str]) -> Dict[str, str]:
        if isinstance(reason, CancelReason):
            reason = reason.value
        return {"reason": reason}
