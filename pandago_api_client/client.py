"""
Synchronous client for the pandago delivery API.

This module defines the :class:`PandagoClient` class which
authenticates against the Delivery Hero token service using the
OAuth2 client credentials grant with a signed JWT assertion and
performs HTTP requests against pandago API endpoints.  The client
caches the access token for the duration specified by ``expires_in``
in the token response and refreshes it when needed.

Usage
-----

.. code-block:: python

    from pandago_api_client import CancelReason, PandagoClient

    with open("pandago.pem") as fh:
        private_key = fh.read()

    client = PandagoClient(
        client_id="pandago:sg:00000000-0000-0000-0000-000000000000",
        key_id="11111111-1111-1111-1111-111111111111",
        private_key=private_key,
        environment="sandbox",
    )

    fee = client.estimate_fee(order)
    created = client.submit_order(order)
    client.cancel_order(created["order_id"], CancelReason.MISTAKE_ERROR)

A request rejected with HTTP 403 is retried up to two times, each time
with a freshly issued access token.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional, Union

import requests

from .auth import FORM_HEADERS, token_request_form
from .base import BaseClient
from .config import DEFAULT_SCOPE, ClientConfig
from .models import (
    CancelReason,
    DispatchResult,
    Ok,
    RequestDescriptor,
    TransportError,
    decode_body,
    result_from_response,
)


class PandagoClient(BaseClient):
    """A client for the pandago REST API.

    Parameters
    ----------
    client_id : str
        Your pandago client identifier.
    key_id : str
        Identifier of the public key registered for your client.
    private_key : str
        PEM-encoded RSA private key matching ``key_id``.
    environment : str, optional
        ``"sandbox"`` (default) or ``"production"``.
    country_code : str, optional
        Country code used in production API URLs.  Defaults to ``"tw"``.
    version : str, optional
        API version.  Defaults to ``"v1"``.
    scope : str, optional
        OAuth scope requested for each access token.
    debug : bool, optional
        Log requests and failures via :mod:`logging`.
    timeout : float, optional
        Timeout in seconds for each underlying HTTP request.
    session : requests.Session, optional
        Session used for every request.  A new session is created
        and owned by the client when omitted.
    """

    def __init__(
        self,
        *,
        client_id: str,
        key_id: str,
        private_key: str,
        environment: str = "sandbox",
        country_code: str = "tw",
        version: str = "v1",
        scope: str = DEFAULT_SCOPE,
        debug: bool = False,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        config = ClientConfig(
            client_id=client_id,
            key_id=key_id,
            private_key=private_key,
            environment=environment,
            country_code=country_code,
            version=version,
            scope=scope,
            debug=debug,
            timeout=timeout,
        )
        super().__init__(config)
        self._owns_session = session is None
        self.session = session if session is not None else requests.Session()

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        *,
        session: Optional[requests.Session] = None,
    ) -> "PandagoClient":
        return cls(session=session, **asdict(config))

    @classmethod
    def from_env(
        cls,
        *,
        session: Optional[requests.Session] = None,
        **overrides: Any,
    ) -> "PandagoClient":
        """Create a client from ``PANDAGO_*`` environment variables.

        See :meth:`ClientConfig.from_env` for the variables read.
        """
        return cls.from_config(ClientConfig.from_env(**overrides), session=session)

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def __enter__(self) -> "PandagoClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    def _refresh_access_token(self) -> None:
        """Retrieve a new access token from the Delivery Hero token service.

        Posts a freshly signed client assertion to ``/oauth2/token``.
        On success the access token and its absolute expiry are cached.
        On failure the cached token is discarded and
        :class:`PandagoAuthError` is raised; no retry happens here.
        """
        self._log("Requesting access token from %s", self.config.token_url)
        result = self._send(
            RequestDescriptor(
                method="POST",
                url=self.config.token_url,
                headers=FORM_HEADERS,
            ),
            data=token_request_form(self.config),
        )
        if not isinstance(result, Ok):
            raise self._token_failure(result) from self._cause_of(result)
        self._store_token(result.body)

    def _resolve_headers(self, force: bool = False) -> Dict[str, str]:
        """Return API headers, refreshing the token first when needed."""
        if self._needs_refresh(force):
            self._refresh_access_token()
        return self._current_headers()

    # ------------------------------------------------------------------
    # HTTP request helpers
    # ------------------------------------------------------------------
    def _send(
        self,
        descriptor: RequestDescriptor,
        *,
        data: Optional[Dict[str, str]] = None,
    ) -> DispatchResult:
        try:
            response = self.session.request(
                method=descriptor.method,
                url=descriptor.url,
                headers=dict(descriptor.headers),
                json=descriptor.json,
                data=data,
                timeout=self.config.timeout,
            )
        except requests.RequestException as exc:
            return TransportError(message=str(exc), cause=exc)
        return result_from_response(response.status_code, decode_body(response))

    def _dispatch(self, descriptor: RequestDescriptor) -> Any:
        """Send ``descriptor``, retrying with a fresh token on HTTP 403.

        Raises
        ------
        PandagoAPIError
            If the API answers with an error status that is not retried,
            or with 403 once the retries are used up.
        PandagoNetworkError
            If no response could be obtained.
        PandagoAuthError
            If a forced token refresh fails.
        """
        attempt = 0
        while True:
            self._log_request(descriptor, attempt)
            result = self._send(descriptor)
            if isinstance(result, Ok):
                return result.body

            self._log_failure(descriptor, result)
            if not self._should_retry(result, attempt):
                raise self._error_for(result) from self._cause_of(result)

            self._log("Retry for 403")
            descriptor = descriptor.with_headers(self._resolve_headers(force=True))
            attempt += 1

    def _request(self, method: str, path: str, *, json: Optional[Any] = None) -> Any:
        descriptor = self._descriptor(method, path, self._resolve_headers(), json=json)
        return self._dispatch(descriptor)

    # ------------------------------------------------------------------
    # Public convenience methods
    # ------------------------------------------------------------------
    def get(self, path: str) -> Any:
        """Perform an authenticated GET request.

        ``path`` is relative to :attr:`api_url` unless it is an
        absolute URL.
        """
        return self._request("GET", path)

    def post(self, path: str, *, json: Optional[Any] = None) -> Any:
        return self._request("POST", path, json=json)

    def put(self, path: str, *, json: Optional[Any] = None) -> Any:
        return self._request("PUT", path, json=json)

    def delete(self, path: str, *, json: Optional[Any] = None) -> Any:
        return self._request("DELETE", path, json=json)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def estimate_fee(self, order: Dict[str, Any]) -> Any:
        return self.post("orders/fee", json=order)

    def estimate_time(self, order: Dict[str, Any]) -> Any:
        return self.post("orders/time", json=order)

    def submit_order(self, order: Dict[str, Any]) -> Any:
        return self.post("orders", json=order)

    def get_order(self, order_id: str) -> Any:
        return self.get(f"orders/{order_id}")

    def cancel_order(
        self,
        order_id: str,
        reason: Union[CancelReason, str] = CancelReason.REASON_UNKNOWN,
    ) -> Any:
        """Cancel an order.

        ``reason`` is one of :class:`CancelReason`; plain strings are
        sent as given.
        """
        return self.delete(f"orders/{order_id}", json=self._cancel_body(reason))

    def get_order_courier_location(self, order_id: str) -> Any:
        return self.get(f"orders/{order_id}/coordinates")

    def callback(self, event: Dict[str, Any]) -> Any:
        return self.post("callback", json=event)

    # ------------------------------------------------------------------
    # Outlets
    # ------------------------------------------------------------------
    def create_or_update_outlet(self, outlet_id: str, outlet: Dict[str, Any]) -> Any:
        return self.put(f"outlets/{outlet_id}", json=outlet)

    def get_outlet(self, outlet_id: str) -> Any:
        return self.get(f"outlets/{outlet_id}")
