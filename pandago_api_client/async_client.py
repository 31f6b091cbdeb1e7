"""
Asynchronous client for the pandago delivery API.

:class:`AsyncPandagoClient` offers the same operations as
:class:`~pandago_api_client.PandagoClient` as coroutines, on top of an
:class:`httpx.AsyncClient`:

.. code-block:: python

    async with AsyncPandagoClient.from_env() as client:
        order = await client.get_order("abc123")
        location = await client.get_order_courier_location("abc123")

Calls running concurrently on one client share its cached token.  No
lock guards the refresh, so two calls that both find the token expired
will each fetch a new one.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional, Union

import httpx

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


class AsyncPandagoClient(BaseClient):
    """Coroutine-based pandago client.

    Accepts the same keyword arguments as
    :class:`~pandago_api_client.PandagoClient`, with ``http_client``
    taking the place of ``session``.  An injected ``http_client`` is
    left open by :meth:`aclose`.
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
        http_client: Optional[httpx.AsyncClient] = None,
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
        self._owns_http_client = http_client is None
        self.http_client = http_client if http_client is not None else httpx.AsyncClient()

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "AsyncPandagoClient":
        return cls(http_client=http_client, **asdict(config))

    @classmethod
    def from_env(
        cls,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        **overrides: Any,
    ) -> "AsyncPandagoClient":
        return cls.from_config(ClientConfig.from_env(**overrides), http_client=http_client)

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "AsyncPandagoClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    async def _refresh_access_token(self) -> None:
        """Fetch and cache a new access token, or raise :class:`PandagoAuthError`."""
        self._log("Requesting access token from %s", self.config.token_url)
        result = await self._send(
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

    async def _resolve_headers(self, force: bool = False) -> Dict[str, str]:
        if self._needs_refresh(force):
            await self._refresh_access_token()
        return self._current_headers()

    # ------------------------------------------------------------------
    # HTTP request helpers
    # ------------------------------------------------------------------
    async def _send(
        self,
        descriptor: RequestDescriptor,
        *,
        data: Optional[Dict[str, str]] = None,
    ) -> DispatchResult:
        timeout = self.config.timeout
        try:
            response = await self.http_client.request(
                descriptor.method,
                descriptor.url,
                headers=dict(descriptor.headers),
                json=descriptor.json,
                data=data,
                timeout=httpx.USE_CLIENT_DEFAULT if timeout is None else timeout,
            )
        except httpx.RequestError as exc:
            return TransportError(message=str(exc), cause=exc)
        return result_from_response(response.status_code, decode_body(response))

    async def _dispatch(self, descriptor: RequestDescriptor) -> Any:
        """Send ``descriptor``, retrying with a fresh token on HTTP 403."""
        attempt = 0
        while True:
            self._log_request(descriptor, attempt)
            result = await self._send(descriptor)
            if isinstance(result, Ok):
                return result.body

            self._log_failure(descriptor, result)
            if not self._should_retry(result, attempt):
                raise self._error_for(result) from self._cause_of(result)

            self._log("Retry for 403")
            descriptor = descriptor.with_headers(await self._resolve_headers(force=True))
            attempt += 1

    async def _request(self, method: str, path: str, *, json: Optional[Any] = None) -> Any:
        headers = await self._resolve_headers()
        return await self._dispatch(self._descriptor(method, path, headers, json=json))

    # ------------------------------------------------------------------
    # Public convenience methods
    # ------------------------------------------------------------------
    async def get(self, path: str) -> Any:
        return await self._request("GET", path)

    async def post(self, path: str, *, json: Optional[Any] = None) -> Any:
        return await self._request("POST", path, json=json)

    async def put(self, path: str, *, json: Optional[Any] = None) -> Any:
        return await self._request("PUT", path, json=json)

    async def delete(self, path: str, *, json: Optional[Any] = None) -> Any:
        return await self._request("DELETE", path, json=json)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    async def estimate_fee(self, order: Dict[str, Any]) -> Any:
        return await self.post("orders/fee", json=order)

    async def estimate_time(self, order: Dict[str, Any]) -> Any:
        return await self.post("orders/time", json=order)

    async def submit_order(self, order: Dict[str, Any]) -> Any:
        return await self.post("orders", json=order)

    async def get_order(self, order_id: str) -> Any:
        return await self.get(f"orders/{order_id}")

    async def cancel_order(
        self,
        order_id: str,
        reason: Union[CancelReason, str] = CancelReason.REASON_UNKNOWN,
    ) -> Any:
        return await self.delete(f"orders/{order_id}", json=self._cancel_body(reason))

    async def get_order_courier_location(self, order_id: str) -> Any:
        return await self.get(f"orders/{order_id}/coordinates")

    async def callback(self, event: Dict[str, Any]) -> Any:
        return await self.post("callback", json=event)

    # ------------------------------------------------------------------
    # Outlets
    # ------------------------------------------------------------------
    async def create_or_update_outlet(self, outlet_id: str, outlet: Dict[str, Any]) -> Any:
        return await self.put(f"outlets/{outlet_id}", json=outlet)

    async def get_outlet(self, outlet_id: str) -> Any:
        return await self.get(f"outlets/{outlet_id}")
