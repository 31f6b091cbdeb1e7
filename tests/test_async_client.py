from __future__ import annotations

import asyncio
import json
from typing import Any, List
from urllib.parse import parse_qs

import httpx
import jwt
import pytest

from conftest import SANDBOX_API, TOKEN_URL
from pandago_api_client import (
    AsyncPandagoClient,
    PandagoAPIError,
    PandagoAuthError,
    PandagoNetworkError,
)


class FakeApi:
    """Handler for ``httpx.MockTransport`` recording every request."""

    def __init__(self, api_responses: List[Any] = (), token_responses: List[Any] = ()) -> None:
        self.api_responses = list(api_responses)
        self.token_responses = list(token_responses)
        self.requests: List[httpx.Request] = []
        self._issued = 0

    @property
    def token_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if str(r.url) == TOKEN_URL]

    @property
    def api_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if str(r.url) != TOKEN_URL]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        # Let other tasks run while the request is "in flight"
        await asyncio.sleep(0)
        if str(request.url) == TOKEN_URL:
            if self.token_responses:
                item = self.token_responses.pop(0)
            else:
                self._issued += 1
                item = httpx.Response(
                    200, json={"access_token": f"token-{self._issued}", "expires_in": 3600}
                )
        elif self.api_responses:
            item = self.api_responses.pop(0)
        else:
            item = httpx.Response(200, json={})
        if isinstance(item, Exception):
            raise item
        return item


def _run(client_kwargs, api: FakeApi, scenario):
    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(api)) as http_client:
            client = AsyncPandagoClient(http_client=http_client, **client_kwargs)
            return await scenario(client)

    return asyncio.run(main())


def test_get_order(client_kwargs, public_key_pem, clock) -> None:
    api = FakeApi([httpx.Response(200, json={"order_id": "abc123"})])

    result = _run(client_kwargs, api, lambda c: c.get_order("abc123"))

    assert result == {"order_id": "abc123"}
    (token_request,) = api.token_requests
    assert token_request.method == "POST"
    assert token_request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    form = {k: v[0] for k, v in parse_qs(token_request.content.decode()).items()}
    assert form["grant_type"] == "client_credentials"
    claims = jwt.decode(
        form["client_assertion"],
        public_key_pem,
        algorithms=["RS256"],
        audience="https://sts.deliveryhero.io",
    )
    assert claims["iss"] == "pandago:sg:client-1"

    (api_request,) = api.api_requests
    assert api_request.method == "GET"
    assert str(api_request.url) == f"{SANDBOX_API}/orders/abc123"
    assert api_request.headers["Authorization"] == "Bearer token-1"
    assert api_request.headers["Accept"] == "application/json"


def test_403_retries_with_fresh_token(client_kwargs, clock) -> None:
    api = FakeApi([httpx.Response(403), httpx.Response(200, json={"lat": 1.3, "lng": 103.8})])

    result = _run(client_kwargs, api, lambda c: c.get_order_courier_location("abc"))

    assert result == {"lat": 1.3, "lng": 103.8}
    assert [r.headers["Authorization"] for r in api.api_requests] == [
        "Bearer token-1",
        "Bearer token-2",
    ]


def test_403_exhausted(client_kwargs, clock) -> None:
    api = FakeApi([httpx.Response(403, json={"message": "Forbidden"}) for _ in range(3)])

    with pytest.raises(PandagoAPIError, match="Forbidden") as excinfo:
        _run(client_kwargs, api, lambda c: c.callback({"status": "DELIVERED"}))

    assert excinfo.value.status_code == 403
    assert len(api.api_requests) == 3
    assert len(api.token_requests) == 3


def test_500_not_retried(client_kwargs, clock) -> None:
    api = FakeApi([httpx.Response(500, json={"message": "internal"})])

    with pytest.raises(PandagoAPIError, match="internal"):
        _run(client_kwargs, api, lambda c: c.estimate_time({}))

    assert len(api.api_requests) == 1
    assert len(api.token_requests) == 1


def test_network_error(client_kwargs, clock) -> None:
    transport_error = httpx.ConnectError("connection reset by peer")
    api = FakeApi([transport_error])

    with pytest.raises(PandagoNetworkError, match="connection reset by peer") as excinfo:
        _run(client_kwargs, api, lambda c: c.get_outlet("s1"))
    assert excinfo.value.__cause__ is transport_error


def test_token_network_error_is_chained(client_kwargs, clock) -> None:
    transport_error = httpx.ReadTimeout("read timed out")
    api = FakeApi(token_responses=[transport_error])

    with pytest.raises(PandagoAuthError, match="read timed out") as excinfo:
        _run(client_kwargs, api, lambda c: c.get_outlet("s1"))
    assert excinfo.value.__cause__ is transport_error
    assert api.api_requests == []


def test_failed_forced_refresh_during_retry(client_kwargs, clock) -> None:
    api = FakeApi(
        [httpx.Response(403)],
        token_responses=[
            httpx.Response(200, json={"access_token": "first", "expires_in": 3600}),
            httpx.Response(401, json={"message": "invalid_client"}),
        ],
    )

    async def scenario(client):
        with pytest.raises(PandagoAuthError) as excinfo:
            await client.get_order("abc")
        return client, excinfo.value

    client, error = _run(client_kwargs, api, scenario)

    assert error.status_code == 401
    assert "invalid_client" in str(error)
    assert len(api.api_requests) == 1
    assert len(api.token_requests) == 2
    assert client._token.access_token is None


def test_cancel_and_upsert_bodies(client_kwargs, clock) -> None:
    api = FakeApi()

    async def scenario(client):
        await client.cancel_order("o1")
        await client.create_or_update_outlet("s1", {"name": "Shop"})

    _run(client_kwargs, api, scenario)

    cancel, upsert = api.api_requests
    assert cancel.method == "DELETE"
    assert str(cancel.url) == f"{SANDBOX_API}/orders/o1"
    assert json.loads(cancel.content) == {"reason": "REASON_UNKNOWN"}
    assert upsert.method == "PUT"
    assert str(upsert.url) == f"{SANDBOX_API}/outlets/s1"
    assert json.loads(upsert.content) == {"name": "Shop"}


def test_token_reused_across_calls(client_kwargs, clock) -> None:
    api = FakeApi()

    async def scenario(client):
        await client.estimate_fee({})
        await client.submit_order({})
        await client.get_order("o1")

    _run(client_kwargs, api, scenario)

    assert len(api.token_requests) == 1
    assert len(api.api_requests) == 3


def test_concurrent_calls_refresh_independently(client_kwargs, clock) -> None:
    api = FakeApi()

    async def scenario(client):
        return await asyncio.gather(client.get_order("a"), client.get_order("b"))

    _run(client_kwargs, api, scenario)

    # No refresh deduplication: both calls saw an empty cache
    assert len(api.token_requests) == 2
    assert len(api.api_requests) == 2


def test_owned_http_client_closed(client_kwargs) -> None:
    async def main():
        async with AsyncPandagoClient(**client_kwargs) as client:
            http_client = client.http_client
        return http_client.is_closed

    assert asyncio.run(main()) is True


def test_injected_http_client_left_open(client_kwargs) -> None:
    async def main():
        async with httpx.AsyncClient() as http_client:
            client = AsyncPandagoClient(http_client=http_client, **client_kwargs)
            await client.aclose()
            return http_client.is_closed

    assert asyncio.run(main()) is False
