from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional

import pytest
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from pandago_api_client import ClientConfig

SANDBOX_AUTH = "https://sts-st.deliveryhero.io"
SANDBOX_API = "https://pandago-api-sandbox.deliveryhero.io/sg/api/v1"
TOKEN_URL = f"{SANDBOX_AUTH}/oauth2/token"


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_key) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture(scope="session")
def public_key_pem(rsa_key) -> str:
    return rsa_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


@pytest.fixture
def client_kwargs(private_key_pem) -> Dict[str, Any]:
    return {
        "client_id": "pandago:sg:client-1",
        "key_id": "key-1",
        "private_key": private_key_pem,
    }


@pytest.fixture
def config(client_kwargs) -> ClientConfig:
    return ClientConfig(**client_kwargs)


class Clock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock(monkeypatch) -> Clock:
    fake = Clock(1_700_000_000.0)
    monkeypatch.setattr("pandago_api_client.base.time.time", fake)
    return fake


def make_response(status: int, body: Any = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    if body is None:
        response._content = b""
    elif isinstance(body, str):
        response._content = body.encode("utf-8")
        response.headers["Content-Type"] = "text/plain"
    else:
        response._content = json.dumps(body).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    response.encoding = "utf-8"
    return response


class FakeSession:
    """Stands in for ``requests.Session``.

    Token endpoint calls are answered from ``token_responses`` (a fresh
    ``token-N`` token by default), everything else from ``api_responses``.
    Exceptions in either queue are raised instead of returned.
    """

    def __init__(
        self,
        api_responses: Optional[List[Any]] = None,
        token_responses: Optional[List[Any]] = None,
    ) -> None:
        self.api_responses = list(api_responses or [])
        self.token_responses = list(token_responses or [])
        self.calls: List[Dict[str, Any]] = []
        self.closed = False
        self._issued = 0

    @property
    def token_calls(self) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["url"].endswith("/oauth2/token")]

    @property
    def api_calls(self) -> List[Dict[str, Any]]:
        return [c for c in self.calls if not c["url"].endswith("/oauth2/token")]

    def _next(self, queue: List[Any], default: Callable[[], Any]) -> Any:
        item = queue.pop(0) if queue else default()
        if isinstance(item, Exception):
            raise item
        return item

    def _default_token(self) -> requests.Response:
        self._issued += 1
        return make_response(200, {"access_token": f"token-{self._issued}", "expires_in": 3600})

    def request(self, method, url, headers=None, json=None, data=None, timeout=None):
        self.calls.append(
            {
                "method": method,
                "url": url,
                "headers": dict(headers or {}),
                "json": json,
                "data": data,
                "timeout": timeout,
            }
        )
        if url.endswith("/oauth2/token"):
            return self._next(self.token_responses, self._default_token)
        return self._next(self.api_responses, lambda: make_response(200, {"ok": True}))

    def close(self) -> None:
        self.closed = True
