"""
Python client for the pandago last-mile delivery API.

This package provides a `PandagoClient` class that handles OAuth2
client-credentials authentication against the Delivery Hero token
service and makes authenticated requests to the pandago API, plus
`AsyncPandagoClient` offering the same operations as coroutines.

The client caches access tokens for their entire lifetime and
requests a new token when the current one expires or when the API
rejects a request with HTTP 403.

Examples
--------

```python
from pandago_api_client import PandagoClient

client = PandagoClient(
    client_id="YOUR_CLIENT_ID",
    key_id="YOUR_KEY_ID",
    private_key=open("pandago.pem").read(),
    environment="sandbox",  # or "production"
)

order = client.get_order("abc123")
```

References
----------
Instead of a client secret, pandago expects a JWT assertion signed
with RS256 by the client's private key.  The assertion names the
client as issuer and subject, targets the Delivery Hero token service
as audience, and carries the registered key id in its ``kid`` header.
It is POSTed form-encoded to ``/oauth2/token`` together with
``grant_type=client_credentials``, ``client_id`` and ``scope``.
"""

from .async_client import AsyncPandagoClient
from .client import PandagoClient
from .config import ClientConfig
from .exceptions import (
    PandagoAPIError,
    PandagoAuthError,
    PandagoError,
    PandagoNetworkError,
)
from .models import CancelReason

__all__ = [
    "PandagoClient",
    "AsyncPandagoClient",
    "ClientConfig",
    "CancelReason",
    "PandagoError",
    "PandagoAuthError",
    "PandagoAPIError",
    "PandagoNetworkError",
]
