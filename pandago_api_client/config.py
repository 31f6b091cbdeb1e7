"""
Configuration for the pandago API client.

:class:`ClientConfig` holds the credentials and the environment
selection.  The auth server and API base URLs are derived from the
environment through fixed lookup tables and cannot be overridden.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

DEFAULT_SCOPE = "pandago.api.sg.*"

# Default endpoints for each environment
_AUTH_URLS = {
    "sandbox": "https://sts-st.deliveryhero.io",
    "production": "https://sts.deliveryhero.io",
}
_API_URLS = {
    "sandbox": "https://pandago-api-sandbox.deliveryhero.io/sg/api/{version}",
    "production": "https://pandago-api-apse.deliveryhero.io/{country_code}/api/{version}",
}

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ClientConfig:
    """Immutable client configuration.

    Parameters
    ----------
    client_id : str
        The client identifier issued by pandago.  Used as both the
        issuer and the subject of the signed assertion.
    key_id : str
        Identifier of the key pair registered with pandago.  Sent in
        the ``kid`` header of the assertion.
    private_key : str
        PEM-encoded RSA private key used to sign the assertion.
    environment : str, optional
        ``"sandbox"`` (the default) or ``"production"``.
    country_code : str, optional
        Country segment of the production API URL.  The sandbox
        always uses ``sg``.
    version : str, optional
        API version segment, ``"v1"`` by default.
    scope : str, optional
        OAuth scope requested with every token.
    debug : bool, optional
        Log outgoing requests and failures through :mod:`logging`.
    timeout : float, optional
        Timeout in seconds handed to the HTTP transport.  ``None``
        leaves the transport default in place.
    """

    client_id: str
    key_id: str
    private_key: str = field(repr=False)
    environment: str = "sandbox"
    country_code: str = "tw"
    version: str = "v1"
    scope: str = DEFAULT_SCOPE
    debug: bool = False
    timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if not self.client_id:
            raise ValueError("client_id must be provided")
        if not self.key_id:
            raise ValueError("key_id must be provided")
        if not self.private_key:
            raise ValueError("private_key must be provided")

        environment = (self.environment or "").lower()
        if environment not in _AUTH_URLS:
            raise ValueError(
                "environment must be either 'sandbox' or 'production', got %r"
                % self.environment
            )
        object.__setattr__(self, "environment", environment)

    @property
    def auth_url(self) -> str:
        return _AUTH_URLS[self.environment]

    @property
    def token_url(self) -> str:
        return f"{self.auth_url}/oauth2/token"

    @property
    def api_url(self) -> str:
        return _API_URLS[self.environment].format(
            country_code=self.country_code, version=self.version
        )

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "ClientConfig":
        """Build a configuration from ``PANDAGO_*`` environment variables.

        The private key is read from ``PANDAGO_PRIVATE_KEY`` or, when
        that is unset, from the file named by ``PANDAGO_PRIVATE_KEY_FILE``.
        Keyword arguments take precedence over the environment.
        """
        env = os.environ if environ is None else environ

        values: dict = {}
        simple = {
            "client_id": "PANDAGO_CLIENT_ID",
            "key_id": "PANDAGO_KEY_ID",
            "environment": "PANDAGO_ENV",
            "country_code": "PANDAGO_COUNTRY_CODE",
            "version": "PANDAGO_VERSION",
            "scope": "PANDAGO_SCOPE",
        }
        for name, var in simple.items():
            if env.get(var):
                values[name] = env[var]

        private_key = env.get("PANDAGO_PRIVATE_KEY")
        if private_key:
            # Single-line env values carry the PEM newlines escaped
            values["private_key"] = private_key.replace("\\n", "\n")
        elif env.get("PANDAGO_PRIVATE_KEY_FILE"):
            key_path = Path(env["PANDAGO_PRIVATE_KEY_FILE"]).expanduser()
            values["private_key"] = key_path.read_text(encoding="utf-8")

        if env.get("PANDAGO_DEBUG"):
            values["debug"] = env["PANDAGO_DEBUG"].strip().lower() in _TRUTHY
        if env.get("PANDAGO_TIMEOUT"):
            values["timeout"] = float(env["PANDAGO_TIMEOUT"])

        values.update(overrides)
        values.setdefault("client_id", "")
        values.setdefault("key_id", "")
        values.setdefault("private_key", "")
        return cls(**values)
