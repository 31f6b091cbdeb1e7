"""
Client-credentials authentication helpers.

pandago does not use client secrets.  Instead the client signs a short
JWT assertion with its RSA private key and exchanges it at the token
endpoint for a bearer access token.  The helpers in this module are
pure functions of the configuration; the clients perform the I/O.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

import jwt

from .config import ClientConfig
from .exceptions import PandagoAuthError

# The assertion audience is the production issuer in every environment
ASSERTION_AUDIENCE = "https://sts.deliveryhero.io"
ASSERTION_ALGORITHM = "RS256"
CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


def sign_assertion(config: ClientConfig) -> str:
    """Return the compact RS256 assertion identifying ``config.client_id``.

    Errors raised by the signing library (for instance a malformed
    private key) propagate unchanged.
    """
    claims = {
        "iss": config.client_id,
        "sub": config.client_id,
        "aud": ASSERTION_AUDIENCE,
    }
    return jwt.encode(
        claims,
        config.private_key,
        algorithm=ASSERTION_ALGORITHM,
        headers={"kid": config.key_id},
    )


def token_request_form(config: ClientConfig) -> Dict[str, str]:
    """Build the form fields posted to the token endpoint."""
    return {
        "grant_type": "client_credentials",
        "client_id": config.client_id,
        "client_assertion_type": CLIENT_ASSERTION_TYPE,
        "client_assertion": sign_assertion(config),
        "scope": config.scope,
    }


def parse_token_response(token_info: Any) -> Tuple[str, float]:
    """Extract ``(access_token, expires_in)`` from a token response body."""
    if not isinstance(token_info, dict):
        raise PandagoAuthError("Authentication response was not a JSON object")
    access_token = token_info.get("access_token")
    if not access_token or not isinstance(access_token, str):
        raise PandagoAuthError(
            "Authentication response did not contain an access_token"
        )
    expires_in = token_info.get("expires_in")
    if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)):
        raise PandagoAuthError(
            "Authentication response did not contain a numeric expires_in"
        )
    return access_token, float(expires_in)


def api_headers(access_token: str) -> Dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "Authorization": f"Bearer {access_token}",
    }
