"""
Session token sources and local credential decoding.

The token's payload is decoded without verifying the signature: the
only purpose is to skip a handshake that the server would reject anyway
because the token has already expired. The server stays the authority
on validity.
"""

import os
import time
from typing import Optional, Protocol

import jwt

from .exceptions import CredentialExpiredError, InvalidCredentialError
from .types import SessionCredential


class TokenSource(Protocol):
    """Where the bearer token for the current viewer comes from."""

    def get_token(self) -> Optional[str]:
        ...

    def is_authenticated(self) -> bool:
        ...


class StaticTokenSource:
    """Token source holding a fixed token (scripts and tests)."""

    def __init__(self, token: Optional[str] = None):
        self.token = token

    def get_token(self) -> Optional[str]:
        return self.token

    def is_authenticated(self) -> bool:
        return bool(self.token)


class EnvTokenSource:
    """Token source that reads the bearer from an environment variable on every call."""

    def __init__(self, var_name: str = "REALTIME_TOKEN"):
        self.var_name = var_name

    def get_token(self) -> Optional[str]:
        return os.getenv(self.var_name) or None

    def is_authenticated(self) -> bool:
        return self.get_token() is not None


def decode_credential(token: str) -> SessionCredential:
    """
    Decode a JWT-style bearer token into a SessionCredential.

    Args:
        token: Bearer token (header.payload.signature)

    Returns:
        SessionCredential with the payload's ``exp``

    Raises:
        InvalidCredentialError: If the token can't be decoded or has no numeric ``exp``
    """
    if not token or token.count(".") != 2:
        raise InvalidCredentialError("Token is not a three-part JWT")

    try:
        payload = jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": False},
        )
    except jwt.InvalidTokenError as e:
        raise InvalidCredentialError(f"Undecodable token payload: {e}") from e

    exp = payload.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise InvalidCredentialError("Token payload has no numeric 'exp'")

    return SessionCredential(token=token, exp=float(exp))


def load_credential(
    source: TokenSource,
    now: Optional[float] = None
) -> Optional[SessionCredential]:
    """
    Fetch and check the current credential.

    Returns None when the source has no token.

    Raises:
        InvalidCredentialError: Token present but undecodable
        CredentialExpiredError: Token present but expired
    """
    token = source.get_token()
    if not token:
        return None

    credential = decode_credential(token)
    if credential.is_expired(time.time() if now is None else now):
        raise CredentialExpiredError(credential.exp)
    return credential
