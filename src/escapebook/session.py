"""Signed access tokens issued after a successful login.

Token format: ``<expires-unix>.<nonce-hex>.<mac-hex>`` where the MAC is keyed
BLAKE2b over ``<expires-unix>.<nonce-hex>``.
"""

from __future__ import annotations

import time
from typing import Optional

from nacl.bindings import sodium_memcmp
from nacl.encoding import HexEncoder, RawEncoder
from nacl.hash import blake2b
from nacl.utils import random as nacl_random

SESSION_COOKIE = "escapebook_session"

_NONCE_SIZE = 12
_MAC_SIZE = 32


def _mac_key(secret: str) -> bytes:
    # blake2b keys are capped at 64 bytes, so derive a fixed-size key first
    return blake2b(secret.encode("utf-8"), digest_size=32, encoder=RawEncoder)


def _mac(payload: str, secret: str) -> bytes:
    return blake2b(
        payload.encode("ascii"),
        digest_size=_MAC_SIZE,
        key=_mac_key(secret),
        encoder=RawEncoder,
    )


def issue_token(secret: str, max_age: int, now: Optional[float] = None) -> str:
    """Create a token valid for ``max_age`` seconds."""
    issued = time.time() if now is None else now
    expires = int(issued) + max_age
    nonce = HexEncoder.encode(nacl_random(_NONCE_SIZE)).decode("ascii")
    payload = f"{expires}.{nonce}"
    mac = HexEncoder.encode(_mac(payload, secret)).decode("ascii")
    return f"{payload}.{mac}"


def verify_token(token: Optional[str], secret: str, now: Optional[float] = None) -> bool:
    """True if the token was issued with ``secret`` and has not expired."""
    if not token or not secret:
        return False
    parts = token.split(".")
    if len(parts) != 3:
        return False
    expires_raw, nonce, mac_hex = parts
    try:
        expires = int(expires_raw)
        given = HexEncoder.decode(mac_hex.encode("ascii"))
        expected = _mac(f"{expires_raw}.{nonce}", secret)
    except (ValueError, UnicodeEncodeError):
        return False
    if len(given) != _MAC_SIZE:
        return False
    if not sodium_memcmp(given, expected):
        return False
    current = time.time() if now is None else now
    return current < expires
