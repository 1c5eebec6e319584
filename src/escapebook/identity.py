"""Pseudonymous client identities and secret comparison.

Identity format: hex SHA-256 of ``<client address><server salt>``. The hash is
only ever used as an opaque equality key.
"""

from __future__ import annotations

from nacl.bindings import sodium_memcmp
from nacl.encoding import HexEncoder, RawEncoder
from nacl.hash import sha256

UNKNOWN_ADDRESS = "0.0.0.0"


class IdentityHasher:
    """Derives a stable identity hash from a client network address."""

    def __init__(self, salt: str):
        self._salt = salt

    def __call__(self, address: str | None) -> str:
        return self.hash(address)

    def hash(self, address: str | None) -> str:
        source = (address or UNKNOWN_ADDRESS) + self._salt
        return sha256(source.encode("utf-8"), encoder=HexEncoder).decode("ascii")


def secrets_match(submitted: str | None, expected: str | None) -> bool:
    """Constant-time secret comparison. An unset expected secret never matches."""
    if not expected or submitted is None:
        return False
    a = sha256(submitted.encode("utf-8"), encoder=RawEncoder)
    b = sha256(expected.encode("utf-8"), encoder=RawEncoder)
    return sodium_memcmp(a, b)


def short_hash(identity: str) -> str:
    """Truncated identity for log lines."""
    return identity[:12]
