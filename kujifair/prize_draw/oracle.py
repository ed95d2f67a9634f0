"""Deterministic random values derived from an activity seed.

Byte encoding (fixed; any port must reproduce it exactly):

* ``seed`` is the 64-character lowercase hex string. Its ASCII bytes are the
  HMAC key and the TXID prefix; the hex is *not* decoded to raw bytes.
* ``decimal(nonce)`` is the ASCII base-10 rendering, no sign or padding.
* ``TXID(seed, nonce) = seed || ":" || decimal(nonce)``.
* ``digest = HMAC-SHA256(key=seed, msg=decimal(nonce))``.
* The first 8 digest bytes, read big-endian, form ``v``; the value is the
  exact rational ``v / 2**64``.
"""

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
import hashlib
import hmac
import math
import string

from .errors import InvalidNonce, InvalidSeedFormat

SEED_HEX_LENGTH = 64
RANDOM_PREFIX_BYTES = 8
RANDOM_SPACE = 1 << (RANDOM_PREFIX_BYTES * 8)
MAX_NONCE = RANDOM_SPACE - 1

_HEX_DIGITS = frozenset(string.hexdigits)


@dataclass(frozen=True)
class RandomValue:
    """Uniform value in ``[0, 1)`` produced by :func:`derive`.

    Attributes
    ----------
    integer : int
        Unsigned 64-bit integer read from the digest prefix.
    """

    integer: int

    @property
    def hex(self) -> str:
        """The 16 hex characters the integer was read from."""
        return format(self.integer, "016x")

    @property
    def exact(self) -> Fraction:
        """Exact rational value ``integer / 2**64``."""
        return Fraction(self.integer, RANDOM_SPACE)

    def __float__(self) -> float:
        # Truncate to the 53 bits a double can hold so the result stays below 1.
        return math.ldexp(self.integer >> 11, -53)


def normalize_seed(seed: str) -> str:
    """Return ``seed`` in canonical lowercase form.

    Raises
    ------
    InvalidSeedFormat
        If ``seed`` is not a string of exactly 64 hexadecimal characters.
    """

    if not isinstance(seed, str):
        raise InvalidSeedFormat("seed must be a hex string")
    if len(seed) != SEED_HEX_LENGTH or not _HEX_DIGITS.issuperset(seed):
        raise InvalidSeedFormat(
            f"seed must be exactly {SEED_HEX_LENGTH} hexadecimal characters"
        )
    return seed.lower()


def validate_nonce(nonce: int) -> int:
    """Return ``nonce`` unchanged if it is a usable draw index."""

    if isinstance(nonce, bool) or not isinstance(nonce, int):
        raise InvalidNonce("nonce must be an integer")
    if nonce < 1 or nonce > MAX_NONCE:
        raise InvalidNonce(f"nonce must be between 1 and {MAX_NONCE}")
    return nonce


def txid(seed: str, nonce: int) -> bytes:
    """Return the canonical TXID byte string for ``(seed, nonce)``."""

    canonical_seed = normalize_seed(seed)
    validate_nonce(nonce)
    return f"{canonical_seed}:{nonce}".encode("ascii")


def txid_hash(seed: str, nonce: int) -> str:
    """SHA-256 hex digest of ``TXID(seed, nonce)``."""

    return hashlib.sha256(txid(seed, nonce)).hexdigest()


def derive(seed: str, nonce: int) -> RandomValue:
    """Map ``(seed, nonce)`` to a uniform value in ``[0, 1)``.

    Parameters
    ----------
    seed : str
        Activity seed as 64 hex characters.
    nonce : int
        1-based ticket number.

    Returns
    -------
    RandomValue
        The full 64-bit draw; use :attr:`RandomValue.exact` for selection.
    """

    canonical_seed = normalize_seed(seed)
    validate_nonce(nonce)
    digest = hmac.new(
        canonical_seed.encode("ascii"),
        str(nonce).encode("ascii"),
        hashlib.sha256,
    ).digest()
    return RandomValue(int.from_bytes(digest[:RANDOM_PREFIX_BYTES], "big"))


__all__ = [
    "MAX_NONCE",
    "RandomValue",
    "derive",
    "normalize_seed",
    "txid",
    "txid_hash",
    "validate_nonce",
]
