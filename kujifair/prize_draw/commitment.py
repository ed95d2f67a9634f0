"""Seed generation, the public commitment, and sealing seeds at rest."""

from __future__ import annotations

import logging
import os
import secrets
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from dotenv import load_dotenv

from .oracle import normalize_seed, txid_hash

logger = logging.getLogger(__name__)

SEED_BYTES = 32
COMMITMENT_NONCE = 1
SEED_KEY_ENV = "KUJIFAIR_SEED_KEY"


def compute_commitment(seed: str) -> str:
    """Return the commitment hash ``SHA256(TXID(seed, 1))`` for ``seed``.

    This is the only commitment scheme; commit, publish and verify paths all
    call it.
    """

    return txid_hash(seed, COMMITMENT_NONCE)


class SeedCommitment:
    """Generates activity seeds and their public commitments."""

    def __init__(self, *, token_bytes=secrets.token_bytes) -> None:
        self._token_bytes = token_bytes

    def commit(self) -> tuple[str, str]:
        """Draw a fresh seed and compute its commitment.

        Returns
        -------
        tuple[str, str]
            ``(seed, commitment_hash)``; both are 64 lowercase hex characters.
        """

        seed = self._token_bytes(SEED_BYTES).hex()
        return seed, compute_commitment(seed)

    @staticmethod
    def matches(seed: str, commitment_hash: str) -> bool:
        """Return ``True`` when ``seed`` opens ``commitment_hash``."""

        candidate = (commitment_hash or "").strip().lower()
        return secrets.compare_digest(
            compute_commitment(seed).encode(), candidate.encode()
        )


class SeedSealer:
    """Encrypts seeds while an activity is on sale.

    The key is a urlsafe base64 Fernet key. When omitted it is read from the
    ``KUJIFAIR_SEED_KEY`` environment variable.
    """

    def __init__(self, key: Optional[str | bytes] = None) -> None:
        if key is None:
            load_dotenv()
            key = os.getenv(SEED_KEY_ENV)
        if not key:
            raise ValueError(f"Environment variable '{SEED_KEY_ENV}' is not set")
        self._fernet = Fernet(key)

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("ascii")

    def seal(self, seed: str) -> str:
        return self._fernet.encrypt(normalize_seed(seed).encode("ascii")).decode("ascii")

    def unseal(self, token: str) -> str:
        try:
            plaintext = self._fernet.decrypt(token.encode("ascii"))
        except InvalidToken as exc:
            # Never log the token; it is only useless without the key.
            logger.critical("Sealed seed could not be decrypted with the configured key")
            raise RuntimeError("Sealed seed could not be decrypted") from exc
        return normalize_seed(plaintext.decode("ascii"))


__all__ = [
    "COMMITMENT_NONCE",
    "SeedCommitment",
    "SeedSealer",
    "compute_commitment",
]
