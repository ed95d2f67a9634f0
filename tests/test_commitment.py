from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from kujifair.prize_draw.commitment import SeedCommitment, SeedSealer, compute_commitment
from kujifair.prize_draw.errors import InvalidSeedFormat

ZERO_COMMITMENT = "0014ab94578f46aac267ddc24503efc56ad0d5941c006f8ca0ef7e5a63c8f17f"
ONES_COMMITMENT = "ac9372695ef808b07b1faf1fbcf9218a084349ac6db3397bac3ab94260af48a5"


class SeedCommitmentTests(unittest.TestCase):
    def test_commit_uses_injected_entropy(self) -> None:
        commitment = SeedCommitment(token_bytes=lambda n: b"\x00" * n)
        seed, commitment_hash = commitment.commit()
        self.assertEqual(seed, "00" * 32)
        self.assertEqual(commitment_hash, ZERO_COMMITMENT)

    def test_commitment_is_stable(self) -> None:
        self.assertEqual(compute_commitment("11" * 32), ONES_COMMITMENT)
        self.assertEqual(compute_commitment("11" * 32), compute_commitment("11" * 32))

    def test_fresh_seeds_differ(self) -> None:
        first, _ = SeedCommitment().commit()
        second, _ = SeedCommitment().commit()
        self.assertEqual(len(first), 64)
        self.assertNotEqual(first, second)

    def test_matches(self) -> None:
        self.assertTrue(SeedCommitment.matches("11" * 32, ONES_COMMITMENT))
        self.assertTrue(SeedCommitment.matches("11" * 32, ONES_COMMITMENT.upper()))
        self.assertFalse(SeedCommitment.matches("00" * 32, ONES_COMMITMENT))
        self.assertFalse(SeedCommitment.matches("11" * 32, ""))
        self.assertFalse(SeedCommitment.matches("11" * 32, "\u00e9" * 64))


class SeedSealerTests(unittest.TestCase):
    def test_seal_and_unseal(self) -> None:
        sealer = SeedSealer(SeedSealer.generate_key())
        token = sealer.seal("AB" * 32)
        self.assertNotIn("ab" * 32, token)
        self.assertEqual(sealer.unseal(token), "ab" * 32)

    def test_unseal_with_other_key_fails(self) -> None:
        token = SeedSealer(SeedSealer.generate_key()).seal("11" * 32)
        other = SeedSealer(SeedSealer.generate_key())
        with self.assertLogs("kujifair.prize_draw.commitment", level="CRITICAL"):
            with self.assertRaises(RuntimeError):
                other.unseal(token)

    def test_seal_rejects_malformed_seed(self) -> None:
        sealer = SeedSealer(SeedSealer.generate_key())
        with self.assertRaises(InvalidSeedFormat):
            sealer.seal("not-a-seed")

    @patch("kujifair.prize_draw.commitment.load_dotenv")
    def test_requires_key(self, mock_load_dotenv) -> None:
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ValueError):
                SeedSealer()

    @patch("kujifair.prize_draw.commitment.load_dotenv")
    def test_reads_key_from_environment(self, mock_load_dotenv) -> None:
        key = SeedSealer.generate_key()
        with patch.dict(os.environ, {"KUJIFAIR_SEED_KEY": key}, clear=True):
            sealer = SeedSealer()
        self.assertEqual(SeedSealer(key).unseal(sealer.seal("00" * 32)), "00" * 32)


if __name__ == "__main__":
    unittest.main()
