from __future__ import annotations

import unittest
from fractions import Fraction

from kujifair.prize_draw.errors import InvalidNonce, InvalidSeedFormat
from kujifair.prize_draw.oracle import (
    MAX_NONCE,
    RandomValue,
    derive,
    normalize_seed,
    txid,
    txid_hash,
)

ZERO_SEED = "00" * 32
ONES_SEED = "11" * 32


class DeriveTests(unittest.TestCase):
    def test_golden_vector(self) -> None:
        value = derive(ZERO_SEED, 1)
        self.assertEqual(value.integer, 9545703596811623773)
        self.assertEqual(value.hex, "847926d893201d5d")
        self.assertEqual(value.exact, Fraction(9545703596811623773, 2**64))
        self.assertAlmostEqual(float(value), 0.5174736288782928, places=12)

    def test_same_inputs_give_same_value(self) -> None:
        self.assertEqual(derive(ONES_SEED, 7), derive(ONES_SEED, 7))
        self.assertEqual(derive(ONES_SEED, 7).hex, "b715805da050daee")
        self.assertNotEqual(derive(ONES_SEED, 7), derive(ONES_SEED, 8))

    def test_uppercase_seed_is_normalized(self) -> None:
        self.assertEqual(derive(ZERO_SEED.upper(), 1), derive(ZERO_SEED, 1))
        self.assertEqual(normalize_seed("AB" * 32), "ab" * 32)

    def test_float_projection_stays_below_one(self) -> None:
        top = RandomValue(2**64 - 1)
        self.assertLess(float(top), 1.0)
        self.assertLess(top.exact, 1)
        self.assertEqual(float(RandomValue(0)), 0.0)

    def test_rejects_malformed_seed(self) -> None:
        for seed in ("", "00" * 31, "00" * 33, "zz" * 32, " " + "0" * 63, None, 123):
            with self.subTest(seed=seed):
                with self.assertRaises(InvalidSeedFormat):
                    derive(seed, 1)  # type: ignore[arg-type]

    def test_rejects_bad_nonce(self) -> None:
        for nonce in (0, -1, True, 1.0, "1", MAX_NONCE + 1):
            with self.subTest(nonce=nonce):
                with self.assertRaises(InvalidNonce):
                    derive(ZERO_SEED, nonce)  # type: ignore[arg-type]

    def test_largest_nonce_is_accepted(self) -> None:
        self.assertIsInstance(derive(ZERO_SEED, MAX_NONCE), RandomValue)


class TxidTests(unittest.TestCase):
    def test_txid_layout(self) -> None:
        self.assertEqual(txid(ZERO_SEED, 12), (ZERO_SEED + ":12").encode("ascii"))

    def test_txid_hash_known_values(self) -> None:
        self.assertEqual(
            txid_hash(ZERO_SEED, 1),
            "0014ab94578f46aac267ddc24503efc56ad0d5941c006f8ca0ef7e5a63c8f17f",
        )
        self.assertEqual(
            txid_hash(ONES_SEED, 3),
            "c6b5ab240dd39e822e6d66acaee1543dab6b918a8cc80552eac9f33e142f4717",
        )


if __name__ == "__main__":
    unittest.main()
