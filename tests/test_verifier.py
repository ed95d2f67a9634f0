from __future__ import annotations

import dataclasses
import unittest
from dataclasses import dataclass, field

from kujifair.prize_draw.adjuster import LevelSpec
from kujifair.prize_draw.commitment import compute_commitment
from kujifair.prize_draw.engine import REPLAY_CONTRACT_VERSION
from kujifair.prize_draw.errors import InvalidSeedFormat
from kujifair.prize_draw.oracle import txid_hash
from kujifair.prize_draw.verifier import ReplayRecord, Verifier, verify_ticket

SEED = "11" * 32
EXPECTED_RESULTS = list("CCCCCCCBAB")


@dataclass
class AuditedActivity:
    """Just enough of an activity for the verifier."""

    commitment_hash: str
    levels: list = field(default_factory=list)
    id: int = 1
    replay_version: int = REPLAY_CONTRACT_VERSION

    def level_specs(self) -> list[LevelSpec]:
        return list(self.levels)


def kuji_activity(with_bonus: bool = False) -> AuditedActivity:
    levels = [
        LevelSpec(code="A", total=1, base_probability=5, is_major=True, remaining=0),
        LevelSpec(code="B", total=2, base_probability=15, remaining=0),
        LevelSpec(code="C", total=7, base_probability=80, remaining=0),
    ]
    if with_bonus:
        levels.append(LevelSpec(code="LAST", total=1, base_probability=0, is_bonus=True))
    return AuditedActivity(commitment_hash=compute_commitment(SEED), levels=levels)


def honest_records() -> list[ReplayRecord]:
    return [
        ReplayRecord(ticket_number=idx, result_level=code, recorded_profit_rate=1.0)
        for idx, code in enumerate(EXPECTED_RESULTS, start=1)
    ]


class VerifierTests(unittest.TestCase):
    def test_honest_history_passes(self) -> None:
        report = Verifier().verify(kuji_activity(), SEED, honest_records())
        self.assertTrue(report.hash_match)
        self.assertTrue(report.contiguous)
        self.assertEqual(report.pass_count, 10)
        self.assertEqual(report.total_count, 10)
        self.assertTrue(report.passed)
        self.assertEqual(report.mismatches, [])

    def test_replay_ignores_live_remaining_counts(self) -> None:
        # Every level is at zero remaining; replay must start from totals.
        report = Verifier().verify(kuji_activity(), SEED, honest_records())
        self.assertEqual([d.expected for d in report.per_draw], EXPECTED_RESULTS)

    def test_single_tampered_result_is_flagged(self) -> None:
        records = honest_records()
        records[2] = dataclasses.replace(records[2], result_level="A")

        report = Verifier().verify(kuji_activity(), SEED, records)
        self.assertEqual(report.pass_count, 9)
        self.assertFalse(report.passed)
        self.assertEqual(len(report.mismatches), 1)
        flagged = report.mismatches[0]
        self.assertEqual(flagged.ticket_number, 3)
        self.assertEqual(flagged.expected, "C")
        self.assertEqual(flagged.actual, "A")

    def test_wrong_seed_breaks_commitment(self) -> None:
        report = Verifier().verify(kuji_activity(), "00" * 32, honest_records())
        self.assertFalse(report.hash_match)
        self.assertFalse(report.passed)

    def test_missing_commitment_never_matches(self) -> None:
        activity = kuji_activity()
        activity.commitment_hash = None
        self.assertFalse(Verifier().verify(activity, SEED, honest_records()).hash_match)

    def test_malformed_seed_is_rejected(self) -> None:
        with self.assertRaises(InvalidSeedFormat):
            Verifier().verify(kuji_activity(), "abc", honest_records())

    def test_records_are_replayed_in_ticket_order(self) -> None:
        shuffled = list(reversed(honest_records()))
        report = Verifier().verify(kuji_activity(), SEED, shuffled)
        self.assertEqual([d.ticket_number for d in report.per_draw], list(range(1, 11)))
        self.assertTrue(report.passed)

    def test_gap_in_tickets_fails(self) -> None:
        records = [r for r in honest_records() if r.ticket_number != 5]
        report = Verifier().verify(kuji_activity(), SEED, records)
        self.assertFalse(report.contiguous)
        self.assertFalse(report.passed)

    def test_ticket_after_sold_out_has_no_expected_level(self) -> None:
        records = honest_records() + [ReplayRecord(ticket_number=11, result_level="C")]
        report = Verifier().verify(kuji_activity(), SEED, records)
        last = report.per_draw[-1]
        self.assertIsNone(last.expected)
        self.assertFalse(last.match)
        self.assertEqual(report.pass_count, 10)

    def test_bonus_ticket_is_verified(self) -> None:
        records = honest_records() + [ReplayRecord(ticket_number=11, result_level="LAST")]
        report = Verifier().verify(kuji_activity(with_bonus=True), SEED, records)
        self.assertTrue(report.passed)
        self.assertEqual(report.per_draw[-1].expected, "LAST")

    def test_recorded_rate_drives_replay(self) -> None:
        # Ticket 8 (~0.374) is B at rate 1.0, but at rate 3.0 level A's
        # share of the eligible A/B weight grows past one half.
        records = honest_records()
        records[7] = dataclasses.replace(records[7], recorded_profit_rate=3.0)
        report = Verifier().verify(kuji_activity(), SEED, records)
        self.assertEqual(report.per_draw[7].profit_rate, 3.0)
        self.assertEqual(report.per_draw[7].expected, "A")
        self.assertFalse(report.per_draw[7].match)

    def test_txid_hash_is_checked_when_present(self) -> None:
        records = honest_records()
        records[0] = dataclasses.replace(records[0], txid_hash=txid_hash(SEED, 1))
        records[1] = dataclasses.replace(records[1], txid_hash="0" * 64)
        report = Verifier().verify(kuji_activity(), SEED, records)
        self.assertTrue(report.per_draw[0].txid_hash_match)
        self.assertFalse(report.per_draw[1].txid_hash_match)
        self.assertIsNone(report.per_draw[2].txid_hash_match)

    def test_out_of_range_rate_is_flagged_not_raised(self) -> None:
        records = honest_records()
        records[0] = dataclasses.replace(records[0], recorded_profit_rate=5.0)
        report = Verifier().verify(kuji_activity(), SEED, records)

        first = report.per_draw[0]
        self.assertIsNone(first.expected)
        self.assertFalse(first.match)
        self.assertEqual(first.profit_rate, 5.0)
        self.assertAlmostEqual(first.random_value, 0.889, places=3)
        self.assertEqual(report.total_count, 10)
        self.assertFalse(report.passed)

    def test_ticket_zero_is_flagged_not_raised(self) -> None:
        records = [ReplayRecord(ticket_number=0, result_level="C", txid_hash="0" * 64)]
        records += honest_records()
        report = Verifier().verify(kuji_activity(), SEED, records)

        bogus = report.per_draw[0]
        self.assertEqual(bogus.ticket_number, 0)
        self.assertIsNone(bogus.expected)
        self.assertIsNone(bogus.random_value)
        self.assertFalse(bogus.match)
        self.assertFalse(bogus.txid_hash_match)
        self.assertFalse(report.contiguous)
        # The bad row consumed nothing, so the real tickets still replay.
        self.assertEqual(report.pass_count, 10)
        self.assertEqual(report.total_count, 11)

    def test_non_ascii_digests_do_not_match(self) -> None:
        activity = kuji_activity()
        activity.commitment_hash = "é" * 64
        records = honest_records()
        records[0] = dataclasses.replace(records[0], txid_hash="é" * 64)
        report = Verifier().verify(activity, SEED, records)
        self.assertFalse(report.hash_match)
        self.assertFalse(report.per_draw[0].txid_hash_match)

    def test_unknown_replay_version(self) -> None:
        activity = kuji_activity()
        activity.replay_version = REPLAY_CONTRACT_VERSION + 1
        with self.assertRaises(ValueError):
            Verifier().verify(activity, SEED, honest_records())

    def test_report_serialization(self) -> None:
        data = Verifier().verify(kuji_activity(), SEED, honest_records()).to_dict()
        self.assertTrue(data["hashMatch"])
        self.assertEqual(data["passCount"], 10)
        self.assertEqual(data["totalCount"], 10)
        self.assertEqual(data["perDraw"][0]["ticketNumber"], 1)
        self.assertEqual(data["perDraw"][0]["expected"], "C")


class VerifyTicketTests(unittest.TestCase):
    def test_matching_receipt(self) -> None:
        result = verify_ticket(SEED, 3, txid_hash(SEED, 3).upper())
        self.assertTrue(result.hash_match)
        self.assertEqual(result.random_hex, "3e352b35c627760f")
        self.assertAlmostEqual(result.random_value, 0.243, places=3)

    def test_foreign_receipt(self) -> None:
        self.assertFalse(verify_ticket(SEED, 4, txid_hash(SEED, 3)).hash_match)

    def test_non_ascii_receipt(self) -> None:
        self.assertFalse(verify_ticket(SEED, 1, "\u00e9" * 64).hash_match)


if __name__ == "__main__":
    unittest.main()
