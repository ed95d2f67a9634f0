import unittest

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kujifair.api import create_app
from kujifair.models import Base
from kujifair.prize_draw.commitment import SeedSealer, compute_commitment

ACTIVITY = {
    "name": "API Kuji",
    "major_levels": ["A"],
    "levels": [
        {"code": "A", "name": "Figure", "total": 1, "base_probability": 5},
        {"code": "B", "name": "Plush", "total": 2, "base_probability": 15},
        {"code": "C", "name": "Towel", "total": 7, "base_probability": 80},
    ],
}


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        # One shared connection so the in-memory database is visible to the
        # worker threads serving requests.
        self.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        Session = sessionmaker(bind=self.engine, future=True, expire_on_commit=False)
        self.client = TestClient(
            create_app(session_factory=Session, sealer=SeedSealer(SeedSealer.generate_key()))
        )

    def tearDown(self):
        self.client.close()
        self.engine.dispose()

    def _create(self, payload=None) -> int:
        response = self.client.post("/activities", json=payload or ACTIVITY)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["id"]

    def _create_active(self) -> tuple[int, str]:
        activity_id = self._create()
        response = self.client.post(f"/activities/{activity_id}/activate")
        self.assertEqual(response.status_code, 200, response.text)
        return activity_id, response.json()["commitmentHash"]


class ActivityEndpointTests(ApiTestCase):
    def test_full_flow(self):
        activity_id, commitment = self._create_active()
        self.assertEqual(len(commitment), 64)

        first = self.client.post(f"/activities/{activity_id}/draws", json={"buyer_ref": "u1"})
        self.assertEqual(first.status_code, 200)
        body = first.json()
        self.assertEqual(body["ticketNumber"], 1)
        self.assertIn(body["prizeLevel"], {"A", "B", "C"})
        self.assertEqual(len(body["txidHash"]), 64)
        self.assertNotIn("randomValue", body)

        view = self.client.get(f"/activities/{activity_id}").json()
        self.assertIsNone(view["seed"])
        self.assertEqual(view["pool_remaining"], 9)
        self.assertNotIn("random_value", view["draws"][0])

        early = self.client.post(f"/activities/{activity_id}/reveal")
        self.assertEqual(early.status_code, 409)

        batch = self.client.post(f"/activities/{activity_id}/draws/batch", json={"count": 20})
        self.assertEqual(batch.status_code, 200)
        self.assertEqual(len(batch.json()["draws"]), 9)
        self.assertTrue(batch.json()["soldOut"])

        sold_out = self.client.post(f"/activities/{activity_id}/draws")
        self.assertEqual(sold_out.json(), {"soldOut": True, "lastTicketNumber": 10})

        revealed = self.client.post(f"/activities/{activity_id}/reveal").json()
        self.assertEqual(compute_commitment(revealed["seed"]), commitment)

        report = self.client.get(f"/activities/{activity_id}/verify").json()
        self.assertTrue(report["hashMatch"])
        self.assertEqual(report["passCount"], 10)
        self.assertEqual(report["totalCount"], 10)
        self.assertEqual(len(report["perDraw"]), 10)

        wrong = self.client.get(
            f"/activities/{activity_id}/verify", params={"seed": "00" * 32}
        ).json()
        self.assertFalse(wrong["hashMatch"])

        ticket = self.client.post(
            "/verify/ticket",
            json={"seed": revealed["seed"], "nonce": 1, "txid_hash": body["txidHash"]},
        ).json()
        self.assertTrue(ticket["hashMatch"])

    def test_idempotent_draw(self):
        activity_id, _ = self._create_active()
        payload = {"idempotency_key": "order-42"}
        first = self.client.post(f"/activities/{activity_id}/draws", json=payload).json()
        again = self.client.post(f"/activities/{activity_id}/draws", json=payload).json()
        self.assertEqual(first, again)

    def test_pending_activity_conflicts(self):
        activity_id = self._create()
        response = self.client.post(f"/activities/{activity_id}/draws")
        self.assertEqual(response.status_code, 409)

    def test_double_activation_conflicts(self):
        activity_id, _ = self._create_active()
        response = self.client.post(f"/activities/{activity_id}/activate")
        self.assertEqual(response.status_code, 409)

    def test_end_and_profit_rate(self):
        activity_id, _ = self._create_active()
        rate = self.client.put(
            f"/activities/{activity_id}/profit-rate", json={"profit_rate": 0.5}
        )
        self.assertEqual(rate.json(), {"profitRate": 0.5})

        ended = self.client.post(f"/activities/{activity_id}/end", json={"reason": "closed"})
        self.assertEqual(ended.json(), {"status": "ended"})
        self.assertEqual(self.client.post(f"/activities/{activity_id}/draws").status_code, 409)

    def test_unknown_activity(self):
        self.assertEqual(self.client.get("/activities/999").status_code, 404)
        self.assertEqual(self.client.post("/activities/999/draws").status_code, 404)

    def test_bad_probability_sum(self):
        payload = dict(ACTIVITY, levels=ACTIVITY["levels"][:2])
        response = self.client.post("/activities", json=payload)
        self.assertEqual(response.status_code, 400)

    def test_duplicate_external_ref(self):
        payload = dict(ACTIVITY, external_ref="CAT-1")
        self._create(payload)
        self.assertEqual(self.client.post("/activities", json=payload).status_code, 409)

    def test_verify_before_reveal_needs_seed(self):
        activity_id, _ = self._create_active()
        self.assertEqual(self.client.get(f"/activities/{activity_id}/verify").status_code, 409)
        bad = self.client.get(f"/activities/{activity_id}/verify", params={"seed": "xyz"})
        self.assertEqual(bad.status_code, 400)


class TicketEndpointTests(ApiTestCase):
    def test_rejects_malformed_seed(self):
        response = self.client.post(
            "/verify/ticket", json={"seed": "abc", "nonce": 1, "txid_hash": "00" * 32}
        )
        self.assertEqual(response.status_code, 400)

    def test_nonce_must_be_positive(self):
        response = self.client.post(
            "/verify/ticket", json={"seed": "00" * 32, "nonce": 0, "txid_hash": "00" * 32}
        )
        self.assertEqual(response.status_code, 422)

    def test_receipt_hash_must_be_hex(self):
        response = self.client.post(
            "/verify/ticket",
            json={"seed": "00" * 32, "nonce": 1, "txid_hash": "\u00e9" * 64},
        )
        self.assertEqual(response.status_code, 422)

    def test_foreign_receipt_does_not_match(self):
        response = self.client.post(
            "/verify/ticket",
            json={"seed": "00" * 32, "nonce": 1, "txid_hash": "ab" * 32},
        )
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["hashMatch"])


if __name__ == "__main__":
    unittest.main()
