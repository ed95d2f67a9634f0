"""FastAPI application exposing draws, reveal and verification."""

import logging
from typing import Iterator, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker

from . import workflows
from .db.engine import get_sessionmaker, make_engine
from .models import Activity, DrawRecord, PrizeLevel
from .prize_draw.commitment import SeedSealer
from .prize_draw.errors import ActivityStateError, AlreadyCommitted, InventoryExhausted
from .prize_draw.verifier import verify_ticket
from .schemas import (
    ActivityCreate,
    BatchDrawRequest,
    DrawRequest,
    EndRequest,
    ProfitRateUpdate,
    TicketVerifyRequest,
)

logger = logging.getLogger(__name__)


def _draw_payload(record: DrawRecord) -> dict:
    # Never expose the oracle output while the seed is secret.
    return {
        "ticketNumber": record.ticket_number,
        "prizeLevel": record.result_level,
        "txidHash": record.txid_hash,
        "isBonus": record.is_bonus,
    }


def create_app(
    session_factory: Optional[sessionmaker] = None,
    sealer: Optional[SeedSealer] = None,
) -> FastAPI:
    """Build the application.

    ``session_factory`` defaults to one bound to ``DB_URL``. ``sealer`` is
    created from ``KUJIFAIR_SEED_KEY`` the first time it is needed.
    """

    app = FastAPI(title="kujifair")
    app.state.session_factory = session_factory or get_sessionmaker(make_engine())
    app.state.sealer = sealer

    def get_session() -> Iterator[Session]:
        with app.state.session_factory.begin() as session:
            yield session

    def get_sealer() -> SeedSealer:
        if app.state.sealer is None:
            app.state.sealer = SeedSealer()
        return app.state.sealer

    def get_activity(activity_id: int, session: Session) -> Activity:
        activity = session.get(Activity, activity_id)
        if activity is None:
            raise HTTPException(status_code=404, detail="Activity not found")
        return activity

    @app.exception_handler(ActivityStateError)
    @app.exception_handler(AlreadyCommitted)
    async def _conflict(request: Request, exc: RuntimeError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def _bad_request(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    # ---------- Routes ----------
    @app.post("/activities", status_code=201)
    def create_activity(body: ActivityCreate, session: Session = Depends(get_session)):
        if body.external_ref and Activity.get_by_external_ref(session, body.external_ref):
            raise HTTPException(status_code=409, detail="external_ref already exists")
        levels = [PrizeLevel(**level.model_dump()) for level in body.levels]
        activity = workflows.create_activity(
            session,
            name=body.name,
            levels=levels,
            major_level_codes=body.major_levels,
            external_ref=body.external_ref,
            profit_rate=body.profit_rate,
        )
        return activity.to_json()

    @app.get("/activities/{activity_id}")
    def read_activity(activity_id: int, session: Session = Depends(get_session)):
        activity = get_activity(activity_id, session)
        return workflows.activity_summary(session, activity)

    @app.post("/activities/{activity_id}/activate")
    def activate(
        activity_id: int,
        session: Session = Depends(get_session),
        sealer: SeedSealer = Depends(get_sealer),
    ):
        activity = get_activity(activity_id, session)
        workflows.activate_activity(session, activity, sealer)
        return {"status": activity.status, "commitmentHash": activity.commitment_hash}

    @app.put("/activities/{activity_id}/profit-rate")
    def update_profit_rate(
        activity_id: int,
        body: ProfitRateUpdate,
        session: Session = Depends(get_session),
    ):
        activity = get_activity(activity_id, session)
        workflows.set_profit_rate(session, activity, body.profit_rate, reason=body.reason)
        return {"profitRate": activity.profit_rate}

    @app.post("/activities/{activity_id}/draws")
    def draw(
        activity_id: int,
        body: Optional[DrawRequest] = None,
        session: Session = Depends(get_session),
        sealer: SeedSealer = Depends(get_sealer),
    ):
        body = body or DrawRequest()
        activity = get_activity(activity_id, session)
        outcome = workflows.run_draw(
            session,
            activity,
            sealer,
            idempotency_key=body.idempotency_key,
            buyer_ref=body.buyer_ref,
        )
        if isinstance(outcome, InventoryExhausted):
            return {"soldOut": True, "lastTicketNumber": outcome.last_ticket_number}
        return _draw_payload(outcome)

    @app.post("/activities/{activity_id}/draws/batch")
    def draw_batch(
        activity_id: int,
        body: BatchDrawRequest,
        session: Session = Depends(get_session),
        sealer: SeedSealer = Depends(get_sealer),
    ):
        activity = get_activity(activity_id, session)
        records = workflows.run_draw_batch(
            session,
            activity,
            sealer,
            body.count,
            idempotency_key=body.idempotency_key,
            buyer_ref=body.buyer_ref,
        )
        return {
            "draws": [_draw_payload(record) for record in records],
            "soldOut": len(records) < body.count,
        }

    @app.post("/activities/{activity_id}/end")
    def end(
        activity_id: int,
        body: Optional[EndRequest] = None,
        session: Session = Depends(get_session),
    ):
        body = body or EndRequest()
        activity = get_activity(activity_id, session)
        workflows.end_activity(session, activity, reason=body.reason)
        return {"status": activity.status}

    @app.post("/activities/{activity_id}/reveal")
    def reveal(
        activity_id: int,
        session: Session = Depends(get_session),
        sealer: SeedSealer = Depends(get_sealer),
    ):
        activity = get_activity(activity_id, session)
        seed = workflows.reveal_seed(session, activity, sealer)
        return {"seed": seed, "commitmentHash": activity.commitment_hash}

    @app.get("/activities/{activity_id}/verify")
    def verify(
        activity_id: int,
        seed: Optional[str] = None,
        session: Session = Depends(get_session),
    ):
        activity = get_activity(activity_id, session)
        report = workflows.verify_activity(session, activity, seed=seed)
        return report.to_dict()

    @app.post("/verify/ticket")
    def verify_single_ticket(body: TicketVerifyRequest):
        result = verify_ticket(body.seed, body.nonce, body.txid_hash)
        return {
            "nonce": result.nonce,
            "randomValue": result.random_value,
            "randomHex": result.random_hex,
            "txidHash": result.txid_hash,
            "hashMatch": result.hash_match,
        }

    return app


__all__ = ["create_app"]
