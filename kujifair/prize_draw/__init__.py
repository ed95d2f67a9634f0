"""Provably fair draw engine: commitment, oracle, selection and replay."""

from .adjuster import (
    AdjustedLevel,
    DEFAULT_PROFIT_RATE,
    LevelSpec,
    adjust,
    scheduled_profit_rate,
)
from .commitment import SeedCommitment, SeedSealer, compute_commitment
from .engine import (
    ActivityLockRegistry,
    DrawDecision,
    DrawSequencer,
    REPLAY_CONTRACT_VERSION,
    resolve_draw,
    tiered_profit_rate_policy,
)
from .errors import (
    ActivityStateError,
    AlreadyCommitted,
    InvalidNonce,
    InvalidProfitRate,
    InvalidSeedFormat,
    InventoryExhausted,
    InventoryUnderflow,
    ProbabilitySumInvalid,
)
from .inventory import InventoryTracker
from .oracle import RandomValue, derive, txid, txid_hash
from .selector import select
from .verifier import (
    DrawVerification,
    ReplayRecord,
    TicketVerification,
    VerificationReport,
    Verifier,
    verify_ticket,
)

__all__ = [
    "ActivityLockRegistry",
    "ActivityStateError",
    "AdjustedLevel",
    "AlreadyCommitted",
    "DEFAULT_PROFIT_RATE",
    "DrawDecision",
    "DrawSequencer",
    "DrawVerification",
    "InvalidNonce",
    "InvalidProfitRate",
    "InvalidSeedFormat",
    "InventoryExhausted",
    "InventoryTracker",
    "InventoryUnderflow",
    "LevelSpec",
    "ProbabilitySumInvalid",
    "REPLAY_CONTRACT_VERSION",
    "RandomValue",
    "ReplayRecord",
    "SeedCommitment",
    "SeedSealer",
    "TicketVerification",
    "VerificationReport",
    "Verifier",
    "adjust",
    "compute_commitment",
    "derive",
    "resolve_draw",
    "scheduled_profit_rate",
    "select",
    "tiered_profit_rate_policy",
    "txid",
    "txid_hash",
    "verify_ticket",
]
