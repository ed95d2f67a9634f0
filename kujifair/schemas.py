"""
Request bodies of the HTTP surface.

Responses are plain dictionaries built from the models' ``to_json`` helpers
and the verification report's ``to_dict``.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class PrizeLevelIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=50, description="Level code, e.g. 'A'")
    name: Optional[str] = Field(None, max_length=255)
    total: int = Field(..., ge=0, description="Starting stock")
    base_probability: float = Field(0.0, ge=0, le=100, description="Percent")
    is_bonus: bool = Field(False, description="The 'Last One' level")


class ActivityCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    levels: List[PrizeLevelIn]
    major_levels: List[str] = Field(default_factory=list)
    external_ref: Optional[str] = None
    profit_rate: float = Field(1.0, ge=0, le=3)


class ProfitRateUpdate(BaseModel):
    profit_rate: float = Field(..., ge=0, le=3)
    reason: Optional[str] = Field(None, max_length=255)


class DrawRequest(BaseModel):
    idempotency_key: Optional[str] = Field(None, max_length=48)
    buyer_ref: Optional[str] = Field(None, max_length=255)


class BatchDrawRequest(DrawRequest):
    count: int = Field(..., ge=1, le=100)


class EndRequest(BaseModel):
    reason: str = Field("manual", max_length=64)


class TicketVerifyRequest(BaseModel):
    seed: str = Field(..., description="Revealed activity seed, 64 hex characters")
    nonce: int = Field(..., ge=1, description="Ticket number")
    txid_hash: str = Field(
        ...,
        pattern=r"^[0-9a-fA-F]{64}$",
        description="Hash printed on the buyer's receipt",
    )
