"""Pydantic schemas for party balances, movements and availability."""
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel

from revshare.schemas.base import BaseResponseSchema


class PartyBalanceResponse(BaseResponseSchema):
    id: UUID
    party_type: str
    party_id: str
    current_balance: int
    total_earned: int
    total_withdrawn: int
    updated_at: datetime


class PartyBalanceListResponse(BaseModel):
    items: List[PartyBalanceResponse]
    total: int


class BalanceMovementResponse(BaseResponseSchema):
    id: UUID
    party_type: str
    party_id: str
    delta: int
    balance_after: int
    reason: str
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    created_at: datetime


class BalanceMovementListResponse(BaseModel):
    items: List[BalanceMovementResponse]
    total: int
    skip: int = 0
    limit: int = 50


class PartyAvailability(BaseModel):
    """
    What a party can still request.

    total_entitled: shares earned on live (non-reversed) records
    total_committed: allocations of submitted, approved or paid disbursements
    total_paid: allocations of paid disbursements only
    total_available: total_entitled - total_committed
    """
    party_type: str
    party_id: str
    total_entitled: int = 0
    total_committed: int = 0
    total_paid: int = 0
    total_available: int = 0
    records_count: int = 0
