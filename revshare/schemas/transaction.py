"""Pydantic schemas for the inbound TransactionPaid event."""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator, model_validator

from revshare.schemas.base import BaseCreateSchema, BaseResponseSchema
from revshare.schemas.revenue_share import RevenueShareRecordResponse
from revshare.models.transaction import ProductType, AnimalType


class TransactionPaidEvent(BaseCreateSchema):
    """Emitted by the payment subsystem when a donation is confirmed paid."""
    transaction_id: str = Field(..., min_length=1, max_length=64)
    product_type: ProductType
    product_id: Optional[str] = Field(None, max_length=64)
    pillar: Optional[str] = Field(None, max_length=50)
    amount: int = Field(..., ge=0, description="Total paid, in minor currency units")
    admin_fee: Optional[int] = Field(None, ge=0, description="Qurban admin fee part of amount")
    animal_type: Optional[AnimalType] = None
    referral_agent_id: Optional[str] = Field(None, max_length=64)
    partner_id: Optional[str] = Field(None, max_length=64)
    paid_at: datetime

    @field_validator('pillar', 'referral_agent_id', 'partner_id', 'product_id', mode='before')
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode='after')
    def admin_fee_within_amount(self):
        if self.admin_fee is not None and self.admin_fee > self.amount:
            raise ValueError("admin_fee cannot exceed amount")
        return self


class TransactionResponse(BaseResponseSchema):
    id: str
    product_type: str
    product_id: Optional[str] = None
    pillar: Optional[str] = None
    amount: int
    admin_fee: Optional[int] = None
    animal_type: Optional[str] = None
    referral_agent_id: Optional[str] = None
    partner_id: Optional[str] = None
    paid_at: datetime
    share_status: str


class TransactionIngestResponse(BaseResponseSchema):
    """Outcome of processing one TransactionPaid delivery."""
    transaction_id: str
    status: str = Field(..., description="recorded, already_recorded or deferred")
    record: Optional[RevenueShareRecordResponse] = None
    operator_queue_item_id: Optional[UUID] = None
    detail: Optional[str] = None
