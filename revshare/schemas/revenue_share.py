"""Pydantic schemas for revenue share records and their reports."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from revshare.schemas.base import BaseCreateSchema, BaseResponseSchema
from revshare.models.transaction import ProductType
from revshare.models.revenue_share import FormulaType


class RevenueShareRecordResponse(BaseResponseSchema):
    """Response schema for RevenueShareRecord."""
    id: UUID
    transaction_id: str
    entry_type: str
    reverses_id: Optional[UUID] = None
    reversal_reason: Optional[str] = None
    formula: str
    exemption_reason: Optional[str] = None
    config_version: int
    product_type: str

    donation_amount: int
    admin_fee: int
    program_amount: int
    amil_gross: int
    developer_amount: int
    fundraiser_amount: int
    mitra_amount: int
    amil_net: int

    animal_amount: int
    owner_app_amount: int
    mitra_admin_amount: int

    amil_percentage: Decimal
    developer_percentage: Decimal
    fundraiser_percentage: Decimal
    mitra_percentage: Decimal
    owner_app_percentage: Decimal

    fundraiser_id: Optional[str] = None
    mitra_id: Optional[str] = None
    created_at: datetime


class RevenueShareListResponse(BaseModel):
    """Response for listing revenue share records."""
    items: List[RevenueShareRecordResponse]
    total: int
    page: int = 1
    limit: int = 20
    total_pages: int = 1


class RevenueShareFilters(BaseModel):
    """Report filters. Dates bound created_at (inclusive start, exclusive end)."""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    product_type: Optional[ProductType] = None
    formula: Optional[FormulaType] = None
    fundraiser_id: Optional[str] = None
    mitra_id: Optional[str] = None


class RevenueShareSummary(BaseModel):
    """Totals over the filtered records; reversals net out."""
    total_records: int = 0
    total_donation: int = 0
    total_amil_gross: int = 0
    total_amil_net: int = 0
    total_developer: int = 0
    total_fundraiser: int = 0
    total_mitra: int = 0
    total_program: int = 0


class ReverseTransactionRequest(BaseCreateSchema):
    reason: str = Field(..., min_length=1, max_length=500)
    requested_by: Optional[str] = Field(None, max_length=64)
