"""Pydantic schemas for disbursements and their approval workflow."""
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from revshare.schemas.base import BaseCreateSchema, BaseResponseSchema
from revshare.models.disbursement import (
    DisbursementType, DisbursementCategory, RecipientType, CATEGORIES_BY_TYPE
)


# ==================== Disbursement Request Schemas ====================

class DisbursementCreate(BaseCreateSchema):
    """Create a draft disbursement."""
    disbursement_type: DisbursementType
    category: DisbursementCategory
    amount: int = Field(..., gt=0, description="Requested amount, minor currency units")
    created_by: str = Field(..., min_length=1, max_length=64)

    reference_type: Optional[str] = Field(None, max_length=30)
    reference_id: Optional[str] = Field(None, max_length=64)
    reference_name: Optional[str] = Field(None, max_length=255)

    recipient_type: Optional[RecipientType] = None
    recipient_id: Optional[str] = Field(None, max_length=64)
    recipient_name: str = Field(..., min_length=1, max_length=255)
    recipient_contact: Optional[str] = Field(None, max_length=100)
    recipient_bank_name: Optional[str] = Field(None, max_length=100)
    recipient_bank_account: Optional[str] = Field(None, max_length=50)
    recipient_bank_account_name: Optional[str] = Field(None, max_length=255)

    purpose: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    payment_method: Optional[str] = Field(None, max_length=30)
    type_specific_data: Optional[dict] = None

    @model_validator(mode='after')
    def category_matches_type(self):
        if self.category not in CATEGORIES_BY_TYPE[self.disbursement_type]:
            raise ValueError(
                f"Category '{self.category.value}' is not valid for "
                f"disbursement type '{self.disbursement_type.value}'"
            )
        return self


class DisbursementSubmit(BaseCreateSchema):
    submitted_by: str = Field(..., min_length=1, max_length=64)


class DisbursementApprove(BaseCreateSchema):
    approved_by: str = Field(..., min_length=1, max_length=64)
    comment: Optional[str] = None


class DisbursementReject(BaseCreateSchema):
    rejected_by: str = Field(..., min_length=1, max_length=64)
    # Emptiness is a workflow guard, checked by the service
    reason: Optional[str] = None


class DisbursementMarkPaid(BaseCreateSchema):
    paid_by: str = Field(..., min_length=1, max_length=64)
    transfer_proof_url: Optional[str] = Field(None, max_length=500)
    transfer_date: Optional[datetime] = None
    transferred_amount: Optional[int] = Field(None, gt=0)
    additional_fees: int = Field(0, ge=0)
    payment_method: Optional[str] = Field(None, max_length=30)


class DisbursementResubmit(BaseCreateSchema):
    requested_by: str = Field(..., min_length=1, max_length=64)
    amount: Optional[int] = Field(None, gt=0, description="Optionally reduce the amount")


# ==================== Disbursement Response Schemas ====================

class AllocationItemResponse(BaseResponseSchema):
    id: UUID
    disbursement_id: UUID
    revenue_share_record_id: UUID
    party_type: str
    party_id: str
    amount: int
    created_at: datetime


class DisbursementHistoryResponse(BaseResponseSchema):
    id: UUID
    action: str
    from_status: Optional[str] = None
    to_status: str
    actor_id: str
    comment: Optional[str] = None
    created_at: datetime


class DisbursementResponse(BaseResponseSchema):
    """Response schema for Disbursement."""
    id: UUID
    disbursement_number: str
    disbursement_type: str
    category: str
    amount: int
    status: str

    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    reference_name: Optional[str] = None

    recipient_type: Optional[str] = None
    recipient_id: Optional[str] = None
    recipient_name: str
    recipient_bank_name: Optional[str] = None
    recipient_bank_account: Optional[str] = None
    recipient_bank_account_name: Optional[str] = None

    purpose: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None

    payment_method: Optional[str] = None
    transfer_proof_url: Optional[str] = None
    transfer_date: Optional[datetime] = None
    transferred_amount: Optional[int] = None
    additional_fees: int = 0
    rejection_reason: Optional[str] = None
    previous_disbursement_id: Optional[UUID] = None

    created_by: str
    submitted_by: Optional[str] = None
    approved_by: Optional[str] = None
    rejected_by: Optional[str] = None
    paid_by: Optional[str] = None

    created_at: datetime
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None


class DisbursementDetailResponse(DisbursementResponse):
    allocations: List[AllocationItemResponse] = []
    history: List[DisbursementHistoryResponse] = []
    allowed_transitions: List[str] = []


class DisbursementListResponse(BaseModel):
    items: List[DisbursementResponse]
    total: int
    skip: int = 0
    limit: int = 50


class DisbursementStats(BaseModel):
    """Payout totals for one referenced program (campaign, zakat or qurban period)."""
    reference_id: str
    disbursement_type: Optional[str] = None
    total_program: int = 0
    total_paid: int = 0
    total_committed: int = 0
    paid_count: int = 0
    committed_count: int = 0
    total_remaining: int = 0
