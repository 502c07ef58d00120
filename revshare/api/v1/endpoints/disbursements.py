"""API endpoints for disbursement requests and their approval workflow."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from revshare.api.deps import Disbursements, Reports
from revshare.models.disbursement import DisbursementType, DisbursementStatus, DisbursementCategory
from revshare.schemas.disbursement import (
    DisbursementCreate, DisbursementSubmit, DisbursementApprove, DisbursementReject,
    DisbursementMarkPaid, DisbursementResubmit,
    DisbursementResponse, DisbursementDetailResponse, DisbursementListResponse,
    AllocationItemResponse, DisbursementHistoryResponse, DisbursementStats,
)
from revshare.schemas.party_balance import PartyAvailability
from revshare.services.disbursement_service import DisbursementService
from revshare.services.disbursement_state_machine import get_allowed_transitions

router = APIRouter()


async def _detail(service: DisbursementService, disbursement_id: UUID) -> DisbursementDetailResponse:
    disbursement = await service.get(disbursement_id)
    allocations = await service.get_allocations(disbursement_id)
    history = await service.get_history(disbursement_id)

    response = DisbursementDetailResponse.model_validate(disbursement)
    response.allocations = [AllocationItemResponse.model_validate(a) for a in allocations]
    response.history = [DisbursementHistoryResponse.model_validate(h) for h in history]
    response.allowed_transitions = get_allowed_transitions(disbursement.status)
    return response


@router.post("", response_model=DisbursementResponse, status_code=status.HTTP_201_CREATED)
async def create_disbursement(data: DisbursementCreate, service: Disbursements):
    """Create a draft disbursement request."""
    return await service.create(data)


@router.get("", response_model=DisbursementListResponse)
async def list_disbursements(
    service: Disbursements,
    disbursement_type: Optional[DisbursementType] = None,
    status: Optional[DisbursementStatus] = None,
    category: Optional[DisbursementCategory] = None,
    recipient_id: Optional[str] = None,
    reference_id: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    items, total = await service.list_disbursements(
        disbursement_type=disbursement_type,
        status=status,
        category=category,
        recipient_id=recipient_id,
        reference_id=reference_id,
        skip=skip,
        limit=limit,
    )
    return DisbursementListResponse(
        items=[DisbursementResponse.model_validate(d) for d in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/availability", response_model=PartyAvailability)
async def get_availability(
    category: DisbursementCategory,
    service: Disbursements,
    recipient_id: Optional[str] = None,
):
    """How much a revenue share category and recipient can still request."""
    return await service.availability_for(category, recipient_id)


@router.get("/stats/{reference_id}", response_model=DisbursementStats)
async def get_disbursement_stats(
    reference_id: str,
    reports: Reports,
    disbursement_type: Optional[DisbursementType] = None,
):
    """Program money collected for a reference against its payouts."""
    return await reports.disbursement_stats(reference_id, disbursement_type)


@router.get("/{disbursement_id}", response_model=DisbursementDetailResponse)
async def get_disbursement(disbursement_id: UUID, service: Disbursements):
    """Get a disbursement with its allocations, history and allowed transitions."""
    return await _detail(service, disbursement_id)


@router.post("/{disbursement_id}/submit", response_model=DisbursementDetailResponse)
async def submit_disbursement(disbursement_id: UUID, data: DisbursementSubmit, service: Disbursements):
    """draft -> submitted. Places the soft hold on revenue share requests."""
    await service.submit(disbursement_id, data.submitted_by)
    return await _detail(service, disbursement_id)


@router.post("/{disbursement_id}/approve", response_model=DisbursementDetailResponse)
async def approve_disbursement(disbursement_id: UUID, data: DisbursementApprove, service: Disbursements):
    await service.approve(disbursement_id, data.approved_by, data.comment)
    return await _detail(service, disbursement_id)


@router.post("/{disbursement_id}/reject", response_model=DisbursementDetailResponse)
async def reject_disbursement(disbursement_id: UUID, data: DisbursementReject, service: Disbursements):
    """submitted -> rejected. A reason is required; the hold is released."""
    await service.reject(disbursement_id, data.rejected_by, data.reason)
    return await _detail(service, disbursement_id)


@router.post("/{disbursement_id}/mark-paid", response_model=DisbursementDetailResponse)
async def mark_disbursement_paid(disbursement_id: UUID, data: DisbursementMarkPaid, service: Disbursements):
    """approved -> paid. Requires payment proof and transfer date."""
    await service.mark_paid(disbursement_id, data)
    return await _detail(service, disbursement_id)


@router.post(
    "/{disbursement_id}/resubmit",
    response_model=DisbursementDetailResponse,
    status_code=status.HTTP_201_CREATED,
)
async def resubmit_disbursement(disbursement_id: UUID, data: DisbursementResubmit, service: Disbursements):
    """Copy a rejected request into a new draft."""
    draft = await service.resubmit(disbursement_id, data.requested_by, amount=data.amount)
    return await _detail(service, draft.id)


@router.delete("/{disbursement_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_disbursement(
    disbursement_id: UUID,
    service: Disbursements,
    deleted_by: str = Query(..., min_length=1),
):
    """Delete a draft, submitted or rejected request."""
    await service.delete(disbursement_id, deleted_by)
