"""API endpoints for inbound TransactionPaid events."""
from fastapi import APIRouter, Response, status

from revshare.api.deps import TransactionEvents
from revshare.schemas.transaction import (
    TransactionPaidEvent, TransactionResponse, TransactionIngestResponse,
)
from revshare.schemas.revenue_share import RevenueShareRecordResponse
from revshare.services.revenue_share_ledger import RecordStatus

router = APIRouter()


@router.post("/paid", response_model=TransactionIngestResponse)
async def transaction_paid(
    event: TransactionPaidEvent,
    response: Response,
    service: TransactionEvents,
):
    """
    Record the revenue share of a confirmed-paid transaction.

    Redeliveries return the existing record. When the active configuration
    breaks a split invariant the transaction is deferred and 202 is returned.
    """
    outcome = await service.handle_transaction_paid(event)
    if outcome.status == RecordStatus.DEFERRED:
        response.status_code = status.HTTP_202_ACCEPTED

    return TransactionIngestResponse(
        transaction_id=event.transaction_id,
        status=outcome.status.value,
        record=RevenueShareRecordResponse.model_validate(outcome.record) if outcome.record else None,
        operator_queue_item_id=outcome.operator_queue_item.id if outcome.operator_queue_item else None,
        detail=outcome.detail,
    )


@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(transaction_id: str, service: TransactionEvents):
    """Get a stored transaction with its share status."""
    return await service.get_transaction(transaction_id)
