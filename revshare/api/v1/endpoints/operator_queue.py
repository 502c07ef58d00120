"""API endpoints for items that need an operator's attention."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query

from revshare.api.deps import OperatorQueue, TransactionEvents
from revshare.models.operator_queue import OperatorQueueKind, OperatorQueueStatus
from revshare.schemas.operator_queue import (
    OperatorQueueItemResponse, OperatorQueueListResponse, OperatorQueueResolve,
)
from revshare.schemas.transaction import TransactionIngestResponse
from revshare.schemas.revenue_share import RevenueShareRecordResponse

router = APIRouter()


@router.get("", response_model=OperatorQueueListResponse)
async def list_operator_queue(
    queue: OperatorQueue,
    status: Optional[OperatorQueueStatus] = OperatorQueueStatus.OPEN,
    kind: Optional[OperatorQueueKind] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    items, total = await queue.list_items(status=status, kind=kind, skip=skip, limit=limit)
    return OperatorQueueListResponse(
        items=[OperatorQueueItemResponse.model_validate(i) for i in items],
        total=total,
    )


@router.post("/{item_id}/resolve", response_model=OperatorQueueItemResponse)
async def resolve_operator_queue_item(item_id: UUID, data: OperatorQueueResolve, queue: OperatorQueue):
    return await queue.resolve(item_id, data.resolved_by, data.note)


@router.post("/retry-deferred", response_model=List[TransactionIngestResponse])
async def retry_deferred(
    events: TransactionEvents,
    transaction_id: Optional[str] = None,
    limit: int = Query(500, ge=1, le=5000),
):
    """Recalculate deferred transactions against the current configuration."""
    outcomes = await events.retry_deferred(transaction_id=transaction_id, limit=limit)
    return [
        TransactionIngestResponse(
            transaction_id=(o.record.transaction_id if o.record else o.operator_queue_item.transaction_id),
            status=o.status.value,
            record=RevenueShareRecordResponse.model_validate(o.record) if o.record else None,
            operator_queue_item_id=o.operator_queue_item.id if o.operator_queue_item else None,
            detail=o.detail,
        )
        for o in outcomes
    ]
