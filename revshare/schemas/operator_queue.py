"""Pydantic schemas for the operator queue."""
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from revshare.schemas.base import BaseCreateSchema, BaseResponseSchema


class OperatorQueueItemResponse(BaseResponseSchema):
    id: UUID
    kind: str
    status: str
    transaction_id: Optional[str] = None
    detail: str
    context: Optional[dict] = None
    resolved_by: Optional[str] = None
    resolution_note: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime


class OperatorQueueListResponse(BaseModel):
    items: List[OperatorQueueItemResponse]
    total: int


class OperatorQueueResolve(BaseCreateSchema):
    resolved_by: str = Field(..., min_length=1, max_length=64)
    note: Optional[str] = None
