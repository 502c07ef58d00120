"""Operator queue: problems the engine refuses to resolve on its own."""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.core.exceptions import NotFound
from revshare.models.operator_queue import OperatorQueueItem, OperatorQueueKind, OperatorQueueStatus

logger = logging.getLogger(__name__)


class OperatorQueueService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def flag(
        self,
        kind: OperatorQueueKind,
        detail: str,
        transaction_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> OperatorQueueItem:
        """Open an item, reusing the open one for the same kind and transaction."""
        kind = OperatorQueueKind(kind)
        if transaction_id:
            existing = (
                await self.db.execute(
                    select(OperatorQueueItem).where(
                        OperatorQueueItem.kind == kind.value,
                        OperatorQueueItem.transaction_id == transaction_id,
                        OperatorQueueItem.status == OperatorQueueStatus.OPEN.value,
                    )
                )
            ).scalar_one_or_none()
            if existing is not None:
                existing.detail = detail
                existing.context = context
                await self.db.flush()
                return existing

        item = OperatorQueueItem(
            kind=kind.value,
            status=OperatorQueueStatus.OPEN.value,
            transaction_id=transaction_id,
            detail=detail,
            context=context,
        )
        self.db.add(item)
        await self.db.flush()
        logger.warning(f"Operator attention needed ({kind.value}): {detail}")
        return item

    async def get(self, item_id: uuid.UUID) -> OperatorQueueItem:
        item = await self.db.get(OperatorQueueItem, item_id)
        if item is None:
            raise NotFound(f"Operator queue item {item_id} not found")
        return item

    async def list_items(
        self,
        status: Optional[OperatorQueueStatus] = None,
        kind: Optional[OperatorQueueKind] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[OperatorQueueItem], int]:
        conditions = []
        if status:
            conditions.append(OperatorQueueItem.status == OperatorQueueStatus(status).value)
        if kind:
            conditions.append(OperatorQueueItem.kind == OperatorQueueKind(kind).value)

        total = (
            await self.db.execute(select(func.count(OperatorQueueItem.id)).where(*conditions))
        ).scalar() or 0
        result = await self.db.execute(
            select(OperatorQueueItem)
            .where(*conditions)
            .order_by(OperatorQueueItem.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def resolve(self, item_id: uuid.UUID, resolved_by: str, note: Optional[str] = None) -> OperatorQueueItem:
        item = await self.get(item_id)
        if item.status == OperatorQueueStatus.RESOLVED.value:
            return item
        item.status = OperatorQueueStatus.RESOLVED.value
        item.resolved_by = resolved_by
        item.resolution_note = note
        item.resolved_at = datetime.now(timezone.utc)
        await self.db.flush()
        logger.info(f"Operator queue item {item_id} resolved by {resolved_by}")
        return item

    async def resolve_for_transaction(
        self,
        kind: OperatorQueueKind,
        transaction_id: str,
        resolved_by: str,
        note: Optional[str] = None,
    ) -> int:
        """Close the open items of a kind for a transaction."""
        items = (
            await self.db.execute(
                select(OperatorQueueItem).where(
                    OperatorQueueItem.kind == OperatorQueueKind(kind).value,
                    OperatorQueueItem.transaction_id == transaction_id,
                    OperatorQueueItem.status == OperatorQueueStatus.OPEN.value,
                )
            )
        ).scalars().all()
        now = datetime.now(timezone.utc)
        for item in items:
            item.status = OperatorQueueStatus.RESOLVED.value
            item.resolved_by = resolved_by
            item.resolution_note = note
            item.resolved_at = now
        if items:
            await self.db.flush()
        return len(items)
