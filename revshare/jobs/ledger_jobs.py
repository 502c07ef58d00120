"""
Ledger Jobs

Periodic retry of transactions whose revenue share was deferred because the
active configuration broke a split invariant.
"""
import logging
from typing import Any, Dict

from sqlalchemy.ext.asyncio import AsyncSession

from revshare.services.revenue_share_ledger import RecordStatus
from revshare.services.transaction_event_service import TransactionEventService

logger = logging.getLogger(__name__)


async def run_retry_deferred(db: AsyncSession, limit: int = 500) -> Dict[str, Any]:
    outcomes = await TransactionEventService(db).retry_deferred(limit=limit)
    return {
        "retried": len(outcomes),
        "recorded": sum(1 for o in outcomes if o.status == RecordStatus.RECORDED),
        "still_deferred": sum(1 for o in outcomes if o.status == RecordStatus.DEFERRED),
    }


async def retry_deferred_job():
    """Scheduler entry point."""
    from revshare.database import get_db_session

    try:
        async with get_db_session() as session:
            result = await run_retry_deferred(session)
        if result["retried"]:
            logger.info(
                f"Deferred retry: {result['recorded']}/{result['retried']} recorded, "
                f"{result['still_deferred']} still deferred"
            )
    except Exception as e:
        logger.error(f"Deferred retry job failed: {e}")
