"""
Developer Auto-Disbursement Job

Once a month (on DEVELOPER_AUTO_DISBURSEMENT_DAY, local time) requests a
payout of everything the developer party can still claim, provided it reaches
the configured minimum. The request is created and submitted; approval and
payment stay with a human approver.
"""
import logging
from datetime import datetime, time, timezone
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.config import settings
from revshare.models.party_balance import PartyType
from revshare.models.disbursement import (
    Disbursement, DisbursementType, DisbursementCategory, RecipientType,
)
from revshare.schemas.disbursement import DisbursementCreate
from revshare.services.disbursement_service import DisbursementService

logger = logging.getLogger(__name__)


def _local_now(now: Optional[datetime] = None) -> datetime:
    tz = ZoneInfo(settings.SCHEDULER_TIMEZONE)
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz)


async def _created_today(db: AsyncSession, local_now: datetime) -> bool:
    day_start = datetime.combine(local_now.date(), time.min, tzinfo=local_now.tzinfo)
    count = (
        await db.execute(
            select(func.count(Disbursement.id)).where(
                Disbursement.category == DisbursementCategory.REVENUE_SHARE_DEVELOPER.value,
                Disbursement.created_at >= day_start.astimezone(timezone.utc),
            )
        )
    ).scalar() or 0
    return count > 0


async def run_developer_auto_disbursement(
    db: AsyncSession,
    now: Optional[datetime] = None,
    force: bool = False,
) -> Dict[str, Any]:
    """
    Create and submit the monthly developer payout request.

    Returns a summary; "skipped" carries the reason when nothing was created.
    """
    local_now = _local_now(now)
    results: Dict[str, Any] = {
        "started_at": datetime.now(timezone.utc).isoformat(),
        "disbursement_id": None,
        "disbursement_number": None,
        "amount": 0,
        "skipped": None,
    }

    if not force and local_now.day != settings.DEVELOPER_AUTO_DISBURSEMENT_DAY:
        results["skipped"] = "not_scheduled_day"
        return results

    if await _created_today(db, local_now):
        logger.info("Developer disbursement already requested today, skipping")
        results["skipped"] = "already_requested_today"
        return results

    service = DisbursementService(db)
    availability = await service.availability_for(DisbursementCategory.REVENUE_SHARE_DEVELOPER)
    results["available"] = availability.total_available

    if availability.total_available < settings.DEVELOPER_AUTO_DISBURSEMENT_MINIMUM:
        logger.info(
            f"Developer available share {availability.total_available} below minimum "
            f"{settings.DEVELOPER_AUTO_DISBURSEMENT_MINIMUM}, skipping"
        )
        results["skipped"] = "below_minimum"
        return results

    requester = settings.DEVELOPER_AUTO_DISBURSEMENT_REQUESTER_ID
    disbursement = await service.create(DisbursementCreate(
        disbursement_type=DisbursementType.REVENUE_SHARE,
        category=DisbursementCategory.REVENUE_SHARE_DEVELOPER,
        amount=availability.total_available,
        created_by=requester,
        recipient_type=RecipientType.DEVELOPER,
        recipient_id=service.tracker.developer_party_id,
        recipient_name=settings.DEVELOPER_RECIPIENT_NAME,
        purpose=f"Developer revenue share {local_now.strftime('%B %Y')}",
    ))
    await service.submit(disbursement.id, requester)

    results["disbursement_id"] = str(disbursement.id)
    results["disbursement_number"] = disbursement.disbursement_number
    results["amount"] = disbursement.amount
    results["completed_at"] = datetime.now(timezone.utc).isoformat()
    logger.info(
        f"Developer auto-disbursement {disbursement.disbursement_number} "
        f"submitted for {disbursement.amount}"
    )
    return results


async def developer_auto_disbursement_job():
    """Scheduler entry point."""
    from revshare.database import get_db_session

    try:
        async with get_db_session() as session:
            await run_developer_auto_disbursement(session)
    except Exception as e:
        logger.error(f"Developer auto-disbursement failed: {e}")
