"""
Post-commit Notification Service

Tells the surrounding admin / partner / fundraiser UIs about ledger and
disbursement changes. Events are collected on the session while the unit of
work runs and only sent once it has committed, as background tasks. Delivery
failures are logged and never raised: a notification can never roll back a
financial write.
"""
import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.config import settings

logger = logging.getLogger(__name__)

PENDING_KEY = "pending_notifications"

# Keeps fire-and-forget tasks referenced until they finish
_background_tasks: Set[asyncio.Task] = set()


class NotificationType(str, Enum):
    """Types of notifications."""
    # Ledger
    REVENUE_SHARE_RECORDED = "revenue_share.recorded"
    REVENUE_SHARE_REVERSED = "revenue_share.reversed"
    REVENUE_SHARE_DEFERRED = "revenue_share.deferred"

    # Disbursements
    DISBURSEMENT_SUBMITTED = "disbursement.submitted"
    DISBURSEMENT_APPROVED = "disbursement.approved"
    DISBURSEMENT_REJECTED = "disbursement.rejected"
    DISBURSEMENT_PAID = "disbursement.paid"

    # Operator
    OPERATOR_ATTENTION = "operator.attention"


class NotificationService:
    """Collects events on a session and delivers them to the webhook."""

    def __init__(
        self,
        db: Optional[AsyncSession] = None,
        webhook_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.webhook_url = webhook_url if webhook_url is not None else settings.NOTIFICATION_WEBHOOK_URL
        self.timeout = timeout or settings.NOTIFICATION_TIMEOUT_SECONDS
        self.transport = transport

    def enqueue(self, notification_type: NotificationType, payload: Dict[str, Any]) -> None:
        """Queue an event to be sent after the current unit of work commits."""
        if self.db is None:
            raise RuntimeError("enqueue() needs a session")
        self.db.info.setdefault(PENDING_KEY, []).append({
            "type": NotificationType(notification_type).value,
            "payload": payload,
            "occurred_at": datetime.now(timezone.utc).isoformat(),
        })

    async def send(self, event: Dict[str, Any]) -> bool:
        """POST one event. Returns False on any failure."""
        if not self.webhook_url:
            logger.debug(f"No notification webhook configured, dropping {event['type']}")
            return False
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.webhook_url, json=event)
            if response.is_success:
                logger.info(f"Notification {event['type']} delivered")
                return True
            logger.warning(f"Notification {event['type']} rejected: HTTP {response.status_code}")
            return False
        except Exception as e:
            logger.warning(f"Failed to deliver notification {event['type']}: {e}")
            return False

    async def send_all(self, events: List[Dict[str, Any]]) -> int:
        delivered = 0
        for event in events:
            if await self.send(event):
                delivered += 1
        return delivered


def pending_notifications(session: AsyncSession) -> List[Dict[str, Any]]:
    return list(session.info.get(PENDING_KEY, []))


def discard_pending(session: AsyncSession) -> int:
    """Drop events of a rolled-back unit of work."""
    events = session.info.pop(PENDING_KEY, [])
    if events:
        logger.debug(f"Discarded {len(events)} notification(s) after rollback")
    return len(events)


def dispatch_pending(
    session: AsyncSession,
    sender: Optional[Callable[[List[Dict[str, Any]]], Awaitable[Any]]] = None,
) -> Optional[asyncio.Task]:
    """
    Send the committed unit of work's events in the background.

    Call only after a successful commit.
    """
    events = session.info.pop(PENDING_KEY, [])
    if not events:
        return None
    sender = sender or NotificationService().send_all
    task = asyncio.get_running_loop().create_task(sender(events))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task
