"""
Transaction Event Service

Entry point for TransactionPaid events:

    store fact -> active ConfigSnapshot -> SplitRuleEngine -> ledger -> balances

Redelivered events are no-ops. A snapshot that breaks the split invariants
defers the transaction (share_status = pending_config) and opens an operator
queue item; retry_deferred() picks those up once the settings are fixed.
"""
import logging
from enum import Enum
from typing import Any, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.config import settings
from revshare.core.enum_utils import get_enum_value
from revshare.core.exceptions import ConfigInvariantViolation, NotFound, TransactionConflict
from revshare.models.transaction import DonationTransaction, ShareStatus
from revshare.models.operator_queue import OperatorQueueKind
from revshare.schemas.transaction import TransactionPaidEvent
from revshare.services.split_rule_engine import SplitRuleEngine
from revshare.services.config_snapshot_service import ConfigSnapshotService
from revshare.services.operator_queue_service import OperatorQueueService
from revshare.services.notification_service import NotificationService, NotificationType
from revshare.services.revenue_share_ledger import RevenueShareLedger, RecordOutcome, RecordStatus

logger = logging.getLogger(__name__)

# Fields of the stored fact a redelivery must agree with
IMMUTABLE_FIELDS = (
    "product_type", "product_id", "pillar", "amount", "admin_fee",
    "animal_type", "referral_agent_id", "partner_id",
)


def _stored_form(value: Any) -> Any:
    """Enums are stored by value; everything else as is."""
    return value.value if isinstance(value, Enum) else value


class TransactionEventService:
    """Processes confirmed-payment events into ledger records."""

    def __init__(
        self,
        db: AsyncSession,
        engine: Optional[SplitRuleEngine] = None,
        ledger: Optional[RevenueShareLedger] = None,
    ):
        self.db = db
        self.engine = engine or SplitRuleEngine(zakat_cap_max=settings.ZAKAT_AMIL_CAP_MAX)
        self.ledger = ledger or RevenueShareLedger(db)
        self.configs = ConfigSnapshotService(db)
        self.queue = OperatorQueueService(db)
        self.notifications = NotificationService(db)

    async def get_transaction(self, transaction_id: str) -> DonationTransaction:
        transaction = await self.db.get(DonationTransaction, transaction_id)
        if transaction is None:
            raise NotFound(f"Transaction {transaction_id} not found")
        return transaction

    async def store_transaction(self, event: TransactionPaidEvent) -> Tuple[DonationTransaction, bool]:
        """
        Store the immutable transaction fact.

        Returns (transaction, created). A redelivery that disagrees with the
        stored fact raises TransactionConflict.
        """
        transaction = await self.db.get(DonationTransaction, event.transaction_id)
        if transaction is None:
            try:
                async with self.db.begin_nested():
                    transaction = DonationTransaction(
                        id=event.transaction_id,
                        product_type=event.product_type.value,
                        product_id=event.product_id,
                        pillar=event.pillar,
                        amount=event.amount,
                        admin_fee=event.admin_fee,
                        animal_type=get_enum_value(event.animal_type),
                        referral_agent_id=event.referral_agent_id,
                        partner_id=event.partner_id,
                        paid_at=event.paid_at,
                        share_status=ShareStatus.PENDING.value,
                    )
                    self.db.add(transaction)
                return transaction, True
            except IntegrityError:
                transaction = await self.db.get(DonationTransaction, event.transaction_id, populate_existing=True)
                if transaction is None:
                    raise

        mismatched = [
            field for field in IMMUTABLE_FIELDS
            if _stored_form(getattr(event, field)) != getattr(transaction, field)
        ]
        if mismatched:
            raise TransactionConflict(
                f"Transaction {event.transaction_id} was redelivered with different "
                f"{', '.join(mismatched)}",
                transaction_id=event.transaction_id,
            )
        return transaction, False

    async def handle_transaction_paid(self, event: TransactionPaidEvent) -> RecordOutcome:
        transaction, created = await self.store_transaction(event)
        if not created:
            existing = await self.ledger.get_original(transaction.id)
            if existing is not None:
                logger.info(f"Duplicate TransactionPaid for {transaction.id}, already recorded")
                return RecordOutcome(status=RecordStatus.ALREADY_RECORDED, record=existing)
        return await self._calculate(transaction)

    async def retry_deferred(
        self,
        transaction_id: Optional[str] = None,
        limit: int = 500,
    ) -> List[RecordOutcome]:
        """Recalculate transactions deferred by a configuration error."""
        query = (
            select(DonationTransaction)
            .where(DonationTransaction.share_status == ShareStatus.PENDING_CONFIG.value)
            .order_by(DonationTransaction.paid_at, DonationTransaction.id)
            .limit(limit)
        )
        if transaction_id:
            query = query.where(DonationTransaction.id == transaction_id)
        transactions = (await self.db.execute(query)).scalars().all()

        outcomes = []
        for transaction in transactions:
            outcomes.append(await self._calculate(transaction))
        recorded = sum(1 for o in outcomes if o.status == RecordStatus.RECORDED)
        if outcomes:
            logger.info(f"Retried {len(outcomes)} deferred transaction(s), {recorded} recorded")
        return outcomes

    async def _calculate(self, transaction: DonationTransaction) -> RecordOutcome:
        was_deferred = transaction.share_status == ShareStatus.PENDING_CONFIG.value
        try:
            config = await self.configs.get_active()
            result = self.engine.compute(transaction, config)
        except ConfigInvariantViolation as e:
            return await self._defer(transaction, e)

        outcome = await self.ledger.record(transaction.id, result)
        if was_deferred:
            await self.queue.resolve_for_transaction(
                OperatorQueueKind.CONFIG_INVARIANT_VIOLATION,
                transaction.id,
                resolved_by="system",
                note=f"Recorded with config version {result.config_version}",
            )
        return outcome

    async def _defer(self, transaction: DonationTransaction, error: ConfigInvariantViolation) -> RecordOutcome:
        logger.warning(f"Deferring revenue share of transaction {transaction.id}: {error.detail}")
        transaction.share_status = ShareStatus.PENDING_CONFIG.value
        item = await self.queue.flag(
            OperatorQueueKind.CONFIG_INVARIANT_VIOLATION,
            error.detail,
            transaction_id=transaction.id,
            context=error.context or None,
        )
        self.notifications.enqueue(NotificationType.REVENUE_SHARE_DEFERRED, {
            "transaction_id": transaction.id,
            "operator_queue_item_id": str(item.id),
            "detail": error.detail,
        })
        return RecordOutcome(
            status=RecordStatus.DEFERRED,
            operator_queue_item=item,
            detail=error.detail,
        )
