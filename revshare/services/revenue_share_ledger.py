"""
Revenue Share Ledger

Exactly one calculated split per transaction. A repeated record() for the same
transaction is a successful no-op; a reversal is a new, negated record and
never an in-place edit.
"""
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.core.exceptions import AllocationConflict, NotFound
from revshare.models.transaction import DonationTransaction, ShareStatus
from revshare.models.party_balance import PartyType, MovementReason
from revshare.models.revenue_share import RevenueShareRecord, EntryType
from revshare.models.operator_queue import OperatorQueueItem, OperatorQueueKind
from revshare.services.split_rule_engine import SplitResult
from revshare.services.party_balance_service import PartyBalanceService, PartyRef
from revshare.services.allocation_tracker import AllocationTracker
from revshare.services.operator_queue_service import OperatorQueueService
from revshare.services.notification_service import NotificationService, NotificationType

logger = logging.getLogger(__name__)

REFERENCE_TYPE = "revenue_share_record"

# Money columns negated on a reversal record
SIGNED_COLUMNS = (
    "donation_amount", "admin_fee", "program_amount", "amil_gross",
    "developer_amount", "fundraiser_amount", "mitra_amount", "amil_net",
    "animal_amount", "owner_app_amount", "mitra_admin_amount",
)

COPIED_COLUMNS = (
    "formula", "exemption_reason", "config_version", "product_type",
    "amil_percentage", "developer_percentage", "fundraiser_percentage",
    "mitra_percentage", "owner_app_percentage", "fundraiser_id", "mitra_id",
)


class RecordStatus(str, Enum):
    RECORDED = "recorded"
    ALREADY_RECORDED = "already_recorded"
    DEFERRED = "deferred"   # Config invariant violated, waiting for an operator


@dataclass
class RecordOutcome:
    """Result of recording a transaction's split."""
    status: RecordStatus
    record: Optional[RevenueShareRecord] = None
    operator_queue_item: Optional[OperatorQueueItem] = None
    detail: Optional[str] = None


class RevenueShareLedger:
    """Writes ledger records and keeps party balances in step with them."""

    def __init__(
        self,
        db: AsyncSession,
        balances: Optional[PartyBalanceService] = None,
        tracker: Optional[AllocationTracker] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.db = db
        self.balances = balances or PartyBalanceService(db)
        self.tracker = tracker or AllocationTracker(db)
        self.notifications = notifications or NotificationService(db)

    # ==================== Reads ====================

    async def get_record(self, record_id: uuid.UUID) -> RevenueShareRecord:
        record = await self.db.get(RevenueShareRecord, record_id)
        if record is None:
            raise NotFound(f"Revenue share record {record_id} not found")
        return record

    async def get_original(self, transaction_id: str) -> Optional[RevenueShareRecord]:
        return await self._get_entry(transaction_id, EntryType.ORIGINAL)

    async def get_reversal(self, transaction_id: str) -> Optional[RevenueShareRecord]:
        return await self._get_entry(transaction_id, EntryType.REVERSAL)

    async def _get_entry(self, transaction_id: str, entry_type: EntryType) -> Optional[RevenueShareRecord]:
        result = await self.db.execute(
            select(RevenueShareRecord)
            .where(
                RevenueShareRecord.transaction_id == transaction_id,
                RevenueShareRecord.entry_type == entry_type.value,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def party_credits(self, record: RevenueShareRecord) -> List[Tuple[PartyRef, int]]:
        """Positive party shares of a record with the party they belong to."""
        credits = []
        for party_type, amount in record.share_amounts().items():
            if amount <= 0:
                continue
            party_id = self.tracker.party_id_for(record, party_type)
            if not party_id:
                continue
            credits.append((PartyRef.of(party_type, party_id), amount))
        return credits

    # ==================== Record ====================

    async def record(self, transaction_id: str, result: SplitResult) -> RecordOutcome:
        """
        Store the split for a transaction and credit the parties.

        Idempotent: when a record already exists (including one inserted
        concurrently) nothing is written and no balance is credited again.
        """
        existing = await self.get_original(transaction_id)
        if existing is not None:
            logger.info(f"Revenue share for transaction {transaction_id} already recorded, no-op")
            return RecordOutcome(status=RecordStatus.ALREADY_RECORDED, record=existing)

        try:
            async with self.db.begin_nested():
                record = RevenueShareRecord(
                    transaction_id=transaction_id,
                    entry_type=EntryType.ORIGINAL.value,
                    **result.record_values(),
                )
                self.db.add(record)
        except IntegrityError:
            existing = await self.get_original(transaction_id)
            if existing is None:
                raise
            logger.info(f"Revenue share for transaction {transaction_id} recorded concurrently, no-op")
            return RecordOutcome(status=RecordStatus.ALREADY_RECORDED, record=existing)

        credits = self.party_credits(record)
        await self.balances.lock_many(ref for ref, _ in credits)
        for ref, amount in credits:
            await self.balances.credit(
                PartyType(ref.party_type),
                ref.party_id,
                amount,
                reference_type=REFERENCE_TYPE,
                reference_id=str(record.id),
            )

        await self._set_share_status(transaction_id, ShareStatus.RECORDED)

        self.notifications.enqueue(NotificationType.REVENUE_SHARE_RECORDED, {
            "transaction_id": transaction_id,
            "record_id": str(record.id),
            "formula": record.formula,
            "credits": {ref.party_type + ":" + ref.party_id: amount for ref, amount in credits},
        })
        logger.info(
            f"Recorded formula {record.formula} split for transaction {transaction_id} "
            f"(config v{record.config_version})"
        )
        return RecordOutcome(status=RecordStatus.RECORDED, record=record)

    # ==================== Reverse ====================

    async def reverse(
        self,
        transaction_id: str,
        reason: str,
        requested_by: Optional[str] = None,
    ) -> RevenueShareRecord:
        """
        Offset a recorded split with a negated record and debit the parties.

        Refused with AllocationConflict when any live disbursement already
        references the record. The conflict is flagged on the operator queue
        and committed before raising so it survives the caller's rollback.

        That commit covers the whole session: callers must not hold other
        uncommitted writes in it when calling reverse().
        """
        original = await self.get_original(transaction_id)
        if original is None:
            raise NotFound(f"No revenue share recorded for transaction {transaction_id}")

        existing = await self.get_reversal(transaction_id)
        if existing is not None:
            logger.info(f"Transaction {transaction_id} already reversed, no-op")
            return existing

        if await self.tracker.has_allocations(original.id):
            detail = (
                f"Transaction {transaction_id} cannot be reversed: its shares are already "
                f"allocated to disbursements"
            )
            await OperatorQueueService(self.db).flag(
                OperatorQueueKind.ALLOCATION_CONFLICT,
                detail,
                transaction_id=transaction_id,
                context={"record_id": str(original.id), "reason": reason, "requested_by": requested_by},
            )
            await self.db.commit()
            raise AllocationConflict(detail, transaction_id=transaction_id, record_id=str(original.id))

        try:
            async with self.db.begin_nested():
                reversal = RevenueShareRecord(
                    transaction_id=transaction_id,
                    entry_type=EntryType.REVERSAL.value,
                    reverses_id=original.id,
                    reversal_reason=reason,
                    **{column: getattr(original, column) for column in COPIED_COLUMNS},
                    **{column: -getattr(original, column) for column in SIGNED_COLUMNS},
                )
                self.db.add(reversal)
        except IntegrityError:
            existing = await self.get_reversal(transaction_id)
            if existing is None:
                raise
            logger.info(f"Transaction {transaction_id} reversed concurrently, no-op")
            return existing

        debits = self.party_credits(original)
        await self.balances.lock_many(ref for ref, _ in debits)
        for ref, amount in debits:
            await self.balances.debit(
                PartyType(ref.party_type),
                ref.party_id,
                amount,
                reason=MovementReason.REVERSAL_DEBIT,
                reference_type=REFERENCE_TYPE,
                reference_id=str(reversal.id),
            )

        await self._set_share_status(transaction_id, ShareStatus.REVERSED)

        self.notifications.enqueue(NotificationType.REVENUE_SHARE_REVERSED, {
            "transaction_id": transaction_id,
            "record_id": str(reversal.id),
            "reverses_id": str(original.id),
            "reason": reason,
        })
        logger.info(f"Reversed revenue share of transaction {transaction_id}: {reason}")
        return reversal

    async def _set_share_status(self, transaction_id: str, status: ShareStatus) -> None:
        await self.db.execute(
            update(DonationTransaction)
            .where(DonationTransaction.id == transaction_id)
            .values(share_status=status.value)
            .execution_options(synchronize_session="fetch")
        )
