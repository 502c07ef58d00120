"""
Disbursement Service

Payout requests and their approval workflow. Status changes are validated by
disbursement_state_machine; revenue share payouts additionally go through the
AllocationTracker (soft hold at submit) and PartyBalanceService (debit at paid).
"""
import logging
import uuid
from datetime import date, datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.core.exceptions import InvalidTransition, NotFound, OverAllocation
from revshare.models.party_balance import PartyType, MovementReason
from revshare.models.disbursement import (
    Disbursement,
    DisbursementAllocationItem,
    DisbursementHistory,
    DisbursementStatus,
    DisbursementType,
    DisbursementCategory,
    SHARE_TYPE_BY_CATEGORY,
)
from revshare.schemas.disbursement import DisbursementCreate, DisbursementMarkPaid
from revshare.schemas.party_balance import PartyAvailability
from revshare.services import disbursement_state_machine as sm
from revshare.services.allocation_tracker import AllocationTracker
from revshare.services.party_balance_service import PartyBalanceService
from revshare.services.notification_service import NotificationService, NotificationType

logger = logging.getLogger(__name__)

REFERENCE_TYPE = "disbursement"

# Fields copied onto a resubmitted request
RESUBMIT_FIELDS = (
    "disbursement_type", "category", "amount",
    "reference_type", "reference_id", "reference_name",
    "recipient_type", "recipient_id", "recipient_name", "recipient_contact",
    "recipient_bank_name", "recipient_bank_account", "recipient_bank_account_name",
    "purpose", "description", "notes", "type_specific_data", "payment_method",
)


class DisbursementService:
    """Service for managing disbursement requests."""

    def __init__(
        self,
        db: AsyncSession,
        tracker: Optional[AllocationTracker] = None,
        balances: Optional[PartyBalanceService] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.db = db
        self.tracker = tracker or AllocationTracker(db)
        self.balances = balances or PartyBalanceService(db)
        self.notifications = notifications or NotificationService(db)

    # ==================== Numbering ====================

    async def generate_disbursement_number(self) -> str:
        """Generate unique disbursement number, DSB-YYYYMMDD-0001."""
        today = date.today()
        prefix = f"DSB-{today.strftime('%Y%m%d')}"

        # Get max number for today
        result = await self.db.execute(
            select(func.max(Disbursement.disbursement_number))
            .where(Disbursement.disbursement_number.like(f"{prefix}%"))
        )
        max_number = result.scalar()

        if max_number:
            seq = int(max_number.split("-")[-1]) + 1
        else:
            seq = 1

        return f"{prefix}-{seq:04d}"

    # ==================== Parties ====================

    def party_for(self, category: str, recipient_id: Optional[str]) -> Tuple[Optional[PartyType], Optional[str]]:
        """Ledger party a revenue share category draws on."""
        try:
            share_type = SHARE_TYPE_BY_CATEGORY.get(DisbursementCategory(category))
        except ValueError:
            return None, None
        if share_type is None:
            return None, None
        if share_type == PartyType.DEVELOPER:
            return share_type, self.tracker.developer_party_id
        return share_type, recipient_id

    def party_of(self, disbursement: Disbursement) -> Tuple[Optional[PartyType], Optional[str]]:
        if not disbursement.is_revenue_share:
            return None, None
        return self.party_for(disbursement.category, disbursement.recipient_id)

    async def availability_for(self, category: DisbursementCategory, recipient_id: Optional[str] = None) -> PartyAvailability:
        """What can still be requested for a revenue share category and recipient."""
        party_type, party_id = self.party_for(DisbursementCategory(category).value, recipient_id)
        if party_type is None:
            raise InvalidTransition(
                f"Category '{DisbursementCategory(category).value}' is not a revenue share category",
                guard="revenue_share_category",
            )
        if not party_id:
            raise InvalidTransition("A recipient is required for this category", guard="recipient_required")
        return await self.tracker.availability(party_type, party_id)

    # ==================== Reads ====================

    async def get(self, disbursement_id: uuid.UUID) -> Disbursement:
        disbursement = await self.db.get(Disbursement, disbursement_id)
        if disbursement is None:
            raise NotFound(f"Disbursement {disbursement_id} not found")
        return disbursement

    async def get_for_update(self, disbursement_id: uuid.UUID) -> Disbursement:
        result = await self.db.execute(
            select(Disbursement)
            .where(Disbursement.id == disbursement_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        disbursement = result.scalar_one_or_none()
        if disbursement is None:
            raise NotFound(f"Disbursement {disbursement_id} not found")
        return disbursement

    async def list_disbursements(
        self,
        disbursement_type: Optional[DisbursementType] = None,
        status: Optional[DisbursementStatus] = None,
        category: Optional[DisbursementCategory] = None,
        recipient_id: Optional[str] = None,
        reference_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Disbursement], int]:
        conditions = []
        if disbursement_type:
            conditions.append(Disbursement.disbursement_type == DisbursementType(disbursement_type).value)
        if status:
            conditions.append(Disbursement.status == DisbursementStatus(status).value)
        if category:
            conditions.append(Disbursement.category == DisbursementCategory(category).value)
        if recipient_id:
            conditions.append(Disbursement.recipient_id == recipient_id)
        if reference_id:
            conditions.append(Disbursement.reference_id == reference_id)

        total = (
            await self.db.execute(select(func.count(Disbursement.id)).where(*conditions))
        ).scalar() or 0
        result = await self.db.execute(
            select(Disbursement)
            .where(*conditions)
            .order_by(Disbursement.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_history(self, disbursement_id: uuid.UUID) -> List[DisbursementHistory]:
        result = await self.db.execute(
            select(DisbursementHistory)
            .where(DisbursementHistory.disbursement_id == disbursement_id)
            .order_by(DisbursementHistory.created_at, DisbursementHistory.id)
        )
        return list(result.scalars().all())

    async def get_allocations(self, disbursement_id: uuid.UUID) -> List[DisbursementAllocationItem]:
        return await self.tracker.allocations_for(disbursement_id)

    # ==================== Create ====================

    async def create(self, data: DisbursementCreate) -> Disbursement:
        """Create a draft request."""
        if data.disbursement_type == DisbursementType.REVENUE_SHARE:
            _, party_id = self.party_for(data.category.value, data.recipient_id)
            if not party_id:
                raise InvalidTransition(
                    f"Category '{data.category.value}' requires a recipient",
                    guard="recipient_required",
                )

        disbursement = Disbursement(
            disbursement_number=await self.generate_disbursement_number(),
            status=DisbursementStatus.DRAFT.value,
            **data.model_dump(mode="json"),
        )
        self.db.add(disbursement)
        await self.db.flush()

        self._add_history(disbursement, "created", None, data.created_by)
        await self.db.flush()
        logger.info(
            f"Created disbursement {disbursement.disbursement_number} "
            f"({disbursement.category}, {disbursement.amount})"
        )
        return disbursement

    # ==================== Transitions ====================

    async def submit(self, disbursement_id: uuid.UUID, submitted_by: str) -> Disbursement:
        """
        draft -> submitted.

        Revenue share requests place their soft hold here: allocation items
        covering the amount, oldest earned shares first. Fails with
        InsufficientBalance, writing nothing, when the party's unallocated
        shares cannot cover the request.
        """
        disbursement = await self.get_for_update(disbursement_id)
        sm.validate_transition(disbursement.status, DisbursementStatus.SUBMITTED.value)
        sm.guard_submit(disbursement.amount)

        party_type, party_id = self.party_of(disbursement)
        if party_type is not None:
            # Serialise requests against the same party
            await self.balances.lock(party_type, party_id)
            await self.tracker.release(disbursement.id)
            await self.tracker.allocate_fifo(disbursement.id, party_type, party_id, disbursement.amount)

        from_status = disbursement.status
        disbursement.status = DisbursementStatus.SUBMITTED.value
        disbursement.submitted_by = submitted_by
        disbursement.submitted_at = datetime.now(timezone.utc)
        self._add_history(disbursement, "submitted", from_status, submitted_by)
        await self.db.flush()

        self._notify(NotificationType.DISBURSEMENT_SUBMITTED, disbursement)
        logger.info(f"Disbursement {disbursement.disbursement_number} submitted by {submitted_by}")
        return disbursement

    async def approve(
        self,
        disbursement_id: uuid.UUID,
        approved_by: str,
        comment: Optional[str] = None,
    ) -> Disbursement:
        """submitted -> approved. Revenue share requests cannot be self-approved."""
        disbursement = await self.get_for_update(disbursement_id)
        sm.validate_transition(disbursement.status, DisbursementStatus.APPROVED.value)
        sm.guard_approve(approved_by, disbursement.created_by, disbursement.is_revenue_share)

        from_status = disbursement.status
        disbursement.status = DisbursementStatus.APPROVED.value
        disbursement.approved_by = approved_by
        disbursement.approved_at = datetime.now(timezone.utc)
        self._add_history(disbursement, "approved", from_status, approved_by, comment)
        await self.db.flush()

        self._notify(NotificationType.DISBURSEMENT_APPROVED, disbursement)
        logger.info(f"Disbursement {disbursement.disbursement_number} approved by {approved_by}")
        return disbursement

    async def reject(self, disbursement_id: uuid.UUID, rejected_by: str, reason: Optional[str]) -> Disbursement:
        """submitted -> rejected, releasing the soft hold. Balances are not touched."""
        disbursement = await self.get_for_update(disbursement_id)
        sm.validate_transition(disbursement.status, DisbursementStatus.REJECTED.value)
        sm.guard_reject(reason)

        released = await self.tracker.release(disbursement.id)

        from_status = disbursement.status
        disbursement.status = DisbursementStatus.REJECTED.value
        disbursement.rejection_reason = reason.strip()
        disbursement.rejected_by = rejected_by
        disbursement.rejected_at = datetime.now(timezone.utc)
        self._add_history(disbursement, "rejected", from_status, rejected_by, reason.strip())
        await self.db.flush()

        self._notify(NotificationType.DISBURSEMENT_REJECTED, disbursement, reason=reason.strip())
        logger.info(
            f"Disbursement {disbursement.disbursement_number} rejected by {rejected_by}, "
            f"released {released}"
        )
        return disbursement

    async def mark_paid(self, disbursement_id: uuid.UUID, data: DisbursementMarkPaid) -> Disbursement:
        """
        approved -> paid.

        Requires a payment proof reference and a transfer date. Revenue share
        payouts confirm their allocations cover exactly the amount and debit
        the party's balance.
        """
        disbursement = await self.get_for_update(disbursement_id)
        sm.validate_transition(disbursement.status, DisbursementStatus.PAID.value)
        sm.guard_mark_paid(
            data.transfer_proof_url,
            data.transfer_date,
            disbursement.amount,
            data.transferred_amount,
            disbursement.is_revenue_share,
        )

        party_type, party_id = self.party_of(disbursement)
        if party_type is not None:
            await self.balances.lock(party_type, party_id)
            allocated = sum(item.amount for item in await self.tracker.allocations_for(disbursement.id))
            if allocated > disbursement.amount:
                raise OverAllocation(
                    f"Disbursement {disbursement.disbursement_number} has {allocated} allocated "
                    f"for an amount of {disbursement.amount}",
                    allocated=allocated,
                    requested=disbursement.amount,
                )
            if allocated < disbursement.amount:
                await self.tracker.allocate_fifo(
                    disbursement.id, party_type, party_id, disbursement.amount - allocated
                )
            await self.balances.debit(
                party_type,
                party_id,
                disbursement.amount,
                reason=MovementReason.DISBURSEMENT_DEBIT,
                reference_type=REFERENCE_TYPE,
                reference_id=str(disbursement.id),
            )

        from_status = disbursement.status
        disbursement.status = DisbursementStatus.PAID.value
        disbursement.transfer_proof_url = data.transfer_proof_url
        disbursement.transfer_date = data.transfer_date
        disbursement.transferred_amount = data.transferred_amount or disbursement.amount
        disbursement.additional_fees = data.additional_fees
        if data.payment_method:
            disbursement.payment_method = data.payment_method
        disbursement.paid_by = data.paid_by
        disbursement.paid_at = datetime.now(timezone.utc)
        self._add_history(disbursement, "paid", from_status, data.paid_by, data.transfer_proof_url)
        await self.db.flush()

        self._notify(NotificationType.DISBURSEMENT_PAID, disbursement)
        logger.info(f"Disbursement {disbursement.disbursement_number} paid by {data.paid_by}")
        return disbursement

    async def resubmit(
        self,
        disbursement_id: uuid.UUID,
        requested_by: str,
        amount: Optional[int] = None,
    ) -> Disbursement:
        """
        rejected -> new draft.

        The rejected request stays as it is for the audit trail; the new draft
        copies it and points back through previous_disbursement_id.
        """
        rejected = await self.get_for_update(disbursement_id)
        sm.validate_transition(rejected.status, DisbursementStatus.DRAFT.value)

        # The row lock above serializes this check between concurrent resubmits
        follow_up = (
            await self.db.execute(
                select(Disbursement.disbursement_number)
                .where(Disbursement.previous_disbursement_id == rejected.id)
                .limit(1)
            )
        ).scalar_one_or_none()
        if follow_up is not None:
            raise InvalidTransition(
                f"Disbursement {rejected.disbursement_number} was already resubmitted as {follow_up}",
                guard="already_resubmitted",
                resubmitted_as=follow_up,
            )

        values = {field: getattr(rejected, field) for field in RESUBMIT_FIELDS}
        if amount is not None:
            values["amount"] = amount

        draft = Disbursement(
            disbursement_number=await self.generate_disbursement_number(),
            status=DisbursementStatus.DRAFT.value,
            previous_disbursement_id=rejected.id,
            created_by=requested_by,
            **values,
        )
        self.db.add(draft)
        await self.db.flush()

        self._add_history(
            draft, "resubmitted", None, requested_by,
            f"Resubmission of {rejected.disbursement_number}",
        )
        await self.db.flush()
        logger.info(f"Disbursement {rejected.disbursement_number} resubmitted as {draft.disbursement_number}")
        return draft

    async def delete(self, disbursement_id: uuid.UUID, deleted_by: str) -> None:
        """Delete an unpaid, unapproved request and release its hold."""
        disbursement = await self.get_for_update(disbursement_id)
        if not sm.can_delete(disbursement.status):
            raise InvalidTransition(
                f"Disbursement in '{disbursement.status}' status cannot be deleted",
                guard="status",
                current_status=disbursement.status,
            )

        released = await self.tracker.release(disbursement.id)
        await self.db.execute(
            delete(DisbursementHistory).where(DisbursementHistory.disbursement_id == disbursement.id)
        )
        number = disbursement.disbursement_number
        await self.db.delete(disbursement)
        await self.db.flush()
        logger.info(f"Disbursement {number} deleted by {deleted_by}, released {released}")

    # ==================== Helpers ====================

    def _add_history(
        self,
        disbursement: Disbursement,
        action: str,
        from_status: Optional[str],
        actor_id: str,
        comment: Optional[str] = None,
    ) -> DisbursementHistory:
        history = DisbursementHistory(
            disbursement_id=disbursement.id,
            action=action,
            from_status=from_status,
            to_status=disbursement.status,
            actor_id=actor_id,
            comment=comment,
        )
        self.db.add(history)
        return history

    def _notify(self, notification_type: NotificationType, disbursement: Disbursement, **extra) -> None:
        self.notifications.enqueue(notification_type, {
            "disbursement_id": str(disbursement.id),
            "disbursement_number": disbursement.disbursement_number,
            "category": disbursement.category,
            "recipient_id": disbursement.recipient_id,
            "amount": disbursement.amount,
            "status": disbursement.status,
            **extra,
        })
