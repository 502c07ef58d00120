"""
Allocation Tracker

Binds disbursement payouts to the ledger shares they settle. The sum of
allocations against one record's party share never exceeds that share, so the
same earned amount cannot be paid out twice.

Allocations only exist for live disbursements (submitted, approved, paid);
they are deleted when a request is rejected or abandoned, which is what
releases the soft hold.
"""
import logging
import uuid
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func, delete, exists, false
from sqlalchemy.orm import aliased
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.config import settings
from revshare.core.exceptions import OverAllocation, InsufficientBalance
from revshare.models.party_balance import PartyType
from revshare.models.revenue_share import RevenueShareRecord, EntryType
from revshare.models.disbursement import (
    Disbursement, DisbursementAllocationItem, DisbursementStatus
)
from revshare.schemas.party_balance import PartyAvailability

logger = logging.getLogger(__name__)


# Statuses whose allocations count as committed
LIVE_STATUSES = (
    DisbursementStatus.SUBMITTED.value,
    DisbursementStatus.APPROVED.value,
    DisbursementStatus.PAID.value,
)


class AllocationTracker:
    """Single source of truth for how much of each share is already spoken for."""

    def __init__(
        self,
        db: AsyncSession,
        amil_party_id: Optional[str] = None,
        developer_party_id: Optional[str] = None,
    ):
        self.db = db
        self.amil_party_id = amil_party_id or settings.AMIL_PARTY_ID
        self.developer_party_id = developer_party_id or settings.DEVELOPER_PARTY_ID

    # ==================== Share selection ====================

    @staticmethod
    def share_column(party_type: PartyType):
        return {
            PartyType.AMIL: RevenueShareRecord.amil_net,
            PartyType.DEVELOPER: RevenueShareRecord.developer_amount,
            PartyType.FUNDRAISER: RevenueShareRecord.fundraiser_amount,
            PartyType.MITRA: RevenueShareRecord.mitra_amount,
        }[PartyType(party_type)]

    def party_id_for(self, record: RevenueShareRecord, party_type: PartyType) -> Optional[str]:
        """Which party of the given type a record's share belongs to."""
        party_type = PartyType(party_type)
        if party_type == PartyType.AMIL:
            return self.amil_party_id
        if party_type == PartyType.DEVELOPER:
            return self.developer_party_id
        if party_type == PartyType.FUNDRAISER:
            return record.fundraiser_id
        return record.mitra_id

    def _party_conditions(self, party_type: PartyType, party_id: str) -> list:
        """Live original records carrying a positive share for the party."""
        party_type = PartyType(party_type)
        reversal = aliased(RevenueShareRecord)
        conditions = [
            RevenueShareRecord.entry_type == EntryType.ORIGINAL.value,
            self.share_column(party_type) > 0,
            ~exists().where(reversal.reverses_id == RevenueShareRecord.id),
        ]
        if party_type == PartyType.FUNDRAISER:
            conditions.append(RevenueShareRecord.fundraiser_id == party_id)
        elif party_type == PartyType.MITRA:
            conditions.append(RevenueShareRecord.mitra_id == party_id)
        elif party_type == PartyType.DEVELOPER and party_id != self.developer_party_id:
            conditions.append(false())
        elif party_type == PartyType.AMIL and party_id != self.amil_party_id:
            conditions.append(false())
        return conditions

    async def is_reversed(self, record_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(func.count(RevenueShareRecord.id)).where(RevenueShareRecord.reverses_id == record_id)
        )
        return (result.scalar() or 0) > 0

    # ==================== Reads ====================

    async def allocated_amount(self, record_id: uuid.UUID, party_type: PartyType) -> int:
        """Sum of live allocations against one record's party share."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(DisbursementAllocationItem.amount), 0))
            .join(Disbursement, Disbursement.id == DisbursementAllocationItem.disbursement_id)
            .where(
                DisbursementAllocationItem.revenue_share_record_id == record_id,
                DisbursementAllocationItem.party_type == PartyType(party_type).value,
                Disbursement.status.in_(LIVE_STATUSES),
            )
        )
        return int(result.scalar() or 0)

    async def has_allocations(self, record_id: uuid.UUID) -> bool:
        """Whether any live disbursement references the record."""
        result = await self.db.execute(
            select(func.count(DisbursementAllocationItem.id))
            .join(Disbursement, Disbursement.id == DisbursementAllocationItem.disbursement_id)
            .where(
                DisbursementAllocationItem.revenue_share_record_id == record_id,
                Disbursement.status.in_(LIVE_STATUSES),
            )
        )
        return (result.scalar() or 0) > 0

    async def allocations_for(self, disbursement_id: uuid.UUID) -> List[DisbursementAllocationItem]:
        result = await self.db.execute(
            select(DisbursementAllocationItem)
            .where(DisbursementAllocationItem.disbursement_id == disbursement_id)
            .order_by(DisbursementAllocationItem.created_at, DisbursementAllocationItem.id)
        )
        return list(result.scalars().all())

    async def open_shares(
        self,
        party_type: PartyType,
        party_id: str,
    ) -> List[Tuple[RevenueShareRecord, int]]:
        """Records with unallocated share left for the party, oldest first."""
        party_type = PartyType(party_type)
        records = (
            await self.db.execute(
                select(RevenueShareRecord)
                .where(*self._party_conditions(party_type, party_id))
                .order_by(RevenueShareRecord.created_at, RevenueShareRecord.id)
            )
        ).scalars().all()
        if not records:
            return []

        allocated: Dict[uuid.UUID, int] = {
            row.revenue_share_record_id: int(row.total)
            for row in (
                await self.db.execute(
                    select(
                        DisbursementAllocationItem.revenue_share_record_id,
                        func.sum(DisbursementAllocationItem.amount).label("total"),
                    )
                    .join(Disbursement, Disbursement.id == DisbursementAllocationItem.disbursement_id)
                    .where(
                        DisbursementAllocationItem.party_type == party_type.value,
                        DisbursementAllocationItem.party_id == party_id,
                        Disbursement.status.in_(LIVE_STATUSES),
                    )
                    .group_by(DisbursementAllocationItem.revenue_share_record_id)
                )
            ).all()
        }

        open_shares = []
        for record in records:
            remaining = record.share_amount(party_type) - allocated.get(record.id, 0)
            if remaining > 0:
                open_shares.append((record, remaining))
        return open_shares

    async def availability(self, party_type: PartyType, party_id: str) -> PartyAvailability:
        """Entitled minus committed, recomputed from ledger and allocations."""
        party_type = PartyType(party_type)
        entitled_row = (
            await self.db.execute(
                select(
                    func.coalesce(func.sum(self.share_column(party_type)), 0),
                    func.count(RevenueShareRecord.id),
                ).where(*self._party_conditions(party_type, party_id))
            )
        ).one()

        allocation_base = (
            select(func.coalesce(func.sum(DisbursementAllocationItem.amount), 0))
            .join(Disbursement, Disbursement.id == DisbursementAllocationItem.disbursement_id)
            .where(
                DisbursementAllocationItem.party_type == party_type.value,
                DisbursementAllocationItem.party_id == party_id,
            )
        )
        committed = (
            await self.db.execute(allocation_base.where(Disbursement.status.in_(LIVE_STATUSES)))
        ).scalar()
        paid = (
            await self.db.execute(
                allocation_base.where(Disbursement.status == DisbursementStatus.PAID.value)
            )
        ).scalar()

        total_entitled = int(entitled_row[0] or 0)
        total_committed = int(committed or 0)
        return PartyAvailability(
            party_type=party_type.value,
            party_id=party_id,
            total_entitled=total_entitled,
            total_committed=total_committed,
            total_paid=int(paid or 0),
            total_available=max(total_entitled - total_committed, 0),
            records_count=int(entitled_row[1] or 0),
        )

    # ==================== Writes ====================

    async def allocate(
        self,
        disbursement_id: uuid.UUID,
        record: RevenueShareRecord,
        party_type: PartyType,
        amount: int,
    ) -> DisbursementAllocationItem:
        """
        Allocate part of one record's party share to a disbursement.

        Raises OverAllocation, with nothing written, when existing + amount
        would exceed the share.
        """
        party_type = PartyType(party_type)
        if amount <= 0:
            raise ValueError(f"Allocation amount must be positive, got {amount}")

        share = record.share_amount(party_type)
        if record.entry_type != EntryType.ORIGINAL.value or await self.is_reversed(record.id):
            share = 0

        existing = await self.allocated_amount(record.id, party_type)
        if existing + amount > share:
            raise OverAllocation(
                f"Allocating {amount} against {party_type.value} share of record {record.id} "
                f"would exceed the share ({existing} of {share} already allocated)",
                record_id=str(record.id),
                share_amount=share,
                allocated=existing,
                requested=amount,
            )

        item = DisbursementAllocationItem(
            disbursement_id=disbursement_id,
            revenue_share_record_id=record.id,
            party_type=party_type.value,
            party_id=self.party_id_for(record, party_type),
            amount=amount,
        )
        self.db.add(item)
        await self.db.flush()
        return item

    async def allocate_fifo(
        self,
        disbursement_id: uuid.UUID,
        party_type: PartyType,
        party_id: str,
        amount: int,
    ) -> List[DisbursementAllocationItem]:
        """
        Cover `amount` from the party's open shares, oldest earned first.

        The caller holds the party's balance row lock. Raises
        InsufficientBalance when the open shares cannot cover the amount.
        """
        open_shares = await self.open_shares(party_type, party_id)
        available = sum(remaining for _, remaining in open_shares)
        if amount > available:
            raise InsufficientBalance(
                f"Requested {amount} exceeds available {available} for "
                f"{PartyType(party_type).value}:{party_id}",
                requested=amount,
                available=available,
            )

        items = []
        outstanding = amount
        for record, remaining in open_shares:
            if outstanding == 0:
                break
            take = min(remaining, outstanding)
            items.append(await self.allocate(disbursement_id, record, party_type, take))
            outstanding -= take

        logger.info(
            f"Allocated {amount} for disbursement {disbursement_id} across {len(items)} record(s)"
        )
        return items

    async def release(self, disbursement_id: uuid.UUID) -> int:
        """Drop a disbursement's allocations; returns the amount released."""
        released = (
            await self.db.execute(
                select(func.coalesce(func.sum(DisbursementAllocationItem.amount), 0))
                .where(DisbursementAllocationItem.disbursement_id == disbursement_id)
            )
        ).scalar()
        await self.db.execute(
            delete(DisbursementAllocationItem)
            .where(DisbursementAllocationItem.disbursement_id == disbursement_id)
        )
        return int(released or 0)
