"""Read-only rollups over the revenue share ledger and disbursements."""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, func, exists
from sqlalchemy.orm import aliased
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.models.transaction import DonationTransaction
from revshare.models.party_balance import PartyBalance, PartyType
from revshare.models.revenue_share import RevenueShareRecord, EntryType
from revshare.models.disbursement import Disbursement, DisbursementStatus, DisbursementType
from revshare.schemas.revenue_share import RevenueShareFilters, RevenueShareSummary
from revshare.schemas.disbursement import DisbursementStats
from revshare.services.party_balance_service import PartyBalanceService

logger = logging.getLogger(__name__)

# Approved or waiting for approval, not yet paid out
PENDING_PAYOUT_STATUSES = (
    DisbursementStatus.SUBMITTED.value,
    DisbursementStatus.APPROVED.value,
)


class ReportService:
    """Reporting queries; never writes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _record_conditions(filters: Optional[RevenueShareFilters]) -> list:
        conditions = []
        if filters is None:
            return conditions
        if filters.start_date:
            conditions.append(RevenueShareRecord.created_at >= filters.start_date)
        if filters.end_date:
            conditions.append(RevenueShareRecord.created_at < filters.end_date)
        if filters.product_type:
            conditions.append(RevenueShareRecord.product_type == filters.product_type.value)
        if filters.formula:
            conditions.append(RevenueShareRecord.formula == filters.formula.value)
        if filters.fundraiser_id:
            conditions.append(RevenueShareRecord.fundraiser_id == filters.fundraiser_id)
        if filters.mitra_id:
            conditions.append(RevenueShareRecord.mitra_id == filters.mitra_id)
        return conditions

    async def list_records(
        self,
        filters: Optional[RevenueShareFilters] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[RevenueShareRecord], int]:
        """Newest first, paginated."""
        conditions = self._record_conditions(filters)
        total = (
            await self.db.execute(select(func.count(RevenueShareRecord.id)).where(*conditions))
        ).scalar() or 0
        result = await self.db.execute(
            select(RevenueShareRecord)
            .where(*conditions)
            .order_by(RevenueShareRecord.created_at.desc(), RevenueShareRecord.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def summary(self, filters: Optional[RevenueShareFilters] = None) -> RevenueShareSummary:
        """Totals with reversals netting out their originals."""
        conditions = self._record_conditions(filters)
        row = (
            await self.db.execute(
                select(
                    func.coalesce(func.sum(RevenueShareRecord.donation_amount), 0),
                    func.coalesce(func.sum(RevenueShareRecord.amil_gross), 0),
                    func.coalesce(func.sum(RevenueShareRecord.amil_net), 0),
                    func.coalesce(func.sum(RevenueShareRecord.developer_amount), 0),
                    func.coalesce(func.sum(RevenueShareRecord.fundraiser_amount), 0),
                    func.coalesce(func.sum(RevenueShareRecord.mitra_amount), 0),
                    func.coalesce(func.sum(RevenueShareRecord.program_amount), 0),
                ).where(*conditions)
            )
        ).one()

        reversal = aliased(RevenueShareRecord)
        live_records = (
            await self.db.execute(
                select(func.count(RevenueShareRecord.id)).where(
                    *conditions,
                    RevenueShareRecord.entry_type == EntryType.ORIGINAL.value,
                    ~exists().where(reversal.reverses_id == RevenueShareRecord.id),
                )
            )
        ).scalar() or 0

        return RevenueShareSummary(
            total_records=live_records,
            total_donation=int(row[0]),
            total_amil_gross=int(row[1]),
            total_amil_net=int(row[2]),
            total_developer=int(row[3]),
            total_fundraiser=int(row[4]),
            total_mitra=int(row[5]),
            total_program=int(row[6]),
        )

    async def party_balances(self, party_type: Optional[PartyType] = None) -> List[PartyBalance]:
        return await PartyBalanceService(self.db).list_balances(party_type)

    async def disbursement_stats(
        self,
        reference_id: str,
        disbursement_type: Optional[DisbursementType] = None,
    ) -> DisbursementStats:
        """Program money collected for a reference against what has been paid out of it."""
        total_program = (
            await self.db.execute(
                select(func.coalesce(func.sum(RevenueShareRecord.program_amount), 0))
                .join(DonationTransaction, DonationTransaction.id == RevenueShareRecord.transaction_id)
                .where(DonationTransaction.product_id == reference_id)
            )
        ).scalar()

        conditions = [Disbursement.reference_id == reference_id]
        if disbursement_type:
            conditions.append(Disbursement.disbursement_type == DisbursementType(disbursement_type).value)

        rows = (
            await self.db.execute(
                select(
                    Disbursement.status,
                    func.coalesce(func.sum(Disbursement.amount), 0),
                    func.count(Disbursement.id),
                )
                .where(*conditions)
                .group_by(Disbursement.status)
            )
        ).all()

        total_paid = paid_count = total_committed = committed_count = 0
        for status, amount, count in rows:
            if status == DisbursementStatus.PAID.value:
                total_paid += int(amount)
                paid_count += count
            elif status in PENDING_PAYOUT_STATUSES:
                total_committed += int(amount)
                committed_count += count

        total_program = int(total_program or 0)
        return DisbursementStats(
            reference_id=reference_id,
            disbursement_type=DisbursementType(disbursement_type).value if disbursement_type else None,
            total_program=total_program,
            total_paid=total_paid,
            total_committed=total_committed,
            paid_count=paid_count,
            committed_count=committed_count,
            total_remaining=total_program - total_paid - total_committed,
        )
