from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.database import get_db
from revshare.services.transaction_event_service import TransactionEventService
from revshare.services.revenue_share_ledger import RevenueShareLedger
from revshare.services.config_snapshot_service import ConfigSnapshotService
from revshare.services.party_balance_service import PartyBalanceService
from revshare.services.allocation_tracker import AllocationTracker
from revshare.services.disbursement_service import DisbursementService
from revshare.services.operator_queue_service import OperatorQueueService
from revshare.services.report_service import ReportService


DB = Annotated[AsyncSession, Depends(get_db)]


def get_transaction_event_service(db: DB) -> TransactionEventService:
    return TransactionEventService(db)


def get_ledger(db: DB) -> RevenueShareLedger:
    return RevenueShareLedger(db)


def get_config_snapshot_service(db: DB) -> ConfigSnapshotService:
    return ConfigSnapshotService(db)


def get_party_balance_service(db: DB) -> PartyBalanceService:
    return PartyBalanceService(db)


def get_allocation_tracker(db: DB) -> AllocationTracker:
    return AllocationTracker(db)


def get_disbursement_service(db: DB) -> DisbursementService:
    return DisbursementService(db)


def get_operator_queue_service(db: DB) -> OperatorQueueService:
    return OperatorQueueService(db)


def get_report_service(db: DB) -> ReportService:
    return ReportService(db)


TransactionEvents = Annotated[TransactionEventService, Depends(get_transaction_event_service)]
Ledger = Annotated[RevenueShareLedger, Depends(get_ledger)]
ConfigSnapshots = Annotated[ConfigSnapshotService, Depends(get_config_snapshot_service)]
Balances = Annotated[PartyBalanceService, Depends(get_party_balance_service)]
Tracker = Annotated[AllocationTracker, Depends(get_allocation_tracker)]
Disbursements = Annotated[DisbursementService, Depends(get_disbursement_service)]
OperatorQueue = Annotated[OperatorQueueService, Depends(get_operator_queue_service)]
Reports = Annotated[ReportService, Depends(get_report_service)]
