# Services module
from revshare.services.split_rule_engine import SplitRuleEngine, SplitResult
from revshare.services.config_snapshot_service import ConfigSnapshotService
from revshare.services.party_balance_service import PartyBalanceService, PartyRef
from revshare.services.allocation_tracker import AllocationTracker
from revshare.services.revenue_share_ledger import RevenueShareLedger, RecordOutcome, RecordStatus
from revshare.services.transaction_event_service import TransactionEventService
from revshare.services.disbursement_service import DisbursementService
from revshare.services.operator_queue_service import OperatorQueueService
from revshare.services.notification_service import NotificationService, NotificationType
from revshare.services.report_service import ReportService

__all__ = [
    "SplitRuleEngine",
    "SplitResult",
    "ConfigSnapshotService",
    "PartyBalanceService",
    "PartyRef",
    "AllocationTracker",
    "RevenueShareLedger",
    "RecordOutcome",
    "RecordStatus",
    "TransactionEventService",
    "DisbursementService",
    "OperatorQueueService",
    # Ambient
    "NotificationService",
    "NotificationType",
    "ReportService",
]
