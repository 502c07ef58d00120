# Models module
from revshare.models.transaction import DonationTransaction, ProductType, AnimalType, ShareStatus
from revshare.models.config_snapshot import AmilSetting, AmilSettingKey, ConfigSnapshotRecord
from revshare.models.party_balance import PartyBalance, BalanceMovement, PartyType, MovementReason
from revshare.models.revenue_share import RevenueShareRecord, FormulaType, ExemptionReason, EntryType
from revshare.models.disbursement import (
    Disbursement,
    DisbursementAllocationItem,
    DisbursementHistory,
    DisbursementType,
    DisbursementStatus,
    DisbursementCategory,
    RecipientType,
    CATEGORIES_BY_TYPE,
    SHARE_TYPE_BY_CATEGORY,
)
from revshare.models.operator_queue import OperatorQueueItem, OperatorQueueKind, OperatorQueueStatus

__all__ = [
    "DonationTransaction",
    "ProductType",
    "AnimalType",
    "ShareStatus",
    "AmilSetting",
    "AmilSettingKey",
    "ConfigSnapshotRecord",
    "PartyBalance",
    "BalanceMovement",
    "PartyType",
    "MovementReason",
    "RevenueShareRecord",
    "FormulaType",
    "ExemptionReason",
    "EntryType",
    # Disbursements
    "Disbursement",
    "DisbursementAllocationItem",
    "DisbursementHistory",
    "DisbursementType",
    "DisbursementStatus",
    "DisbursementCategory",
    "RecipientType",
    "CATEGORIES_BY_TYPE",
    "SHARE_TYPE_BY_CATEGORY",
    "OperatorQueueItem",
    "OperatorQueueKind",
    "OperatorQueueStatus",
]
