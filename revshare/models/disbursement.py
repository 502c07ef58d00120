"""
Disbursement (payout request) models.

Supports:
- Program payouts (campaign, zakat asnaf, qurban purchases)
- Operational and vendor expenses
- Revenue share payouts to mitra, fundraisers and the platform developer
- Allocation items binding a payout to the ledger shares it settles
- Full transition history for the approval trail
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict

from sqlalchemy import String, DateTime, ForeignKey, Text
from sqlalchemy import Index
from sqlalchemy.orm import Mapped, mapped_column

from revshare.database import Base
from revshare.db_types import JSONType, MoneyType, UUIDType
from revshare.core.enum_utils import enum_comment
from revshare.models.party_balance import PartyType


class DisbursementType(str, Enum):
    """Disbursement type enumeration."""
    CAMPAIGN = "campaign"
    ZAKAT = "zakat"
    QURBAN = "qurban"
    OPERATIONAL = "operational"
    VENDOR = "vendor"
    REVENUE_SHARE = "revenue_share"


class DisbursementStatus(str, Enum):
    """Disbursement workflow status."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"           # Terminal


class DisbursementCategory(str, Enum):
    """Expense category, scoped by disbursement type."""
    # Campaign
    CAMPAIGN_TO_BENEFICIARY = "campaign_to_beneficiary"
    CAMPAIGN_PROGRAM_EXPENSE = "campaign_program_expense"
    # Zakat (8 asnaf)
    ZAKAT_TO_FAKIR = "zakat_to_fakir"
    ZAKAT_TO_MISKIN = "zakat_to_miskin"
    ZAKAT_TO_AMIL = "zakat_to_amil"
    ZAKAT_TO_MUALLAF = "zakat_to_muallaf"
    ZAKAT_TO_RIQAB = "zakat_to_riqab"
    ZAKAT_TO_GHARIM = "zakat_to_gharim"
    ZAKAT_TO_FISABILILLAH = "zakat_to_fisabilillah"
    ZAKAT_TO_IBNU_SABIL = "zakat_to_ibnu_sabil"
    # Qurban
    QURBAN_PURCHASE_SAPI = "qurban_purchase_sapi"
    QURBAN_PURCHASE_KAMBING = "qurban_purchase_kambing"
    QURBAN_EXECUTION_FEE = "qurban_execution_fee"
    # Operational
    OPERATIONAL_SALARY = "operational_salary"
    OPERATIONAL_RENT = "operational_rent"
    OPERATIONAL_UTILITIES = "operational_utilities"
    OPERATIONAL_MARKETING = "operational_marketing"
    OPERATIONAL_OTHER = "operational_other"
    # Vendor
    VENDOR_PAYMENT = "vendor_payment"
    # Revenue share
    REVENUE_SHARE_MITRA = "revenue_share_mitra"
    REVENUE_SHARE_FUNDRAISER = "revenue_share_fundraiser"
    REVENUE_SHARE_DEVELOPER = "revenue_share_developer"


class RecipientType(str, Enum):
    VENDOR = "vendor"
    EMPLOYEE = "employee"
    COORDINATOR = "coordinator"
    MUSTAHIQ = "mustahiq"
    MANUAL = "manual"
    FUNDRAISER = "fundraiser"
    MITRA = "mitra"
    DEVELOPER = "developer"


def _categories(prefix: str) -> frozenset:
    return frozenset(c for c in DisbursementCategory if c.value.startswith(prefix))


# Allowed categories per disbursement type
CATEGORIES_BY_TYPE: Dict[DisbursementType, frozenset] = {
    DisbursementType.CAMPAIGN: _categories("campaign_"),
    DisbursementType.ZAKAT: _categories("zakat_to_"),
    DisbursementType.QURBAN: _categories("qurban_"),
    DisbursementType.OPERATIONAL: _categories("operational_"),
    DisbursementType.VENDOR: _categories("vendor_"),
    DisbursementType.REVENUE_SHARE: _categories("revenue_share_"),
}

# Which ledger share a revenue share payout draws on
SHARE_TYPE_BY_CATEGORY: Dict[DisbursementCategory, PartyType] = {
    DisbursementCategory.REVENUE_SHARE_MITRA: PartyType.MITRA,
    DisbursementCategory.REVENUE_SHARE_FUNDRAISER: PartyType.FUNDRAISER,
    DisbursementCategory.REVENUE_SHARE_DEVELOPER: PartyType.DEVELOPER,
}


class Disbursement(Base):
    """
    Outbound payout request.

    Lifecycle: draft -> submitted -> approved | rejected; approved -> paid.
    A rejected request is resubmitted as a new draft pointing back to it.
    """
    __tablename__ = "disbursements"
    __table_args__ = (
        Index("ix_disbursement_type_status", "disbursement_type", "status"),
        Index("ix_disbursement_recipient", "category", "recipient_id"),
        Index("ix_disbursement_reference", "reference_type", "reference_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    disbursement_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True,
        comment="DSB-YYYYMMDD-0001"
    )

    disbursement_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment=enum_comment(DisbursementType)
    )
    category: Mapped[str] = mapped_column(String(50), nullable=False)

    # Optional polymorphic reference (campaign, zakat period, qurban period)
    reference_type: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    reference_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    reference_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    amount: Mapped[int] = mapped_column(MoneyType, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DisbursementStatus.DRAFT.value,
        index=True,
        comment=enum_comment(DisbursementStatus)
    )

    # Recipient
    recipient_type: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment=enum_comment(RecipientType)
    )
    recipient_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_contact: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    recipient_bank_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    recipient_bank_account: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    recipient_bank_account_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Purpose
    purpose: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type_specific_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    # Payment execution
    payment_method: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    transfer_proof_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    transfer_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    transferred_amount: Mapped[Optional[int]] = mapped_column(MoneyType, nullable=True)
    additional_fees: Mapped[int] = mapped_column(MoneyType, nullable=False, default=0)

    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Resubmission chain
    previous_disbursement_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("disbursements.id", ondelete="SET NULL"),
        nullable=True
    )

    # Actors
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    submitted_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    approved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    rejected_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    paid_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_revenue_share(self) -> bool:
        return self.disbursement_type == DisbursementType.REVENUE_SHARE.value

    def __repr__(self) -> str:
        return f"<Disbursement(number='{self.disbursement_number}', status='{self.status}', amount={self.amount})>"


class DisbursementAllocationItem(Base):
    """
    Binds part of a payout to one ledger record's party share.

    The sum over one (revenue_share_record_id, party_type) never exceeds that
    record's share amount.
    """
    __tablename__ = "disbursement_allocation_items"
    __table_args__ = (
        Index("ix_allocation_record_party", "revenue_share_record_id", "party_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    disbursement_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("disbursements.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    revenue_share_record_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("revenue_share_records.id", ondelete="RESTRICT"),
        nullable=False
    )
    party_type: Mapped[str] = mapped_column(String(20), nullable=False)
    party_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[int] = mapped_column(MoneyType, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<DisbursementAllocationItem(record='{self.revenue_share_record_id}', amount={self.amount})>"


class DisbursementHistory(Base):
    """Audit trail of disbursement transitions."""
    __tablename__ = "disbursement_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    disbursement_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("disbursements.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    action: Mapped[str] = mapped_column(String(50), nullable=False)
    from_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<DisbursementHistory(action='{self.action}', {self.from_status} -> {self.to_status})>"
