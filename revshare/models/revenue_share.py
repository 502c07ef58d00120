"""Revenue share ledger: one calculated split per transaction, plus signed reversals."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text
from sqlalchemy import UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from revshare.database import Base
from revshare.db_types import MoneyType, PercentageType, UUIDType
from revshare.core.enum_utils import enum_comment
from revshare.models.party_balance import PartyType


class FormulaType(str, Enum):
    """Split formula applied to a transaction."""
    A = "A"             # Percentage of total with amil cap (campaign / zakat)
    B = "B"             # Fixed qurban admin fee split
    EXEMPT = "EXEMPT"   # Whole amount to the program


class ExemptionReason(str, Enum):
    WAKAF = "wakaf"
    FIDYAH = "fidyah"
    QURBAN_ADMIN_FEE_ZERO = "qurban_admin_fee_zero"


class EntryType(str, Enum):
    ORIGINAL = "original"
    REVERSAL = "reversal"   # Negated copy of the original, never edited in place


class RevenueShareRecord(Base):
    """
    Split result of one paid transaction.

    Formula A: program_amount + amil_gross == donation_amount.
    Formula B: animal_amount + owner_app_amount + mitra_admin_amount == donation_amount,
    with program_amount mirroring animal_amount, mitra_amount mirroring
    mitra_admin_amount and amil_gross mirroring owner_app_amount.
    amil_net is what remains with the amil after developer, fundraiser and mitra.
    """
    __tablename__ = "revenue_share_records"
    __table_args__ = (
        UniqueConstraint("transaction_id", "entry_type", name="uq_revenue_share_transaction_entry"),
        Index("ix_revenue_share_created", "created_at"),
        Index("ix_revenue_share_product_created", "product_type", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    transaction_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("donation_transactions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    entry_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=EntryType.ORIGINAL.value,
        comment=enum_comment(EntryType)
    )
    reverses_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("revenue_share_records.id", ondelete="RESTRICT"),
        nullable=True
    )
    reversal_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Calculation metadata
    formula: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment=enum_comment(FormulaType)
    )
    exemption_reason: Mapped[Optional[str]] = mapped_column(
        String(30),
        nullable=True,
        comment=enum_comment(ExemptionReason)
    )
    config_version: Mapped[int] = mapped_column(Integer, nullable=False)
    product_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Amounts
    donation_amount: Mapped[int] = mapped_column(MoneyType, nullable=False)
    admin_fee: Mapped[int] = mapped_column(MoneyType, nullable=False, default=0)
    program_amount: Mapped[int] = mapped_column(MoneyType, nullable=False, default=0)
    amil_gross: Mapped[int] = mapped_column(MoneyType, nullable=False, default=0)
    developer_amount: Mapped[int] = mapped_column(MoneyType, nullable=False, default=0)
    fundraiser_amount: Mapped[int] = mapped_column(MoneyType, nullable=False, default=0)
    mitra_amount: Mapped[int] = mapped_column(MoneyType, nullable=False, default=0)
    amil_net: Mapped[int] = mapped_column(MoneyType, nullable=False, default=0)

    # Formula B breakdown
    animal_amount: Mapped[int] = mapped_column(MoneyType, nullable=False, default=0)
    owner_app_amount: Mapped[int] = mapped_column(MoneyType, nullable=False, default=0)
    mitra_admin_amount: Mapped[int] = mapped_column(MoneyType, nullable=False, default=0)

    # Percentages applied (historical fidelity)
    amil_percentage: Mapped[Decimal] = mapped_column(PercentageType, nullable=False, default=0)
    developer_percentage: Mapped[Decimal] = mapped_column(PercentageType, nullable=False, default=0)
    fundraiser_percentage: Mapped[Decimal] = mapped_column(PercentageType, nullable=False, default=0)
    mitra_percentage: Mapped[Decimal] = mapped_column(PercentageType, nullable=False, default=0)
    owner_app_percentage: Mapped[Decimal] = mapped_column(PercentageType, nullable=False, default=0)

    # Party references
    fundraiser_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    mitra_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def share_amounts(self) -> Dict[PartyType, int]:
        """Party share amounts carried by this record."""
        return {
            PartyType.AMIL: self.amil_net,
            PartyType.DEVELOPER: self.developer_amount,
            PartyType.FUNDRAISER: self.fundraiser_amount,
            PartyType.MITRA: self.mitra_amount,
        }

    def share_amount(self, party_type: PartyType) -> int:
        return self.share_amounts()[PartyType(party_type)]

    def __repr__(self) -> str:
        return (
            f"<RevenueShareRecord(transaction='{self.transaction_id}', "
            f"entry='{self.entry_type}', formula='{self.formula}')>"
        )
