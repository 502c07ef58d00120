"""Paid donation transactions as received from the payment subsystem."""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from revshare.database import Base
from revshare.db_types import MoneyType
from revshare.core.enum_utils import enum_comment


class ProductType(str, Enum):
    """What the donor paid for."""
    CAMPAIGN = "campaign"   # Shodaqoh / general donation campaign
    ZAKAT = "zakat"
    QURBAN = "qurban"
    WAKAF = "wakaf"
    FIDYAH = "fidyah"


class AnimalType(str, Enum):
    """Qurban animal types with a fixed admin fee each."""
    GOAT = "goat"  # Per head (kambing / domba)
    COW = "cow"    # Per share of a cow (sapi)


class ShareStatus(str, Enum):
    """Progress of the split calculation for a transaction."""
    PENDING = "pending"                 # Stored, not yet calculated
    RECORDED = "recorded"               # RevenueShareRecord exists
    PENDING_CONFIG = "pending_config"   # Deferred until settings are corrected
    REVERSED = "reversed"               # Refunded / cancelled, shares offset


class DonationTransaction(Base):
    """
    Immutable fact of a confirmed donation payment.

    Keyed by the payment subsystem's transaction id so redelivered
    TransactionPaid events map onto the same row.
    """
    __tablename__ = "donation_transactions"
    __table_args__ = (
        Index("ix_donation_tx_product_paid", "product_type", "paid_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    product_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment=enum_comment(ProductType)
    )
    product_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
        comment="Campaign / zakat period / qurban period the donation went to"
    )
    pillar: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    amount: Mapped[int] = mapped_column(MoneyType, nullable=False)
    # None when the payment subsystem did not itemise it; resolved from the
    # snapshot's per-animal fee at calculation time
    admin_fee: Mapped[Optional[int]] = mapped_column(MoneyType, nullable=True)
    animal_type: Mapped[Optional[str]] = mapped_column(
        String(10),
        nullable=True,
        comment=enum_comment(AnimalType)
    )

    referral_agent_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    partner_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    share_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ShareStatus.PENDING.value,
        comment=enum_comment(ShareStatus)
    )

    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<DonationTransaction(id='{self.id}', type='{self.product_type}', amount={self.amount})>"
