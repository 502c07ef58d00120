"""Running per-party balances and their append-only movement log."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List

from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from revshare.database import Base
from revshare.db_types import MoneyType, UUIDType
from revshare.core.enum_utils import enum_comment


class PartyType(str, Enum):
    """Parties that earn a share of donations."""
    AMIL = "amil"               # Operating organisation (amil net)
    DEVELOPER = "developer"     # Platform developer fee
    FUNDRAISER = "fundraiser"   # Referral agent commission
    MITRA = "mitra"             # Partner organisation owning the program


class MovementReason(str, Enum):
    """Why a balance moved."""
    SHARE_CREDIT = "share_credit"                   # RevenueShareRecord created
    REVERSAL_DEBIT = "reversal_debit"               # Transaction reversed
    DISBURSEMENT_DEBIT = "disbursement_debit"       # Disbursement paid


class PartyBalance(Base):
    """
    Balance of one party.

    current_balance = total_earned - total_withdrawn, and never below zero.
    """
    __tablename__ = "party_balances"
    __table_args__ = (
        UniqueConstraint("party_type", "party_id", name="uq_party_balance_party"),
        CheckConstraint("current_balance >= 0", name="ck_party_balance_not_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    party_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment=enum_comment(PartyType)
    )
    party_id: Mapped[str] = mapped_column(String(64), nullable=False)

    current_balance: Mapped[int] = mapped_column(MoneyType, nullable=False, default=0)
    total_earned: Mapped[int] = mapped_column(MoneyType, nullable=False, default=0)
    total_withdrawn: Mapped[int] = mapped_column(MoneyType, nullable=False, default=0)

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

    movements: Mapped[List["BalanceMovement"]] = relationship(
        "BalanceMovement",
        back_populates="party_balance",
        order_by="BalanceMovement.created_at",
    )

    def __repr__(self) -> str:
        return f"<PartyBalance({self.party_type}:{self.party_id}, balance={self.current_balance})>"


class BalanceMovement(Base):
    """Immutable audit entry for every credit and debit."""
    __tablename__ = "balance_movements"
    __table_args__ = (
        Index("ix_balance_movement_party", "party_type", "party_id", "created_at"),
        Index("ix_balance_movement_reference", "reference_type", "reference_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    party_balance_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("party_balances.id", ondelete="RESTRICT"),
        nullable=False
    )
    party_type: Mapped[str] = mapped_column(String(20), nullable=False)
    party_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Signed: positive for credits, negative for debits
    delta: Mapped[int] = mapped_column(MoneyType, nullable=False)
    balance_after: Mapped[int] = mapped_column(MoneyType, nullable=False)

    reason: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment=enum_comment(MovementReason)
    )
    reference_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="revenue_share_record, disbursement"
    )
    reference_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    party_balance: Mapped["PartyBalance"] = relationship("PartyBalance", back_populates="movements")

    def __repr__(self) -> str:
        return f"<BalanceMovement({self.party_type}:{self.party_id}, delta={self.delta}, reason='{self.reason}')>"
