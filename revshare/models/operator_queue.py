"""Items that need a human: bad settings, blocked reversals."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from revshare.database import Base
from revshare.db_types import JSONType, UUIDType
from revshare.core.enum_utils import enum_comment


class OperatorQueueKind(str, Enum):
    CONFIG_INVARIANT_VIOLATION = "config_invariant_violation"
    ALLOCATION_CONFLICT = "allocation_conflict"


class OperatorQueueStatus(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"


class OperatorQueueItem(Base):
    """Flagged for manual correction or reconciliation."""
    __tablename__ = "operator_queue_items"
    __table_args__ = (
        Index("ix_operator_queue_status_kind", "status", "kind"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    kind: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        comment=enum_comment(OperatorQueueKind)
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=OperatorQueueStatus.OPEN.value,
        comment=enum_comment(OperatorQueueStatus)
    )

    transaction_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    detail: Mapped[str] = mapped_column(Text, nullable=False)
    context: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    resolved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    resolution_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<OperatorQueueItem(kind='{self.kind}', status='{self.status}')>"
