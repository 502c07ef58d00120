"""Amil settings (loose key/value) and the immutable versioned snapshots built from them."""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from revshare.database import Base
from revshare.db_types import JSONType, UUIDType


class AmilSettingKey:
    """Setting keys written by the settings screen (category ``amil``)."""
    AMIL_ZAKAT_PERCENTAGE = "amil_zakat_percentage"
    AMIL_DONATION_PERCENTAGE = "amil_donation_percentage"
    DEVELOPER_PERCENTAGE = "amil_developer_percentage"
    FUNDRAISER_PERCENTAGE = "amil_fundraiser_percentage"
    MITRA_ZAKAT_PERCENTAGE = "amil_mitra_percentage"
    MITRA_DONATION_PERCENTAGE = "amil_mitra_donation_percentage"
    QURBAN_OWNER_PERCENTAGE = "amil_qurban_owner_percentage"
    QURBAN_GOAT_ADMIN_FEE = "amil_qurban_perekor_fee"
    QURBAN_COW_ADMIN_FEE = "amil_qurban_sapi_fee"


class AmilSetting(Base):
    """
    Key/value setting row, stored as text exactly as the settings UI saves it.

    Never read by the split calculation directly; ConfigSnapshotService parses
    these into a typed snapshot first.
    """
    __tablename__ = "amil_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="amil")

    updated_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<AmilSetting(key='{self.key}', value='{self.value}')>"


class ConfigSnapshotRecord(Base):
    """One immutable version of the amil configuration."""
    __tablename__ = "config_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    version: Mapped[int] = mapped_column(Integer, unique=True, nullable=False, index=True)

    # Serialized ConfigSnapshot (percentages as strings, fees as integers)
    values: Mapped[dict] = mapped_column(JSONType, nullable=False)

    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<ConfigSnapshotRecord(version={self.version})>"
