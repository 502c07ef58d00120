"""
Config Snapshot Service

Turns the loosely typed amil key/value settings into immutable, versioned
ConfigSnapshot objects. Calculations never read settings directly; they are
handed the snapshot returned by get_active().
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

from pydantic import ValidationError
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.config import settings
from revshare.core.exceptions import ConfigInvariantViolation, NotFound
from revshare.models.config_snapshot import AmilSetting, AmilSettingKey, ConfigSnapshotRecord
from revshare.models.transaction import AnimalType
from revshare.schemas.config_snapshot import ConfigSnapshot, ConfigValues

logger = logging.getLogger(__name__)


# Setting key -> ConfigValues field for the percentage settings
PERCENTAGE_KEYS: Dict[str, str] = {
    AmilSettingKey.AMIL_ZAKAT_PERCENTAGE: "amil_zakat_percentage",
    AmilSettingKey.AMIL_DONATION_PERCENTAGE: "amil_donation_percentage",
    AmilSettingKey.DEVELOPER_PERCENTAGE: "developer_percentage",
    AmilSettingKey.FUNDRAISER_PERCENTAGE: "fundraiser_percentage",
    AmilSettingKey.MITRA_ZAKAT_PERCENTAGE: "mitra_zakat_percentage",
    AmilSettingKey.MITRA_DONATION_PERCENTAGE: "mitra_donation_percentage",
    AmilSettingKey.QURBAN_OWNER_PERCENTAGE: "qurban_owner_percentage",
}

ADMIN_FEE_KEYS: Dict[str, AnimalType] = {
    AmilSettingKey.QURBAN_GOAT_ADMIN_FEE: AnimalType.GOAT,
    AmilSettingKey.QURBAN_COW_ADMIN_FEE: AnimalType.COW,
}

# created_by of versions frozen from rows edited outside save()
SETTINGS_ROWS_AUTHOR = "settings"


def default_setting_values() -> Dict[str, str]:
    """Setting values used when nothing has been saved yet."""
    return {
        AmilSettingKey.AMIL_ZAKAT_PERCENTAGE: settings.DEFAULT_AMIL_ZAKAT_PERCENTAGE,
        AmilSettingKey.AMIL_DONATION_PERCENTAGE: settings.DEFAULT_AMIL_DONATION_PERCENTAGE,
        AmilSettingKey.DEVELOPER_PERCENTAGE: settings.DEFAULT_DEVELOPER_PERCENTAGE,
        AmilSettingKey.FUNDRAISER_PERCENTAGE: settings.DEFAULT_FUNDRAISER_PERCENTAGE,
        AmilSettingKey.MITRA_ZAKAT_PERCENTAGE: settings.DEFAULT_MITRA_ZAKAT_PERCENTAGE,
        AmilSettingKey.MITRA_DONATION_PERCENTAGE: settings.DEFAULT_MITRA_DONATION_PERCENTAGE,
        AmilSettingKey.QURBAN_OWNER_PERCENTAGE: settings.DEFAULT_QURBAN_OWNER_PERCENTAGE,
        AmilSettingKey.QURBAN_GOAT_ADMIN_FEE: str(settings.DEFAULT_QURBAN_GOAT_ADMIN_FEE),
        AmilSettingKey.QURBAN_COW_ADMIN_FEE: str(settings.DEFAULT_QURBAN_COW_ADMIN_FEE),
    }


def parse_setting_values(raw: Dict[str, str], version: int = 0) -> ConfigSnapshot:
    """
    Parse raw setting strings into a typed snapshot.

    Raises ConfigInvariantViolation when a value is not a number or is out of range.
    """
    values: Dict[str, object] = {"version": version}
    fees: Dict[AnimalType, int] = {}
    try:
        for key, field in PERCENTAGE_KEYS.items():
            if raw.get(key) not in (None, ""):
                values[field] = Decimal(str(raw[key]).strip())
        for key, animal_type in ADMIN_FEE_KEYS.items():
            if raw.get(key) not in (None, ""):
                fees[animal_type] = int(Decimal(str(raw[key]).strip()))
        values["qurban_admin_fees"] = fees
        return ConfigSnapshot.model_validate(values)
    except (InvalidOperation, ValueError, ValidationError) as e:
        raise ConfigInvariantViolation(f"Amil settings could not be parsed: {e}", config_version=version)


def _same_values(left: ConfigValues, right: ConfigValues) -> bool:
    return left.model_dump(exclude={"version"}) == right.model_dump(exclude={"version"})


class ConfigSnapshotService:
    """Reads and writes versioned amil configuration."""

    def __init__(self, db: AsyncSession, zakat_cap_max: Optional[Decimal] = None):
        self.db = db
        self.zakat_cap_max = Decimal(str(zakat_cap_max or settings.ZAKAT_AMIL_CAP_MAX))

    # ==================== Reads ====================

    async def get_active(self) -> ConfigSnapshot:
        """
        Snapshot of the settings as they are now.

        Returns the latest version while the settings rows still match it.
        Rows that changed outside save() are first frozen into the next
        version, so a version number always names one fixed set of values.
        """
        current = parse_setting_values(await self._current_setting_values())
        latest = await self._latest_record()
        if latest is not None and _same_values(self._to_snapshot(latest), current):
            return self._to_snapshot(latest)

        record = await self._append_version(current, created_by=SETTINGS_ROWS_AUTHOR)
        return self._to_snapshot(record)

    async def get_version(self, version: int) -> ConfigSnapshot:
        record = await self.get_record(version)
        if record is None:
            raise NotFound(f"Config snapshot version {version} not found")
        return self._to_snapshot(record)

    async def get_record(self, version: int) -> Optional[ConfigSnapshotRecord]:
        result = await self.db.execute(
            select(ConfigSnapshotRecord).where(ConfigSnapshotRecord.version == version)
        )
        return result.scalar_one_or_none()

    async def _latest_record(self) -> Optional[ConfigSnapshotRecord]:
        result = await self.db.execute(
            select(ConfigSnapshotRecord)
            .order_by(ConfigSnapshotRecord.version.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _load_settings(self) -> Dict[str, str]:
        result = await self.db.execute(
            select(AmilSetting).where(AmilSetting.category == "amil")
        )
        return {row.key: row.value for row in result.scalars().all()}

    async def _current_setting_values(self) -> Dict[str, str]:
        raw = default_setting_values()
        raw.update(await self._load_settings())
        return raw

    @staticmethod
    def _to_snapshot(record: ConfigSnapshotRecord) -> ConfigSnapshot:
        return ConfigSnapshot.model_validate({**record.values, "version": record.version})

    # ==================== Writes ====================

    def validate(self, values: ConfigValues) -> None:
        """Save-time checks of the cross-field rules."""
        if values.amil_zakat_percentage > self.zakat_cap_max:
            raise ConfigInvariantViolation(
                f"Zakat amil percentage {values.amil_zakat_percentage}% exceeds "
                f"the maximum of {self.zakat_cap_max}%"
            )

        deductions = values.developer_percentage + values.fundraiser_percentage
        checks = (
            ("zakat", values.amil_zakat_percentage, values.mitra_zakat_percentage),
            ("donation", values.amil_donation_percentage, values.mitra_donation_percentage),
        )
        for label, cap, mitra in checks:
            if deductions + mitra > cap:
                raise ConfigInvariantViolation(
                    f"Developer + fundraiser + mitra ({deductions + mitra}%) exceeds "
                    f"the {label} amil percentage ({cap}%)"
                )

    async def save(self, values: ConfigValues, saved_by: Optional[str] = None) -> ConfigSnapshotRecord:
        """
        Validate and persist new settings.

        Writes the raw key/value rows and appends the next immutable snapshot
        version. Existing versions are never touched.
        """
        self.validate(values)

        raw = self._to_setting_values(values)
        existing = {
            row.key: row
            for row in (
                await self.db.execute(select(AmilSetting).where(AmilSetting.key.in_(list(raw))))
            ).scalars().all()
        }
        for key, value in raw.items():
            row = existing.get(key)
            if row is None:
                self.db.add(AmilSetting(key=key, value=value, category="amil", updated_by=saved_by))
            else:
                row.value = value
                row.updated_by = saved_by

        # Versioned exactly as the rows will read back
        record = await self._append_version(parse_setting_values(raw), created_by=saved_by)
        logger.info(f"Saved amil config snapshot version {record.version} by {saved_by or 'unknown'}")
        return record

    async def _append_version(self, values: ConfigValues, created_by: Optional[str]) -> ConfigSnapshotRecord:
        """Store values as the next immutable version."""
        max_version = (
            await self.db.execute(select(func.max(ConfigSnapshotRecord.version)))
        ).scalar()
        next_version = (max_version or 0) + 1

        payload = ConfigValues.model_validate(values.model_dump(exclude={"version"})).model_dump(mode="json")
        record = ConfigSnapshotRecord(version=next_version, values=payload, created_by=created_by)
        try:
            async with self.db.begin_nested():
                self.db.add(record)
        except IntegrityError:
            # Another writer took this version number first
            latest = await self._latest_record()
            if latest is None or not _same_values(self._to_snapshot(latest), values):
                raise
            return latest

        logger.info(f"Appended amil config snapshot version {next_version}")
        return record

    @staticmethod
    def _to_setting_values(values: ConfigValues) -> Dict[str, str]:
        raw = {key: str(getattr(values, field)) for key, field in PERCENTAGE_KEYS.items()}
        for key, animal_type in ADMIN_FEE_KEYS.items():
            raw[key] = str(values.qurban_admin_fees.get(animal_type, 0))
        return raw
