"""Pydantic schemas for the typed amil configuration snapshot."""
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt

from revshare.schemas.base import BaseCreateSchema
from revshare.models.transaction import ProductType, AnimalType


# Two decimal places, 0..100
Percentage = Annotated[Decimal, Field(ge=0, le=100, max_digits=5, decimal_places=2)]


class ConfigValues(BaseModel):
    """Percentages and fixed fees used by the split calculation."""
    amil_zakat_percentage: Percentage = Decimal("12.5")
    amil_donation_percentage: Percentage = Decimal("20")
    developer_percentage: Percentage = Decimal("0")
    fundraiser_percentage: Percentage = Decimal("0")
    mitra_zakat_percentage: Percentage = Decimal("0")
    mitra_donation_percentage: Percentage = Decimal("0")
    qurban_owner_percentage: Percentage = Decimal("0")
    qurban_admin_fees: Dict[AnimalType, NonNegativeInt] = Field(default_factory=dict)


class ConfigSnapshot(ConfigValues):
    """
    Immutable, versioned read of the amil settings.

    Passed explicitly into every calculation and its version stored on every
    RevenueShareRecord. The snapshot does not enforce cross-field rules; the
    split engine checks those itself and fails closed.
    """
    model_config = ConfigDict(frozen=True)

    version: int = Field(0, ge=0)

    def amil_cap_for(self, product_type: ProductType) -> Decimal:
        if ProductType(product_type) == ProductType.ZAKAT:
            return self.amil_zakat_percentage
        return self.amil_donation_percentage

    def mitra_percentage_for(self, product_type: ProductType) -> Decimal:
        if ProductType(product_type) == ProductType.ZAKAT:
            return self.mitra_zakat_percentage
        return self.mitra_donation_percentage

    def admin_fee_for(self, animal_type: Optional[AnimalType]) -> int:
        if animal_type is None:
            return 0
        return self.qurban_admin_fees.get(AnimalType(animal_type), 0)


class ConfigSnapshotSave(ConfigValues, BaseCreateSchema):
    """Schema for saving new amil settings (creates the next snapshot version)."""
    saved_by: Optional[str] = Field(None, max_length=64)


class ConfigSnapshotResponse(ConfigSnapshot):
    """Snapshot with its audit fields."""
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
