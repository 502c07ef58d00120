"""
Split Rule Engine

Pure calculation of how one paid transaction is divided between the program
and the earning parties. No database access, no ambient settings: the caller
passes the ConfigSnapshot explicitly so any record can be reproduced later.

Formula A (campaign / zakat):
    amil_gross = floor(amount x amil_cap%)
    developer  = floor(amount x developer%)
    fundraiser = floor(amount x fundraiser%)   only with a referral agent
    mitra      = floor(amount x mitra%)        only with an owning partner
    amil_net   = amil_gross - developer - fundraiser - mitra
    program    = amount - amil_gross

Formula B (qurban with an admin fee):
    animal_amount = amount - admin_fee
    owner_app     = floor(admin_fee x owner%)   whole fee when no partner
    mitra_admin   = admin_fee - owner_app
    developer / fundraiser are taken out of owner_app on the admin-fee basis

EXEMPT: wakaf, fidyah and zero-fee qurban go to the program untouched.
"""
import logging
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Dict, Optional

from revshare.core.exceptions import ConfigInvariantViolation
from revshare.core.money import apply_percentage
from revshare.models.transaction import ProductType, AnimalType
from revshare.models.revenue_share import FormulaType, ExemptionReason
from revshare.schemas.config_snapshot import ConfigSnapshot

logger = logging.getLogger(__name__)

# Religious upper bound on the amil share of zakat (1/8)
ZAKAT_AMIL_CAP_MAX = Decimal("12.5")

EXEMPT_PILLARS = {"wakaf": ExemptionReason.WAKAF, "fidyah": ExemptionReason.FIDYAH}

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class SplitResult:
    """Computed shares for one transaction, ready to be stored as a ledger record."""
    formula: FormulaType
    config_version: int
    product_type: ProductType
    donation_amount: int
    admin_fee: int = 0
    program_amount: int = 0
    amil_gross: int = 0
    developer_amount: int = 0
    fundraiser_amount: int = 0
    mitra_amount: int = 0
    amil_net: int = 0
    animal_amount: int = 0
    owner_app_amount: int = 0
    mitra_admin_amount: int = 0
    amil_percentage: Decimal = ZERO
    developer_percentage: Decimal = ZERO
    fundraiser_percentage: Decimal = ZERO
    mitra_percentage: Decimal = ZERO
    owner_app_percentage: Decimal = ZERO
    fundraiser_id: Optional[str] = None
    mitra_id: Optional[str] = None
    exemption_reason: Optional[ExemptionReason] = None

    def record_values(self) -> Dict[str, Any]:
        """Column values for RevenueShareRecord."""
        values = asdict(self)
        values["formula"] = self.formula.value
        values["product_type"] = self.product_type.value
        values["exemption_reason"] = self.exemption_reason.value if self.exemption_reason else None
        return values


def normalize_pillar(pillar: Optional[str]) -> str:
    return (pillar or "").strip().lower()


class SplitRuleEngine:
    """Selects and applies the split formula for a transaction."""

    def __init__(self, zakat_cap_max: Decimal = ZAKAT_AMIL_CAP_MAX):
        self.zakat_cap_max = Decimal(str(zakat_cap_max))

    def compute(self, transaction: Any, config: ConfigSnapshot) -> SplitResult:
        """
        Compute the split.

        `transaction` is anything carrying product_type, pillar, amount,
        admin_fee, animal_type, referral_agent_id and partner_id (the stored
        DonationTransaction or the inbound event).

        Raises ConfigInvariantViolation instead of producing a negative or
        over-cap share.
        """
        product_type = ProductType(transaction.product_type)
        amount = transaction.amount
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise ValueError(f"Transaction amount must be a non-negative integer, got {amount!r}")

        exemption = self._exemption_for(product_type, transaction.pillar)
        if exemption is not None:
            logger.info(f"Exempt split ({exemption.value}) for amount {amount}")
            return self._exempt(product_type, amount, config, exemption)

        if product_type == ProductType.QURBAN:
            admin_fee = self._resolve_admin_fee(transaction, config)
            if admin_fee == 0:
                logger.info(f"Qurban without admin fee, whole amount {amount} to animal fund")
                return self._exempt(
                    product_type, amount, config, ExemptionReason.QURBAN_ADMIN_FEE_ZERO
                )
            return self._formula_b(transaction, amount, admin_fee, config)

        if product_type in (ProductType.CAMPAIGN, ProductType.ZAKAT):
            return self._formula_a(transaction, product_type, amount, config)

        # WAKAF / FIDYAH product types are always caught by the exemption check
        raise ValueError(f"No split formula for product type '{product_type.value}'")

    # ==================== Exemptions ====================

    @staticmethod
    def _exemption_for(product_type: ProductType, pillar: Optional[str]) -> Optional[ExemptionReason]:
        reason = EXEMPT_PILLARS.get(normalize_pillar(pillar))
        if reason is not None:
            return reason
        if product_type == ProductType.WAKAF:
            return ExemptionReason.WAKAF
        if product_type == ProductType.FIDYAH:
            return ExemptionReason.FIDYAH
        return None

    @staticmethod
    def _exempt(
        product_type: ProductType,
        amount: int,
        config: ConfigSnapshot,
        reason: ExemptionReason,
    ) -> SplitResult:
        return SplitResult(
            formula=FormulaType.EXEMPT,
            config_version=config.version,
            product_type=product_type,
            donation_amount=amount,
            program_amount=amount,
            animal_amount=amount if product_type == ProductType.QURBAN else 0,
            exemption_reason=reason,
        )

    # ==================== Formula A ====================

    def _formula_a(
        self,
        transaction: Any,
        product_type: ProductType,
        amount: int,
        config: ConfigSnapshot,
    ) -> SplitResult:
        cap = config.amil_cap_for(product_type)
        developer_pct = config.developer_percentage
        fundraiser_pct = config.fundraiser_percentage
        mitra_pct = config.mitra_percentage_for(product_type)

        if product_type == ProductType.ZAKAT and cap > self.zakat_cap_max:
            raise ConfigInvariantViolation(
                f"Zakat amil cap {cap}% exceeds the maximum of {self.zakat_cap_max}%",
                config_version=config.version,
            )

        if developer_pct + fundraiser_pct + mitra_pct > cap:
            raise ConfigInvariantViolation(
                f"Developer {developer_pct}% + fundraiser {fundraiser_pct}% + mitra {mitra_pct}% "
                f"exceeds the {product_type.value} amil cap of {cap}%",
                config_version=config.version,
            )

        fundraiser_id = transaction.referral_agent_id
        mitra_id = transaction.partner_id

        amil_gross = apply_percentage(amount, cap)
        developer = apply_percentage(amount, developer_pct)
        fundraiser = apply_percentage(amount, fundraiser_pct) if fundraiser_id else 0
        mitra = apply_percentage(amount, mitra_pct) if mitra_id else 0
        amil_net = amil_gross - developer - fundraiser - mitra

        if amil_net < 0:
            raise ConfigInvariantViolation(
                f"Amil net would be negative ({amil_net}) for amount {amount}",
                config_version=config.version,
            )

        return SplitResult(
            formula=FormulaType.A,
            config_version=config.version,
            product_type=product_type,
            donation_amount=amount,
            program_amount=amount - amil_gross,
            amil_gross=amil_gross,
            developer_amount=developer,
            fundraiser_amount=fundraiser,
            mitra_amount=mitra,
            amil_net=amil_net,
            amil_percentage=cap,
            developer_percentage=developer_pct,
            fundraiser_percentage=fundraiser_pct if fundraiser_id else ZERO,
            mitra_percentage=mitra_pct if mitra_id else ZERO,
            fundraiser_id=fundraiser_id,
            mitra_id=mitra_id,
        )

    # ==================== Formula B ====================

    @staticmethod
    def _resolve_admin_fee(transaction: Any, config: ConfigSnapshot) -> int:
        admin_fee = getattr(transaction, "admin_fee", None)
        if admin_fee is not None:
            return admin_fee
        animal_type = getattr(transaction, "animal_type", None)
        return config.admin_fee_for(AnimalType(animal_type)) if animal_type else 0

    def _formula_b(
        self,
        transaction: Any,
        amount: int,
        admin_fee: int,
        config: ConfigSnapshot,
    ) -> SplitResult:
        if admin_fee > amount:
            raise ConfigInvariantViolation(
                f"Qurban admin fee {admin_fee} exceeds transaction amount {amount}",
                config_version=config.version,
            )

        fundraiser_id = transaction.referral_agent_id
        mitra_id = transaction.partner_id

        # Without an owning partner the app keeps the whole admin fee
        owner_pct = config.qurban_owner_percentage if mitra_id else HUNDRED
        developer_pct = config.developer_percentage
        fundraiser_pct = config.fundraiser_percentage

        if developer_pct + fundraiser_pct > owner_pct:
            raise ConfigInvariantViolation(
                f"Developer {developer_pct}% + fundraiser {fundraiser_pct}% exceeds the "
                f"qurban owner share of {owner_pct}%",
                config_version=config.version,
            )

        animal_amount = amount - admin_fee
        owner_app = apply_percentage(admin_fee, owner_pct)
        mitra_admin = admin_fee - owner_app
        developer = apply_percentage(admin_fee, developer_pct)
        fundraiser = apply_percentage(admin_fee, fundraiser_pct) if fundraiser_id else 0
        amil_net = owner_app - developer - fundraiser

        if amil_net < 0:
            raise ConfigInvariantViolation(
                f"Amil net would be negative ({amil_net}) for admin fee {admin_fee}",
                config_version=config.version,
            )

        return SplitResult(
            formula=FormulaType.B,
            config_version=config.version,
            product_type=ProductType.QURBAN,
            donation_amount=amount,
            admin_fee=admin_fee,
            program_amount=animal_amount,
            amil_gross=owner_app,
            developer_amount=developer,
            fundraiser_amount=fundraiser,
            mitra_amount=mitra_admin,
            amil_net=amil_net,
            animal_amount=animal_amount,
            owner_app_amount=owner_app,
            mitra_admin_amount=mitra_admin,
            amil_percentage=owner_pct,
            developer_percentage=developer_pct,
            fundraiser_percentage=fundraiser_pct if fundraiser_id else ZERO,
            mitra_percentage=(HUNDRED - owner_pct) if mitra_id else ZERO,
            owner_app_percentage=owner_pct,
            fundraiser_id=fundraiser_id,
            mitra_id=mitra_id,
        )


_default_engine = SplitRuleEngine()


def compute(transaction: Any, config: ConfigSnapshot) -> SplitResult:
    """Compute a split with the standard zakat cap."""
    return _default_engine.compute(transaction, config)
