"""
Party Balance Service

Running balances per party with an append-only movement log.

Every mutation locks the party row (SELECT ... FOR UPDATE) inside the caller's
unit of work. When several parties are touched at once they are locked in
(party_type, party_id) order so concurrent units of work cannot deadlock.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from revshare.core.exceptions import InsufficientBalance
from revshare.models.party_balance import PartyBalance, BalanceMovement, PartyType, MovementReason

logger = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class PartyRef:
    party_type: str
    party_id: str

    @classmethod
    def of(cls, party_type: PartyType, party_id: str) -> "PartyRef":
        return cls(PartyType(party_type).value, party_id)


class PartyBalanceService:
    """Credits and debits party balances."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Reads ====================

    async def get_balance(self, party_type: PartyType, party_id: str) -> Optional[PartyBalance]:
        result = await self.db.execute(
            select(PartyBalance).where(
                PartyBalance.party_type == PartyType(party_type).value,
                PartyBalance.party_id == party_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_balances(self, party_type: Optional[PartyType] = None) -> List[PartyBalance]:
        query = select(PartyBalance).order_by(PartyBalance.party_type, PartyBalance.party_id)
        if party_type:
            query = query.where(PartyBalance.party_type == PartyType(party_type).value)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_movements(
        self,
        party_type: PartyType,
        party_id: str,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[BalanceMovement], int]:
        conditions = [
            BalanceMovement.party_type == PartyType(party_type).value,
            BalanceMovement.party_id == party_id,
        ]
        total = (
            await self.db.execute(select(func.count(BalanceMovement.id)).where(*conditions))
        ).scalar() or 0
        result = await self.db.execute(
            select(BalanceMovement)
            .where(*conditions)
            .order_by(BalanceMovement.created_at.desc(), BalanceMovement.id)
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    # ==================== Locking ====================

    async def lock(self, party_type: PartyType, party_id: str) -> PartyBalance:
        """Get the party's balance row with a row lock, creating it if missing."""
        party_type = PartyType(party_type).value
        query = (
            select(PartyBalance)
            .where(PartyBalance.party_type == party_type, PartyBalance.party_id == party_id)
            .with_for_update()
        )
        balance = (await self.db.execute(query)).scalar_one_or_none()
        if balance is not None:
            return balance

        try:
            async with self.db.begin_nested():
                balance = PartyBalance(
                    party_type=party_type,
                    party_id=party_id,
                    current_balance=0,
                    total_earned=0,
                    total_withdrawn=0,
                )
                self.db.add(balance)
        except IntegrityError:
            # Another unit of work created it first
            logger.info(f"Party balance {party_type}:{party_id} created concurrently, re-reading")
            balance = (
                await self.db.execute(query.execution_options(populate_existing=True))
            ).scalar_one()
        return balance

    async def lock_many(self, parties: Iterable[PartyRef]) -> Dict[PartyRef, PartyBalance]:
        """Lock several parties in a stable order."""
        locked: Dict[PartyRef, PartyBalance] = {}
        for ref in sorted(set(parties)):
            locked[ref] = await self.lock(PartyType(ref.party_type), ref.party_id)
        return locked

    # ==================== Mutations ====================

    async def credit(
        self,
        party_type: PartyType,
        party_id: str,
        amount: int,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        reason: MovementReason = MovementReason.SHARE_CREDIT,
    ) -> BalanceMovement:
        """Unconditional credit."""
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive, got {amount}")

        balance = await self.lock(party_type, party_id)
        balance.current_balance += amount
        balance.total_earned += amount

        movement = self._movement(balance, amount, reason, reference_type, reference_id)
        await self.db.flush()
        logger.debug(f"Credited {amount} to {balance.party_type}:{party_id}")
        return movement

    async def debit(
        self,
        party_type: PartyType,
        party_id: str,
        amount: int,
        reason: MovementReason,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> BalanceMovement:
        """
        Debit with the balance check under the same row lock.

        Raises InsufficientBalance without touching the row when the balance
        would go negative.
        """
        if amount <= 0:
            raise ValueError(f"Debit amount must be positive, got {amount}")

        balance = await self.lock(party_type, party_id)
        if balance.current_balance < amount:
            raise InsufficientBalance(
                f"Balance of {balance.party_type}:{party_id} is {balance.current_balance}, "
                f"cannot debit {amount}",
                requested=amount,
                available=balance.current_balance,
            )

        balance.current_balance -= amount
        if MovementReason(reason) == MovementReason.DISBURSEMENT_DEBIT:
            balance.total_withdrawn += amount
        else:
            # Reversed earnings were never really earned
            balance.total_earned -= amount

        movement = self._movement(balance, -amount, reason, reference_type, reference_id)
        await self.db.flush()
        logger.debug(f"Debited {amount} from {balance.party_type}:{party_id} ({MovementReason(reason).value})")
        return movement

    def _movement(
        self,
        balance: PartyBalance,
        delta: int,
        reason: MovementReason,
        reference_type: Optional[str],
        reference_id: Optional[str],
    ) -> BalanceMovement:
        movement = BalanceMovement(
            party_balance_id=balance.id,
            party_type=balance.party_type,
            party_id=balance.party_id,
            delta=delta,
            balance_after=balance.current_balance,
            reason=MovementReason(reason).value,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        self.db.add(movement)
        return movement
