"""API endpoints for party balances and what each party can still request."""
from typing import Optional

from fastapi import APIRouter, Query

from revshare.api.deps import Balances, Reports, Tracker
from revshare.core.exceptions import NotFound
from revshare.models.party_balance import PartyType
from revshare.schemas.party_balance import (
    PartyBalanceResponse, PartyBalanceListResponse,
    BalanceMovementResponse, BalanceMovementListResponse, PartyAvailability,
)

router = APIRouter()


@router.get("", response_model=PartyBalanceListResponse)
async def list_party_balances(reports: Reports, party_type: Optional[PartyType] = None):
    balances = await reports.party_balances(party_type)
    return PartyBalanceListResponse(
        items=[PartyBalanceResponse.model_validate(b) for b in balances],
        total=len(balances),
    )


@router.get("/{party_type}/{party_id}", response_model=PartyBalanceResponse)
async def get_party_balance(party_type: PartyType, party_id: str, balances: Balances):
    balance = await balances.get_balance(party_type, party_id)
    if balance is None:
        raise NotFound(f"No balance for {party_type.value} {party_id}")
    return balance


@router.get("/{party_type}/{party_id}/movements", response_model=BalanceMovementListResponse)
async def list_party_movements(
    party_type: PartyType,
    party_id: str,
    balances: Balances,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    """Credits and debits of one party, newest first."""
    items, total = await balances.list_movements(party_type, party_id, skip=skip, limit=limit)
    return BalanceMovementListResponse(
        items=[BalanceMovementResponse.model_validate(m) for m in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/{party_type}/{party_id}/availability", response_model=PartyAvailability)
async def get_party_availability(party_type: PartyType, party_id: str, tracker: Tracker):
    """Entitled, committed, paid and available amounts derived from the ledger."""
    return await tracker.availability(party_type, party_id)
