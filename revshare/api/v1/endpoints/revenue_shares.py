"""API endpoints for the revenue share ledger and its reports."""
import math
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query

from revshare.api.deps import Ledger, Reports
from revshare.core.exceptions import NotFound
from revshare.models.transaction import ProductType
from revshare.models.revenue_share import FormulaType
from revshare.schemas.revenue_share import (
    RevenueShareRecordResponse, RevenueShareListResponse, RevenueShareFilters,
    RevenueShareSummary, ReverseTransactionRequest,
)

router = APIRouter()


def _filters(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    product_type: Optional[ProductType] = None,
    formula: Optional[FormulaType] = None,
    fundraiser_id: Optional[str] = None,
    mitra_id: Optional[str] = None,
) -> RevenueShareFilters:
    return RevenueShareFilters(
        start_date=start_date,
        end_date=end_date,
        product_type=product_type,
        formula=formula,
        fundraiser_id=fundraiser_id,
        mitra_id=mitra_id,
    )


@router.get("", response_model=RevenueShareListResponse)
async def list_revenue_shares(
    reports: Reports,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    product_type: Optional[ProductType] = None,
    formula: Optional[FormulaType] = None,
    fundraiser_id: Optional[str] = None,
    mitra_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """List ledger records, newest first."""
    filters = _filters(start_date, end_date, product_type, formula, fundraiser_id, mitra_id)
    items, total = await reports.list_records(filters, page=page, limit=limit)
    return RevenueShareListResponse(
        items=[RevenueShareRecordResponse.model_validate(r) for r in items],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 1,
    )


@router.get("/summary", response_model=RevenueShareSummary)
async def revenue_share_summary(
    reports: Reports,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    product_type: Optional[ProductType] = None,
    formula: Optional[FormulaType] = None,
    fundraiser_id: Optional[str] = None,
    mitra_id: Optional[str] = None,
):
    """Totals per party over the filtered records."""
    return await reports.summary(
        _filters(start_date, end_date, product_type, formula, fundraiser_id, mitra_id)
    )


@router.get("/transactions/{transaction_id}", response_model=List[RevenueShareRecordResponse])
async def get_transaction_records(transaction_id: str, ledger: Ledger):
    """The original record of a transaction and its reversal, if any."""
    original = await ledger.get_original(transaction_id)
    if original is None:
        raise NotFound(f"No revenue share recorded for transaction {transaction_id}")
    records = [original]
    reversal = await ledger.get_reversal(transaction_id)
    if reversal is not None:
        records.append(reversal)
    return records


@router.post("/{transaction_id}/reverse", response_model=RevenueShareRecordResponse)
async def reverse_transaction(
    transaction_id: str,
    data: ReverseTransactionRequest,
    ledger: Ledger,
):
    """
    Reverse a refunded or cancelled transaction's split.

    409 ALLOCATION_CONFLICT when payouts already reference the shares; the
    conflict is left on the operator queue.
    """
    return await ledger.reverse(transaction_id, data.reason, requested_by=data.requested_by)


@router.get("/{record_id}", response_model=RevenueShareRecordResponse)
async def get_revenue_share(record_id: UUID, ledger: Ledger):
    return await ledger.get_record(record_id)
