from fastapi import APIRouter

from revshare.api.v1.endpoints import (
    # Ledger
    transactions,
    revenue_shares,
    config_snapshots,
    party_balances,
    # Payouts
    disbursements,
    # Operations
    operator_queue,
)

# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Transactions ====================
api_router.include_router(
    transactions.router,
    prefix="/transactions",
    tags=["Transactions"]
)

# ==================== Revenue Share Ledger ====================
api_router.include_router(
    revenue_shares.router,
    prefix="/revenue-shares",
    tags=["Revenue Shares"]
)

# ==================== Amil Configuration ====================
api_router.include_router(
    config_snapshots.router,
    prefix="/config-snapshots",
    tags=["Amil Configuration"]
)

# ==================== Party Balances ====================
api_router.include_router(
    party_balances.router,
    prefix="/party-balances",
    tags=["Party Balances"]
)

# ==================== Disbursements ====================
api_router.include_router(
    disbursements.router,
    prefix="/disbursements",
    tags=["Disbursements"]
)

# ==================== Operator Queue ====================
api_router.include_router(
    operator_queue.router,
    prefix="/operator-queue",
    tags=["Operator Queue"]
)
