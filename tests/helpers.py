"""Shared builders for the test suite."""
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from revshare.database import create_engine_for_url, create_session_factory, init_db
from revshare.models.transaction import ProductType
from revshare.schemas.config_snapshot import ConfigSnapshot, ConfigValues
from revshare.schemas.transaction import TransactionPaidEvent
from revshare.services.config_snapshot_service import ConfigSnapshotService
from revshare.services.transaction_event_service import TransactionEventService

PAID_AT = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


@asynccontextmanager
async def database():
    """Fresh in-memory database; yields a session factory."""
    engine = create_engine_for_url("sqlite+aiosqlite://")
    await init_db(engine)
    try:
        yield create_session_factory(engine)
    finally:
        await engine.dispose()


def snapshot(version: int = 1, **values) -> ConfigSnapshot:
    return ConfigSnapshot(version=version, **values)


def paid_event(
    transaction_id: str = "TRX-1",
    product_type: ProductType = ProductType.CAMPAIGN,
    amount: int = 1_000_000,
    **fields,
) -> TransactionPaidEvent:
    fields.setdefault("paid_at", PAID_AT)
    return TransactionPaidEvent(
        transaction_id=transaction_id,
        product_type=product_type,
        amount=amount,
        **fields,
    )


async def save_config(db, saved_by: str = "admin", **values):
    """Persist a config version and return it as a snapshot."""
    service = ConfigSnapshotService(db)
    record = await service.save(ConfigValues(**values), saved_by=saved_by)
    return await service.get_version(record.version)


async def ingest(db, transaction_id: str = "TRX-1", **fields):
    """Push one TransactionPaid event through the full ingestion path."""
    return await TransactionEventService(db).handle_transaction_paid(
        paid_event(transaction_id, **fields)
    )
