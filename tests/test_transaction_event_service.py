import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from revshare.core.exceptions import NotFound, TransactionConflict
from revshare.models.config_snapshot import AmilSetting, AmilSettingKey
from revshare.models.operator_queue import OperatorQueueItem, OperatorQueueKind, OperatorQueueStatus
from revshare.models.party_balance import BalanceMovement
from revshare.models.transaction import AnimalType, DonationTransaction, ProductType, ShareStatus
from revshare.services.notification_service import pending_notifications
from revshare.services.config_snapshot_service import ConfigSnapshotService
from revshare.services.revenue_share_ledger import RecordStatus
from revshare.services.transaction_event_service import TransactionEventService

from tests.helpers import database, ingest, save_config


async def _break_zakat_cap(db):
    db.add(AmilSetting(key=AmilSettingKey.AMIL_ZAKAT_PERCENTAGE, value="15", category="amil"))
    await db.flush()


def test_paid_event_is_stored_and_recorded():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await save_config(db, amil_donation_percentage=Decimal("20"))
                outcome = await ingest(db, "TRX-1", product_id="CMP-7", referral_agent_id="  ")
                transaction = await TransactionEventService(db).get_transaction("TRX-1")
        return outcome, transaction

    outcome, transaction = asyncio.run(scenario())
    assert outcome.status == RecordStatus.RECORDED
    assert outcome.record.amil_net == 200_000
    assert outcome.record.program_amount == 800_000
    assert transaction.product_id == "CMP-7"
    assert transaction.referral_agent_id is None
    assert transaction.share_status == ShareStatus.RECORDED.value


def test_invariant_violation_defers_transaction():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _break_zakat_cap(db)
                outcome = await ingest(db, "ZKT-1", product_type=ProductType.ZAKAT)
                redelivered = await ingest(db, "ZKT-1", product_type=ProductType.ZAKAT)
                transaction = await db.get(DonationTransaction, "ZKT-1")
                items = (await db.execute(select(OperatorQueueItem))).scalars().all()
                events = [e["type"] for e in pending_notifications(db)]
        return outcome, redelivered, transaction, items, events

    outcome, redelivered, transaction, items, events = asyncio.run(scenario())
    assert outcome.status == RecordStatus.DEFERRED
    assert outcome.record is None
    assert redelivered.status == RecordStatus.DEFERRED
    assert transaction.share_status == ShareStatus.PENDING_CONFIG.value
    assert len(items) == 1
    assert items[0].kind == OperatorQueueKind.CONFIG_INVARIANT_VIOLATION.value
    assert items[0].transaction_id == "ZKT-1"
    assert outcome.operator_queue_item.id == items[0].id
    assert "revenue_share.deferred" in events


def test_retry_after_config_fix_records_and_resolves_item():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _break_zakat_cap(db)
                await ingest(db, "ZKT-1", product_type=ProductType.ZAKAT)
                service = TransactionEventService(db)

                still_broken = await service.retry_deferred()
                await save_config(db, amil_zakat_percentage=Decimal("12.5"))
                fixed = await service.retry_deferred()
                nothing_left = await service.retry_deferred()

                transaction = await db.get(DonationTransaction, "ZKT-1")
                item = (await db.execute(select(OperatorQueueItem))).scalar_one()
                frozen = await ConfigSnapshotService(db).get_version(1)
        return still_broken, fixed, nothing_left, transaction, item, frozen

    still_broken, fixed, nothing_left, transaction, item, frozen = asyncio.run(scenario())
    assert frozen.amil_zakat_percentage == Decimal("15")
    assert [o.status for o in still_broken] == [RecordStatus.DEFERRED]
    assert [o.status for o in fixed] == [RecordStatus.RECORDED]
    assert fixed[0].record.config_version == 2
    assert fixed[0].record.amil_net == 125_000
    assert nothing_left == []
    assert transaction.share_status == ShareStatus.RECORDED.value
    assert item.status == OperatorQueueStatus.RESOLVED.value
    assert item.resolved_by == "system"


def test_identical_redelivery_is_already_recorded():
    qurban = dict(
        product_type=ProductType.QURBAN,
        amount=4_500_000,
        admin_fee=1_000_000,
        animal_type=AnimalType.COW,
        pillar="qurban",
        product_id="QRB-1",
        partner_id="MITRA-1",
    )

    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await save_config(db, qurban_owner_percentage=Decimal("20"))
                first = await ingest(db, "QRB-TRX-1", **qurban)
                second = await ingest(db, "QRB-TRX-1", **qurban)
                movements = (await db.execute(select(func.count()).select_from(BalanceMovement))).scalar()
        return first, second, movements

    first, second, movements = asyncio.run(scenario())
    assert first.status == RecordStatus.RECORDED
    assert second.status == RecordStatus.ALREADY_RECORDED
    assert second.record.id == first.record.id
    assert first.record.mitra_amount == 800_000
    assert movements == 2


def test_redelivery_with_different_fact_conflicts():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await ingest(db, "TRX-1")
                with pytest.raises(TransactionConflict) as exc:
                    await ingest(db, "TRX-1", amount=2_000_000, partner_id="MITRA-1")
                transaction = await db.get(DonationTransaction, "TRX-1")
        return exc.value, transaction

    error, transaction = asyncio.run(scenario())
    assert "amount" in error.detail
    assert "partner_id" in error.detail
    assert error.context["transaction_id"] == "TRX-1"
    assert transaction.amount == 1_000_000


def test_unknown_transaction_is_not_found():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                with pytest.raises(NotFound):
                    await TransactionEventService(db).get_transaction("missing")

    asyncio.run(scenario())
