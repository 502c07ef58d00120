import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from hypothesis import given, settings, strategies as st
from sqlalchemy import update

from revshare.core.exceptions import OverAllocation, InsufficientBalance
from revshare.models.party_balance import PartyType
from revshare.models.revenue_share import RevenueShareRecord
from revshare.models.disbursement import (
    DisbursementType, DisbursementCategory, DisbursementStatus,
)
from revshare.schemas.disbursement import DisbursementCreate
from revshare.services.allocation_tracker import AllocationTracker
from revshare.services.disbursement_service import DisbursementService
from revshare.services.revenue_share_ledger import RevenueShareLedger

from tests.helpers import database, ingest, save_config

FUNDRAISER_CONFIG = dict(amil_donation_percentage=Decimal("20"), fundraiser_percentage=Decimal("3"))


def _fundraiser_request(amount: int) -> DisbursementCreate:
    return DisbursementCreate(
        disbursement_type=DisbursementType.REVENUE_SHARE,
        category=DisbursementCategory.REVENUE_SHARE_FUNDRAISER,
        amount=amount,
        created_by="agent-1",
        recipient_id="AGENT-1",
        recipient_name="Agent One",
    )


async def _earn(db, count: int):
    """Record `count` transactions each earning AGENT-1 a 30,000 share, oldest first."""
    await save_config(db, **FUNDRAISER_CONFIG)
    records = []
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for i in range(count):
        outcome = await ingest(db, f"TRX-{i + 1}", referral_agent_id="AGENT-1")
        await db.execute(
            update(RevenueShareRecord)
            .where(RevenueShareRecord.id == outcome.record.id)
            .values(created_at=base + timedelta(days=i))
        )
        records.append(outcome.record)
    return records


async def _live_disbursement(db, amount: int = 1):
    disbursement = await DisbursementService(db).create(_fundraiser_request(amount))
    disbursement.status = DisbursementStatus.SUBMITTED.value
    await db.flush()
    return disbursement


def test_submit_allocates_oldest_shares_first():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                records = await _earn(db, 3)
                service = DisbursementService(db)
                disbursement = await service.create(_fundraiser_request(45_000))
                await service.submit(disbursement.id, "agent-1")
                items = await service.get_allocations(disbursement.id)
        return records, items

    records, items = asyncio.run(scenario())
    assert {i.revenue_share_record_id: i.amount for i in items} == {
        records[0].id: 30_000,
        records[1].id: 15_000,
    }
    assert {i.party_id for i in items} == {"AGENT-1"}


def test_later_request_continues_where_the_previous_stopped():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                records = await _earn(db, 2)
                service = DisbursementService(db)
                first = await service.create(_fundraiser_request(45_000))
                await service.submit(first.id, "agent-1")
                second = await service.create(_fundraiser_request(15_000))
                await service.submit(second.id, "agent-1")
                third = await service.create(_fundraiser_request(1))
                with pytest.raises(InsufficientBalance) as exc:
                    await service.submit(third.id, "agent-1")
                items = await service.get_allocations(second.id)
                leftover = await service.get_allocations(third.id)
        return records, items, leftover, exc.value

    records, items, leftover, error = asyncio.run(scenario())
    assert {i.revenue_share_record_id: i.amount for i in items} == {records[1].id: 15_000}
    assert leftover == []
    assert error.available == 0


def test_allocation_beyond_share_is_rejected():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                record = (await _earn(db, 1))[0]
                tracker = AllocationTracker(db)
                first = await _live_disbursement(db)
                second = await _live_disbursement(db)
                await tracker.allocate(first.id, record, PartyType.FUNDRAISER, 20_000)
                with pytest.raises(OverAllocation) as exc:
                    await tracker.allocate(second.id, record, PartyType.FUNDRAISER, 10_001)
                await tracker.allocate(second.id, record, PartyType.FUNDRAISER, 10_000)
                allocated = await tracker.allocated_amount(record.id, PartyType.FUNDRAISER)
        return exc.value, allocated

    error, allocated = asyncio.run(scenario())
    assert error.context["allocated"] == 20_000
    assert error.context["share_amount"] == 30_000
    assert allocated == 30_000


def test_reversed_record_cannot_be_allocated():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                record = (await _earn(db, 1))[0]
                await RevenueShareLedger(db).reverse("TRX-1", "refunded")
                tracker = AllocationTracker(db)
                disbursement = await _live_disbursement(db)
                with pytest.raises(OverAllocation):
                    await tracker.allocate(disbursement.id, record, PartyType.FUNDRAISER, 1)
                availability = await tracker.availability(PartyType.FUNDRAISER, "AGENT-1")
                open_shares = await tracker.open_shares(PartyType.FUNDRAISER, "AGENT-1")
        return availability, open_shares

    availability, open_shares = asyncio.run(scenario())
    assert availability.total_entitled == 0
    assert availability.records_count == 0
    assert open_shares == []


def test_availability_tracks_entitled_committed_and_paid():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _earn(db, 2)
                service = DisbursementService(db)
                held = await service.create(_fundraiser_request(20_000))
                await service.submit(held.id, "agent-1")
                draft = await service.create(_fundraiser_request(5_000))
                availability = await service.tracker.availability(PartyType.FUNDRAISER, "AGENT-1")
                other = await service.tracker.availability(PartyType.FUNDRAISER, "AGENT-2")
                wrong_developer = await service.tracker.availability(PartyType.DEVELOPER, "someone")
        return availability, other, wrong_developer, draft

    availability, other, wrong_developer, draft = asyncio.run(scenario())
    assert availability.total_entitled == 60_000
    assert availability.total_committed == 20_000
    assert availability.total_paid == 0
    assert availability.total_available == 40_000
    assert availability.records_count == 2
    assert other.total_entitled == 0
    assert wrong_developer.records_count == 0
    assert draft.status == DisbursementStatus.DRAFT.value


def test_release_returns_amount_and_frees_shares():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _earn(db, 1)
                tracker = AllocationTracker(db)
                disbursement = await _live_disbursement(db)
                await tracker.allocate_fifo(disbursement.id, PartyType.FUNDRAISER, "AGENT-1", 25_000)
                released = await tracker.release(disbursement.id)
                availability = await tracker.availability(PartyType.FUNDRAISER, "AGENT-1")
        return released, availability

    released, availability = asyncio.run(scenario())
    assert released == 25_000
    assert availability.total_available == 30_000


@settings(max_examples=25, deadline=None)
@given(amounts=st.lists(st.integers(min_value=1, max_value=20_000), min_size=1, max_size=8))
def test_allocations_never_exceed_share(amounts):
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                record = (await _earn(db, 1))[0]
                tracker = AllocationTracker(db)
                expected = 0
                for amount in amounts:
                    disbursement = await _live_disbursement(db)
                    try:
                        await tracker.allocate(disbursement.id, record, PartyType.FUNDRAISER, amount)
                        expected += amount
                    except OverAllocation:
                        assert expected + amount > 30_000
                    allocated = await tracker.allocated_amount(record.id, PartyType.FUNDRAISER)
                    assert allocated == expected
                    assert allocated <= 30_000

    asyncio.run(scenario())
