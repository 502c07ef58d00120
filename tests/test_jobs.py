import asyncio
from datetime import datetime, timezone
from decimal import Decimal

from revshare.models.config_snapshot import AmilSetting, AmilSettingKey
from revshare.models.disbursement import DisbursementStatus
from revshare.models.party_balance import PartyType
from revshare.models.transaction import ProductType
from revshare.services.disbursement_service import DisbursementService
from revshare.jobs.developer_auto_disbursement import run_developer_auto_disbursement
from revshare.jobs.ledger_jobs import run_retry_deferred
from revshare.jobs.scheduler import start_scheduler, shutdown_scheduler, get_job_status

from tests.helpers import database, ingest, save_config

# 20 March, 03:00 in Jakarta
SCHEDULED = datetime(2026, 3, 19, 20, 0, tzinfo=timezone.utc)
OFF_DAY = datetime(2026, 3, 21, 2, 0, tzinfo=timezone.utc)


async def _developer_earns(db, amount: int):
    await save_config(db, amil_donation_percentage=Decimal("20"), developer_percentage=Decimal("2.5"))
    await ingest(db, "TRX-1", amount=amount)


def test_developer_request_created_and_submitted_on_scheduled_day():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _developer_earns(db, 40_000_000)
                result = await run_developer_auto_disbursement(db, now=SCHEDULED)
                service = DisbursementService(db)
                disbursements, _ = await service.list_disbursements()
                availability = await service.tracker.availability(PartyType.DEVELOPER, "developer")
                again = await run_developer_auto_disbursement(db, now=SCHEDULED)
        return result, disbursements, availability, again

    result, disbursements, availability, again = asyncio.run(scenario())
    assert result["skipped"] is None
    assert result["amount"] == 1_000_000
    assert result["available"] == 1_000_000
    assert len(disbursements) == 1
    disbursement = disbursements[0]
    assert str(disbursement.id) == result["disbursement_id"]
    assert disbursement.status == DisbursementStatus.SUBMITTED.value
    assert disbursement.category == "revenue_share_developer"
    assert disbursement.recipient_id == "developer"
    assert disbursement.created_by == "system"
    assert disbursement.purpose == "Developer revenue share March 2026"
    assert availability.total_committed == 1_000_000
    assert availability.total_available == 0
    assert again["skipped"] == "already_requested_today"


def test_developer_request_skipped_off_schedule():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _developer_earns(db, 40_000_000)
                off_day = await run_developer_auto_disbursement(db, now=OFF_DAY)
                forced = await run_developer_auto_disbursement(db, now=OFF_DAY, force=True)
        return off_day, forced

    off_day, forced = asyncio.run(scenario())
    assert off_day["skipped"] == "not_scheduled_day"
    assert off_day["disbursement_id"] is None
    assert forced["skipped"] is None
    assert forced["amount"] == 1_000_000


def test_developer_request_skipped_below_minimum():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _developer_earns(db, 1_000_000)
                result = await run_developer_auto_disbursement(db, now=SCHEDULED)
                disbursements, total = await DisbursementService(db).list_disbursements()
        return result, total

    result, total = asyncio.run(scenario())
    assert result["skipped"] == "below_minimum"
    assert result["available"] == 25_000
    assert total == 0


def test_retry_deferred_job_summarises_outcomes():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                db.add(AmilSetting(key=AmilSettingKey.AMIL_ZAKAT_PERCENTAGE, value="20", category="amil"))
                await db.flush()
                await ingest(db, "ZKT-1", product_type=ProductType.ZAKAT)
                await ingest(db, "ZKT-2", product_type=ProductType.ZAKAT)
                before = await run_retry_deferred(db)
                await save_config(db)
                after = await run_retry_deferred(db, limit=1)
                rest = await run_retry_deferred(db)
        return before, after, rest

    before, after, rest = asyncio.run(scenario())
    assert before == {"retried": 2, "recorded": 0, "still_deferred": 2}
    assert after == {"retried": 1, "recorded": 1, "still_deferred": 0}
    assert rest == {"retried": 1, "recorded": 1, "still_deferred": 0}


def test_scheduler_registers_jobs():
    async def scenario():
        start_scheduler()
        try:
            return get_job_status()
        finally:
            shutdown_scheduler()

    jobs = {job["id"]: job for job in asyncio.run(scenario())}
    assert set(jobs) == {"developer_auto_disbursement", "retry_deferred_revenue_shares"}
    assert jobs["developer_auto_disbursement"]["trigger"].startswith("cron")
    assert jobs["retry_deferred_revenue_shares"]["next_run_time"] is not None
