import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from revshare.models.transaction import ProductType
from revshare.models.revenue_share import FormulaType
from revshare.models.disbursement import DisbursementCategory, DisbursementType
from revshare.schemas.disbursement import DisbursementCreate, DisbursementMarkPaid
from revshare.schemas.revenue_share import RevenueShareFilters
from revshare.services.disbursement_service import DisbursementService
from revshare.services.report_service import ReportService
from revshare.services.revenue_share_ledger import RevenueShareLedger

from tests.helpers import PAID_AT, database, ingest, save_config


async def _ledger(db):
    await save_config(db, amil_donation_percentage=Decimal("20"), fundraiser_percentage=Decimal("3"))
    await ingest(db, "TRX-1", product_id="CMP-1", referral_agent_id="AGENT-1")
    await ingest(db, "TRX-2", product_type=ProductType.ZAKAT, amount=2_000_000)
    await ingest(db, "TRX-3", product_id="CMP-1")
    await RevenueShareLedger(db).reverse("TRX-3", "refunded")


def _program_request(amount: int) -> DisbursementCreate:
    return DisbursementCreate(
        disbursement_type=DisbursementType.CAMPAIGN,
        category=DisbursementCategory.CAMPAIGN_TO_BENEFICIARY,
        amount=amount,
        created_by="staff-1",
        reference_type="campaign",
        reference_id="CMP-1",
        recipient_name="Beneficiary",
    )


def test_summary_nets_reversals():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _ledger(db)
                reports = ReportService(db)
                overall = await reports.summary()
                zakat = await reports.summary(RevenueShareFilters(product_type=ProductType.ZAKAT))
                formula_a = await reports.summary(RevenueShareFilters(formula=FormulaType.A))
        return overall, zakat, formula_a

    overall, zakat, formula_a = asyncio.run(scenario())
    assert overall.total_records == 2
    assert overall.total_donation == 3_000_000
    assert overall.total_amil_net == 170_000 + 250_000
    assert overall.total_fundraiser == 30_000
    assert overall.total_program == 800_000 + 1_750_000
    assert zakat.total_records == 1
    assert zakat.total_donation == 2_000_000
    assert formula_a.total_records == 2


def test_list_records_filters_and_paginates():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _ledger(db)
                reports = ReportService(db)
                everything, total = await reports.list_records()
                page_two, _ = await reports.list_records(page=2, limit=3)
                fundraiser, fundraiser_total = await reports.list_records(
                    RevenueShareFilters(fundraiser_id="AGENT-1")
                )
                future, future_total = await reports.list_records(
                    RevenueShareFilters(start_date=datetime.now(timezone.utc) + timedelta(days=1))
                )
                past, past_total = await reports.list_records(
                    RevenueShareFilters(end_date=PAID_AT - timedelta(days=365))
                )
        return everything, total, page_two, fundraiser, fundraiser_total, future_total, past_total

    everything, total, page_two, fundraiser, fundraiser_total, future_total, past_total = asyncio.run(scenario())
    assert total == 4
    assert len(everything) == 4
    assert len(page_two) == 1
    assert fundraiser_total == 1
    assert fundraiser[0].transaction_id == "TRX-1"
    assert future_total == 0
    assert past_total == 0


def test_disbursement_stats_for_program():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _ledger(db)
                service = DisbursementService(db)

                paid = await service.create(_program_request(300_000))
                await service.submit(paid.id, "staff-1")
                await service.approve(paid.id, "staff-2")
                await service.mark_paid(paid.id, DisbursementMarkPaid(
                    paid_by="staff-2", transfer_proof_url="proof-1", transfer_date=PAID_AT,
                ))

                pending = await service.create(_program_request(100_000))
                await service.submit(pending.id, "staff-1")

                await service.create(_program_request(50_000))

                rejected = await service.create(_program_request(70_000))
                await service.submit(rejected.id, "staff-1")
                await service.reject(rejected.id, "staff-2", "duplicate")

                stats = await ReportService(db).disbursement_stats("CMP-1", DisbursementType.CAMPAIGN)
                other = await ReportService(db).disbursement_stats("CMP-404")
        return stats, other

    stats, other = asyncio.run(scenario())
    assert stats.total_program == 800_000
    assert stats.total_paid == 300_000
    assert stats.paid_count == 1
    assert stats.total_committed == 100_000
    assert stats.committed_count == 1
    assert stats.total_remaining == 400_000
    assert stats.disbursement_type == "campaign"
    assert other.total_program == 0
    assert other.total_remaining == 0
