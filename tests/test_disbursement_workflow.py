import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from revshare.core.exceptions import InsufficientBalance, InvalidTransition
from revshare.models.party_balance import PartyType, BalanceMovement, MovementReason
from revshare.models.disbursement import (
    Disbursement,
    DisbursementAllocationItem,
    DisbursementCategory,
    DisbursementStatus,
    DisbursementType,
)
from revshare.schemas.disbursement import DisbursementCreate, DisbursementMarkPaid
from revshare.services import disbursement_state_machine as sm
from revshare.services.disbursement_service import DisbursementService
from revshare.services.notification_service import pending_notifications

from tests.helpers import PAID_AT, database, ingest, save_config


def _request(amount: int, category=DisbursementCategory.REVENUE_SHARE_FUNDRAISER, **fields) -> DisbursementCreate:
    fields.setdefault("recipient_id", "AGENT-1")
    return DisbursementCreate(
        disbursement_type=fields.pop("disbursement_type", DisbursementType.REVENUE_SHARE),
        category=category,
        amount=amount,
        created_by=fields.pop("created_by", "agent-1"),
        recipient_name=fields.pop("recipient_name", "Agent One"),
        **fields,
    )


def _paid(**fields) -> DisbursementMarkPaid:
    fields.setdefault("paid_by", "finance-2")
    fields.setdefault("transfer_proof_url", "https://files.example.org/proof/1.jpg")
    fields.setdefault("transfer_date", PAID_AT)
    return DisbursementMarkPaid(**fields)


async def _earn_300k(db):
    """AGENT-1 earns a 300,000 fundraiser share."""
    await save_config(db, amil_donation_percentage=Decimal("20"), fundraiser_percentage=Decimal("3"))
    await ingest(db, "TRX-1", amount=10_000_000, referral_agent_id="AGENT-1")


async def _count(db, model, *conditions):
    return (await db.execute(select(func.count()).select_from(model).where(*conditions))).scalar()


def test_full_payout_debits_balance():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _earn_300k(db)
                service = DisbursementService(db)
                disbursement = await service.create(_request(200_000))
                await service.submit(disbursement.id, "agent-1")
                await service.approve(disbursement.id, "finance-1", comment="ok")
                paid = await service.mark_paid(disbursement.id, _paid())
                await db.commit()

                balance = await service.balances.get_balance(PartyType.FUNDRAISER, "AGENT-1")
                availability = await service.availability_for(
                    DisbursementCategory.REVENUE_SHARE_FUNDRAISER, "AGENT-1"
                )
                history = await service.get_history(disbursement.id)
                debits = await _count(
                    db, BalanceMovement,
                    BalanceMovement.reason == MovementReason.DISBURSEMENT_DEBIT.value,
                )
                events = [e["type"] for e in pending_notifications(db)]
        return paid, balance, availability, history, debits, events

    paid, balance, availability, history, debits, events = asyncio.run(scenario())
    assert paid.status == DisbursementStatus.PAID.value
    assert paid.transferred_amount == 200_000
    assert balance.current_balance == 100_000
    assert balance.total_withdrawn == 200_000
    assert availability.total_paid == 200_000
    assert availability.total_available == 100_000
    assert [h.action for h in history] == ["created", "submitted", "approved", "paid"]
    assert debits == 1
    assert events[-3:] == ["disbursement.submitted", "disbursement.approved", "disbursement.paid"]


def test_submit_beyond_available_fails_and_writes_nothing():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _earn_300k(db)
                service = DisbursementService(db)
                disbursement = await service.create(_request(500_000))
                with pytest.raises(InsufficientBalance) as exc:
                    await service.submit(disbursement.id, "agent-1")
                stored = await db.get(Disbursement, disbursement.id)
                allocations = await _count(db, DisbursementAllocationItem)
                balance = await service.balances.get_balance(PartyType.FUNDRAISER, "AGENT-1")
        return exc.value, stored, allocations, balance

    error, stored, allocations, balance = asyncio.run(scenario())
    assert error.requested == 500_000
    assert error.available == 300_000
    assert stored.status == DisbursementStatus.DRAFT.value
    assert allocations == 0
    assert balance.current_balance == 300_000


def test_revenue_share_request_cannot_be_self_approved():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _earn_300k(db)
                service = DisbursementService(db)
                disbursement = await service.create(_request(100_000))
                await service.submit(disbursement.id, "agent-1")
                with pytest.raises(InvalidTransition) as exc:
                    await service.approve(disbursement.id, "agent-1")
        return exc.value

    assert asyncio.run(scenario()).guard == "no_self_approval"


def test_reject_requires_reason_and_releases_hold():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _earn_300k(db)
                service = DisbursementService(db)
                disbursement = await service.create(_request(250_000))
                await service.submit(disbursement.id, "agent-1")
                with pytest.raises(InvalidTransition) as exc:
                    await service.reject(disbursement.id, "finance-1", "   ")
                held = await service.availability_for(DisbursementCategory.REVENUE_SHARE_FUNDRAISER, "AGENT-1")
                rejected = await service.reject(disbursement.id, "finance-1", " wrong account ")
                released = await service.availability_for(
                    DisbursementCategory.REVENUE_SHARE_FUNDRAISER, "AGENT-1"
                )
                balance = await service.balances.get_balance(PartyType.FUNDRAISER, "AGENT-1")
        return exc.value, held, rejected, released, balance

    error, held, rejected, released, balance = asyncio.run(scenario())
    assert error.guard == "reason_required"
    assert held.total_available == 50_000
    assert rejected.status == DisbursementStatus.REJECTED.value
    assert rejected.rejection_reason == "wrong account"
    assert released.total_available == 300_000
    assert balance.current_balance == 300_000


def test_resubmit_creates_linked_draft():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _earn_300k(db)
                service = DisbursementService(db)
                original = await service.create(_request(250_000, recipient_bank_account="123"))
                await service.submit(original.id, "agent-1")
                await service.reject(original.id, "finance-1", "too much")
                draft = await service.resubmit(original.id, "agent-1", amount=120_000)
                await service.submit(draft.id, "agent-1")
                with pytest.raises(InvalidTransition) as exc:
                    await service.resubmit(draft.id, "agent-1")
                stored = await db.get(Disbursement, original.id)
        return original, draft, stored, exc.value

    original, draft, stored, error = asyncio.run(scenario())
    assert draft.id != original.id
    assert draft.previous_disbursement_id == original.id
    assert draft.amount == 120_000
    assert draft.recipient_bank_account == "123"
    assert draft.status == DisbursementStatus.SUBMITTED.value
    assert draft.disbursement_number != original.disbursement_number
    assert stored.status == DisbursementStatus.REJECTED.value
    assert error.guard == "status"


def test_rejected_request_is_resubmitted_only_once():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _earn_300k(db)
                service = DisbursementService(db)
                original = await service.create(_request(250_000))
                await service.submit(original.id, "agent-1")
                await service.reject(original.id, "finance-1", "too much")
                draft = await service.resubmit(original.id, "agent-1", amount=100_000)
                with pytest.raises(InvalidTransition) as exc:
                    await service.resubmit(original.id, "agent-1", amount=90_000)
                follow_ups = (await db.execute(
                    select(func.count()).select_from(Disbursement)
                    .where(Disbursement.previous_disbursement_id == original.id)
                )).scalar()
        return draft, exc.value, follow_ups

    draft, error, follow_ups = asyncio.run(scenario())
    assert error.guard == "already_resubmitted"
    assert error.context["resubmitted_as"] == draft.disbursement_number
    assert follow_ups == 1


@pytest.mark.parametrize("fields, guard", [
    ({"transfer_proof_url": None}, "payment_proof_required"),
    ({"transfer_proof_url": "  "}, "payment_proof_required"),
    ({"transfer_date": None}, "transfer_date_required"),
    ({"transferred_amount": 150_000}, "transferred_amount_mismatch"),
])
def test_mark_paid_guards(fields, guard):
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _earn_300k(db)
                service = DisbursementService(db)
                disbursement = await service.create(_request(200_000))
                await service.submit(disbursement.id, "agent-1")
                await service.approve(disbursement.id, "finance-1")
                with pytest.raises(InvalidTransition) as exc:
                    await service.mark_paid(disbursement.id, _paid(**fields))
                balance = await service.balances.get_balance(PartyType.FUNDRAISER, "AGENT-1")
        return exc.value, balance

    error, balance = asyncio.run(scenario())
    assert error.guard == guard
    assert balance.current_balance == 300_000


def test_status_transitions_are_enforced():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _earn_300k(db)
                service = DisbursementService(db)
                disbursement = await service.create(_request(100_000))
                with pytest.raises(InvalidTransition) as approve_draft:
                    await service.approve(disbursement.id, "finance-1")
                await service.submit(disbursement.id, "agent-1")
                await service.approve(disbursement.id, "finance-1")
                await service.mark_paid(disbursement.id, _paid())
                with pytest.raises(InvalidTransition) as reject_paid:
                    await service.reject(disbursement.id, "finance-1", "late")
                with pytest.raises(InvalidTransition) as delete_paid:
                    await service.delete(disbursement.id, "finance-1")
        return approve_draft.value, reject_paid.value, delete_paid.value

    approve_draft, reject_paid, delete_paid = asyncio.run(scenario())
    assert approve_draft.guard == "status"
    assert approve_draft.context["current_status"] == "draft"
    assert "terminal" in reject_paid.detail
    assert delete_paid.guard == "status"


def test_revenue_share_requires_recipient():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                service = DisbursementService(db)
                with pytest.raises(InvalidTransition) as exc:
                    await service.create(_request(100_000, recipient_id=None))
                developer = await service.create(_request(
                    100_000, DisbursementCategory.REVENUE_SHARE_DEVELOPER, recipient_id=None
                ))
        return exc.value, developer

    error, developer = asyncio.run(scenario())
    assert error.guard == "recipient_required"
    assert developer.status == DisbursementStatus.DRAFT.value


def test_amount_must_be_positive():
    with pytest.raises(InvalidTransition) as exc:
        sm.guard_submit(0)
    assert exc.value.guard == "amount_positive"
    with pytest.raises(ValueError):
        _request(0)


def test_delete_submitted_request_releases_hold():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                await _earn_300k(db)
                service = DisbursementService(db)
                disbursement = await service.create(_request(300_000))
                await service.submit(disbursement.id, "agent-1")
                await service.delete(disbursement.id, "agent-1")
                remaining = await _count(db, Disbursement)
                allocations = await _count(db, DisbursementAllocationItem)
                availability = await service.availability_for(
                    DisbursementCategory.REVENUE_SHARE_FUNDRAISER, "AGENT-1"
                )
        return remaining, allocations, availability

    remaining, allocations, availability = asyncio.run(scenario())
    assert remaining == 0
    assert allocations == 0
    assert availability.total_available == 300_000


def test_program_disbursement_skips_the_ledger():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                service = DisbursementService(db)
                disbursement = await service.create(_request(
                    5_000_000,
                    DisbursementCategory.CAMPAIGN_TO_BENEFICIARY,
                    disbursement_type=DisbursementType.CAMPAIGN,
                    recipient_id=None,
                    reference_type="campaign",
                    reference_id="CMP-1",
                    recipient_name="Panti Asuhan",
                    created_by="staff-1",
                ))
                await service.submit(disbursement.id, "staff-1")
                await service.approve(disbursement.id, "staff-1")
                paid = await service.mark_paid(disbursement.id, _paid(transferred_amount=4_990_000))
                movements = await _count(db, BalanceMovement)
                allocations = await service.get_allocations(disbursement.id)
        return paid, movements, allocations

    paid, movements, allocations = asyncio.run(scenario())
    assert paid.status == DisbursementStatus.PAID.value
    assert paid.transferred_amount == 4_990_000
    assert movements == 0
    assert allocations == []


def test_availability_needs_revenue_share_category():
    async def scenario():
        async with database() as sessions:
            async with sessions() as db:
                service = DisbursementService(db)
                with pytest.raises(InvalidTransition) as wrong_category:
                    await service.availability_for(DisbursementCategory.VENDOR_PAYMENT, "V-1")
                with pytest.raises(InvalidTransition) as no_recipient:
                    await service.availability_for(DisbursementCategory.REVENUE_SHARE_MITRA)
        return wrong_category.value, no_recipient.value

    wrong_category, no_recipient = asyncio.run(scenario())
    assert wrong_category.guard == "revenue_share_category"
    assert no_recipient.guard == "recipient_required"


def test_allowed_transitions():
    assert sm.get_allowed_transitions("draft") == ["submitted"]
    assert sm.get_allowed_transitions("submitted") == ["approved", "rejected"]
    assert sm.is_terminal("paid")
    assert sm.can_delete("rejected")
    assert not sm.can_delete("approved")
    assert sm.get_transition_action("rejected", "draft") == "Resubmit"
