"""
Disbursement State Machine

This module is the SINGLE SOURCE OF TRUTH for all disbursement status
transitions. All status changes must go through this module.

    draft -> submitted -> approved -> paid
                       -> rejected -> draft (resubmission, as a new request)

paid is terminal. Guards that depend on data (amounts, approver identity,
payment proof) are checked here too and fail with InvalidTransition naming
the guard.
"""

from datetime import datetime
from typing import Optional, List, Dict

from revshare.core.exceptions import InvalidTransition
from revshare.models.disbursement import DisbursementStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

# Format: current_status -> [list of allowed next statuses]
DISBURSEMENT_TRANSITIONS: Dict[str, List[str]] = {
    DisbursementStatus.DRAFT.value: [
        DisbursementStatus.SUBMITTED.value,     # Submit for approval
    ],
    DisbursementStatus.SUBMITTED.value: [
        DisbursementStatus.APPROVED.value,      # Approve
        DisbursementStatus.REJECTED.value,      # Reject with reason
    ],
    DisbursementStatus.APPROVED.value: [
        DisbursementStatus.PAID.value,          # Transfer executed
    ],
    DisbursementStatus.REJECTED.value: [
        DisbursementStatus.DRAFT.value,         # Resubmit as a new draft
    ],
    DisbursementStatus.PAID.value: [],          # Terminal state - no transitions
}

# Human-readable action names for each transition
TRANSITION_ACTIONS: Dict[tuple, str] = {
    (DisbursementStatus.DRAFT.value, DisbursementStatus.SUBMITTED.value): "Submit",
    (DisbursementStatus.SUBMITTED.value, DisbursementStatus.APPROVED.value): "Approve",
    (DisbursementStatus.SUBMITTED.value, DisbursementStatus.REJECTED.value): "Reject",
    (DisbursementStatus.APPROVED.value, DisbursementStatus.PAID.value): "Mark Paid",
    (DisbursementStatus.REJECTED.value, DisbursementStatus.DRAFT.value): "Resubmit",
}

# Statuses in which a request may still be deleted (abandoned)
DELETABLE_STATUSES = (
    DisbursementStatus.DRAFT.value,
    DisbursementStatus.SUBMITTED.value,
    DisbursementStatus.REJECTED.value,
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    return new_status in DISBURSEMENT_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(current_status: str) -> List[str]:
    return DISBURSEMENT_TRANSITIONS.get(current_status, [])


def get_transition_action(current_status: str, new_status: str) -> str:
    return TRANSITION_ACTIONS.get((current_status, new_status), f"{current_status} -> {new_status}")


def validate_transition(current_status: str, new_status: str) -> None:
    """Raise InvalidTransition (guard "status") if the move is not allowed."""
    if not can_transition(current_status, new_status):
        allowed = get_allowed_transitions(current_status)
        if not allowed:
            raise InvalidTransition(
                f"Disbursement in '{current_status}' status cannot be modified. This is a terminal state.",
                guard="status",
                current_status=current_status,
                requested_status=new_status,
            )
        raise InvalidTransition(
            f"Cannot change disbursement from '{current_status}' to '{new_status}'. "
            f"Allowed transitions: {', '.join(allowed)}",
            guard="status",
            current_status=current_status,
            requested_status=new_status,
        )


def is_terminal(status: str) -> bool:
    return not DISBURSEMENT_TRANSITIONS.get(status)


def can_delete(status: str) -> bool:
    return status in DELETABLE_STATUSES


# =============================================================================
# TRANSITION GUARDS
# =============================================================================

def guard_submit(amount: int) -> None:
    if amount is None or amount <= 0:
        raise InvalidTransition("Requested amount must be greater than zero", guard="amount_positive")


def guard_approve(approver_id: Optional[str], requester_id: str, is_revenue_share: bool) -> None:
    if not approver_id:
        raise InvalidTransition("An approver is required", guard="approver_required")
    if is_revenue_share and approver_id == requester_id:
        raise InvalidTransition(
            "Revenue share disbursements cannot be approved by their requester",
            guard="no_self_approval",
        )


def guard_reject(reason: Optional[str]) -> None:
    if not reason or not reason.strip():
        raise InvalidTransition("A rejection reason is required", guard="reason_required")


def guard_mark_paid(
    proof_reference: Optional[str],
    transfer_date: Optional[datetime],
    amount: int,
    transferred_amount: Optional[int],
    is_revenue_share: bool,
) -> None:
    if not proof_reference or not proof_reference.strip():
        raise InvalidTransition("A payment proof reference is required", guard="payment_proof_required")
    if transfer_date is None:
        raise InvalidTransition("A transfer date is required", guard="transfer_date_required")
    if is_revenue_share and transferred_amount is not None and transferred_amount != amount:
        raise InvalidTransition(
            f"Transferred amount {transferred_amount} must equal the approved amount {amount}",
            guard="transferred_amount_mismatch",
        )
