"""Payroll run state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from payroll_core.exceptions import InvalidTransitionError


class PayrollRunStatus(str, Enum):
    """Payroll run status values."""

    DRAFT = "draft"
    CALCULATING = "calculating"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    FINALIZED = "finalized"
    PAID = "paid"
    CANCELLED = "cancelled"


class PaySlipStatus(str, Enum):
    """Payslip status values, driven by the run lifecycle."""

    DRAFT = "draft"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


class PayrollAction(str, Enum):
    """Operations that act on a payroll run."""

    CALCULATE = "calculate"
    RECALCULATE = "recalculate"
    APPROVE = "approve"
    FINALIZE = "finalize"
    MARK_PAID = "mark_paid"
    CANCEL = "cancel"
    DELETE = "delete"


class PayrollRunStateMachine:
    """State machine for payroll run status transitions.

    Allowed transitions:
    - draft → calculating → pending_review
    - calculating → draft (nothing calculated, or unexpected failure)
    - pending_review → calculating (recalculate)
    - pending_review → approved → finalized → paid
    - any status except paid → cancelled
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollRunStatus.DRAFT: [PayrollRunStatus.CALCULATING, PayrollRunStatus.CANCELLED],
        PayrollRunStatus.CALCULATING: [
            PayrollRunStatus.PENDING_REVIEW,
            PayrollRunStatus.DRAFT,
            PayrollRunStatus.CANCELLED,
        ],
        PayrollRunStatus.PENDING_REVIEW: [
            PayrollRunStatus.CALCULATING,
            PayrollRunStatus.APPROVED,
            PayrollRunStatus.CANCELLED,
        ],
        PayrollRunStatus.APPROVED: [PayrollRunStatus.FINALIZED, PayrollRunStatus.CANCELLED],
        PayrollRunStatus.FINALIZED: [PayrollRunStatus.PAID, PayrollRunStatus.CANCELLED],
        PayrollRunStatus.PAID: [],  # Terminal state
        PayrollRunStatus.CANCELLED: [],  # Terminal state
    }

    # Source statuses per action; calculating is re-enterable after an interrupted run
    ACTION_SOURCES: dict[str, set[str]] = {
        PayrollAction.CALCULATE: {
            PayrollRunStatus.DRAFT,
            PayrollRunStatus.CALCULATING,
            PayrollRunStatus.PENDING_REVIEW,
        },
        PayrollAction.RECALCULATE: {PayrollRunStatus.DRAFT, PayrollRunStatus.PENDING_REVIEW},
        PayrollAction.APPROVE: {PayrollRunStatus.PENDING_REVIEW},
        PayrollAction.FINALIZE: {PayrollRunStatus.APPROVED},
        PayrollAction.MARK_PAID: {PayrollRunStatus.FINALIZED},
        PayrollAction.CANCEL: {
            PayrollRunStatus.DRAFT,
            PayrollRunStatus.CALCULATING,
            PayrollRunStatus.PENDING_REVIEW,
            PayrollRunStatus.APPROVED,
            PayrollRunStatus.FINALIZED,
        },
        PayrollAction.DELETE: {PayrollRunStatus.DRAFT},
    }

    # Statuses whose payslips feed year-to-date figures
    YTD_STATUSES = {PayrollRunStatus.FINALIZED, PayrollRunStatus.PAID}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid. Staying in the same status is always allowed."""
        if from_status == to_status:
            return True
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(_value(from_status), _value(to_status))

    @classmethod
    def can_perform(cls, status: str, action: str) -> bool:
        return status in cls.ACTION_SOURCES.get(action, set())

    @classmethod
    def validate_action(cls, status: str, action: str) -> None:
        """Reject an action from a disallowed status before any side effect."""
        if not cls.can_perform(status, action):
            raise InvalidTransitionError(
                _value(status),
                _value(action),
                f"Cannot {_value(action).replace('_', ' ')} a payroll run in status '{_value(status)}'",
            )

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def allowed_actions(cls, status: str) -> list[str]:
        return [action.value for action in PayrollAction if cls.can_perform(status, action)]

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.VALID_TRANSITIONS.get(status, [])


def _value(status: str) -> str:
    return status.value if isinstance(status, Enum) else status
