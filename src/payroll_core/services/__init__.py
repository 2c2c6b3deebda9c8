"""Payroll run lifecycle and journal posting services."""

from payroll_core.services.journal_service import (
    JournalLineSpec,
    JournalService,
    RemittanceLine,
    build_accrual_lines,
)
from payroll_core.services.payroll_run_service import PayrollRunService, RunCalculationResult
from payroll_core.services.state_machine import (
    PayrollAction,
    PayrollRunStateMachine,
    PayrollRunStatus,
    PaySlipStatus,
)

__all__ = [
    "JournalLineSpec",
    "JournalService",
    "PayrollAction",
    "PayrollRunService",
    "PayrollRunStateMachine",
    "PayrollRunStatus",
    "PaySlipStatus",
    "RemittanceLine",
    "RunCalculationResult",
    "build_accrual_lines",
]
