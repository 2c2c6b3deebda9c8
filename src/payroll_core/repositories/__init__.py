"""Persistence and ledger collaborators."""

from payroll_core.repositories.protocols import (
    EmployeeRepository,
    Ledger,
    LedgerLine,
    PayrollRunRepository,
    PaySlipRepository,
)
from payroll_core.repositories.sql import (
    SqlEmployeeRepository,
    SqlLedger,
    SqlPayrollRunRepository,
    SqlPaySlipRepository,
    to_component,
    to_snapshot,
)

__all__ = [
    "EmployeeRepository",
    "Ledger",
    "LedgerLine",
    "PayrollRunRepository",
    "PaySlipRepository",
    "SqlEmployeeRepository",
    "SqlLedger",
    "SqlPayrollRunRepository",
    "SqlPaySlipRepository",
    "to_component",
    "to_snapshot",
]
