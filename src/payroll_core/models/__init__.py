"""ORM models."""

from payroll_core.models.base import Base, TimestampMixin
from payroll_core.models.employee import Employee, EmployeeSalary, SalaryComponent
from payroll_core.models.ledger import Account, JournalEntry, JournalLine
from payroll_core.models.payroll import PayrollRun, PaySlip, PaySlipItem

__all__ = [
    "Account",
    "Base",
    "Employee",
    "EmployeeSalary",
    "JournalEntry",
    "JournalLine",
    "PaySlip",
    "PaySlipItem",
    "PayrollRun",
    "SalaryComponent",
    "TimestampMixin",
]
