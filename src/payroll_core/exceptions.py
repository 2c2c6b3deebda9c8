"""Typed exceptions for payroll core.

Every exception carries a class-level ``code`` for machine-readable
identification plus the structured values needed to diagnose it without
parsing the message.

    PayrollError
    +-- ConfigurationError
    |   +-- RateEntryNotFoundError
    |   +-- AmbiguousRateError
    |   +-- DatasetError
    +-- EmployeeCalculationError
    +-- MissingAccountError
    +-- PayrollRunError
    |   +-- PayrollRunNotFoundError
    |   +-- DuplicatePeriodError
    +-- UnbalancedJournalError
    +-- InvalidTransitionError
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID


class PayrollError(Exception):
    """Base exception for all payroll core errors."""

    code: str = "PAYROLL_ERROR"


# Configuration errors


class ConfigurationError(PayrollError):
    """Statutory data does not cover the requested calculation."""

    code: str = "CONFIGURATION_ERROR"


class RateEntryNotFoundError(ConfigurationError):
    """No rate-table entry matched a wage and condition set."""

    code: str = "RATE_ENTRY_NOT_FOUND"

    def __init__(
        self,
        contribution_type: str,
        wage: Decimal,
        as_of_date: date,
        conditions: dict[str, str],
    ):
        self.contribution_type = contribution_type
        self.wage = wage
        self.as_of_date = as_of_date
        self.conditions = conditions
        super().__init__(
            f"No {contribution_type} rate entry for wage {wage} "
            f"on {as_of_date} with conditions {conditions}"
        )


class AmbiguousRateError(ConfigurationError):
    """More than one equally specific entry matched."""

    code: str = "AMBIGUOUS_RATE"

    def __init__(
        self,
        contribution_type: str,
        wage: Decimal,
        as_of_date: date,
        candidates: int,
    ):
        self.contribution_type = contribution_type
        self.wage = wage
        self.as_of_date = as_of_date
        self.candidates = candidates
        super().__init__(
            f"{candidates} equally specific {contribution_type} entries match "
            f"wage {wage} on {as_of_date}"
        )


class DatasetError(ConfigurationError):
    """The statutory dataset failed validation."""

    code: str = "INVALID_DATASET"


# Per-employee errors


class EmployeeCalculationError(PayrollError):
    """An employee cannot be calculated; the run skips them."""

    code: str = "EMPLOYEE_CALCULATION_ERROR"

    def __init__(self, employee_code: str, message: str):
        self.employee_code = employee_code
        super().__init__(message)


class MissingAccountError(PayrollError):
    """A required ledger account code is not in the chart of accounts."""

    code: str = "MISSING_ACCOUNT"

    def __init__(self, account_code: str, purpose: str | None = None):
        self.account_code = account_code
        self.purpose = purpose
        msg = f"Account {account_code} not found"
        if purpose:
            msg += f" ({purpose})"
        super().__init__(msg)


# Run-level errors


class PayrollRunError(PayrollError):
    """A payroll run could not be processed."""

    code: str = "PAYROLL_RUN_ERROR"

    def __init__(self, message: str, run_id: UUID | None = None, **context: Any):
        self.run_id = run_id
        self.context = context
        super().__init__(message)


class PayrollRunNotFoundError(PayrollRunError):
    """Payroll run with the given id does not exist."""

    code: str = "PAYROLL_RUN_NOT_FOUND"

    def __init__(self, run_id: UUID):
        super().__init__(f"Payroll run {run_id} not found", run_id=run_id)


class DuplicatePeriodError(PayrollRunError):
    """A non-cancelled run already exists for the period."""

    code: str = "DUPLICATE_PERIOD"

    def __init__(self, year: int, month: int, existing_run_id: UUID):
        self.year = year
        self.month = month
        super().__init__(
            f"Payroll run for {year}-{month:02d} already exists",
            run_id=existing_run_id,
            year=year,
            month=month,
        )


# Integrity errors


class UnbalancedJournalError(PayrollError):
    """Journal debits do not equal credits. Never corrected automatically."""

    code: str = "UNBALANCED_JOURNAL"

    def __init__(
        self,
        debits: Decimal,
        credits: Decimal,
        reference: str | None = None,
        run_id: UUID | None = None,
        year: int | None = None,
        month: int | None = None,
    ):
        self.debits = debits
        self.credits = credits
        self.reference = reference
        self.run_id = run_id
        self.year = year
        self.month = month
        msg = "Unbalanced journal"
        if reference:
            msg += f" {reference}"
        if year is not None and month is not None:
            msg += f" for {year}-{month:02d}"
        super().__init__(f"{msg}: debits={debits}, credits={credits}")


# State-guard errors


class InvalidTransitionError(PayrollError):
    """Raised when an invalid state transition is attempted."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
