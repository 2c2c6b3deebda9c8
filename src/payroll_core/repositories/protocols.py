"""Contracts of the persistence and ledger collaborators.

The orchestrator and journal poster depend only on these protocols; the
SQLAlchemy implementations in ``payroll_core.repositories.sql`` are one
way to satisfy them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

if TYPE_CHECKING:
    from payroll_core.calculators.types import (
        ComponentDefinition,
        EmployeeSnapshot,
        PaySlipCalculation,
        PaySlipItemCandidate,
        YtdTotals,
    )
    from payroll_core.models import (
        Account,
        Employee,
        EmployeeSalary,
        PayrollRun,
        PaySlip,
        PaySlipItem,
    )


@dataclass(frozen=True)
class LedgerLine:
    """A journal line ready for the ledger (account already resolved)."""

    account_id: UUID
    debit: Decimal
    credit: Decimal
    description: str | None = None


class EmployeeRepository(Protocol):
    async def find_active_employees(self, owner_id: UUID) -> list[Employee]:
        ...

    async def get(self, employee_id: UUID) -> Employee | None:
        ...

    async def get_current_salary(self, employee_id: UUID, as_of: date) -> EmployeeSalary | None:
        ...

    async def find_components(self, owner_id: UUID, component_type: str) -> list[ComponentDefinition]:
        ...


class PaySlipRepository(Protocol):
    async def delete_by_run(self, run_id: UUID) -> int:
        ...

    async def create(
        self,
        run_id: UUID,
        employee_id: UUID,
        slip_number: str,
        snapshot: EmployeeSnapshot,
        calculation: PaySlipCalculation,
    ) -> PaySlip:
        ...

    async def get(self, slip_id: UUID) -> PaySlip | None:
        ...

    async def list_by_run(self, run_id: UUID) -> list[PaySlip]:
        ...

    async def get_ytd_totals(self, employee_id: UUID, year: int, month: int) -> YtdTotals:
        ...

    async def update_calculations(
        self,
        slip: PaySlip,
        snapshot: EmployeeSnapshot,
        calculation: PaySlipCalculation,
    ) -> PaySlip:
        ...

    async def delete_items(self, slip_id: UUID) -> int:
        ...

    async def bulk_create_items(
        self, slip_id: UUID, items: list[PaySlipItemCandidate]
    ) -> list[PaySlipItem]:
        ...

    async def list_items(self, slip_id: UUID) -> list[PaySlipItem]:
        ...

    async def set_status_by_run(self, run_id: UUID, status: str) -> int:
        ...


class PayrollRunRepository(Protocol):
    async def get(self, run_id: UUID) -> PayrollRun | None:
        ...

    async def find_by_period(self, owner_id: UUID, year: int, month: int) -> list[PayrollRun]:
        ...

    async def add(self, run: PayrollRun) -> PayrollRun:
        ...

    async def delete(self, run: PayrollRun) -> None:
        ...

    async def next_sequence(self, owner_id: UUID, year: int) -> int:
        ...


class Ledger(Protocol):
    async def find_account_by_code(self, code: str, owner_id: UUID) -> Account | None:
        ...

    async def create_journal_entry(
        self,
        *,
        owner_id: UUID,
        entry_date: date,
        description: str,
        lines: list[LedgerLine],
        reference: str | None = None,
        source_type: str | None = None,
        source_id: UUID | None = None,
    ) -> UUID:
        ...

    async def post(self, entry_id: UUID) -> None:
        ...

    async def reverse(self, entry_id: UUID, entry_date: date) -> UUID | None:
        ...
