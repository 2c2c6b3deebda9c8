"""SQLAlchemy implementations of the repository and ledger contracts.

All classes take an ``AsyncSession`` and only flush; the caller owns the
transaction. Relationships are never lazy-loaded.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core.calculators.types import (
    CalculationMethod,
    ComponentDefinition,
    EmployeeSnapshot,
    EmployeeStatutoryInfo,
    ItemType,
    MaritalStatus,
    Nationality,
    PaySlipCalculation,
    PaySlipItemCandidate,
    YtdTotals,
)
from payroll_core.exceptions import UnbalancedJournalError
from payroll_core.models import (
    Account,
    Employee,
    EmployeeSalary,
    JournalEntry,
    JournalLine,
    PayrollRun,
    PaySlip,
    PaySlipItem,
    SalaryComponent,
)
from payroll_core.money import percent_to_rate, round_money
from payroll_core.repositories.protocols import LedgerLine

logger = logging.getLogger(__name__)

# Runs whose payslips count towards year-to-date figures
YTD_RUN_STATUSES = ("finalized", "paid")

# salary_component.component_type -> payslip item type
_COMPONENT_ITEM_TYPES = {
    "earnings": ItemType.EARNING,
    "deductions": ItemType.DEDUCTION,
}


def to_snapshot(employee: Employee, salary: EmployeeSalary) -> EmployeeSnapshot:
    """Freeze an employee and their current salary into a snapshot."""
    statutory = EmployeeStatutoryInfo(
        nationality=Nationality(employee.nationality),
        date_of_birth=employee.date_of_birth,
        marital_status=MaritalStatus(employee.marital_status),
        spouse_working=employee.spouse_working,
        number_of_children=employee.number_of_children,
        children_in_university=employee.children_in_university,
        disabled_children=employee.disabled_children,
        epf_employee_rate=(
            percent_to_rate(employee.epf_employee_rate)
            if employee.epf_employee_rate is not None
            else None
        ),
        epf_employer_rate=(
            percent_to_rate(employee.epf_employer_rate)
            if employee.epf_employer_rate is not None
            else None
        ),
    )
    return EmployeeSnapshot(
        employee_id=employee.employee_id,
        employee_code=employee.employee_code,
        name=employee.name,
        base_salary=round_money(Decimal(salary.basic_salary)),
        statutory=statutory,
        department=employee.department,
        position=employee.position,
        ic_number=employee.ic_number,
        bank_name=employee.bank_name,
        bank_account_number=employee.bank_account_number,
    )


def to_component(component: SalaryComponent) -> ComponentDefinition:
    return ComponentDefinition(
        component_id=component.component_id,
        code=component.code,
        name=component.name,
        item_type=_COMPONENT_ITEM_TYPES[component.component_type],
        calculation_method=CalculationMethod(component.calculation_method),
        default_amount=component.default_amount,
        default_percentage=component.default_percentage,
        is_epf_applicable=component.is_epf_applicable,
        is_socso_applicable=component.is_socso_applicable,
        is_eis_applicable=component.is_eis_applicable,
        is_pcb_applicable=component.is_pcb_applicable,
        is_active=component.is_active,
        sort_order=component.sort_order,
    )


class SqlEmployeeRepository:
    """Employee, salary and component lookups."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_active_employees(self, owner_id: UUID) -> list[Employee]:
        result = await self.session.execute(
            select(Employee)
            .where(Employee.owner_id == owner_id, Employee.status == "active")
            .order_by(Employee.employee_code)
        )
        return list(result.scalars().all())

    async def get(self, employee_id: UUID) -> Employee | None:
        return await self.session.get(Employee, employee_id)

    async def get_current_salary(self, employee_id: UUID, as_of: date) -> EmployeeSalary | None:
        """Latest salary effective on or before as_of that has not ended."""
        result = await self.session.execute(
            select(EmployeeSalary)
            .where(
                EmployeeSalary.employee_id == employee_id,
                EmployeeSalary.effective_date <= as_of,
                or_(EmployeeSalary.end_date.is_(None), EmployeeSalary.end_date >= as_of),
            )
            .order_by(EmployeeSalary.effective_date.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_components(self, owner_id: UUID, component_type: str) -> list[ComponentDefinition]:
        result = await self.session.execute(
            select(SalaryComponent)
            .where(
                SalaryComponent.owner_id == owner_id,
                SalaryComponent.component_type == component_type,
                SalaryComponent.is_active.is_(True),
            )
            .order_by(SalaryComponent.sort_order, SalaryComponent.code)
        )
        return [to_component(c) for c in result.scalars().all()]


class SqlPaySlipRepository:
    """Payslip and payslip item persistence."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def delete_by_run(self, run_id: UUID) -> int:
        """Delete every payslip of a run, items first."""
        slip_ids = select(PaySlip.slip_id).where(PaySlip.run_id == run_id)
        await self.session.execute(
            delete(PaySlipItem)
            .where(PaySlipItem.slip_id.in_(slip_ids))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(
            delete(PaySlip)
            .where(PaySlip.run_id == run_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def create(
        self,
        run_id: UUID,
        employee_id: UUID,
        slip_number: str,
        snapshot: EmployeeSnapshot,
        calculation: PaySlipCalculation,
    ) -> PaySlip:
        slip = PaySlip(run_id=run_id, employee_id=employee_id, slip_number=slip_number)
        self._apply(slip, snapshot, calculation)
        self.session.add(slip)
        await self.session.flush()
        return slip

    async def get(self, slip_id: UUID) -> PaySlip | None:
        return await self.session.get(PaySlip, slip_id)

    async def list_by_run(self, run_id: UUID) -> list[PaySlip]:
        result = await self.session.execute(
            select(PaySlip).where(PaySlip.run_id == run_id).order_by(PaySlip.slip_number)
        )
        return list(result.scalars().all())

    async def get_ytd_totals(self, employee_id: UUID, year: int, month: int) -> YtdTotals:
        """Sum of prior finalized/paid payslips in the same year."""
        result = await self.session.execute(
            select(
                func.coalesce(func.sum(PaySlip.gross_salary), 0),
                func.coalesce(func.sum(PaySlip.pcb_taxable_wage), 0),
                func.coalesce(func.sum(PaySlip.epf_employee), 0),
                func.coalesce(func.sum(PaySlip.socso_employee + PaySlip.eis_employee), 0),
                func.coalesce(func.sum(PaySlip.pcb), 0),
            )
            .join(PayrollRun, PayrollRun.run_id == PaySlip.run_id)
            .where(
                PaySlip.employee_id == employee_id,
                PayrollRun.period_year == year,
                PayrollRun.period_month < month,
                PayrollRun.status.in_(YTD_RUN_STATUSES),
            )
        )
        gross, taxable, epf, socso_eis, pcb = result.one()
        return YtdTotals(
            gross=_money(gross),
            taxable=_money(taxable),
            epf_employee=_money(epf),
            socso_eis=_money(socso_eis),
            pcb=_money(pcb),
        )

    async def update_calculations(
        self,
        slip: PaySlip,
        snapshot: EmployeeSnapshot,
        calculation: PaySlipCalculation,
    ) -> PaySlip:
        self._apply(slip, snapshot, calculation)
        await self.session.flush()
        return slip

    async def delete_items(self, slip_id: UUID) -> int:
        result = await self.session.execute(
            delete(PaySlipItem)
            .where(PaySlipItem.slip_id == slip_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def bulk_create_items(
        self, slip_id: UUID, items: list[PaySlipItemCandidate]
    ) -> list[PaySlipItem]:
        rows = [
            PaySlipItem(
                slip_id=slip_id,
                component_id=item.component_id,
                item_type=item.item_type.value,
                component_code=item.component_code,
                component_name=item.component_name,
                amount=item.amount,
                calculation_method=item.calculation_method.value,
                sort_order=item.sort_order,
                is_epf_applicable=item.is_epf_applicable,
                is_socso_applicable=item.is_socso_applicable,
                is_eis_applicable=item.is_eis_applicable,
                is_pcb_applicable=item.is_pcb_applicable,
            )
            for item in items
        ]
        self.session.add_all(rows)
        await self.session.flush()
        return rows

    async def list_items(self, slip_id: UUID) -> list[PaySlipItem]:
        result = await self.session.execute(
            select(PaySlipItem)
            .where(PaySlipItem.slip_id == slip_id)
            .order_by(PaySlipItem.sort_order)
        )
        return list(result.scalars().all())

    async def set_status_by_run(self, run_id: UUID, status: str) -> int:
        result = await self.session.execute(
            update(PaySlip)
            .where(PaySlip.run_id == run_id)
            .values(status=status)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    @staticmethod
    def _apply(slip: PaySlip, snapshot: EmployeeSnapshot, calculation: PaySlipCalculation) -> None:
        """Overwrite every snapshot and computed field."""
        statutory = calculation.statutory
        slip.employee_code = snapshot.employee_code
        slip.employee_name = snapshot.name
        slip.department = snapshot.department
        slip.position = snapshot.position
        slip.ic_number = snapshot.ic_number
        slip.bank_name = snapshot.bank_name
        slip.bank_account_number = snapshot.bank_account_number
        slip.base_salary = calculation.base_salary
        slip.total_earnings = calculation.total_earnings
        slip.total_deductions = calculation.total_deductions_with_statutory
        slip.gross_salary = calculation.gross_salary
        slip.epf_employee = statutory.epf.employee
        slip.epf_employer = statutory.epf.employer
        slip.socso_employee = statutory.socso.employee
        slip.socso_employer = statutory.socso.employer
        slip.eis_employee = statutory.eis.employee
        slip.eis_employer = statutory.eis.employer
        slip.pcb = statutory.pcb.amount
        slip.pcb_taxable_wage = statutory.pcb.taxable_wage
        slip.net_salary = calculation.net_salary
        slip.ytd_gross = calculation.ytd.gross
        slip.ytd_taxable = calculation.ytd.taxable
        slip.ytd_epf_employee = calculation.ytd.epf_employee
        slip.ytd_socso_eis = calculation.ytd.socso_eis
        slip.ytd_pcb = calculation.ytd.pcb
        slip.calculation_hash = calculation.fingerprint


class SqlPayrollRunRepository:
    """Payroll run persistence."""

    _SEQUENCE = re.compile(r"^PR-\d{4}-(\d+)$")

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, run_id: UUID) -> PayrollRun | None:
        return await self.session.get(PayrollRun, run_id)

    async def find_by_period(self, owner_id: UUID, year: int, month: int) -> list[PayrollRun]:
        result = await self.session.execute(
            select(PayrollRun).where(
                PayrollRun.owner_id == owner_id,
                PayrollRun.period_year == year,
                PayrollRun.period_month == month,
            )
        )
        return list(result.scalars().all())

    async def add(self, run: PayrollRun) -> PayrollRun:
        self.session.add(run)
        await self.session.flush()
        return run

    async def delete(self, run: PayrollRun) -> None:
        await self.session.delete(run)
        await self.session.flush()

    async def next_sequence(self, owner_id: UUID, year: int) -> int:
        """One past the highest run number used for the owner and year."""
        result = await self.session.execute(
            select(PayrollRun.run_number).where(
                PayrollRun.owner_id == owner_id,
                PayrollRun.period_year == year,
            )
        )
        highest = 0
        for run_number in result.scalars().all():
            match = self._SEQUENCE.match(run_number)
            if match:
                highest = max(highest, int(match.group(1)))
        return highest + 1


class SqlLedger:
    """Minimal double-entry ledger over the journal tables.

    Entries are balanced before insert, posted explicitly, and corrected only
    by reversal (a new posted entry with debit and credit swapped).
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_account_by_code(self, code: str, owner_id: UUID) -> Account | None:
        result = await self.session.execute(
            select(Account).where(Account.owner_id == owner_id, Account.code == code)
        )
        return result.scalar_one_or_none()

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
        """Insert a draft entry.

        Raises:
            ValueError: No lines, or a line with both or neither side set
            UnbalancedJournalError: Debits differ from credits
        """
        if not lines:
            raise ValueError("Journal entry requires at least one line")

        total_debit = Decimal("0")
        total_credit = Decimal("0")
        for line in lines:
            if (line.debit > 0) == (line.credit > 0) or line.debit < 0 or line.credit < 0:
                raise ValueError(
                    f"Line on account {line.account_id} must have exactly one positive side"
                )
            total_debit += line.debit
            total_credit += line.credit

        total_debit = round_money(total_debit)
        total_credit = round_money(total_credit)
        if total_debit != total_credit:
            raise UnbalancedJournalError(total_debit, total_credit, reference)

        entry = JournalEntry(
            owner_id=owner_id,
            entry_date=entry_date,
            reference=reference,
            description=description,
            source_type=source_type,
            source_id=source_id,
            status="draft",
            total_debit=total_debit,
            total_credit=total_credit,
        )
        self.session.add(entry)
        await self.session.flush()

        self.session.add_all(
            JournalLine(
                entry_id=entry.entry_id,
                line_number=number,
                account_id=line.account_id,
                description=line.description,
                debit=round_money(line.debit),
                credit=round_money(line.credit),
            )
            for number, line in enumerate(lines, start=1)
        )
        await self.session.flush()
        return entry.entry_id

    async def post(self, entry_id: UUID) -> None:
        entry = await self._get(entry_id)
        if entry is None:
            raise ValueError(f"Journal entry {entry_id} not found")
        if entry.status == "posted":
            return
        if entry.status != "draft":
            raise ValueError(f"Journal entry {entry_id} is {entry.status}, cannot post")
        entry.status = "posted"
        entry.posted_at = datetime.now(timezone.utc)
        await self.session.flush()

    async def reverse(self, entry_id: UUID, entry_date: date) -> UUID | None:
        """Post a mirror entry and mark the original reversed.

        Returns the reversal id, the existing one if already reversed, or
        None when the entry does not exist or was never posted.
        """
        entry = await self._get(entry_id)
        if entry is None:
            logger.warning("Cannot reverse journal entry %s: not found", entry_id)
            return None
        if entry.status == "reversed":
            return entry.reversed_by_id
        if entry.status != "posted":
            logger.warning("Cannot reverse journal entry %s: status %s", entry_id, entry.status)
            return None

        lines = await self.get_lines(entry_id)
        reversal_id = await self.create_journal_entry(
            owner_id=entry.owner_id,
            entry_date=entry_date,
            description=f"Reversal of {entry.reference or entry.entry_id}",
            reference=f"{entry.reference}-REV" if entry.reference else None,
            source_type=entry.source_type,
            source_id=entry.source_id,
            lines=[
                LedgerLine(
                    account_id=line.account_id,
                    debit=line.credit,
                    credit=line.debit,
                    description=line.description,
                )
                for line in lines
            ],
        )
        await self.post(reversal_id)

        reversal = await self._get(reversal_id)
        reversal.reversal_of_id = entry.entry_id
        entry.status = "reversed"
        entry.reversed_by_id = reversal_id
        await self.session.flush()
        return reversal_id

    async def get_entry(self, entry_id: UUID) -> JournalEntry | None:
        return await self._get(entry_id)

    async def get_lines(self, entry_id: UUID) -> list[JournalLine]:
        result = await self.session.execute(
            select(JournalLine)
            .where(JournalLine.entry_id == entry_id)
            .order_by(JournalLine.line_number)
        )
        return list(result.scalars().all())

    async def _get(self, entry_id: UUID) -> JournalEntry | None:
        return await self.session.get(JournalEntry, entry_id)


def _money(value: object) -> Decimal:
    return round_money(Decimal(str(value or 0)))
