"""Payroll run service - orchestrates the monthly payroll lifecycle."""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core.calculators.payslip import PaySlipCalculator
from payroll_core.calculators.rate_table import StatutoryRateTable
from payroll_core.calculators.statutory import StatutoryCalculator
from payroll_core.calculators.types import (
    ComponentDefinition,
    PaySlipCalculation,
    PayrollPeriod,
    RunTotals,
)
from payroll_core.config import PayrollAccounts
from payroll_core.exceptions import (
    DuplicatePeriodError,
    EmployeeCalculationError,
    PayrollError,
    PayrollRunError,
    PayrollRunNotFoundError,
)
from payroll_core.models import PayrollRun, PaySlip
from payroll_core.models.base import utcnow
from payroll_core.repositories.sql import (
    SqlEmployeeRepository,
    SqlLedger,
    SqlPayrollRunRepository,
    SqlPaySlipRepository,
    to_snapshot,
)
from payroll_core.services.journal_service import JournalService, RemittanceLine
from payroll_core.services.state_machine import (
    PayrollAction,
    PayrollRunStateMachine,
    PayrollRunStatus,
    PaySlipStatus,
)

if TYPE_CHECKING:
    from payroll_core.calculators.withholding import WithholdingStrategy
    from payroll_core.models import Employee
    from payroll_core.repositories.protocols import (
        EmployeeRepository,
        Ledger,
        PayrollRunRepository,
        PaySlipRepository,
    )

logger = logging.getLogger(__name__)


@dataclass
class RunCalculationResult:
    """Outcome of calculating a payroll run."""

    run_id: UUID
    success: bool
    totals: RunTotals
    errors: list[str] = field(default_factory=list)
    pay_slip_count: int = 0


class PayrollRunService:
    """Service for managing the payroll run lifecycle.

    Operations:
    - create_run: Open a draft run for a period
    - calculate: Rebuild every payslip of the run and sum run totals
    - recalculate_pay_slip: Rebuild one payslip and re-sum run totals
    - approve: pending_review → approved
    - finalize: Post the accrual journal, then approved → finalized
    - mark_paid: Post the payment journal, then finalized → paid
    - cancel: Reverse any accrual journal, then → cancelled
    - delete: Remove a draft run

    Every operation re-reads the run and checks its status before writing.
    The service only flushes; the caller owns the transaction.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        rate_table: StatutoryRateTable | None = None,
        accounts: PayrollAccounts | None = None,
        withholding: WithholdingStrategy | None = None,
        employees: EmployeeRepository | None = None,
        pay_slips: PaySlipRepository | None = None,
        runs: PayrollRunRepository | None = None,
        ledger: Ledger | None = None,
    ):
        self.session = session
        self.employees = employees or SqlEmployeeRepository(session)
        self.pay_slips = pay_slips or SqlPaySlipRepository(session)
        self.runs = runs or SqlPayrollRunRepository(session)
        self.journal = JournalService(ledger or SqlLedger(session), accounts)
        self.calculator = PaySlipCalculator(
            StatutoryCalculator(rate_table=rate_table, withholding=withholding)
        )

    # Lookup

    async def get_run(self, run_id: UUID) -> PayrollRun:
        run = await self.runs.get(run_id)
        if run is None:
            raise PayrollRunNotFoundError(run_id)
        return run

    async def list_pay_slips(self, run_id: UUID) -> list[PaySlip]:
        return await self.pay_slips.list_by_run(run_id)

    # Creation

    async def create_run(
        self,
        owner_id: UUID,
        year: int,
        month: int,
        pay_date: date | None = None,
        name: str | None = None,
    ) -> PayrollRun:
        """Create a draft run for a period.

        Cancelled runs for the same period are removed so the period can be
        run again.

        Raises:
            DuplicatePeriodError: A run that is not cancelled exists for the period
        """
        period = PayrollPeriod(year, month)
        existing = await self.runs.find_by_period(owner_id, year, month)
        live = [r for r in existing if r.status != PayrollRunStatus.CANCELLED]
        if live:
            raise DuplicatePeriodError(year, month, live[0].run_id)

        sequence = await self.runs.next_sequence(owner_id, year)
        for cancelled in existing:
            await self.pay_slips.delete_by_run(cancelled.run_id)
            await self.runs.delete(cancelled)
            logger.info("Removed cancelled payroll run %s", cancelled.run_number)

        run = PayrollRun(
            owner_id=owner_id,
            run_number=f"PR-{year}-{sequence:02d}",
            name=name or f"{calendar.month_name[month]} {year} Payroll",
            period_year=year,
            period_month=month,
            period_start=period.start_date,
            period_end=period.end_date,
            pay_date=pay_date,
            status=PayrollRunStatus.DRAFT.value,
        )
        self._apply_totals(run, RunTotals(), 0)
        await self.runs.add(run)
        logger.info("Created payroll run %s for %s", run.run_number, period.label)
        return run

    # Calculation

    async def calculate(self, run_id: UUID) -> RunCalculationResult:
        """Calculate every active employee's payslip for the run.

        Prior payslips are deleted first, so re-invoking after an interrupted
        calculation is safe. A failing employee is recorded and skipped. If no
        employee produces a payslip the run returns to draft.

        Raises:
            InvalidTransitionError: Run is not draft, calculating or pending_review
        """
        run = await self.get_run(run_id)
        PayrollRunStateMachine.validate_action(run.status, PayrollAction.CALCULATE)
        self._set_status(run, PayrollRunStatus.CALCULATING)
        await self.session.flush()

        period = PayrollPeriod(run.period_year, run.period_month)
        try:
            await self.pay_slips.delete_by_run(run.run_id)

            employees = await self.employees.find_active_employees(run.owner_id)
            earnings = await self.employees.find_components(run.owner_id, "earnings")
            deductions = await self.employees.find_components(run.owner_id, "deductions")
            logger.info(
                "Calculating payroll run %s for %s: %d employee(s)",
                run.run_number,
                period.label,
                len(employees),
            )

            errors: list[str] = []
            slips: list[PaySlip] = []
            for employee in employees:
                try:
                    slip = await self._calculate_employee(
                        run, employee, period, earnings, deductions, len(slips) + 1
                    )
                except EmployeeCalculationError as exc:
                    errors.append(str(exc))
                    logger.warning("Skipped employee %s: %s", employee.employee_code, exc)
                    continue
                except PayrollError as exc:
                    errors.append(f"Error processing {employee.employee_code}: {exc}")
                    logger.warning(
                        "Failed to calculate employee %s: %s", employee.employee_code, exc
                    )
                    continue
                slips.append(slip)

            totals = RunTotals.from_slips(slips)
            self._apply_totals(run, totals, len(slips))

            if not slips:
                self._set_status(run, PayrollRunStatus.DRAFT)
                await self.session.flush()
                logger.warning(
                    "Payroll run %s produced no payslips (%d error(s))",
                    run.run_number,
                    len(errors),
                )
                if not errors:
                    errors.append("No active employees with a current salary record")
                return RunCalculationResult(
                    run_id=run.run_id,
                    success=False,
                    totals=totals,
                    errors=errors,
                )

            run.calculated_at = utcnow()
            self._set_status(run, PayrollRunStatus.PENDING_REVIEW)
            await self.session.flush()
        except Exception:
            logger.exception("Payroll run %s calculation failed", run.run_number)
            run.status = PayrollRunStatus.DRAFT.value
            raise

        logger.info(
            "Calculated payroll run %s: %d payslip(s), %d error(s), net %s",
            run.run_number,
            len(slips),
            len(errors),
            totals.net,
        )
        return RunCalculationResult(
            run_id=run.run_id,
            success=True,
            totals=totals,
            errors=errors,
            pay_slip_count=len(slips),
        )

    async def recalculate_pay_slip(self, slip_id: UUID) -> PaySlipCalculation | None:
        """Rebuild one payslip from current data and re-sum the run totals.

        Returns None when the slip, its run, its employee or a current salary
        record is missing.

        Raises:
            InvalidTransitionError: Run is not draft or pending_review
        """
        slip = await self.pay_slips.get(slip_id)
        if slip is None:
            return None
        run = await self.runs.get(slip.run_id)
        if run is None:
            return None
        PayrollRunStateMachine.validate_action(run.status, PayrollAction.RECALCULATE)

        employee = await self.employees.get(slip.employee_id)
        if employee is None:
            return None
        period = PayrollPeriod(run.period_year, run.period_month)
        salary = await self.employees.get_current_salary(employee.employee_id, period.end_date)
        if salary is None:
            return None

        earnings = await self.employees.find_components(run.owner_id, "earnings")
        deductions = await self.employees.find_components(run.owner_id, "deductions")
        snapshot = to_snapshot(employee, salary)
        ytd = await self.pay_slips.get_ytd_totals(employee.employee_id, period.year, period.month)
        calculation = self.calculator.calculate(snapshot, earnings, deductions, period, ytd)

        await self.pay_slips.delete_items(slip.slip_id)
        await self.pay_slips.update_calculations(slip, snapshot, calculation)
        await self.pay_slips.bulk_create_items(slip.slip_id, calculation.items)

        slips = await self.pay_slips.list_by_run(run.run_id)
        self._apply_totals(run, RunTotals.from_slips(slips), len(slips))
        await self.session.flush()

        logger.info("Recalculated payslip %s in run %s", slip.slip_number, run.run_number)
        return calculation

    # Lifecycle

    async def approve(self, run_id: UUID, approved_by: UUID | None = None) -> PayrollRun:
        run = await self.get_run(run_id)
        PayrollRunStateMachine.validate_action(run.status, PayrollAction.APPROVE)

        run.approved_at = utcnow()
        run.approved_by = approved_by
        self._set_status(run, PayrollRunStatus.APPROVED)
        await self.session.flush()
        return run

    async def finalize(self, run_id: UUID) -> PayrollRun:
        """Post the accrual journal and finalize the run.

        The run stays approved if posting fails, so it can be retried once
        the underlying data is fixed.

        Raises:
            InvalidTransitionError: Run is not approved
            UnbalancedJournalError: Accrual debits differ from credits
            MissingAccountError: A payroll account is missing from the chart
            PayrollRunError: No accrual entry could be created
        """
        run = await self.get_run(run_id)
        PayrollRunStateMachine.validate_action(run.status, PayrollAction.FINALIZE)

        entry_id = await self.journal.post_accrual(run)
        if entry_id is None:
            raise PayrollRunError(
                f"No accrual journal entry could be created for {run.run_number}",
                run_id=run.run_id,
            )

        run.finalized_at = utcnow()
        self._set_status(run, PayrollRunStatus.FINALIZED)
        await self.pay_slips.set_status_by_run(run.run_id, PaySlipStatus.APPROVED.value)
        await self.session.flush()
        return run

    async def mark_paid(
        self,
        run_id: UUID,
        payment_date: date | None = None,
        bank_account_code: str | None = None,
    ) -> PayrollRun:
        """Post the salary payment journal and mark the run paid.

        Raises:
            InvalidTransitionError: Run is not finalized
            MissingAccountError: Accrued salaries or bank account is missing
            PayrollRunError: No payment entry could be created
        """
        run = await self.get_run(run_id)
        PayrollRunStateMachine.validate_action(run.status, PayrollAction.MARK_PAID)

        payment_date = payment_date or run.pay_date or date.today()
        entry_id = await self.journal.post_payment(run, payment_date, bank_account_code)
        if entry_id is None:
            raise PayrollRunError(
                f"No payment journal entry could be created for {run.run_number}",
                run_id=run.run_id,
            )

        run.paid_at = utcnow()
        if run.pay_date is None:
            run.pay_date = payment_date
        self._set_status(run, PayrollRunStatus.PAID)
        await self.pay_slips.set_status_by_run(run.run_id, PaySlipStatus.PAID.value)
        await self.session.flush()
        return run

    async def cancel(
        self,
        run_id: UUID,
        reason: str | None = None,
        reversal_date: date | None = None,
    ) -> PayrollRun:
        """Cancel a run, reversing its accrual entry if one was posted.

        Raises:
            InvalidTransitionError: Run is paid or already cancelled
        """
        run = await self.get_run(run_id)
        PayrollRunStateMachine.validate_action(run.status, PayrollAction.CANCEL)

        if run.journal_entry_id is not None:
            reversal_id = await self.journal.reverse(run.journal_entry_id, reversal_date)
            run.reversal_journal_entry_id = reversal_id

        run.cancelled_at = utcnow()
        if reason:
            run.notes = reason
        self._set_status(run, PayrollRunStatus.CANCELLED)
        await self.pay_slips.set_status_by_run(run.run_id, PaySlipStatus.CANCELLED.value)
        await self.session.flush()
        return run

    async def delete(self, run_id: UUID) -> None:
        """Delete a draft run and any payslips it still holds.

        Raises:
            InvalidTransitionError: Run is not draft
        """
        run = await self.get_run(run_id)
        PayrollRunStateMachine.validate_action(run.status, PayrollAction.DELETE)

        await self.pay_slips.delete_by_run(run.run_id)
        await self.runs.delete(run)
        logger.info("Deleted payroll run %s", run.run_number)

    async def statutory_payment_summary(self, run_id: UUID) -> list[RemittanceLine]:
        run = await self.get_run(run_id)
        return self.journal.statutory_payment_summary(run)

    # Helpers

    async def _calculate_employee(
        self,
        run: PayrollRun,
        employee: Employee,
        period: PayrollPeriod,
        earnings: list[ComponentDefinition],
        deductions: list[ComponentDefinition],
        sequence: int,
    ) -> PaySlip:
        code = employee.employee_code
        salary = await self.employees.get_current_salary(employee.employee_id, period.end_date)
        if salary is None:
            raise EmployeeCalculationError(code, f"No salary record for employee {code}")

        snapshot = to_snapshot(employee, salary)
        ytd = await self.pay_slips.get_ytd_totals(employee.employee_id, period.year, period.month)
        calculation = self.calculator.calculate(snapshot, earnings, deductions, period, ytd)

        slip = await self.pay_slips.create(
            run.run_id,
            employee.employee_id,
            f"PS-{run.run_number}-{sequence:03d}",
            snapshot,
            calculation,
        )
        await self.pay_slips.bulk_create_items(slip.slip_id, calculation.items)
        return slip

    def _set_status(self, run: PayrollRun, to_status: PayrollRunStatus) -> None:
        from_status = run.status
        PayrollRunStateMachine.validate_transition(from_status, to_status)
        if from_status == to_status.value:
            return
        run.status = to_status.value
        logger.info("Payroll run %s: %s -> %s", run.run_number, from_status, to_status.value)

    @staticmethod
    def _apply_totals(run: PayrollRun, totals: RunTotals, employee_count: int) -> None:
        run.total_gross = totals.gross
        run.total_deductions = totals.deductions
        run.total_net = totals.net
        run.total_epf_employer = totals.epf_employer
        run.total_epf_employee = totals.epf_employee
        run.total_socso_employer = totals.socso_employer
        run.total_socso_employee = totals.socso_employee
        run.total_eis_employer = totals.eis_employer
        run.total_eis_employee = totals.eis_employee
        run.total_pcb = totals.pcb
        run.employee_count = employee_count
