"""Payroll core facade.

The single entry point for callers outside the package:

    async with get_session() as session:
        core = PayrollCore(session)
        run = await core.create_run(owner_id, 2025, 6)
        result = await core.calculate_payroll(run.run_id)
        await core.approve(run.run_id)
        await core.finalize(run.run_id)

Results are pydantic models whose money fields serialize as 2-dp strings.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core.calculators.rate_table import StatutoryRateTable
from payroll_core.calculators.statutory import StatutoryCalculator
from payroll_core.calculators.types import PayrollPeriod
from payroll_core.calculators.withholding import WithholdingStrategy
from payroll_core.config import DEFAULT_DATASET, PayrollAccounts, Settings, get_settings
from payroll_core.money import to_decimal
from payroll_core.schemas import (
    EmployeeStatutoryInput,
    PaySlipCalculationResponse,
    PaySlipResponse,
    PayrollRunResponse,
    RemittanceLineResponse,
    RunCalculationResponse,
    RunTotalsResponse,
    StatutoryResponse,
    YtdInput,
)
from payroll_core.services.payroll_run_service import PayrollRunService
from payroll_core.services.state_machine import PayrollAction, PayrollRunStateMachine


def load_rate_table(settings: Settings | None = None) -> StatutoryRateTable:
    """Rate table for the configured dataset; the packaged one is cached."""
    settings = settings or get_settings()
    if settings.statutory_dataset == DEFAULT_DATASET:
        return StatutoryRateTable.default()
    return StatutoryRateTable.from_file(settings.statutory_dataset)


class PayrollCore:
    """Facade over the run orchestrator, journal poster and calculators."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        rate_table: StatutoryRateTable | None = None,
        accounts: PayrollAccounts | None = None,
        withholding: WithholdingStrategy | None = None,
    ):
        self.session = session
        self.rate_table = rate_table or load_rate_table()
        self.runs = PayrollRunService(
            session,
            rate_table=self.rate_table,
            accounts=accounts,
            withholding=withholding,
        )
        self.statutory = StatutoryCalculator(self.rate_table, withholding)

    # Runs

    async def create_run(
        self,
        owner_id: UUID,
        year: int,
        month: int,
        pay_date: date | None = None,
        name: str | None = None,
    ) -> PayrollRunResponse:
        run = await self.runs.create_run(owner_id, year, month, pay_date=pay_date, name=name)
        return PayrollRunResponse.model_validate(run)

    async def get_run(self, run_id: UUID) -> PayrollRunResponse:
        return PayrollRunResponse.model_validate(await self.runs.get_run(run_id))

    async def list_pay_slips(self, run_id: UUID) -> list[PaySlipResponse]:
        slips = await self.runs.list_pay_slips(run_id)
        return [PaySlipResponse.model_validate(slip) for slip in slips]

    async def calculate_payroll(self, run_id: UUID) -> RunCalculationResponse:
        result = await self.runs.calculate(run_id)
        return RunCalculationResponse(
            run_id=result.run_id,
            success=result.success,
            totals=RunTotalsResponse.from_totals(result.totals),
            errors=result.errors,
            pay_slip_count=result.pay_slip_count,
        )

    async def recalculate_pay_slip(self, slip_id: UUID) -> PaySlipCalculationResponse | None:
        calculation = await self.runs.recalculate_pay_slip(slip_id)
        if calculation is None:
            return None
        return PaySlipCalculationResponse.from_calculation(calculation)

    async def approve(self, run_id: UUID, approved_by: UUID | None = None) -> PayrollRunResponse:
        return PayrollRunResponse.model_validate(await self.runs.approve(run_id, approved_by))

    async def finalize(self, run_id: UUID) -> PayrollRunResponse:
        return PayrollRunResponse.model_validate(await self.runs.finalize(run_id))

    async def mark_paid(
        self,
        run_id: UUID,
        payment_date: date | None = None,
        bank_account_code: str | None = None,
    ) -> PayrollRunResponse:
        run = await self.runs.mark_paid(run_id, payment_date, bank_account_code)
        return PayrollRunResponse.model_validate(run)

    async def cancel(
        self,
        run_id: UUID,
        reason: str | None = None,
        reversal_date: date | None = None,
    ) -> PayrollRunResponse:
        run = await self.runs.cancel(run_id, reason, reversal_date)
        return PayrollRunResponse.model_validate(run)

    async def delete(self, run_id: UUID) -> None:
        await self.runs.delete(run_id)

    # Journals

    async def create_accrual_entry(self, run_id: UUID) -> UUID | None:
        """Post the accrual for an approved run without finalizing it."""
        run = await self.runs.get_run(run_id)
        PayrollRunStateMachine.validate_action(run.status, PayrollAction.FINALIZE)
        return await self.runs.journal.post_accrual(run)

    async def create_payment_entry(
        self,
        run_id: UUID,
        payment_date: date,
        bank_account_code: str | None = None,
    ) -> UUID | None:
        run = await self.runs.get_run(run_id)
        PayrollRunStateMachine.validate_action(run.status, PayrollAction.MARK_PAID)
        return await self.runs.journal.post_payment(run, payment_date, bank_account_code)

    async def reverse_entry(self, entry_id: UUID, reversal_date: date | None = None) -> UUID | None:
        return await self.runs.journal.reverse(entry_id, reversal_date)

    async def statutory_payment_summary(self, run_id: UUID) -> list[RemittanceLineResponse]:
        lines = await self.runs.statutory_payment_summary(run_id)
        return [RemittanceLineResponse.model_validate(line) for line in lines]

    # What-if

    def calculate_statutory(
        self,
        wage: Decimal | str,
        employee: EmployeeStatutoryInput | Mapping[str, Any],
        year: int,
        month: int,
        ytd: YtdInput | Mapping[str, Any] | None = None,
    ) -> StatutoryResponse:
        """Statutory amounts for a wage outside any run.

        Raises:
            TypeError: wage is a float
            pydantic.ValidationError: employee or ytd input is invalid
            ConfigurationError: The rate table does not cover the employee
        """
        if not isinstance(employee, EmployeeStatutoryInput):
            employee = EmployeeStatutoryInput.model_validate(employee)
        if ytd is not None and not isinstance(ytd, YtdInput):
            ytd = YtdInput.model_validate(ytd)

        result = self.statutory.calculate(
            to_decimal(wage),
            employee.to_info(),
            PayrollPeriod(year, month),
            ytd.to_totals() if ytd is not None else None,
        )
        return StatutoryResponse.from_result(result)
