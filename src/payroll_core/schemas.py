"""Pydantic schemas for the public boundary.

Money serializes as a string with exactly two decimal places and rates as
a string with up to four. Floats are rejected on input.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any
from uuid import UUID

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer

from payroll_core.calculators.types import (
    CalculationMethod,
    ContributionResult,
    EmployeeStatutoryInfo,
    ItemType,
    MaritalStatus,
    Nationality,
    PaySlipCalculation,
    RunTotals,
    StatutoryResult,
    WithholdingResult,
    YtdTotals,
)
from payroll_core.money import ZERO, format_money, format_rate, round_money


def _reject_float(value: Any) -> Any:
    if isinstance(value, float):
        raise ValueError("monetary values and rates must be strings or decimals, not floats")
    return value


Money = Annotated[
    Decimal,
    BeforeValidator(_reject_float),
    PlainSerializer(format_money, return_type=str),
]
Rate = Annotated[
    Decimal,
    BeforeValidator(_reject_float),
    PlainSerializer(format_rate, return_type=str),
]


# ============================================================================
# Inputs
# ============================================================================


class EmployeeStatutoryInput(BaseModel):
    """Employee attributes for a direct statutory calculation.

    EPF overrides are rates (``"0.11"``), not percentages.
    """

    nationality: Nationality = Nationality.MALAYSIAN
    date_of_birth: date | None = None
    marital_status: MaritalStatus = MaritalStatus.SINGLE
    spouse_working: bool = False
    number_of_children: int = Field(default=0, ge=0)
    children_in_university: int = Field(default=0, ge=0)
    disabled_children: int = Field(default=0, ge=0)
    epf_employee_rate: Rate | None = Field(default=None, ge=0, le=1)
    epf_employer_rate: Rate | None = Field(default=None, ge=0, le=1)

    def to_info(self) -> EmployeeStatutoryInfo:
        return EmployeeStatutoryInfo(
            nationality=self.nationality,
            date_of_birth=self.date_of_birth,
            marital_status=self.marital_status,
            spouse_working=self.spouse_working,
            number_of_children=self.number_of_children,
            children_in_university=self.children_in_university,
            disabled_children=self.disabled_children,
            epf_employee_rate=self.epf_employee_rate,
            epf_employer_rate=self.epf_employer_rate,
        )


class YtdInput(BaseModel):
    """Prior year-to-date figures.

    ``taxable`` defaults to ``gross`` when every component was PCB-applicable.
    """

    gross: Money = ZERO
    taxable: Money | None = None
    epf_employee: Money = ZERO
    socso_eis: Money = ZERO
    pcb: Money = ZERO

    def to_totals(self) -> YtdTotals:
        return YtdTotals(
            gross=round_money(self.gross),
            taxable=round_money(self.gross if self.taxable is None else self.taxable),
            epf_employee=round_money(self.epf_employee),
            socso_eis=round_money(self.socso_eis),
            pcb=round_money(self.pcb),
        )


# ============================================================================
# Statutory outputs
# ============================================================================


class ContributionResponse(BaseModel):
    """Employer and employee shares of one contribution."""

    employee: Money
    employer: Money
    total: Money
    applicable_wage: Money
    employee_rate: Rate | None = None
    employer_rate: Rate | None = None

    @classmethod
    def from_result(cls, result: ContributionResult) -> ContributionResponse:
        return cls(
            employee=result.employee,
            employer=result.employer,
            total=result.total,
            applicable_wage=result.applicable_wage,
            employee_rate=result.employee_rate,
            employer_rate=result.employer_rate,
        )


class WithholdingResponse(BaseModel):
    """Tax withholding and its derivation."""

    model_config = ConfigDict(from_attributes=True)

    amount: Money
    method: str
    taxable_wage: Money
    estimated_annual_income: Money
    total_reliefs: Money
    chargeable_income: Money
    annual_tax: Money
    remaining_months: int
    reliefs: dict[str, Money] = Field(default_factory=dict)

    @classmethod
    def from_result(cls, result: WithholdingResult) -> WithholdingResponse:
        return cls.model_validate(result)


class StatutoryResponse(BaseModel):
    """All statutory amounts for one employee and period."""

    epf: ContributionResponse
    socso: ContributionResponse
    eis: ContributionResponse
    pcb: WithholdingResponse
    total_employee_deductions: Money
    total_employer_contributions: Money

    @classmethod
    def from_result(cls, result: StatutoryResult) -> StatutoryResponse:
        return cls(
            epf=ContributionResponse.from_result(result.epf),
            socso=ContributionResponse.from_result(result.socso),
            eis=ContributionResponse.from_result(result.eis),
            pcb=WithholdingResponse.from_result(result.pcb),
            total_employee_deductions=result.total_employee_deductions,
            total_employer_contributions=result.total_employer_contributions,
        )


# ============================================================================
# Payslip outputs
# ============================================================================


class PaySlipItemResponse(BaseModel):
    """One earning or deduction line."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    item_type: ItemType
    component_code: str
    component_name: str
    amount: Money
    calculation_method: CalculationMethod
    sort_order: int
    is_epf_applicable: bool = False
    is_socso_applicable: bool = False
    is_eis_applicable: bool = False
    is_pcb_applicable: bool = False


class YtdResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    gross: Money
    taxable: Money
    epf_employee: Money
    socso_eis: Money
    pcb: Money


class PaySlipCalculationResponse(BaseModel):
    """A calculated payslip (not yet persisted, or as recalculated)."""

    items: list[PaySlipItemResponse]
    base_salary: Money
    total_earnings: Money
    total_deductions: Money
    gross_salary: Money
    statutory: StatutoryResponse
    net_salary: Money
    ytd: YtdResponse
    fingerprint: str

    @classmethod
    def from_calculation(cls, calculation: PaySlipCalculation) -> PaySlipCalculationResponse:
        return cls(
            items=[PaySlipItemResponse.model_validate(item) for item in calculation.items],
            base_salary=calculation.base_salary,
            total_earnings=calculation.total_earnings,
            total_deductions=calculation.total_deductions,
            gross_salary=calculation.gross_salary,
            statutory=StatutoryResponse.from_result(calculation.statutory),
            net_salary=calculation.net_salary,
            ytd=YtdResponse.model_validate(calculation.ytd),
            fingerprint=calculation.fingerprint,
        )


class PaySlipResponse(BaseModel):
    """Persisted payslip."""

    model_config = ConfigDict(from_attributes=True)

    slip_id: UUID
    run_id: UUID
    employee_id: UUID
    slip_number: str
    status: str
    employee_code: str
    employee_name: str
    department: str | None = None
    position: str | None = None
    bank_name: str | None = None
    bank_account_number: str | None = None
    base_salary: Money
    total_earnings: Money
    total_deductions: Money
    gross_salary: Money
    epf_employee: Money
    epf_employer: Money
    socso_employee: Money
    socso_employer: Money
    eis_employee: Money
    eis_employer: Money
    pcb: Money
    pcb_taxable_wage: Money
    net_salary: Money
    ytd_gross: Money
    ytd_taxable: Money
    ytd_epf_employee: Money
    ytd_socso_eis: Money
    ytd_pcb: Money
    calculation_hash: str | None = None


# ============================================================================
# Run outputs
# ============================================================================


class RunTotalsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    gross: Money
    deductions: Money
    net: Money
    epf_employer: Money
    epf_employee: Money
    socso_employer: Money
    socso_employee: Money
    eis_employer: Money
    eis_employee: Money
    pcb: Money

    @classmethod
    def from_totals(cls, totals: RunTotals) -> RunTotalsResponse:
        return cls.model_validate(totals)


class RunCalculationResponse(BaseModel):
    """Outcome of calculating a payroll run."""

    run_id: UUID
    success: bool
    totals: RunTotalsResponse
    errors: list[str] = Field(default_factory=list)
    pay_slip_count: int = 0


class PayrollRunResponse(BaseModel):
    """Payroll run header."""

    model_config = ConfigDict(from_attributes=True)

    run_id: UUID
    owner_id: UUID
    run_number: str
    name: str
    period_year: int
    period_month: int
    period_start: date
    period_end: date
    pay_date: date | None = None
    status: str
    total_gross: Money
    total_deductions: Money
    total_net: Money
    total_epf_employer: Money
    total_epf_employee: Money
    total_socso_employer: Money
    total_socso_employee: Money
    total_eis_employer: Money
    total_eis_employee: Money
    total_pcb: Money
    employee_count: int
    journal_entry_id: UUID | None = None
    payment_journal_entry_id: UUID | None = None
    reversal_journal_entry_id: UUID | None = None
    approved_at: datetime | None = None
    finalized_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None


class RemittanceLineResponse(BaseModel):
    """Amount owed to one statutory agency."""

    model_config = ConfigDict(from_attributes=True)

    agency: str
    employer: Money
    employee: Money
    total: Money
    account_code: str
    due_date: date
