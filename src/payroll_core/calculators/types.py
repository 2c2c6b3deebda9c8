"""Type definitions for the statutory and payslip calculation pipeline."""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable
from uuid import UUID

from payroll_core.money import ZERO, round_money

if TYPE_CHECKING:
    from payroll_core.calculators.rate_table import ResolvedRate


SALARY_CATEGORY_THRESHOLD = Decimal("5000")
SENIOR_AGE = 60


class ContributionType(str, Enum):
    """Rate-table contribution types."""

    EPF_EMPLOYER = "epf_employer"
    EPF_EMPLOYEE = "epf_employee"
    SOCSO_EMPLOYER = "socso_employer"
    SOCSO_EMPLOYEE = "socso_employee"
    EIS_EMPLOYER = "eis_employer"
    EIS_EMPLOYEE = "eis_employee"
    PCB = "pcb"
    PCB_NON_RESIDENT = "pcb_non_resident"


class Nationality(str, Enum):
    MALAYSIAN = "malaysian"
    PERMANENT_RESIDENT = "permanent_resident"
    FOREIGN = "foreign"


class AgeCategory(str, Enum):
    UNDER_60 = "under_60"
    SIXTY_AND_ABOVE = "60_and_above"


class SalaryCategory(str, Enum):
    AT_OR_BELOW_5000 = "5000_and_below"
    ABOVE_5000 = "above_5000"


class MaritalStatus(str, Enum):
    SINGLE = "single"
    MARRIED = "married"
    DIVORCED = "divorced"
    WIDOWED = "widowed"


class ItemType(str, Enum):
    """Payslip item types."""

    EARNING = "earning"
    DEDUCTION = "deduction"


class CalculationMethod(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"
    STATUTORY = "statutory"


@dataclass(frozen=True)
class PayrollPeriod:
    """A monthly payroll period."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be between 1 and 12, got {self.month}")

    @property
    def start_date(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end_date(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    @property
    def as_of_date(self) -> date:
        """Date used to select effective rate-table entries and age category."""
        return self.start_date

    @property
    def remaining_months(self) -> int:
        """Months left in the year including this one."""
        return 12 - self.month + 1

    @property
    def label(self) -> str:
        return f"{calendar.month_name[self.month]} {self.year}"


@dataclass(frozen=True)
class EmployeeStatutoryInfo:
    """Employee attributes that drive statutory resolution.

    EPF overrides are rates (0.11), not percentages.
    """

    nationality: Nationality = Nationality.MALAYSIAN
    date_of_birth: date | None = None
    marital_status: MaritalStatus = MaritalStatus.SINGLE
    spouse_working: bool = False
    number_of_children: int = 0
    children_in_university: int = 0
    disabled_children: int = 0
    epf_employee_rate: Decimal | None = None
    epf_employer_rate: Decimal | None = None

    def age_on(self, as_of: date) -> int | None:
        if self.date_of_birth is None:
            return None
        dob = self.date_of_birth
        return as_of.year - dob.year - ((as_of.month, as_of.day) < (dob.month, dob.day))

    def age_category(self, as_of: date) -> AgeCategory:
        age = self.age_on(as_of)
        if age is not None and age >= SENIOR_AGE:
            return AgeCategory.SIXTY_AND_ABOVE
        return AgeCategory.UNDER_60

    @property
    def is_resident(self) -> bool:
        return self.nationality != Nationality.FOREIGN

    def conditions(self, as_of: date, wage: Decimal) -> dict[str, str]:
        """Condition values matched against rate-table entry conditions."""
        salary_category = (
            SalaryCategory.ABOVE_5000
            if wage > SALARY_CATEGORY_THRESHOLD
            else SalaryCategory.AT_OR_BELOW_5000
        )
        return {
            "age_category": self.age_category(as_of).value,
            "nationality": Nationality(self.nationality).value,
            "salary_category": salary_category.value,
        }


@dataclass(frozen=True)
class YtdTotals:
    """Year-to-date figures from finalized payslips.

    ``taxable`` is PCB-applicable income only; ``gross`` includes
    components excluded from the PCB base.
    """

    gross: Decimal = ZERO
    taxable: Decimal = ZERO
    epf_employee: Decimal = ZERO
    socso_eis: Decimal = ZERO
    pcb: Decimal = ZERO


@dataclass(frozen=True)
class StatutoryWages:
    """Wage base per contribution kind after applicability flags."""

    epf: Decimal
    socso: Decimal
    eis: Decimal
    pcb: Decimal

    @classmethod
    def uniform(cls, wage: Decimal) -> StatutoryWages:
        return cls(epf=wage, socso=wage, eis=wage, pcb=wage)


@dataclass(frozen=True)
class ContributionResult:
    """Employer and employee shares of one contribution kind."""

    employee: Decimal
    employer: Decimal
    applicable_wage: Decimal
    employee_rate: Decimal | None = None
    employer_rate: Decimal | None = None
    employee_band: ResolvedRate | None = None
    employer_band: ResolvedRate | None = None

    @property
    def total(self) -> Decimal:
        return round_money(self.employee + self.employer)


@dataclass(frozen=True)
class WithholdingResult:
    """Monthly income-tax withholding and how it was derived."""

    amount: Decimal
    method: str
    taxable_wage: Decimal
    estimated_annual_income: Decimal = ZERO
    total_reliefs: Decimal = ZERO
    chargeable_income: Decimal = ZERO
    annual_tax: Decimal = ZERO
    remaining_months: int = 0
    reliefs: dict[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class StatutoryResult:
    """All statutory amounts for one employee and period."""

    epf: ContributionResult
    socso: ContributionResult
    eis: ContributionResult
    pcb: WithholdingResult

    @property
    def total_employee_deductions(self) -> Decimal:
        return round_money(
            self.epf.employee + self.socso.employee + self.eis.employee + self.pcb.amount
        )

    @property
    def total_employer_contributions(self) -> Decimal:
        return round_money(self.epf.employer + self.socso.employer + self.eis.employer)


@dataclass(frozen=True)
class ComponentDefinition:
    """An earnings or deduction component from the owner's catalog."""

    code: str
    name: str
    item_type: ItemType
    calculation_method: CalculationMethod
    default_amount: Decimal | None = None
    default_percentage: Decimal | None = None
    is_epf_applicable: bool = True
    is_socso_applicable: bool = True
    is_eis_applicable: bool = True
    is_pcb_applicable: bool = True
    is_active: bool = True
    sort_order: int = 0
    component_id: UUID | None = None


@dataclass(frozen=True)
class EmployeeSnapshot:
    """Employee data frozen onto the payslip at calculation time."""

    employee_code: str
    name: str
    base_salary: Decimal
    statutory: EmployeeStatutoryInfo
    employee_id: UUID | None = None
    department: str | None = None
    position: str | None = None
    ic_number: str | None = None
    bank_name: str | None = None
    bank_account_number: str | None = None


@dataclass
class PaySlipItemCandidate:
    """A payslip line before persistence."""

    item_type: ItemType
    component_code: str
    component_name: str
    amount: Decimal
    calculation_method: CalculationMethod
    sort_order: int
    is_epf_applicable: bool = False
    is_socso_applicable: bool = False
    is_eis_applicable: bool = False
    is_pcb_applicable: bool = False
    component_id: UUID | None = None

    @property
    def is_statutory(self) -> bool:
        return self.calculation_method == CalculationMethod.STATUTORY

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for hashing (deterministic ordering)."""
        return {
            "item_type": self.item_type.value,
            "component_code": self.component_code,
            "component_name": self.component_name,
            "amount": str(self.amount),
            "calculation_method": self.calculation_method.value,
            "sort_order": self.sort_order,
            "applies_to": {
                "epf": self.is_epf_applicable,
                "socso": self.is_socso_applicable,
                "eis": self.is_eis_applicable,
                "pcb": self.is_pcb_applicable,
            },
        }


@dataclass
class PaySlipCalculation:
    """Result of calculating one employee's payslip."""

    items: list[PaySlipItemCandidate]
    base_salary: Decimal
    total_earnings: Decimal
    total_deductions: Decimal
    gross_salary: Decimal
    statutory: StatutoryResult
    net_salary: Decimal
    ytd: YtdTotals
    fingerprint: str

    @property
    def total_statutory_deductions(self) -> Decimal:
        return self.statutory.total_employee_deductions

    @property
    def total_deductions_with_statutory(self) -> Decimal:
        return round_money(self.total_deductions + self.total_statutory_deductions)


@dataclass(frozen=True)
class RunTotals:
    """Aggregated amounts for a payroll run."""

    gross: Decimal = ZERO
    deductions: Decimal = ZERO
    net: Decimal = ZERO
    epf_employer: Decimal = ZERO
    epf_employee: Decimal = ZERO
    socso_employer: Decimal = ZERO
    socso_employee: Decimal = ZERO
    eis_employer: Decimal = ZERO
    eis_employee: Decimal = ZERO
    pcb: Decimal = ZERO

    @classmethod
    def from_slips(cls, slips: Iterable[Any]) -> RunTotals:
        """Sum payslip-like objects (ORM rows or calculations)."""
        sums = {name: Decimal("0") for name in _SLIP_FIELDS}
        for slip in slips:
            for name, attr in _SLIP_FIELDS.items():
                sums[name] += getattr(slip, attr)
        deductions = sums["epf_employee"] + sums["socso_employee"] + sums["eis_employee"] + sums["pcb"]
        return cls(
            gross=round_money(sums["gross"]),
            deductions=round_money(deductions),
            net=round_money(sums["net"]),
            epf_employer=round_money(sums["epf_employer"]),
            epf_employee=round_money(sums["epf_employee"]),
            socso_employer=round_money(sums["socso_employer"]),
            socso_employee=round_money(sums["socso_employee"]),
            eis_employer=round_money(sums["eis_employer"]),
            eis_employee=round_money(sums["eis_employee"]),
            pcb=round_money(sums["pcb"]),
        )

    @classmethod
    def from_run(cls, run: Any) -> RunTotals:
        """Read totals stored on a payroll run row."""
        return cls(
            gross=run.total_gross,
            deductions=run.total_deductions,
            net=run.total_net,
            epf_employer=run.total_epf_employer,
            epf_employee=run.total_epf_employee,
            socso_employer=run.total_socso_employer,
            socso_employee=run.total_socso_employee,
            eis_employer=run.total_eis_employer,
            eis_employee=run.total_eis_employee,
            pcb=run.total_pcb,
        )

    @property
    def total_employer_contributions(self) -> Decimal:
        return round_money(self.epf_employer + self.socso_employer + self.eis_employer)


# RunTotals field -> payslip attribute
_SLIP_FIELDS = {
    "gross": "gross_salary",
    "net": "net_salary",
    "epf_employer": "epf_employer",
    "epf_employee": "epf_employee",
    "socso_employer": "socso_employer",
    "socso_employee": "socso_employee",
    "eis_employer": "eis_employer",
    "eis_employee": "eis_employee",
    "pcb": "pcb",
}
