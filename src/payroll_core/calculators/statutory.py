"""Statutory contribution calculator (EPF, SOCSO, EIS, PCB)."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from payroll_core.calculators.rate_table import StatutoryRateTable
from payroll_core.calculators.types import (
    ContributionResult,
    ContributionType,
    EmployeeStatutoryInfo,
    PayrollPeriod,
    StatutoryResult,
    StatutoryWages,
    YtdTotals,
)
from payroll_core.calculators.withholding import (
    CumulativeAverageWithholding,
    WithholdingStrategy,
)
from payroll_core.money import round_money, to_decimal


class StatutoryCalculator:
    """Resolves the four statutory kinds for one employee and period.

    EPF, SOCSO and EIS are period-local. PCB is cumulative over the year and
    receives the current EPF/SOCSO/EIS employee shares for relief estimation.
    Each kind uses its own wage base so a component excluded from, say,
    EPF does not reduce SOCSO.
    """

    def __init__(
        self,
        rate_table: StatutoryRateTable | None = None,
        withholding: WithholdingStrategy | None = None,
    ):
        self.rate_table = rate_table or StatutoryRateTable.default()
        self.withholding = withholding or CumulativeAverageWithholding()

    def calculate(
        self,
        gross_wage: Decimal | str,
        employee: EmployeeStatutoryInfo,
        period: PayrollPeriod,
        ytd: YtdTotals | None = None,
        wages: StatutoryWages | None = None,
    ) -> StatutoryResult:
        """Calculate all statutory amounts.

        Args:
            gross_wage: Gross salary for the period
            employee: Statutory attributes of the employee
            period: Payroll period (drives as-of date and remaining months)
            ytd: Prior year-to-date figures, zero when omitted
            wages: Per-kind wage bases; every base is gross_wage when omitted

        Raises:
            ConfigurationError: A schedule has no entry for the employee
        """
        gross = round_money(to_decimal(gross_wage))
        ytd = ytd or YtdTotals()
        wages = wages or StatutoryWages.uniform(gross)
        as_of = period.as_of_date

        epf = self._contribution(
            ContributionType.EPF_EMPLOYER,
            ContributionType.EPF_EMPLOYEE,
            wages.epf,
            as_of,
            employee,
            employer_override=employee.epf_employer_rate,
            employee_override=employee.epf_employee_rate,
        )
        socso = self._contribution(
            ContributionType.SOCSO_EMPLOYER,
            ContributionType.SOCSO_EMPLOYEE,
            wages.socso,
            as_of,
            employee,
        )
        eis = self._contribution(
            ContributionType.EIS_EMPLOYER,
            ContributionType.EIS_EMPLOYEE,
            wages.eis,
            as_of,
            employee,
        )
        pcb = self.withholding.calculate(
            self.rate_table,
            employee,
            period,
            wages.pcb,
            ytd,
            epf_employee=epf.employee,
            socso_eis_employee=socso.employee + eis.employee,
        )

        return StatutoryResult(epf=epf, socso=socso, eis=eis, pcb=pcb)

    def _contribution(
        self,
        employer_type: ContributionType,
        employee_type: ContributionType,
        wage: Decimal,
        as_of: date,
        employee: EmployeeStatutoryInfo,
        employer_override: Decimal | None = None,
        employee_override: Decimal | None = None,
    ) -> ContributionResult:
        conditions = employee.conditions(as_of, wage)
        employer = self.rate_table.resolve(
            employer_type, wage, as_of, conditions, rate_override=employer_override
        )
        employee_share = self.rate_table.resolve(
            employee_type, wage, as_of, conditions, rate_override=employee_override
        )
        return ContributionResult(
            employee=employee_share.amount,
            employer=employer.amount,
            applicable_wage=employee_share.wage,
            employee_rate=employee_share.applied_rate,
            employer_rate=employer.applied_rate,
            employee_band=employee_share,
            employer_band=employer,
        )
