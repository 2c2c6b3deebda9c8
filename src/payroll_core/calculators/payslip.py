"""Payslip calculator: base salary, components and statutory deductions."""

from __future__ import annotations

from typing import Sequence

from payroll_core.calculators.line_builder import PaySlipItemBuilder
from payroll_core.calculators.statutory import StatutoryCalculator
from payroll_core.calculators.types import (
    ComponentDefinition,
    EmployeeSnapshot,
    PaySlipCalculation,
    PayrollPeriod,
    YtdTotals,
)
from payroll_core.money import round_money


class PaySlipCalculator:
    """Calculates one employee's payslip for a period.

    Pure: YTD figures are fetched by the caller and passed in, and the
    result carries the updated YTD for persistence.
    """

    def __init__(self, statutory: StatutoryCalculator | None = None):
        self.statutory = statutory or StatutoryCalculator()

    def calculate(
        self,
        employee: EmployeeSnapshot,
        earnings: Sequence[ComponentDefinition],
        deductions: Sequence[ComponentDefinition],
        period: PayrollPeriod,
        ytd: YtdTotals | None = None,
    ) -> PaySlipCalculation:
        """Build items and totals.

        gross_salary = total_earnings - total_deductions. The base salary is
        one of the earnings items, so it is counted exactly once.
        net_salary = gross_salary - employee statutory deductions.
        """
        ytd = ytd or YtdTotals()
        base = round_money(employee.base_salary)
        builder = PaySlipItemBuilder

        items = [builder.create_base_salary_item(base)]
        items += builder.create_component_items(
            list(earnings), base, builder.EARNING_SORT_START
        )
        items += builder.create_component_items(
            list(deductions), base, builder.DEDUCTION_SORT_START
        )

        total_earnings = builder.total_earnings(items)
        total_deductions = builder.total_deductions(items)
        gross = round_money(total_earnings - total_deductions)

        statutory = self.statutory.calculate(
            gross,
            employee.statutory,
            period,
            ytd,
            wages=builder.statutory_wages(items),
        )
        items += builder.create_statutory_items(statutory)

        net = round_money(gross - statutory.total_employee_deductions)

        updated_ytd = YtdTotals(
            gross=round_money(ytd.gross + gross),
            taxable=round_money(ytd.taxable + statutory.pcb.taxable_wage),
            epf_employee=round_money(ytd.epf_employee + statutory.epf.employee),
            socso_eis=round_money(ytd.socso_eis + statutory.socso.employee + statutory.eis.employee),
            pcb=round_money(ytd.pcb + statutory.pcb.amount),
        )

        return PaySlipCalculation(
            items=items,
            base_salary=base,
            total_earnings=total_earnings,
            total_deductions=total_deductions,
            gross_salary=gross,
            statutory=statutory,
            net_salary=net,
            ytd=updated_ytd,
            fingerprint=builder.compute_fingerprint(items),
        )
