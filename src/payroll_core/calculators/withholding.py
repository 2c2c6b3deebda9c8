"""Monthly income-tax withholding (PCB) strategies."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Protocol

from payroll_core.calculators.rate_table import RateEntry, StatutoryRateTable
from payroll_core.calculators.types import (
    ContributionType,
    EmployeeStatutoryInfo,
    MaritalStatus,
    PayrollPeriod,
    WithholdingResult,
    YtdTotals,
)
from payroll_core.exceptions import ConfigurationError
from payroll_core.money import ZERO, round_money

logger = logging.getLogger(__name__)


class WithholdingStrategy(Protocol):
    """Computes the current period's tax withholding."""

    def calculate(
        self,
        table: StatutoryRateTable,
        employee: EmployeeStatutoryInfo,
        period: PayrollPeriod,
        taxable_wage: Decimal,
        ytd: YtdTotals,
        epf_employee: Decimal,
        socso_eis_employee: Decimal,
    ) -> WithholdingResult:
        ...


class CumulativeAverageWithholding:
    """Cumulative-average PCB.

    Residents: project annual income from YTD plus the current wage for the
    remaining months, subtract reliefs, tax the chargeable income on the
    progressive ``pcb`` schedule, then spread what has not yet been
    withheld over the remaining months. Irregular earnings self-correct
    because every month re-derives the annual figure.

    Non-residents: flat ``pcb_non_resident`` rate on the period's wage.
    """

    def calculate(
        self,
        table: StatutoryRateTable,
        employee: EmployeeStatutoryInfo,
        period: PayrollPeriod,
        taxable_wage: Decimal,
        ytd: YtdTotals,
        epf_employee: Decimal,
        socso_eis_employee: Decimal,
    ) -> WithholdingResult:
        as_of = period.as_of_date
        conditions = employee.conditions(as_of, taxable_wage)

        if not employee.is_resident:
            resolved = table.resolve(
                ContributionType.PCB_NON_RESIDENT, taxable_wage, as_of, conditions
            )
            annual = round_money(taxable_wage * 12)
            return WithholdingResult(
                amount=resolved.amount,
                method="non_resident_flat",
                taxable_wage=taxable_wage,
                estimated_annual_income=annual,
                chargeable_income=annual,
                annual_tax=round_money(resolved.amount * 12),
                remaining_months=period.remaining_months,
            )

        remaining = period.remaining_months
        schedule = table.reliefs(as_of)

        estimated_annual = ytd.taxable + taxable_wage * remaining

        personal = schedule.personal
        spouse = (
            schedule.spouse_no_income
            if employee.marital_status == MaritalStatus.MARRIED and not employee.spouse_working
            else ZERO
        )
        under_18 = max(
            0,
            employee.number_of_children
            - employee.children_in_university
            - employee.disabled_children,
        )
        children = (
            under_18 * schedule.child_under_18
            + employee.children_in_university * schedule.child_18_plus_studying
            + employee.disabled_children * schedule.disabled_child
        )
        epf_relief = min(ytd.epf_employee + epf_employee * remaining, schedule.epf_max)
        socso_eis_relief = min(
            ytd.socso_eis + socso_eis_employee * remaining, schedule.socso_eis_max
        )
        total_reliefs = personal + spouse + children + epf_relief + socso_eis_relief

        chargeable = max(estimated_annual - total_reliefs, ZERO)
        annual_tax = progressive_tax(
            table.bands(ContributionType.PCB, as_of, conditions), chargeable
        )
        outstanding = max(annual_tax - ytd.pcb, ZERO)
        monthly = round_money(outstanding / remaining)

        logger.debug(
            "PCB %s: annual_income=%s reliefs=%s chargeable=%s annual_tax=%s ytd_pcb=%s monthly=%s",
            period.label,
            estimated_annual,
            total_reliefs,
            chargeable,
            annual_tax,
            ytd.pcb,
            monthly,
        )

        return WithholdingResult(
            amount=monthly,
            method="cumulative_average",
            taxable_wage=taxable_wage,
            estimated_annual_income=round_money(estimated_annual),
            total_reliefs=round_money(total_reliefs),
            chargeable_income=round_money(chargeable),
            annual_tax=round_money(annual_tax),
            remaining_months=remaining,
            reliefs={
                "personal": round_money(personal),
                "spouse": round_money(spouse),
                "children": round_money(children),
                "epf": round_money(epf_relief),
                "socso_eis": round_money(socso_eis_relief),
            },
        )


def progressive_tax(bands: list[RateEntry], income: Decimal) -> Decimal:
    """Tax on income across contiguous rate-only bands.

    Each band taxes the slice between the previous band's upper bound and
    its own. Returns an unrounded amount.
    """
    if not bands:
        raise ConfigurationError("No progressive tax schedule in force")

    tax = Decimal("0")
    lower = Decimal("0")
    for band in bands:
        if income <= lower:
            break
        if band.rate is None:
            raise ConfigurationError(
                f"Progressive band starting at {band.wage_from} has no rate"
            )
        top = income if band.wage_to is None else min(income, band.wage_to)
        tax += (top - lower) * band.rate
        if band.wage_to is None:
            break
        lower = band.wage_to
    return tax
