"""Statutory and payslip calculators."""

from payroll_core.calculators.line_builder import PaySlipItemBuilder
from payroll_core.calculators.payslip import PaySlipCalculator
from payroll_core.calculators.rate_table import ResolvedRate, StatutoryRateTable
from payroll_core.calculators.statutory import StatutoryCalculator
from payroll_core.calculators.withholding import CumulativeAverageWithholding, WithholdingStrategy

__all__ = [
    "CumulativeAverageWithholding",
    "PaySlipCalculator",
    "PaySlipItemBuilder",
    "ResolvedRate",
    "StatutoryCalculator",
    "StatutoryRateTable",
    "WithholdingStrategy",
]
