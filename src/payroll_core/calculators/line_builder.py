"""Payslip item builder with deterministic ordering and hashing."""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal

from payroll_core.calculators.types import (
    CalculationMethod,
    ComponentDefinition,
    ItemType,
    PaySlipItemCandidate,
    StatutoryResult,
    StatutoryWages,
)
from payroll_core.money import ZERO, round_money


class PaySlipItemBuilder:
    """Builds payslip items.

    Sort order bands (stable, so presentation never depends on insert order):
    - 0: base salary
    - 1..99: earnings components
    - 100..199: deduction components
    - 200..203: statutory deductions (EPF, SOCSO, EIS, PCB)

    Amounts are always positive; item_type carries the sign.
    """

    BASE_SALARY_CODE = "BASIC"
    BASE_SORT_ORDER = 0
    EARNING_SORT_START = 1
    DEDUCTION_SORT_START = 100
    STATUTORY_SORT_START = 200

    # (code, name, attribute path on StatutoryResult)
    STATUTORY_ITEMS = (
        ("EPF_EE", "EPF (Employee)", "epf"),
        ("SOCSO_EE", "SOCSO (Employee)", "socso"),
        ("EIS_EE", "EIS (Employee)", "eis"),
        ("PCB", "PCB (Monthly Tax Deduction)", "pcb"),
    )

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (sen)."""
        return round_money(amount)

    @staticmethod
    def compute_item_hash(item: PaySlipItemCandidate) -> str:
        """Compute deterministic hash for one item."""
        canonical = item.to_canonical_dict()
        json_str = json.dumps(canonical, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

    @staticmethod
    def compute_fingerprint(items: list[PaySlipItemCandidate]) -> str:
        """Hash of the full ordered item list.

        Identical inputs produce identical fingerprints, which is how
        recalculation idempotence is checked.
        """
        canonical = [item.to_canonical_dict() for item in items]
        json_str = json.dumps(canonical, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()

    @staticmethod
    def create_base_salary_item(amount: Decimal) -> PaySlipItemCandidate:
        return PaySlipItemCandidate(
            item_type=ItemType.EARNING,
            component_code=PaySlipItemBuilder.BASE_SALARY_CODE,
            component_name="Basic Salary",
            amount=PaySlipItemBuilder.round_to_cents(abs(amount)),
            calculation_method=CalculationMethod.FIXED,
            sort_order=PaySlipItemBuilder.BASE_SORT_ORDER,
            is_epf_applicable=True,
            is_socso_applicable=True,
            is_eis_applicable=True,
            is_pcb_applicable=True,
        )

    @staticmethod
    def component_amount(component: ComponentDefinition, base_salary: Decimal) -> Decimal:
        """Amount a component contributes for the given base salary."""
        if component.calculation_method == CalculationMethod.PERCENTAGE:
            percentage = component.default_percentage or ZERO
            return round_money(base_salary * percentage / Decimal("100"))
        return round_money(component.default_amount or ZERO)

    @staticmethod
    def create_component_item(
        component: ComponentDefinition,
        base_salary: Decimal,
        sort_order: int,
    ) -> PaySlipItemCandidate | None:
        """Create an item for a component, or None when it computes to zero."""
        amount = PaySlipItemBuilder.component_amount(component, base_salary)
        if amount == 0:
            return None
        return PaySlipItemCandidate(
            item_type=component.item_type,
            component_code=component.code,
            component_name=component.name,
            amount=abs(amount),
            calculation_method=component.calculation_method,
            sort_order=sort_order,
            is_epf_applicable=component.is_epf_applicable,
            is_socso_applicable=component.is_socso_applicable,
            is_eis_applicable=component.is_eis_applicable,
            is_pcb_applicable=component.is_pcb_applicable,
            component_id=component.component_id,
        )

    @staticmethod
    def create_component_items(
        components: list[ComponentDefinition],
        base_salary: Decimal,
        start: int,
    ) -> list[PaySlipItemCandidate]:
        """Items for the active components, in catalog order."""
        ordered = sorted(
            (c for c in components if c.is_active),
            key=lambda c: (c.sort_order, c.code),
        )
        items: list[PaySlipItemCandidate] = []
        for offset, component in enumerate(ordered):
            item = PaySlipItemBuilder.create_component_item(
                component, base_salary, start + offset
            )
            if item is not None:
                items.append(item)
        return items

    @staticmethod
    def create_statutory_items(result: StatutoryResult) -> list[PaySlipItemCandidate]:
        """One deduction per non-zero employee statutory amount.

        Statutory items are terminal: every applies-to flag is False.
        """
        items: list[PaySlipItemCandidate] = []
        for offset, (code, name, attr) in enumerate(PaySlipItemBuilder.STATUTORY_ITEMS):
            part = getattr(result, attr)
            amount = part.amount if attr == "pcb" else part.employee
            if amount <= 0:
                continue
            items.append(
                PaySlipItemCandidate(
                    item_type=ItemType.DEDUCTION,
                    component_code=code,
                    component_name=name,
                    amount=PaySlipItemBuilder.round_to_cents(amount),
                    calculation_method=CalculationMethod.STATUTORY,
                    sort_order=PaySlipItemBuilder.STATUTORY_SORT_START + offset,
                )
            )
        return items

    @staticmethod
    def total_earnings(items: list[PaySlipItemCandidate]) -> Decimal:
        total = Decimal("0")
        for item in items:
            if item.item_type == ItemType.EARNING:
                total += item.amount
        return round_money(total)

    @staticmethod
    def total_deductions(
        items: list[PaySlipItemCandidate], include_statutory: bool = False
    ) -> Decimal:
        total = Decimal("0")
        for item in items:
            if item.item_type != ItemType.DEDUCTION:
                continue
            if item.is_statutory and not include_statutory:
                continue
            total += item.amount
        return round_money(total)

    @staticmethod
    def statutory_wages(items: list[PaySlipItemCandidate]) -> StatutoryWages:
        """Wage base per kind: applicable earnings minus applicable deductions."""
        bases = {"epf": Decimal("0"), "socso": Decimal("0"), "eis": Decimal("0"), "pcb": Decimal("0")}
        for item in items:
            if item.is_statutory:
                continue
            sign = 1 if item.item_type == ItemType.EARNING else -1
            for kind in bases:
                if getattr(item, f"is_{kind}_applicable"):
                    bases[kind] += sign * item.amount
        return StatutoryWages(**{kind: max(round_money(v), ZERO) for kind, v in bases.items()})

    @staticmethod
    def validate_items(items: list[PaySlipItemCandidate]) -> list[str]:
        """Check ordering and sign rules. Returns error messages."""
        errors: list[str] = []
        previous = -1
        for i, item in enumerate(items):
            if item.amount < 0:
                errors.append(f"Item {i} ({item.component_code}) has negative amount {item.amount}")
            if item.sort_order <= previous:
                errors.append(f"Item {i} ({item.component_code}) is out of order")
            if item.is_statutory and (
                item.is_epf_applicable
                or item.is_socso_applicable
                or item.is_eis_applicable
                or item.is_pcb_applicable
            ):
                errors.append(f"Statutory item {item.component_code} feeds a statutory base")
            previous = item.sort_order
        return errors
