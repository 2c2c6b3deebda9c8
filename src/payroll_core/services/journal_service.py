"""Payroll journal poster.

Accrual, posted when a run is finalized:

    DR salaries & wages              gross
    DR EPF / SOCSO / EIS expense     employer shares
        CR accrued salaries          net
        CR EPF / SOCSO / EIS payable employer + employee shares
        CR PCB payable               withholding

Payment, posted when a run is marked paid:

    DR accrued salaries              net
        CR cash at bank              net

Because every payslip satisfies net = gross - employee statutory, the
accrual balances to the cent. Any imbalance is a data error and is raised,
never adjusted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from payroll_core.calculators.types import PayrollPeriod, RunTotals
from payroll_core.config import PayrollAccounts
from payroll_core.exceptions import MissingAccountError, UnbalancedJournalError
from payroll_core.money import ZERO, round_money
from payroll_core.repositories.protocols import Ledger, LedgerLine

if TYPE_CHECKING:
    from payroll_core.models import PayrollRun

logger = logging.getLogger(__name__)

SOURCE_TYPE = "payroll"

# Statutory contributions are remitted by this day of the following month
REMITTANCE_DUE_DAY = 15


@dataclass(frozen=True)
class JournalLineSpec:
    """A journal line addressed by account code, before account lookup."""

    account_code: str
    debit: Decimal
    credit: Decimal
    description: str
    purpose: str


@dataclass(frozen=True)
class RemittanceLine:
    """Amount owed to one statutory agency for a run."""

    agency: str
    employer: Decimal
    employee: Decimal
    total: Decimal
    account_code: str
    due_date: date


def _debit(code: str, amount: Decimal, description: str, purpose: str) -> JournalLineSpec:
    return JournalLineSpec(code, round_money(amount), ZERO, description, purpose)


def _credit(code: str, amount: Decimal, description: str, purpose: str) -> JournalLineSpec:
    return JournalLineSpec(code, ZERO, round_money(amount), description, purpose)


def build_accrual_lines(
    totals: RunTotals,
    accounts: PayrollAccounts,
    period_label: str,
) -> list[JournalLineSpec]:
    """Accrual lines for run totals. Zero amounts produce no line."""
    candidates = [
        _debit(accounts.salaries_wages, totals.gross,
               f"Salaries & Wages - {period_label}", "salaries and wages"),
        _debit(accounts.epf_employer, totals.epf_employer,
               f"EPF Employer Contribution - {period_label}", "EPF employer expense"),
        _debit(accounts.socso_employer, totals.socso_employer,
               f"SOCSO Employer Contribution - {period_label}", "SOCSO employer expense"),
        _debit(accounts.eis_employer, totals.eis_employer,
               f"EIS Employer Contribution - {period_label}", "EIS employer expense"),
        _credit(accounts.accrued_salaries, totals.net,
                f"Net Salaries Payable - {period_label}", "accrued salaries"),
        _credit(accounts.epf_payable, totals.epf_employer + totals.epf_employee,
                f"EPF Payable (ER + EE) - {period_label}", "EPF payable"),
        _credit(accounts.socso_payable, totals.socso_employer + totals.socso_employee,
                f"SOCSO Payable (ER + EE) - {period_label}", "SOCSO payable"),
        _credit(accounts.eis_payable, totals.eis_employer + totals.eis_employee,
                f"EIS Payable (ER + EE) - {period_label}", "EIS payable"),
        _credit(accounts.pcb_payable, totals.pcb,
                f"PCB Payable - {period_label}", "PCB payable"),
    ]
    return [line for line in candidates if line.debit > 0 or line.credit > 0]


def line_totals(lines: list[JournalLineSpec]) -> tuple[Decimal, Decimal]:
    """Return (total debits, total credits)."""
    debits = round_money(sum((line.debit for line in lines), Decimal("0")))
    credits = round_money(sum((line.credit for line in lines), Decimal("0")))
    return debits, credits


def remittance_due_date(year: int, month: int) -> date:
    """The 15th of the month after the payroll period."""
    if month == 12:
        return date(year + 1, 1, REMITTANCE_DUE_DAY)
    return date(year, month + 1, REMITTANCE_DUE_DAY)


class JournalService:
    """Builds, balances and posts payroll journal entries.

    All writes go through the ledger inside the caller's unit of work, so the
    entry, its lines, the run linkage and the posted status commit together.
    """

    def __init__(self, ledger: Ledger, accounts: PayrollAccounts | None = None):
        self.ledger = ledger
        self.accounts = accounts or PayrollAccounts()

    async def post_accrual(self, run: PayrollRun) -> UUID | None:
        """Create and post the accrual entry for a run and link it.

        Returns None when the run has nothing to accrue. A run that already
        links an accrual entry gets that entry back; nothing new is posted.

        Raises:
            UnbalancedJournalError: Debits differ from credits; nothing is written
            MissingAccountError: An account code is not in the chart of accounts
        """
        if run.journal_entry_id is not None:
            logger.info(
                "Payroll run %s already has accrual entry %s", run.run_id, run.journal_entry_id
            )
            return run.journal_entry_id

        label = PayrollPeriod(run.period_year, run.period_month).label
        lines = build_accrual_lines(RunTotals.from_run(run), self.accounts, label)
        if not lines:
            logger.warning("Payroll run %s has no amounts to accrue", run.run_id)
            return None

        debits, credits = line_totals(lines)
        if debits != credits:
            logger.error(
                "Accrual for payroll run %s does not balance: debits=%s credits=%s",
                run.run_id,
                debits,
                credits,
            )
            raise UnbalancedJournalError(
                debits,
                credits,
                run.run_number,
                run.run_id,
                year=run.period_year,
                month=run.period_month,
            )

        ledger_lines = await self._resolve(lines, run.owner_id)
        entry_id = await self.ledger.create_journal_entry(
            owner_id=run.owner_id,
            entry_date=run.pay_date or date.today(),
            description=f"Payroll Accrual - {run.name or label}",
            reference=run.run_number,
            source_type=SOURCE_TYPE,
            source_id=run.run_id,
            lines=ledger_lines,
        )
        run.journal_entry_id = entry_id
        await self.ledger.post(entry_id)

        logger.info(
            "Posted payroll accrual entry %s (%s) for run %s",
            entry_id,
            run.run_number,
            run.run_id,
        )
        return entry_id

    async def post_payment(
        self,
        run: PayrollRun,
        payment_date: date,
        bank_account_code: str | None = None,
    ) -> UUID | None:
        """Create and post the salary payment entry.

        Returns None (and writes nothing) when net pay is not positive, and
        the linked entry when the run already has a payment entry.
        """
        if run.payment_journal_entry_id is not None:
            return run.payment_journal_entry_id

        net = round_money(Decimal(run.total_net))
        if net <= 0:
            logger.warning("No net salary to pay for payroll run %s", run.run_id)
            return None

        label = PayrollPeriod(run.period_year, run.period_month).label
        description = f"Salary Payment - {label}"
        lines = [
            _debit(self.accounts.accrued_salaries, net, description, "accrued salaries"),
            _credit(bank_account_code or self.accounts.cash_at_bank, net, description, "cash at bank"),
        ]
        ledger_lines = await self._resolve(lines, run.owner_id)

        reference = f"{run.run_number}-PAY"
        entry_id = await self.ledger.create_journal_entry(
            owner_id=run.owner_id,
            entry_date=payment_date,
            description=f"Salary Payment - {run.name or label}",
            reference=reference,
            source_type=SOURCE_TYPE,
            source_id=run.run_id,
            lines=ledger_lines,
        )
        run.payment_journal_entry_id = entry_id
        await self.ledger.post(entry_id)

        logger.info("Posted payroll payment entry %s (%s)", entry_id, reference)
        return entry_id

    async def reverse(self, entry_id: UUID, reversal_date: date | None = None) -> UUID | None:
        """Reverse a posted entry. Returns the reversal entry id, or None."""
        reversal_id = await self.ledger.reverse(entry_id, reversal_date or date.today())
        if reversal_id is not None:
            logger.info("Reversed payroll journal entry %s with %s", entry_id, reversal_id)
        return reversal_id

    def statutory_payment_summary(self, run: PayrollRun) -> list[RemittanceLine]:
        """Amounts owed to EPF, SOCSO, EIS and the tax authority for a run."""
        totals = RunTotals.from_run(run)
        due = remittance_due_date(run.period_year, run.period_month)
        rows = [
            ("EPF", totals.epf_employer, totals.epf_employee, self.accounts.epf_payable),
            ("SOCSO", totals.socso_employer, totals.socso_employee, self.accounts.socso_payable),
            ("EIS", totals.eis_employer, totals.eis_employee, self.accounts.eis_payable),
            ("PCB", ZERO, totals.pcb, self.accounts.pcb_payable),
        ]
        return [
            RemittanceLine(
                agency=agency,
                employer=round_money(employer),
                employee=round_money(employee),
                total=round_money(employer + employee),
                account_code=code,
                due_date=due,
            )
            for agency, employer, employee, code in rows
        ]

    async def _resolve(self, lines: list[JournalLineSpec], owner_id: UUID) -> list[LedgerLine]:
        """Map account codes to ledger accounts, failing on the first missing code."""
        resolved: dict[str, UUID] = {}
        ledger_lines: list[LedgerLine] = []
        for line in lines:
            if line.account_code not in resolved:
                account = await self.ledger.find_account_by_code(line.account_code, owner_id)
                if account is None:
                    raise MissingAccountError(line.account_code, line.purpose)
                resolved[line.account_code] = account.account_id
            ledger_lines.append(
                LedgerLine(
                    account_id=resolved[line.account_code],
                    debit=line.debit,
                    credit=line.credit,
                    description=line.description,
                )
            )
        return ledger_lines

