"""Tests for the payroll run service."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from payroll_core.exceptions import (
    DuplicatePeriodError,
    InvalidTransitionError,
    MissingAccountError,
    PayrollRunNotFoundError,
    UnbalancedJournalError,
)
from payroll_core.models import Account, EmployeeSalary, JournalEntry
from payroll_core.repositories.sql import SqlLedger, SqlPaySlipRepository
from payroll_core.services import journal_service
from tests.conftest import create_chart, create_component, create_employee


async def staff(session, owner_id):
    """E001 and E003 earn 3,000.00; E002 has no salary record."""
    return [
        await create_employee(session, owner_id, "E001"),
        await create_employee(session, owner_id, "E002", salary=None),
        await create_employee(session, owner_id, "E003"),
    ]


async def calculated_run(service, owner_id, month=6):
    run = await service.create_run(owner_id, 2025, month, pay_date=date(2025, month, 28))
    await service.calculate(run.run_id)
    return run


async def journal_entry_count(session) -> int:
    result = await session.execute(select(func.count()).select_from(JournalEntry))
    return result.scalar_one()


class TestCreateRun:
    async def test_creates_draft_run(self, service, owner_id):
        run = await service.create_run(owner_id, 2025, 6)

        assert run.run_number == "PR-2025-01"
        assert run.name == "June 2025 Payroll"
        assert run.status == "draft"
        assert run.period_start == date(2025, 6, 1)
        assert run.period_end == date(2025, 6, 30)
        assert run.total_net == Decimal("0")

    async def test_run_numbers_are_sequential_per_year(self, service, owner_id):
        june = await service.create_run(owner_id, 2025, 6)
        july = await service.create_run(owner_id, 2025, 7)
        january = await service.create_run(owner_id, 2026, 1)

        assert june.run_number == "PR-2025-01"
        assert july.run_number == "PR-2025-02"
        assert january.run_number == "PR-2026-01"

    async def test_duplicate_period_rejected(self, service, owner_id):
        existing = await service.create_run(owner_id, 2025, 6)

        with pytest.raises(DuplicatePeriodError) as exc_info:
            await service.create_run(owner_id, 2025, 6)

        assert exc_info.value.run_id == existing.run_id
        assert exc_info.value.code == "DUPLICATE_PERIOD"

    async def test_cancelled_run_is_replaced(self, service, owner_id):
        first = await service.create_run(owner_id, 2025, 6)
        await service.cancel(first.run_id, "Wrong pay date")

        second = await service.create_run(owner_id, 2025, 6)

        assert second.run_number == "PR-2025-02"
        assert await service.runs.get(first.run_id) is None

    async def test_unknown_run(self, service):
        with pytest.raises(PayrollRunNotFoundError):
            await service.get_run(uuid4())


class TestCalculate:
    async def test_skips_employee_without_salary(self, service, session, owner_id):
        await staff(session, owner_id)
        run = await service.create_run(owner_id, 2025, 6)

        result = await service.calculate(run.run_id)

        assert result.success is True
        assert result.pay_slip_count == 2
        assert result.errors == ["No salary record for employee E002"]
        assert run.status == "pending_review"
        assert run.calculated_at is not None
        assert run.employee_count == 2

    async def test_run_totals(self, service, session, owner_id):
        await staff(session, owner_id)
        run = await service.create_run(owner_id, 2025, 6)

        totals = (await service.calculate(run.run_id)).totals

        assert totals.gross == Decimal("6000.00")
        assert totals.net == Decimal("5295.42")
        assert totals.deductions == Decimal("704.58")
        assert totals.epf_employer == Decimal("780.00")
        assert totals.socso_employer == Decimal("103.30")
        assert totals.pcb == Decimal("13.08")
        assert run.total_net == Decimal("5295.42")

    async def test_payslips_numbered_in_employee_order(self, service, session, owner_id):
        await staff(session, owner_id)
        run = await calculated_run(service, owner_id)

        slips = await service.list_pay_slips(run.run_id)

        assert [(s.slip_number, s.employee_code) for s in slips] == [
            ("PS-PR-2025-01-001", "E001"),
            ("PS-PR-2025-01-002", "E003"),
        ]
        assert slips[0].net_salary == Decimal("2647.71")
        assert slips[0].total_deductions == Decimal("352.29")

    async def test_payslip_items_persisted(self, service, session, owner_id):
        await create_employee(session, owner_id, "E001")
        await create_component(session, owner_id, "HOUSING", "earnings", percentage="10")
        run = await calculated_run(service, owner_id)

        slip = (await service.list_pay_slips(run.run_id))[0]
        items = await SqlPaySlipRepository(session).list_items(slip.slip_id)

        assert [i.component_code for i in items] == [
            "BASIC", "HOUSING", "EPF_EE", "SOCSO_EE", "EIS_EE", "PCB"
        ]
        assert items[1].amount == Decimal("300.00")
        assert slip.gross_salary == Decimal("3300.00")

    async def test_inactive_employees_skipped(self, service, session, owner_id):
        await create_employee(session, owner_id, "E001")
        await create_employee(session, owner_id, "E009", status="terminated")
        run = await service.create_run(owner_id, 2025, 6)

        result = await service.calculate(run.run_id)

        assert result.pay_slip_count == 1
        assert result.errors == []

    async def test_no_employees_returns_to_draft(self, service, owner_id):
        run = await service.create_run(owner_id, 2025, 6)

        result = await service.calculate(run.run_id)

        assert result.success is False
        assert result.pay_slip_count == 0
        assert result.errors == ["No active employees with a current salary record"]
        assert run.status == "draft"

    async def test_every_employee_failing_returns_to_draft(self, service, session, owner_id):
        await create_employee(session, owner_id, "E001", salary=None)
        run = await service.create_run(owner_id, 2025, 6)

        result = await service.calculate(run.run_id)

        assert result.success is False
        assert result.errors == ["No salary record for employee E001"]
        assert run.status == "draft"

    async def test_salary_not_yet_effective(self, service, session, owner_id):
        await create_employee(session, owner_id, "E001", effective_date=date(2025, 7, 1))
        run = await service.create_run(owner_id, 2025, 6)

        result = await service.calculate(run.run_id)

        assert result.errors == ["No salary record for employee E001"]

    async def test_unexpected_error_restores_draft(self, service, session, owner_id, monkeypatch):
        await staff(session, owner_id)
        run = await service.create_run(owner_id, 2025, 6)

        async def broken(owner_id):
            raise RuntimeError("connection lost")

        monkeypatch.setattr(service.employees, "find_active_employees", broken)

        with pytest.raises(RuntimeError):
            await service.calculate(run.run_id)

        assert run.status == "draft"

    async def test_recalculating_replaces_payslips(self, service, session, owner_id):
        await staff(session, owner_id)
        run = await calculated_run(service, owner_id)
        first = {s.employee_code: s.calculation_hash for s in await service.list_pay_slips(run.run_id)}

        result = await service.calculate(run.run_id)
        slips = await service.list_pay_slips(run.run_id)

        assert result.pay_slip_count == 2
        assert len(slips) == 2
        assert {s.employee_code: s.calculation_hash for s in slips} == first
        assert run.status == "pending_review"

    async def test_cannot_calculate_approved_run(self, service, session, owner_id):
        await staff(session, owner_id)
        run = await calculated_run(service, owner_id)
        await service.approve(run.run_id)

        with pytest.raises(InvalidTransitionError):
            await service.calculate(run.run_id)

        assert run.status == "approved"


class TestYearToDate:
    async def test_finalized_prior_months_feed_withholding(self, service, session, owner_id, chart):
        await create_employee(session, owner_id, "E001")
        may = await calculated_run(service, owner_id, month=5)
        await service.approve(may.run_id)
        await service.finalize(may.run_id)

        june = await calculated_run(service, owner_id, month=6)
        slip = (await service.list_pay_slips(june.run_id))[0]

        assert slip.pcb == Decimal("9.04")
        assert slip.ytd_gross == Decimal("6000.00")
        assert slip.ytd_epf_employee == Decimal("650.00")
        assert slip.ytd_pcb == Decimal("18.08")

    async def test_allowance_outside_pcb_base_stays_out_of_ytd_taxable(
        self, service, session, owner_id, chart
    ):
        await create_employee(session, owner_id, "E001", salary="10000.00")
        await create_component(
            session, owner_id, "TRAVEL", "earnings", amount="5000.00", is_pcb_applicable=False
        )
        january = await calculated_run(service, owner_id, month=1)
        await service.approve(january.run_id)
        await service.finalize(january.run_id)

        february = await calculated_run(service, owner_id, month=2)
        jan_slip = (await service.list_pay_slips(january.run_id))[0]
        feb_slip = (await service.list_pay_slips(february.run_id))[0]

        assert jan_slip.pcb_taxable_wage == Decimal("10000.00")
        assert jan_slip.pcb == Decimal("921.88")
        assert feb_slip.pcb == Decimal("921.87")
        assert feb_slip.ytd_gross == Decimal("30000.00")
        assert feb_slip.ytd_taxable == Decimal("20000.00")

    async def test_unfinalized_prior_months_ignored(self, service, session, owner_id):
        await create_employee(session, owner_id, "E001")
        await calculated_run(service, owner_id, month=5)

        june = await calculated_run(service, owner_id, month=6)
        slip = (await service.list_pay_slips(june.run_id))[0]

        assert slip.ytd_gross == Decimal("3000.00")
        assert slip.pcb == Decimal("6.54")


class TestRecalculatePaySlip:
    async def test_unchanged_inputs_give_same_fingerprint(self, service, session, owner_id):
        await staff(session, owner_id)
        run = await calculated_run(service, owner_id)
        slip = (await service.list_pay_slips(run.run_id))[0]
        before = slip.calculation_hash

        calculation = await service.recalculate_pay_slip(slip.slip_id)

        assert calculation.fingerprint == before
        assert slip.calculation_hash == before
        assert run.total_net == Decimal("5295.42")

    async def test_salary_change_updates_run_totals(self, service, session, owner_id):
        employees = await staff(session, owner_id)
        run = await calculated_run(service, owner_id)
        slip = (await service.list_pay_slips(run.run_id))[0]

        session.add(
            EmployeeSalary(
                employee_id=employees[0].employee_id,
                basic_salary=Decimal("3500.00"),
                effective_date=date(2025, 6, 1),
            )
        )
        await session.flush()

        calculation = await service.recalculate_pay_slip(slip.slip_id)

        assert calculation.gross_salary == Decimal("3500.00")
        assert slip.base_salary == Decimal("3500.00")
        assert run.total_gross == Decimal("6500.00")
        assert len(await SqlPaySlipRepository(session).list_items(slip.slip_id)) == 5

    async def test_unknown_slip(self, service):
        assert await service.recalculate_pay_slip(uuid4()) is None

    async def test_rejected_after_approval(self, service, session, owner_id):
        await staff(session, owner_id)
        run = await calculated_run(service, owner_id)
        slip = (await service.list_pay_slips(run.run_id))[0]
        await service.approve(run.run_id)

        with pytest.raises(InvalidTransitionError):
            await service.recalculate_pay_slip(slip.slip_id)


class TestFinalize:
    async def test_posts_balanced_accrual(self, service, session, owner_id, chart):
        await staff(session, owner_id)
        run = await calculated_run(service, owner_id)
        approver = uuid4()
        await service.approve(run.run_id, approver)

        await service.finalize(run.run_id)

        assert run.status == "finalized"
        assert run.approved_by == approver
        assert run.finalized_at is not None

        ledger = SqlLedger(session)
        entry = await ledger.get_entry(run.journal_entry_id)
        assert entry.status == "posted"
        assert entry.reference == "PR-2025-01"
        assert entry.description == "Payroll Accrual - June 2025 Payroll"
        assert entry.entry_date == date(2025, 6, 28)
        assert entry.total_debit == entry.total_credit == Decimal("6895.30")

        lines = await ledger.get_lines(entry.entry_id)
        assert len(lines) == 9
        assert sum(line.debit for line in lines) == sum(line.credit for line in lines)

    async def test_payslips_approved(self, service, session, owner_id, chart):
        await staff(session, owner_id)
        run = await calculated_run(service, owner_id)
        await service.approve(run.run_id)

        await service.finalize(run.run_id)

        slips = await service.list_pay_slips(run.run_id)
        assert {s.status for s in slips} == {"approved"}

    async def test_missing_account_leaves_run_approved(self, service, session, owner_id):
        await create_chart(session, owner_id, skip=("2440",))
        await staff(session, owner_id)
        run = await calculated_run(service, owner_id)
        await service.approve(run.run_id)

        with pytest.raises(MissingAccountError) as exc_info:
            await service.finalize(run.run_id)

        assert exc_info.value.account_code == "2440"
        assert exc_info.value.purpose == "PCB payable"
        assert run.status == "approved"
        assert run.journal_entry_id is None
        assert await journal_entry_count(session) == 0

    async def test_unbalanced_accrual_is_rejected(self, service, session, owner_id, chart, monkeypatch):
        await staff(session, owner_id)
        run = await calculated_run(service, owner_id)
        await service.approve(run.run_id)

        build = journal_service.build_accrual_lines

        def without_employer_epf(*args, **kwargs):
            return [line for line in build(*args, **kwargs) if line.purpose != "EPF employer expense"]

        monkeypatch.setattr(journal_service, "build_accrual_lines", without_employer_epf)

        with pytest.raises(UnbalancedJournalError) as exc_info:
            await service.finalize(run.run_id)

        assert exc_info.value.debits == Decimal("6115.30")
        assert exc_info.value.credits == Decimal("6895.30")
        assert exc_info.value.run_id == run.run_id
        assert (exc_info.value.year, exc_info.value.month) == (2025, 6)
        assert "PR-2025-01 for 2025-06" in str(exc_info.value)
        assert run.status == "approved"
        assert run.journal_entry_id is None
        assert await journal_entry_count(session) == 0

    async def test_requires_approval(self, service, session, owner_id, chart):
        await staff(session, owner_id)
        run = await calculated_run(service, owner_id)

        with pytest.raises(InvalidTransitionError):
            await service.finalize(run.run_id)

        assert run.status == "pending_review"
        assert await journal_entry_count(session) == 0


class TestMarkPaid:
    async def finalized(self, service, session, owner_id):
        await staff(session, owner_id)
        run = await service.create_run(owner_id, 2025, 6)
        await service.calculate(run.run_id)
        await service.approve(run.run_id)
        await service.finalize(run.run_id)
        return run

    async def test_posts_payment(self, service, session, owner_id, chart):
        run = await self.finalized(service, session, owner_id)

        await service.mark_paid(run.run_id, date(2025, 6, 30))

        assert run.status == "paid"
        assert run.pay_date == date(2025, 6, 30)
        assert run.paid_at is not None

        ledger = SqlLedger(session)
        entry = await ledger.get_entry(run.payment_journal_entry_id)
        assert entry.reference == "PR-2025-01-PAY"
        assert entry.status == "posted"
        assert entry.entry_date == date(2025, 6, 30)

        lines = await ledger.get_lines(entry.entry_id)
        assert [(line.account_id, line.debit, line.credit) for line in lines] == [
            (chart["2210"].account_id, Decimal("5295.42"), Decimal("0.00")),
            (chart["1020"].account_id, Decimal("0.00"), Decimal("5295.42")),
        ]

        slips = await service.list_pay_slips(run.run_id)
        assert {s.status for s in slips} == {"paid"}

    async def test_other_bank_account(self, service, session, owner_id, chart):
        payroll_bank = Account(owner_id=owner_id, code="1030", name="Payroll Bank", account_type="asset")
        session.add(payroll_bank)
        await session.flush()
        run = await self.finalized(service, session, owner_id)

        await service.mark_paid(run.run_id, date(2025, 6, 30), bank_account_code="1030")

        lines = await SqlLedger(session).get_lines(run.payment_journal_entry_id)
        assert lines[1].account_id == payroll_bank.account_id

    async def test_paid_run_cannot_be_cancelled(self, service, session, owner_id, chart):
        run = await self.finalized(service, session, owner_id)
        await service.mark_paid(run.run_id)

        with pytest.raises(InvalidTransitionError):
            await service.cancel(run.run_id)

        assert run.status == "paid"


class TestCancel:
    async def test_cancel_reverses_accrual(self, service, session, owner_id, chart):
        await staff(session, owner_id)
        run = await calculated_run(service, owner_id)
        await service.approve(run.run_id)
        await service.finalize(run.run_id)

        await service.cancel(run.run_id, "Duplicate run", reversal_date=date(2025, 7, 2))

        assert run.status == "cancelled"
        assert run.notes == "Duplicate run"

        ledger = SqlLedger(session)
        original = await ledger.get_entry(run.journal_entry_id)
        reversal = await ledger.get_entry(run.reversal_journal_entry_id)
        assert original.status == "reversed"
        assert original.reversed_by_id == reversal.entry_id
        assert reversal.reversal_of_id == original.entry_id
        assert reversal.reference == "PR-2025-01-REV"
        assert reversal.entry_date == date(2025, 7, 2)
        assert reversal.status == "posted"

        slips = await service.list_pay_slips(run.run_id)
        assert {s.status for s in slips} == {"cancelled"}

    async def test_cancel_without_journal(self, service, session, owner_id):
        await staff(session, owner_id)
        run = await calculated_run(service, owner_id)

        await service.cancel(run.run_id)

        assert run.status == "cancelled"
        assert run.reversal_journal_entry_id is None

    async def test_cancelled_is_terminal(self, service, owner_id):
        run = await service.create_run(owner_id, 2025, 6)
        await service.cancel(run.run_id)

        with pytest.raises(InvalidTransitionError):
            await service.cancel(run.run_id)


class TestDelete:
    async def test_delete_draft(self, service, owner_id):
        run = await service.create_run(owner_id, 2025, 6)

        await service.delete(run.run_id)

        with pytest.raises(PayrollRunNotFoundError):
            await service.get_run(run.run_id)

    async def test_delete_rejected_after_calculation(self, service, session, owner_id):
        await staff(session, owner_id)
        run = await calculated_run(service, owner_id)

        with pytest.raises(InvalidTransitionError):
            await service.delete(run.run_id)

        assert run.status == "pending_review"
        assert len(await service.list_pay_slips(run.run_id)) == 2


class TestLifecycleGuards:
    async def test_approve_requires_review(self, service, owner_id):
        run = await service.create_run(owner_id, 2025, 6)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await service.approve(run.run_id)

        assert exc_info.value.from_status == "draft"
        assert run.status == "draft"
        assert run.approved_at is None

    async def test_mark_paid_requires_finalized(self, service, session, owner_id, chart):
        await staff(session, owner_id)
        run = await calculated_run(service, owner_id)
        await service.approve(run.run_id)

        with pytest.raises(InvalidTransitionError):
            await service.mark_paid(run.run_id)

        assert run.status == "approved"
        assert await journal_entry_count(session) == 0


class TestStatutoryPaymentSummary:
    async def test_amounts_and_due_date(self, service, session, owner_id):
        await staff(session, owner_id)
        run = await calculated_run(service, owner_id)

        summary = await service.statutory_payment_summary(run.run_id)

        by_agency = {line.agency: line for line in summary}
        assert list(by_agency) == ["EPF", "SOCSO", "EIS", "PCB"]
        assert by_agency["EPF"].total == Decimal("1430.00")
        assert by_agency["SOCSO"].employee == Decimal("29.50")
        assert by_agency["PCB"].employer == Decimal("0.00")
        assert by_agency["PCB"].account_code == "2440"
        assert {line.due_date for line in summary} == {date(2025, 7, 15)}
