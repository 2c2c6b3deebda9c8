"""Tests for the PayrollCore facade and its boundary schemas."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select

from payroll_core import PayrollCore, Settings, load_rate_table
from payroll_core.calculators.rate_table import StatutoryRateTable
from payroll_core.config import DEFAULT_DATASET
from payroll_core.exceptions import InvalidTransitionError
from payroll_core.models import JournalEntry
from payroll_core.schemas import EmployeeStatutoryInput, YtdInput
from tests.conftest import create_employee


@pytest.fixture
def core(session, rate_table) -> PayrollCore:
    return PayrollCore(session, rate_table=rate_table)


async def journal_entry_count(session) -> int:
    result = await session.execute(select(func.count()).select_from(JournalEntry))
    return result.scalar_one()


def settings_for(dataset) -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        statutory_dataset=dataset,
        currency="MYR",
        debug=False,
    )


class TestCalculateStatutory:
    def test_money_serializes_as_two_decimal_strings(self, core):
        result = core.calculate_statutory("3000.00", {"date_of_birth": "1990-03-15"}, 2025, 6)
        data = result.model_dump(mode="json")

        assert data["epf"]["employee"] == "325.00"
        assert data["epf"]["employer"] == "390.00"
        assert data["socso"]["total"] == "66.40"
        assert data["eis"]["employee_rate"] == "0.0020"
        assert data["epf"]["employee_rate"] is None
        assert data["pcb"]["amount"] == "6.54"
        assert data["pcb"]["reliefs"]["epf"] == "2275.00"
        assert data["total_employee_deductions"] == "352.29"
        assert data["total_employer_contributions"] == "447.65"

    def test_ytd_mapping(self, core):
        result = core.calculate_statutory(
            Decimal("3000.00"),
            EmployeeStatutoryInput(date_of_birth=date(1990, 3, 15)),
            2025,
            6,
            ytd={
                "gross": "15000.00",
                "epf_employee": "1625.00",
                "socso_eis": "103.75",
                "pcb": "32.70",
            },
        )

        assert result.pcb.amount == Decimal("28.98")

    def test_ytd_taxable_defaults_to_gross(self):
        assert YtdInput(gross="15000.00").to_totals().taxable == Decimal("15000.00")
        assert YtdInput(gross="15000.00", taxable="10000.00").to_totals().taxable == Decimal(
            "10000.00"
        )

    def test_rate_override(self, core):
        result = core.calculate_statutory("3000.00", {"epf_employee_rate": "0.09"}, 2025, 6)

        assert result.model_dump(mode="json")["epf"]["employee"] == "270.00"

    def test_float_wage_rejected(self, core):
        with pytest.raises(TypeError):
            core.calculate_statutory(3000.0, {}, 2025, 6)

    def test_float_rate_rejected(self):
        with pytest.raises(ValidationError):
            EmployeeStatutoryInput(epf_employee_rate=0.11)

    def test_rate_out_of_range(self):
        with pytest.raises(ValidationError):
            EmployeeStatutoryInput(epf_employee_rate="11")

    def test_float_ytd_rejected(self):
        with pytest.raises(ValidationError):
            YtdInput(gross=15000.0)

    def test_unknown_nationality(self):
        with pytest.raises(ValidationError):
            EmployeeStatutoryInput(nationality="martian")


class TestRunLifecycle:
    async def test_full_cycle(self, core, session, owner_id, chart):
        await create_employee(session, owner_id, "E001")
        await create_employee(session, owner_id, "E002")

        run = await core.create_run(owner_id, 2025, 6, pay_date=date(2025, 6, 28))
        assert run.status == "draft"

        calculated = await core.calculate_payroll(run.run_id)
        data = calculated.model_dump(mode="json")
        assert data["success"] is True
        assert data["pay_slip_count"] == 2
        assert data["totals"]["net"] == "5295.42"
        assert data["totals"]["gross"] == "6000.00"

        slips = await core.list_pay_slips(run.run_id)
        assert [s.model_dump(mode="json")["net_salary"] for s in slips] == ["2647.71", "2647.71"]

        await core.approve(run.run_id)
        finalized = await core.finalize(run.run_id)
        assert finalized.status == "finalized"
        assert finalized.journal_entry_id is not None

        summary = await core.statutory_payment_summary(run.run_id)
        epf = summary[0].model_dump(mode="json")
        assert epf == {
            "agency": "EPF",
            "employer": "780.00",
            "employee": "650.00",
            "total": "1430.00",
            "account_code": "2410",
            "due_date": "2025-07-15",
        }

        paid = await core.mark_paid(run.run_id)
        assert paid.status == "paid"
        assert paid.payment_journal_entry_id is not None
        assert paid.model_dump(mode="json")["total_pcb"] == "13.08"

    async def test_recalculate_pay_slip_response(self, core, session, owner_id):
        await create_employee(session, owner_id, "E001")
        run = await core.create_run(owner_id, 2025, 6)
        await core.calculate_payroll(run.run_id)
        slip = (await core.list_pay_slips(run.run_id))[0]

        calculation = await core.recalculate_pay_slip(slip.slip_id)
        data = calculation.model_dump(mode="json")

        assert data["fingerprint"] == slip.calculation_hash
        assert data["items"][0]["item_type"] == "earning"
        assert data["items"][-1]["calculation_method"] == "statutory"
        assert data["net_salary"] == "2647.71"
        assert data["ytd"]["pcb"] == "6.54"

    async def test_cancel_and_reverse(self, core, session, owner_id, chart):
        await create_employee(session, owner_id, "E001")
        run = await core.create_run(owner_id, 2025, 6)
        await core.calculate_payroll(run.run_id)
        await core.approve(run.run_id)
        await core.finalize(run.run_id)

        cancelled = await core.cancel(run.run_id, "Posted twice", date(2025, 7, 1))

        assert cancelled.status == "cancelled"
        assert cancelled.reversal_journal_entry_id is not None
        assert await core.reverse_entry(cancelled.journal_entry_id) == cancelled.reversal_journal_entry_id

    async def test_accrual_requires_approved_run(self, core, session, owner_id, chart):
        await create_employee(session, owner_id, "E001")
        run = await core.create_run(owner_id, 2025, 6)
        await core.calculate_payroll(run.run_id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await core.create_accrual_entry(run.run_id)

        assert exc_info.value.code == "INVALID_TRANSITION"
        assert await journal_entry_count(session) == 0

    async def test_early_accrual_is_reused_by_finalize(self, core, session, owner_id, chart):
        await create_employee(session, owner_id, "E001")
        run = await core.create_run(owner_id, 2025, 6)
        await core.calculate_payroll(run.run_id)
        await core.approve(run.run_id)

        entry_id = await core.create_accrual_entry(run.run_id)
        finalized = await core.finalize(run.run_id)

        assert finalized.journal_entry_id == entry_id
        assert await journal_entry_count(session) == 1

    async def test_payment_requires_finalized_run(self, core, session, owner_id, chart):
        await create_employee(session, owner_id, "E001")
        run = await core.create_run(owner_id, 2025, 6)
        await core.calculate_payroll(run.run_id)
        await core.approve(run.run_id)

        with pytest.raises(InvalidTransitionError):
            await core.create_payment_entry(run.run_id, date(2025, 6, 30))

        assert await journal_entry_count(session) == 0

    async def test_delete_draft(self, core, owner_id):
        run = await core.create_run(owner_id, 2025, 6)

        await core.delete(run.run_id)

        assert await core.runs.runs.get(run.run_id) is None


class TestLoadRateTable:
    def test_packaged_dataset_is_shared(self):
        assert load_rate_table(settings_for(DEFAULT_DATASET)) is StatutoryRateTable.default()

    def test_custom_dataset(self, tmp_path):
        dataset = tmp_path / "rates.json"
        dataset.write_text(DEFAULT_DATASET.read_text(encoding="utf-8"), encoding="utf-8")

        table = load_rate_table(settings_for(dataset))

        assert table is not StatutoryRateTable.default()
        assert table.version == StatutoryRateTable.default().version
