"""Payroll run, payslip and payslip item models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_core.models.base import MONEY, Base, TimestampMixin

ZERO = Decimal("0.00")


class PayrollRun(Base, TimestampMixin):
    """Monthly payroll run for one owner."""

    __tablename__ = "payroll_run"

    run_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    owner_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    run_number: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    pay_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")

    # Totals
    total_gross: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    total_net: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    total_epf_employer: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    total_epf_employee: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    total_socso_employer: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    total_socso_employee: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    total_eis_employer: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    total_eis_employee: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    total_pcb: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Ledger links
    journal_entry_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("journal_entry.entry_id"), nullable=True
    )
    payment_journal_entry_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("journal_entry.entry_id"), nullable=True
    )
    reversal_journal_entry_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("journal_entry.entry_id"), nullable=True
    )

    # Lifecycle
    calculated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("owner_id", "run_number", name="payroll_run_number_unique"),
        CheckConstraint("period_month BETWEEN 1 AND 12", name="payroll_run_month_check"),
        CheckConstraint(
            "status IN ('draft', 'calculating', 'pending_review', 'approved', "
            "'finalized', 'paid', 'cancelled')",
            name="payroll_run_status_check",
        ),
        # One live run per period; cancelled runs do not count
        Index(
            "payroll_run_live_period_unique",
            "owner_id",
            "period_year",
            "period_month",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
    )


class PaySlip(Base, TimestampMixin):
    """One employee's payslip within a run, with the snapshot used to compute it."""

    __tablename__ = "pay_slip"

    slip_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.run_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id"),
        nullable=False,
        index=True,
    )
    slip_number: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")

    # Snapshot
    employee_code: Mapped[str] = mapped_column(String, nullable=False)
    employee_name: Mapped[str] = mapped_column(String, nullable=False)
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    position: Mapped[str | None] = mapped_column(String, nullable=True)
    ic_number: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_account_number: Mapped[str | None] = mapped_column(String, nullable=True)
    base_salary: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    # Calculations
    total_earnings: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    gross_salary: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    epf_employee: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    epf_employer: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    socso_employee: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    socso_employer: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    eis_employee: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    eis_employer: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    pcb: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    pcb_taxable_wage: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    net_salary: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)

    # Year-to-date including this slip
    ytd_gross: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    ytd_taxable: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    ytd_epf_employee: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    ytd_socso_eis: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)
    ytd_pcb: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=ZERO)

    calculation_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint("run_id", "employee_id", name="pay_slip_run_employee_unique"),
        CheckConstraint(
            "status IN ('draft', 'approved', 'paid', 'cancelled')",
            name="pay_slip_status_check",
        ),
    )

    items: Mapped[list[PaySlipItem]] = relationship(
        order_by="PaySlipItem.sort_order",
        lazy="raise",
        passive_deletes=True,
    )


class PaySlipItem(Base):
    """Ordered earning/deduction line on a payslip."""

    __tablename__ = "pay_slip_item"

    item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    slip_id: Mapped[UUID] = mapped_column(
        ForeignKey("pay_slip.slip_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    component_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("salary_component.component_id"), nullable=True
    )
    item_type: Mapped[str] = mapped_column(String, nullable=False)
    component_code: Mapped[str] = mapped_column(String, nullable=False)
    component_name: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    calculation_method: Mapped[str] = mapped_column(String, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False)
    is_epf_applicable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_socso_applicable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_eis_applicable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_pcb_applicable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("slip_id", "sort_order", name="pay_slip_item_order_unique"),
        CheckConstraint("item_type IN ('earning', 'deduction')", name="pay_slip_item_type_check"),
        CheckConstraint("amount >= 0", name="pay_slip_item_amount_non_negative"),
    )
