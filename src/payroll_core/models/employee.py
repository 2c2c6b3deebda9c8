"""Employee, salary and salary component models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from payroll_core.models.base import MONEY, RATE, Base, TimestampMixin


class Employee(Base, TimestampMixin):
    """Employee master record (payroll-relevant fields)."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    owner_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    employee_code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    ic_number: Mapped[str | None] = mapped_column(String, nullable=True)
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    position: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    # Statutory attributes
    nationality: Mapped[str] = mapped_column(String, nullable=False, default="malaysian")
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    marital_status: Mapped[str] = mapped_column(String, nullable=False, default="single")
    spouse_working: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    number_of_children: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    children_in_university: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    disabled_children: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Percentages (11.00 = 11%); override the rate-table rate when set
    epf_employee_rate: Mapped[Decimal | None] = mapped_column(RATE, nullable=True)
    epf_employer_rate: Mapped[Decimal | None] = mapped_column(RATE, nullable=True)

    # Payment
    bank_name: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_account_number: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("owner_id", "employee_code", name="employee_owner_code_unique"),
        CheckConstraint(
            "status IN ('active', 'on_leave', 'terminated')",
            name="employee_status_check",
        ),
        CheckConstraint(
            "nationality IN ('malaysian', 'permanent_resident', 'foreign')",
            name="employee_nationality_check",
        ),
    )


class EmployeeSalary(Base, TimestampMixin):
    """Basic salary effective from a date."""

    __tablename__ = "employee_salary"

    salary_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    basic_salary: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        CheckConstraint("basic_salary >= 0", name="employee_salary_non_negative"),
    )


class SalaryComponent(Base, TimestampMixin):
    """Owner-level earnings/deductions catalog entry."""

    __tablename__ = "salary_component"

    component_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    owner_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    component_type: Mapped[str] = mapped_column(String, nullable=False)
    calculation_method: Mapped[str] = mapped_column(String, nullable=False, default="fixed")
    default_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    default_percentage: Mapped[Decimal | None] = mapped_column(RATE, nullable=True)
    is_epf_applicable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_socso_applicable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_eis_applicable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_pcb_applicable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("owner_id", "code", name="salary_component_owner_code_unique"),
        CheckConstraint(
            "component_type IN ('earnings', 'deductions')",
            name="salary_component_type_check",
        ),
        CheckConstraint(
            "calculation_method IN ('fixed', 'percentage')",
            name="salary_component_method_check",
        ),
    )
