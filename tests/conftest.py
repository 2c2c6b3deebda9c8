"""Pytest fixtures for payroll core tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payroll_core.calculators.rate_table import StatutoryRateTable
from payroll_core.calculators.types import EmployeeStatutoryInfo, PayrollPeriod
from payroll_core.config import PayrollAccounts
from payroll_core.models import (
    Account,
    Base,
    Employee,
    EmployeeSalary,
    SalaryComponent,
)
from payroll_core.services.payroll_run_service import PayrollRunService

# In-memory SQLite, one database per test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Account code -> (name, type) for the default payroll chart
PAYROLL_CHART = {
    "6110": ("Salaries & Wages", "expense"),
    "6120": ("EPF Contribution (Employer)", "expense"),
    "6130": ("SOCSO Contribution (Employer)", "expense"),
    "6140": ("EIS Contribution (Employer)", "expense"),
    "2210": ("Accrued Salaries", "liability"),
    "2410": ("EPF Payable", "liability"),
    "2420": ("SOCSO Payable", "liability"),
    "2430": ("EIS Payable", "liability"),
    "2440": ("PCB Payable", "liability"),
    "1020": ("Cash at Bank", "asset"),
}


@pytest_asyncio.fixture
async def engine():
    """Create test database engine with all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="session")
def rate_table() -> StatutoryRateTable:
    """The packaged Malaysian dataset."""
    return StatutoryRateTable.default()


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def june_2025() -> PayrollPeriod:
    return PayrollPeriod(2025, 6)


@pytest.fixture
def malaysian() -> EmployeeStatutoryInfo:
    """Malaysian, under 60, single, no children."""
    return EmployeeStatutoryInfo(date_of_birth=date(1990, 3, 15))


@pytest.fixture
def accounts() -> PayrollAccounts:
    return PayrollAccounts()


@pytest.fixture
def service(session: AsyncSession, rate_table: StatutoryRateTable) -> PayrollRunService:
    return PayrollRunService(session, rate_table=rate_table)


async def create_chart(
    session: AsyncSession,
    owner_id: UUID,
    skip: tuple[str, ...] = (),
) -> dict[str, Account]:
    """Create the payroll chart of accounts, optionally leaving codes out."""
    accounts = {
        code: Account(owner_id=owner_id, code=code, name=name, account_type=account_type)
        for code, (name, account_type) in PAYROLL_CHART.items()
        if code not in skip
    }
    session.add_all(accounts.values())
    await session.flush()
    return accounts


async def create_employee(
    session: AsyncSession,
    owner_id: UUID,
    code: str,
    salary: str | None = "3000.00",
    *,
    effective_date: date = date(2025, 1, 1),
    **attrs,
) -> Employee:
    """Create an active employee with an optional salary record."""
    attrs.setdefault("name", f"Employee {code}")
    attrs.setdefault("date_of_birth", date(1990, 3, 15))
    employee = Employee(owner_id=owner_id, employee_code=code, **attrs)
    session.add(employee)
    await session.flush()

    if salary is not None:
        session.add(
            EmployeeSalary(
                employee_id=employee.employee_id,
                basic_salary=Decimal(salary),
                effective_date=effective_date,
            )
        )
        await session.flush()
    return employee


async def create_component(
    session: AsyncSession,
    owner_id: UUID,
    code: str,
    component_type: str,
    amount: str | None = None,
    percentage: str | None = None,
    **flags,
) -> SalaryComponent:
    component = SalaryComponent(
        owner_id=owner_id,
        code=code,
        name=flags.pop("name", code.title()),
        component_type=component_type,
        calculation_method="percentage" if percentage is not None else "fixed",
        default_amount=Decimal(amount) if amount is not None else None,
        default_percentage=Decimal(percentage) if percentage is not None else None,
        **flags,
    )
    session.add(component)
    await session.flush()
    return component


@pytest_asyncio.fixture
async def chart(session: AsyncSession, owner_id: UUID) -> dict[str, Account]:
    return await create_chart(session, owner_id)
