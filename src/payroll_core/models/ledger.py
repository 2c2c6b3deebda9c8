"""General ledger models: chart of accounts and journal entries."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_core.models.base import MONEY, Base, TimestampMixin


class Account(Base, TimestampMixin):
    """Chart-of-accounts entry."""

    __tablename__ = "ledger_account"

    account_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    owner_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    account_type: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_id", "code", name="ledger_account_owner_code_unique"),
        CheckConstraint(
            "account_type IN ('asset', 'liability', 'equity', 'revenue', 'expense')",
            name="ledger_account_type_check",
        ),
    )


class JournalEntry(Base, TimestampMixin):
    """Double-entry journal header. Lines must balance before it is stored."""

    __tablename__ = "journal_entry"

    entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    owner_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    reference: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str] = mapped_column(String, nullable=False)
    source_type: Mapped[str | None] = mapped_column(String, nullable=True)
    source_id: Mapped[UUID | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    total_debit: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    total_credit: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("journal_entry.entry_id"), nullable=True
    )
    reversed_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("journal_entry.entry_id"), nullable=True
    )

    __table_args__ = (
        CheckConstraint("total_debit = total_credit", name="journal_entry_balanced"),
        CheckConstraint(
            "status IN ('draft', 'posted', 'reversed')",
            name="journal_entry_status_check",
        ),
    )

    lines: Mapped[list[JournalLine]] = relationship(
        order_by="JournalLine.line_number",
        lazy="raise",
        passive_deletes=True,
    )


class JournalLine(Base):
    """Single debit or credit line."""

    __tablename__ = "journal_line"

    line_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    entry_id: Mapped[UUID] = mapped_column(
        ForeignKey("journal_entry.entry_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    account_id: Mapped[UUID] = mapped_column(
        ForeignKey("ledger_account.account_id"), nullable=False
    )
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    debit: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0.00"))
    credit: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0.00"))

    __table_args__ = (
        CheckConstraint(
            "(debit = 0 AND credit > 0) OR (credit = 0 AND debit > 0)",
            name="journal_line_debit_credit_check",
        ),
    )
