from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.sommertheater.models import Base, User


class FinanceBudget(Base):
    __tablename__ = "finance_budgets"
    __table_args__ = (
        CheckConstraint("planned_amount >= 0", name="ck_finance_budget_planned_nonneg"),
        Index("idx_finance_budgets_show", "show_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    show_id: Mapped[int] = mapped_column(ForeignKey("shows.id", ondelete="CASCADE"), nullable=False)
    category: Mapped[str] = mapped_column(String(120), nullable=False)
    planned_amount: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    show = relationship("Show")


class FinanceEntry(Base):
    __tablename__ = "finance_entries"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_finance_entry_amount_nonneg"),
        Index("idx_finance_entries_booking_date", "booking_date"),
        Index("idx_finance_entries_show", "show_id"),
        Index("idx_finance_entries_budget", "budget_id"),
        Index("idx_finance_entries_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)  # income|expense
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default="general")  # general|invoice|donation
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    category: Mapped[str | None] = mapped_column(String(120), nullable=True)

    booking_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    invoice_number: Mapped[str | None] = mapped_column(String(120), nullable=True)
    vendor: Mapped[str | None] = mapped_column(String(160), nullable=True)
    member_paid_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    donation_source: Mapped[str | None] = mapped_column(String(160), nullable=True)
    donor_contact: Mapped[str | None] = mapped_column(String(200), nullable=True)
    tags: Mapped[list | None] = mapped_column(JSON, nullable=True)

    show_id: Mapped[int | None] = mapped_column(ForeignKey("shows.id", ondelete="SET NULL"), nullable=True)
    budget_id: Mapped[int | None] = mapped_column(ForeignKey("finance_budgets.id", ondelete="SET NULL"), nullable=True)
    visibility_scope: Mapped[str] = mapped_column(String(16), nullable=False, default="finance")  # finance|board

    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    show = relationship("Show")
    budget: Mapped[FinanceBudget | None] = relationship("FinanceBudget")
    created_by: Mapped[User | None] = relationship("User", foreign_keys=[created_by_id])
    approved_by: Mapped[User | None] = relationship("User", foreign_keys=[approved_by_id])
    member_paid_by: Mapped[User | None] = relationship("User", foreign_keys=[member_paid_by_id])
    attachments: Mapped[list["FinanceAttachment"]] = relationship(
        "FinanceAttachment",
        cascade="all, delete-orphan",
        order_by="FinanceAttachment.id",
    )
    logs: Mapped[list["FinanceLog"]] = relationship(
        "FinanceLog",
        cascade="all, delete-orphan",
        order_by="FinanceLog.created_at",
    )


class FinanceAttachment(Base):
    __tablename__ = "finance_attachments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    entry_id: Mapped[int] = mapped_column(ForeignKey("finance_entries.id", ondelete="CASCADE"), nullable=False)
    filename: Mapped[str] = mapped_column(String(160), nullable=False)
    url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String(120), nullable=True)
    size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class FinanceLog(Base):
    """Status transition history of a finance entry."""

    __tablename__ = "finance_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    entry_id: Mapped[int] = mapped_column(ForeignKey("finance_entries.id", ondelete="CASCADE"), nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    to_status: Mapped[str] = mapped_column(String(16), nullable=False)
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    changed_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    changed_by: Mapped[User | None] = relationship("User")
