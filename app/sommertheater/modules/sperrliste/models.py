from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.sommertheater.models import Base, User


class SperrlisteSettings(Base):
    """Singleton row (id "default") holding planning and holiday-feed settings."""

    __tablename__ = "sperrliste_settings"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default="default")
    freeze_days: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
    preferred_weekdays: Mapped[list] = mapped_column(JSON, nullable=False, default=lambda: [6, 0])
    exception_weekdays: Mapped[list] = mapped_column(JSON, nullable=False, default=lambda: [5])

    holiday_source_mode: Mapped[str] = mapped_column(String(16), nullable=False, default="default")
    holiday_source_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    holiday_source_status: Mapped[str] = mapped_column(String(16), nullable=False, default="unknown")
    holiday_source_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    holiday_source_checked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class BlockedDay(Base):
    __tablename__ = "blocked_days"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_blocked_days_user_date"),
        Index("idx_blocked_days_date", "date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(200), nullable=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default="BLOCKED")  # BLOCKED|PREFERRED
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    user: Mapped[User] = relationship("User")
