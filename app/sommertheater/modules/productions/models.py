from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.sommertheater.models import Base, User


class Show(Base):
    """A production (one summer season). Revealed shows appear in the public Chronik."""

    __tablename__ = "shows"
    __table_args__ = (
        Index("idx_shows_year", "year"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    slug: Mapped[str | None] = mapped_column(String(120), nullable=True, unique=True)  # e.g. "altrossthal-2024"
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    synopsis: Mapped[str | None] = mapped_column(Text, nullable=True)

    dates: Mapped[str | None] = mapped_column(JSON, nullable=True)  # free text, e.g. "12.-15. Juli"
    poster_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    revealed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class ProductionMembership(Base):
    __tablename__ = "production_memberships"
    __table_args__ = (
        UniqueConstraint("show_id", "user_id", name="uq_production_membership"),
        Index("idx_production_memberships_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    show_id: Mapped[int] = mapped_column(ForeignKey("shows.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    left_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    show: Mapped["Show"] = relationship("Show")
    user: Mapped["User"] = relationship("User")
