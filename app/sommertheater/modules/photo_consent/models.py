from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.sommertheater.models import Base, User


class PhotoConsent(Base):
    """
    One consent record per member. The signed form (required for minors) lives
    in Storage under document_key.
    """

    __tablename__ = "photo_consents"
    __table_args__ = (
        Index("idx_photo_consents_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending|approved|rejected
    consent_given: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    approved_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    document_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    document_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    document_mime: Mapped[str | None] = mapped_column(String(128), nullable=True)
    document_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    document_uploaded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    user: Mapped[User] = relationship("User", foreign_keys=[user_id])
    approved_by: Mapped[User | None] = relationship("User", foreign_keys=[approved_by_user_id])
