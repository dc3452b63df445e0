from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.sommertheater.models import Base, User


class MemberInvite(Base):
    """
    Shareable onboarding link. Only the sha256 of the token is stored; the raw
    token is shown once when the invite is created.
    """

    __tablename__ = "member_invites"
    __table_args__ = (
        Index("idx_member_invites_show", "show_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    label: Mapped[str | None] = mapped_column(String(120), nullable=True)
    note: Mapped[str | None] = mapped_column(String(400), nullable=True)

    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    max_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)  # None = unlimited
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    roles: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    show_id: Mapped[int] = mapped_column(ForeignKey("shows.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    show = relationship("Show")
    created_by: Mapped[User | None] = relationship("User", foreign_keys=[created_by_user_id])
    redemptions: Mapped[list["MemberInviteRedemption"]] = relationship(
        "MemberInviteRedemption",
        back_populates="invite",
        cascade="all, delete-orphan",
        order_by="MemberInviteRedemption.created_at.desc()",
    )


class MemberInviteRedemption(Base):
    """One visit of an invite link; completed once the onboarding form was submitted."""

    __tablename__ = "member_invite_redemptions"
    __table_args__ = (
        Index("idx_member_invite_redemptions_invite", "invite_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invite_id: Mapped[int] = mapped_column(ForeignKey("member_invites.id", ondelete="CASCADE"), nullable=False)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)  # submitted form, password removed

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    invite: Mapped[MemberInvite] = relationship("MemberInvite", back_populates="redemptions")


class MemberOnboardingProfile(Base):
    __tablename__ = "member_onboarding_profiles"
    __table_args__ = (
        Index("idx_member_onboarding_profiles_show", "show_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    invite_id: Mapped[int | None] = mapped_column(ForeignKey("member_invites.id", ondelete="SET NULL"), nullable=True)
    redemption_id: Mapped[int | None] = mapped_column(
        ForeignKey("member_invite_redemptions.id", ondelete="SET NULL"), nullable=True, unique=True
    )
    show_id: Mapped[int | None] = mapped_column(ForeignKey("shows.id", ondelete="SET NULL"), nullable=True)

    focus: Mapped[str] = mapped_column(String(16), nullable=False)  # acting|tech|both
    background: Mapped[str | None] = mapped_column(String(200), nullable=True)
    background_class: Mapped[str | None] = mapped_column(String(120), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    gender: Mapped[str | None] = mapped_column(String(120), nullable=True)  # display label
    member_since_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    dietary_preference: Mapped[str | None] = mapped_column(String(120), nullable=True)
    dietary_preference_strictness: Mapped[str | None] = mapped_column(String(120), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    user: Mapped[User] = relationship("User")


class MemberRolePreference(Base):
    __tablename__ = "member_role_preferences"
    __table_args__ = (
        UniqueConstraint("user_id", "code", name="uq_member_role_preference"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    domain: Mapped[str] = mapped_column(String(16), nullable=False)  # acting|crew
    weight: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class Interest(Base):
    __tablename__ = "interests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class UserInterest(Base):
    __tablename__ = "user_interests"
    __table_args__ = (
        UniqueConstraint("user_id", "interest_id", name="uq_user_interest"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    interest_id: Mapped[int] = mapped_column(ForeignKey("interests.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    interest: Mapped[Interest] = relationship("Interest")
