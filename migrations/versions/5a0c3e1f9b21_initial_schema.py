"""initial schema: accounts, productions, onboarding, finance, consents, measurements, dietary

Revision ID: 5a0c3e1f9b21
Revises:
Create Date: 2026-03-02 18:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5a0c3e1f9b21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _user_fk(name: str = "created_by_user_id") -> sa.Column:
    return sa.Column(name, sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # --- accounts / rbac / audit ---
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(120), nullable=True),
        sa.Column("last_name", sa.String(120), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("deactivated_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sort_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "permissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(128), nullable=False, unique=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    )
    op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("permission_id", sa.Integer(), sa.ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    )
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("actor_user_email", sa.String(320), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
    )
    op.create_index("idx_audit_events_created_at", "audit_events", ["created_at"])
    op.create_index("idx_audit_events_action", "audit_events", ["action"])

    # --- productions ---
    op.create_table(
        "shows",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("slug", sa.String(120), nullable=True, unique=True),
        sa.Column("title", sa.String(200), nullable=True),
        sa.Column("synopsis", sa.Text(), nullable=True),
        sa.Column("dates", sa.JSON(), nullable=True),
        sa.Column("poster_url", sa.String(1024), nullable=True),
        sa.Column("revealed_at", sa.DateTime(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        _user_fk(),
    )
    op.create_index("idx_shows_year", "shows", ["year"])
    op.create_table(
        "production_memberships",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("show_id", sa.Integer(), sa.ForeignKey("shows.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("joined_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("left_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("show_id", "user_id", name="uq_production_membership"),
    )
    op.create_index("idx_production_memberships_user", "production_memberships", ["user_id"])

    # --- onboarding ---
    op.create_table(
        "member_invites",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("label", sa.String(120), nullable=True),
        sa.Column("note", sa.String(400), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("roles", sa.JSON(), nullable=False),
        sa.Column("is_disabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("show_id", sa.Integer(), sa.ForeignKey("shows.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        _user_fk(),
    )
    op.create_index("idx_member_invites_show", "member_invites", ["show_id"])
    op.create_table(
        "member_invite_redemptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invite_id", sa.Integer(), sa.ForeignKey("member_invites.id", ondelete="CASCADE"), nullable=False),
        sa.Column("session_token", sa.String(128), nullable=False, unique=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("idx_member_invite_redemptions_invite", "member_invite_redemptions", ["invite_id"])
    op.create_table(
        "member_onboarding_profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("invite_id", sa.Integer(), sa.ForeignKey("member_invites.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "redemption_id",
            sa.Integer(),
            sa.ForeignKey("member_invite_redemptions.id", ondelete="SET NULL"),
            nullable=True,
            unique=True,
        ),
        sa.Column("show_id", sa.Integer(), sa.ForeignKey("shows.id", ondelete="SET NULL"), nullable=True),
        sa.Column("focus", sa.String(16), nullable=False),
        sa.Column("background", sa.String(200), nullable=True),
        sa.Column("background_class", sa.String(120), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("gender", sa.String(120), nullable=True),
        sa.Column("member_since_year", sa.Integer(), nullable=True),
        sa.Column("dietary_preference", sa.String(120), nullable=True),
        sa.Column("dietary_preference_strictness", sa.String(120), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_member_onboarding_profiles_show", "member_onboarding_profiles", ["show_id"])
    op.create_table(
        "member_role_preferences",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("domain", sa.String(16), nullable=False),
        sa.Column("weight", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "code", name="uq_member_role_preference"),
    )
    op.create_table(
        "interests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(80), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        _user_fk(),
    )
    op.create_table(
        "user_interests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("interest_id", sa.Integer(), sa.ForeignKey("interests.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "interest_id", name="uq_user_interest"),
    )

    # --- finance ---
    op.create_table(
        "finance_budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("show_id", sa.Integer(), sa.ForeignKey("shows.id", ondelete="CASCADE"), nullable=False),
        sa.Column("category", sa.String(120), nullable=False),
        sa.Column("planned_amount", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="EUR"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("planned_amount >= 0", name="ck_finance_budget_planned_nonneg"),
    )
    op.create_index("idx_finance_budgets_show", "finance_budgets", ["show_id"])
    op.create_table(
        "finance_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("kind", sa.String(16), nullable=False, server_default="general"),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="EUR"),
        sa.Column("category", sa.String(120), nullable=True),
        sa.Column("booking_date", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("due_date", sa.DateTime(), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("invoice_number", sa.String(120), nullable=True),
        sa.Column("vendor", sa.String(160), nullable=True),
        sa.Column("member_paid_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("donation_source", sa.String(160), nullable=True),
        sa.Column("donor_contact", sa.String(200), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("show_id", sa.Integer(), sa.ForeignKey("shows.id", ondelete="SET NULL"), nullable=True),
        sa.Column("budget_id", sa.Integer(), sa.ForeignKey("finance_budgets.id", ondelete="SET NULL"), nullable=True),
        sa.Column("visibility_scope", sa.String(16), nullable=False, server_default="finance"),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("approved_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_finance_entry_amount_nonneg"),
    )
    op.create_index("idx_finance_entries_booking_date", "finance_entries", ["booking_date"])
    op.create_index("idx_finance_entries_show", "finance_entries", ["show_id"])
    op.create_index("idx_finance_entries_budget", "finance_entries", ["budget_id"])
    op.create_index("idx_finance_entries_status", "finance_entries", ["status"])
    op.create_table(
        "finance_attachments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("entry_id", sa.Integer(), sa.ForeignKey("finance_entries.id", ondelete="CASCADE"), nullable=False),
        sa.Column("filename", sa.String(160), nullable=False),
        sa.Column("url", sa.String(1024), nullable=True),
        sa.Column("mime_type", sa.String(120), nullable=True),
        sa.Column("size", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "finance_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("entry_id", sa.Integer(), sa.ForeignKey("finance_entries.id", ondelete="CASCADE"), nullable=False),
        sa.Column("from_status", sa.String(16), nullable=True),
        sa.Column("to_status", sa.String(16), nullable=False),
        sa.Column("note", sa.String(500), nullable=True),
        sa.Column("changed_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    # --- photo consent / measurements / dietary ---
    op.create_table(
        "photo_consents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("consent_given", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        _user_fk("approved_by_user_id"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("document_key", sa.String(512), nullable=True),
        sa.Column("document_name", sa.String(255), nullable=True),
        sa.Column("document_mime", sa.String(128), nullable=True),
        sa.Column("document_size", sa.Integer(), nullable=True),
        sa.Column("document_uploaded_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_photo_consents_status", "photo_consents", ["status"])
    op.create_table(
        "member_measurements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("unit", sa.String(8), nullable=False),
        sa.Column("note", sa.String(500), nullable=True),
        *_timestamps(),
        _user_fk("updated_by_user_id"),
        sa.UniqueConstraint("user_id", "type", name="uq_member_measurement_user_type"),
    )
    op.create_table(
        "dietary_restrictions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("allergen", sa.String(120), nullable=False),
        sa.Column("level", sa.String(16), nullable=False),
        sa.Column("symptoms", sa.String(500), nullable=True),
        sa.Column("treatment", sa.String(500), nullable=True),
        sa.Column("note", sa.String(500), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "allergen", name="uq_dietary_restriction_user_allergen"),
    )


def downgrade() -> None:
    for table in (
        "dietary_restrictions",
        "member_measurements",
        "photo_consents",
        "finance_logs",
        "finance_attachments",
        "finance_entries",
        "finance_budgets",
        "user_interests",
        "interests",
        "member_role_preferences",
        "member_onboarding_profiles",
        "member_invite_redemptions",
        "member_invites",
        "production_memberships",
        "shows",
        "audit_events",
        "role_permissions",
        "user_roles",
        "permissions",
        "roles",
        "users",
    ):
        op.drop_table(table)
