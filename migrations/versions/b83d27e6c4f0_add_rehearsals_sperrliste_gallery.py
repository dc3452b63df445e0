"""add rehearsals, sperrliste and gallery tables

Revision ID: b83d27e6c4f0
Revises: 5a0c3e1f9b21
Create Date: 2026-04-14 21:05:52.640317

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'b83d27e6c4f0'
down_revision: Union[str, Sequence[str], None] = '5a0c3e1f9b21'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create rehearsal planning, block-day and gallery tables."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    if "rehearsal_templates" not in existing_tables:
        op.create_table(
            "rehearsal_templates",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("weekday", sa.Integer(), nullable=False),
            sa.Column("start_time", sa.String(5), nullable=False),
            sa.Column("end_time", sa.String(5), nullable=False),
            sa.Column("location", sa.String(200), nullable=True),
            sa.Column("required_roles", sa.JSON(), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("priority", sa.String(16), nullable=False, server_default="NORMAL"),
            sa.Column("valid_from", sa.Date(), nullable=True),
            sa.Column("valid_to", sa.Date(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )

    if "rehearsals" not in existing_tables:
        op.create_table(
            "rehearsals",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("show_id", sa.Integer(), sa.ForeignKey("shows.id", ondelete="SET NULL"), nullable=True),
            sa.Column("title", sa.String(200), nullable=False, server_default="Probe"),
            sa.Column("start", sa.DateTime(), nullable=False),
            sa.Column("end", sa.DateTime(), nullable=False),
            sa.Column("location", sa.String(200), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("required_roles", sa.JSON(), nullable=False),
            sa.Column("registration_deadline", sa.DateTime(), nullable=True),
            sa.Column("is_from_template", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column(
                "template_id",
                sa.Integer(),
                sa.ForeignKey("rehearsal_templates.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("priority", sa.String(16), nullable=False, server_default="NORMAL"),
            sa.Column("status", sa.String(16), nullable=False, server_default="PLANNED"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )
        op.create_index("idx_rehearsals_start", "rehearsals", ["start"])
        op.create_index("idx_rehearsals_show", "rehearsals", ["show_id"])

    if "rehearsal_attendance" not in existing_tables:
        op.create_table(
            "rehearsal_attendance",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("rehearsal_id", sa.Integer(), sa.ForeignKey("rehearsals.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("status", sa.String(16), nullable=False),
            sa.Column("emergency_reason", sa.String(500), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("rehearsal_id", "user_id", name="uq_rehearsal_attendance"),
        )

    if "rehearsal_attendance_logs" not in existing_tables:
        op.create_table(
            "rehearsal_attendance_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("rehearsal_id", sa.Integer(), sa.ForeignKey("rehearsals.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("previous", sa.String(16), nullable=True),
            sa.Column("next", sa.String(16), nullable=True),
            sa.Column("comment", sa.String(500), nullable=True),
            sa.Column("changed_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("changed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index(
            "idx_rehearsal_attendance_logs_rehearsal_user",
            "rehearsal_attendance_logs",
            ["rehearsal_id", "user_id"],
        )

    if "rehearsal_proposals" not in existing_tables:
        op.create_table(
            "rehearsal_proposals",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("show_id", sa.Integer(), sa.ForeignKey("shows.id", ondelete="SET NULL"), nullable=True),
            sa.Column("title", sa.String(200), nullable=False, server_default="Probenvorschlag"),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("start_time", sa.Integer(), nullable=False),
            sa.Column("end_time", sa.Integer(), nullable=False),
            sa.Column("location", sa.String(200), nullable=True),
            sa.Column("required_roles", sa.JSON(), nullable=False),
            sa.Column("status", sa.String(16), nullable=False, server_default="proposed"),
            sa.Column("approved_at", sa.DateTime(), nullable=True),
            sa.Column("approved_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("rejection_reason", sa.String(500), nullable=True),
            sa.Column("rehearsal_id", sa.Integer(), sa.ForeignKey("rehearsals.id", ondelete="SET NULL"), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )

    if "sperrliste_settings" not in existing_tables:
        op.create_table(
            "sperrliste_settings",
            sa.Column("id", sa.String(32), primary_key=True),
            sa.Column("freeze_days", sa.Integer(), nullable=False, server_default="7"),
            sa.Column("preferred_weekdays", sa.JSON(), nullable=False),
            sa.Column("exception_weekdays", sa.JSON(), nullable=False),
            sa.Column("holiday_source_mode", sa.String(16), nullable=False, server_default="default"),
            sa.Column("holiday_source_url", sa.String(500), nullable=True),
            sa.Column("holiday_source_status", sa.String(16), nullable=False, server_default="unknown"),
            sa.Column("holiday_source_message", sa.Text(), nullable=True),
            sa.Column("holiday_source_checked_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "blocked_days" not in existing_tables:
        op.create_table(
            "blocked_days",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("reason", sa.String(200), nullable=True),
            sa.Column("kind", sa.String(16), nullable=False, server_default="BLOCKED"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("user_id", "date", name="uq_blocked_days_user_date"),
        )
        op.create_index("idx_blocked_days_date", "blocked_days", ["date"])

    if "gallery_items" not in existing_tables:
        op.create_table(
            "gallery_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("year", sa.Integer(), nullable=False),
            sa.Column("media_type", sa.String(8), nullable=False),
            sa.Column("file_name", sa.String(180), nullable=False),
            sa.Column("mime_type", sa.String(120), nullable=False),
            sa.Column("file_size", sa.Integer(), nullable=False),
            sa.Column("storage_key", sa.String(512), nullable=False),
            sa.Column("description", sa.String(280), nullable=True),
            sa.Column("uploaded_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_gallery_items_year", "gallery_items", ["year"])


def downgrade() -> None:
    op.drop_index("idx_gallery_items_year", table_name="gallery_items")
    op.drop_table("gallery_items")
    op.drop_index("idx_blocked_days_date", table_name="blocked_days")
    op.drop_table("blocked_days")
    op.drop_table("sperrliste_settings")
    op.drop_table("rehearsal_proposals")
    op.drop_index("idx_rehearsal_attendance_logs_rehearsal_user", table_name="rehearsal_attendance_logs")
    op.drop_table("rehearsal_attendance_logs")
    op.drop_table("rehearsal_attendance")
    op.drop_index("idx_rehearsals_show", table_name="rehearsals")
    op.drop_index("idx_rehearsals_start", table_name="rehearsals")
    op.drop_table("rehearsals")
    op.drop_table("rehearsal_templates")
