"""attendance records and signup requests

Revision ID: b1d2e3f4a5c6
Revises: a0c1e2d3f4b5
Create Date: 2026-10-17 12:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "b1d2e3f4a5c6"
down_revision = "a0c1e2d3f4b5"
branch_labels = None
depends_on = None


ENUM_LENGTH = 32


def _user_fk(name: str, *, ondelete: str = "SET NULL", nullable: bool = True) -> sa.Column:
    return sa.Column(
        name,
        sa.String(length=36),
        sa.ForeignKey("users.id", ondelete=ondelete),
        nullable=nullable,
    )


def upgrade() -> None:
    op.create_table(
        "attendance_records",
        sa.Column("id", sa.String(length=36), nullable=False),
        _user_fk("user_id", ondelete="CASCADE", nullable=False),
        sa.Column(
            "site_id",
            sa.String(length=36),
            sa.ForeignKey("sites.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("check_in_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_out_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("work_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("overtime_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("labor_hours", sa.Float(), nullable=True),
        sa.Column("status", sa.String(length=ENUM_LENGTH), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _user_fk("created_by"),
        _user_fk("updated_by"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "site_id", "work_date", name="uq_attendance_user_site_date"),
    )
    op.create_index("ix_attendance_site_date", "attendance_records", ["site_id", "work_date"])
    op.create_index("ix_attendance_user_date", "attendance_records", ["user_id", "work_date"])

    op.create_table(
        "signup_requests",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("company", sa.String(length=255), nullable=False),
        sa.Column("job_title", sa.String(length=128), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("job_type", sa.String(length=ENUM_LENGTH), nullable=False),
        sa.Column("status", sa.String(length=ENUM_LENGTH), nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        _user_fk("approved_by"),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        _user_fk("rejected_by"),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        _user_fk("created_user_id"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_signup_requests_email"),
    )
    op.create_index("ix_signup_requests_status", "signup_requests", ["status"])


def downgrade() -> None:
    op.drop_table("signup_requests")
    op.drop_table("attendance_records")
