"""Initial timeclock schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = postgresql.ENUM("master", "admin", "user", name="user_role", create_type=False)
review_status = postgresql.ENUM("pending", "approved", "rejected", name="review_status", create_type=False)
absence_impact_type = postgresql.ENUM(
    "discount",
    "neutral",
    "bonus",
    name="absence_impact_type",
    create_type=False,
)
adjustable_field = postgresql.ENUM(
    "entry_time",
    "exit_time",
    "lunch_start",
    "lunch_end",
    "date",
    "notes",
    name="adjustable_field",
    create_type=False,
)
audit_actor_type = postgresql.ENUM("USER", "SYSTEM", name="audit_actor_type", create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    user_role.create(bind, checkfirst=True)
    review_status.create(bind, checkfirst=True)
    absence_impact_type.create(bind, checkfirst=True)
    adjustable_field.create(bind, checkfirst=True)
    audit_actor_type.create(bind, checkfirst=True)

    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("cnpj", sa.String(length=14), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("state", sa.String(length=2), nullable=True),
        sa.Column("zip_code", sa.String(length=8), nullable=True),
        sa.Column("max_users", sa.Integer(), nullable=False, server_default=sa.text("50")),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_companies_email"),
    )
    op.create_index("ix_companies_cnpj", "companies", ["cnpj"], unique=True)
    op.create_index("ix_companies_active", "companies", ["active"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False, server_default=sa.text("'user'")),
        sa.Column("hire_date", sa.Date(), nullable=True),
        sa.Column("daily_work_hours", sa.Integer(), nullable=False, server_default=sa.text("8")),
        sa.Column("lunch_duration", sa.Integer(), nullable=False, server_default=sa.text("60")),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_company_id", "users", ["company_id"], unique=False)
    op.create_index("ix_users_hire_date", "users", ["hire_date"], unique=False)
    op.create_index("ix_users_company_id_role", "users", ["company_id", "role"], unique=False)

    op.create_table(
        "time_records",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("entry_time", sa.Time(), nullable=True),
        sa.Column("exit_time", sa.Time(), nullable=True),
        sa.Column("lunch_start", sa.Time(), nullable=True),
        sa.Column("lunch_end", sa.Time(), nullable=True),
        sa.Column("worked_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("expected_minutes", sa.Integer(), nullable=False, server_default=sa.text("480")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("entry_time_recorded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("exit_time_recorded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("lunch_start_recorded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("lunch_end_recorded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "date", name="uq_time_records_user_date"),
    )
    op.create_index("ix_time_records_user_id", "time_records", ["user_id"], unique=False)
    op.create_index("ix_time_records_date", "time_records", ["date"], unique=False)

    op.create_table(
        "absences",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.Column("status", review_status, nullable=False, server_default=sa.text("'pending'")),
        sa.Column(
            "impact_type",
            absence_impact_type,
            nullable=False,
            server_default=sa.text("'discount'"),
        ),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["approved_by"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_absences_user_id", "absences", ["user_id"], unique=False)
    op.create_index("ix_absences_status", "absences", ["status"], unique=False)
    op.create_index("ix_absences_user_id_impact_type", "absences", ["user_id", "impact_type"], unique=False)

    op.create_table(
        "time_record_adjustments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("time_record_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("field_to_change", adjustable_field, nullable=False),
        sa.Column("current_value", sa.Text(), nullable=True),
        sa.Column("requested_value", sa.Text(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", review_status, nullable=False, server_default=sa.text("'pending'")),
        sa.Column("reviewed_by", sa.Integer(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["time_record_id"], ["time_records.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reviewed_by"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "ix_time_record_adjustments_time_record_id",
        "time_record_adjustments",
        ["time_record_id"],
        unique=False,
    )
    op.create_index("ix_time_record_adjustments_user_id", "time_record_adjustments", ["user_id"], unique=False)
    op.create_index("ix_time_record_adjustments_status", "time_record_adjustments", ["status"], unique=False)
    op.create_index(
        "ix_time_record_adjustments_reviewed_by",
        "time_record_adjustments",
        ["reviewed_by"],
        unique=False,
    )
    op.create_index(
        "ix_time_record_adjustments_user_id_status",
        "time_record_adjustments",
        ["user_id", "status"],
        unique=False,
    )
    op.create_index(
        "ix_time_record_adjustments_time_record_id_status",
        "time_record_adjustments",
        ["time_record_id", "status"],
        unique=False,
    )

    op.create_table(
        "api_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("level", sa.String(length=20), nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=False),
        sa.Column("method", sa.String(length=10), nullable=False),
        sa.Column("ip", sa.String(length=45), nullable=True),
        sa.Column("input", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("exception", sa.String(length=255), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("trace", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_api_logs_created_at", "api_logs", ["created_at"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "ts_utc",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("ip", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_api_logs_created_at", table_name="api_logs")
    op.drop_table("api_logs")
    op.drop_table("time_record_adjustments")
    op.drop_table("absences")
    op.drop_table("time_records")
    op.drop_table("users")
    op.drop_table("companies")

    bind = op.get_bind()
    audit_actor_type.drop(bind, checkfirst=True)
    adjustable_field.drop(bind, checkfirst=True)
    absence_impact_type.drop(bind, checkfirst=True)
    review_status.drop(bind, checkfirst=True)
    user_role.drop(bind, checkfirst=True)
