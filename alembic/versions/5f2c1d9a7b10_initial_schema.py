"""initial schema: activities, enrollment, sessions, groups, evaluations

Revision ID: 5f2c1d9a7b10
Revises:
Create Date: 2026-10-17 09:12:44.102381
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "5f2c1d9a7b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(JSONB(), "postgresql")


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "activities",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column(
            "created_by_user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("created_with_role", sa.String(50), nullable=False),
        sa.Column("activity_metadata", JSON_TYPE, nullable=True),
        sa.Column("rubric_criteria", JSON_TYPE, nullable=True),
        sa.Column("max_marks", sa.Integer(), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("ix_activities_created_by_user_id", "activities", ["created_by_user_id"])

    op.create_table(
        "invite_links",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "activity_id",
            sa.Uuid(),
            sa.ForeignKey("activities.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("code", sa.String(32), nullable=True, unique=True),
        sa.Column("sharing_link", sa.String(500), nullable=True),
        sa.Column(
            "shared_by_user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )

    op.create_table(
        "participant_submissions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "activity_id",
            sa.Uuid(),
            sa.ForeignKey("activities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("joined_via", sa.String(10), nullable=False),
        _created_at(),
        sa.UniqueConstraint("activity_id", "user_id", name="uq_participant_activity_user"),
        sa.CheckConstraint("joined_via IN ('LINK','MANUAL')", name="ck_participant_joined_via"),
    )
    op.create_index(
        "ix_participant_submissions_activity_id", "participant_submissions", ["activity_id"]
    )

    op.create_table(
        "sessions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "activity_id",
            sa.Uuid(),
            sa.ForeignKey("activities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("evaluation_type", sa.String(20), nullable=False),
        sa.Column("group_size", sa.Integer(), nullable=False),
        sa.Column("total_students", sa.Integer(), nullable=False),
        sa.Column(
            "scheduled_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("version", sa.Integer(), nullable=False),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.CheckConstraint("status IN ('PENDING','ACTIVE','COMPLETED')", name="ck_sessions_status"),
        sa.CheckConstraint(
            "evaluation_type IN ('WITHIN_GROUP','GROUP_TO_GROUP','ANY_TO_ANY')",
            name="ck_sessions_evaluation_type",
        ),
        sa.CheckConstraint("group_size >= 1", name="ck_sessions_group_size"),
    )
    op.create_index("ix_sessions_activity_id", "sessions", ["activity_id"])

    op.create_table(
        "groups",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "session_id", sa.Uuid(), sa.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "activity_id",
            sa.Uuid(),
            sa.ForeignKey("activities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("group_name", sa.String(50), nullable=False),
        sa.Column("group_members", JSON_TYPE, nullable=False),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint("session_id", "position", name="uq_groups_session_position"),
    )
    op.create_index("ix_groups_session_id", "groups", ["session_id"])

    op.create_table(
        "evaluations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "activity_id",
            sa.Uuid(),
            sa.ForeignKey("activities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "session_id", sa.Uuid(), sa.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "evaluator_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "evaluatee_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "group_id", sa.Uuid(), sa.ForeignKey("groups.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("marks", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("is_submitted", sa.Boolean(), nullable=False),
        sa.Column("is_reviewed", sa.Boolean(), nullable=False),
        _created_at(),
        sa.UniqueConstraint(
            "session_id", "evaluator_id", "evaluatee_id", name="uq_evaluations_session_pair"
        ),
        sa.CheckConstraint("evaluator_id <> evaluatee_id", name="ck_evaluations_not_self"),
        sa.CheckConstraint(
            "status IN ('PENDING','SUBMITTED','REVIEWED')", name="ck_evaluations_status"
        ),
    )
    op.create_index(
        "ix_evaluations_session_evaluator", "evaluations", ["session_id", "evaluator_id"]
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "actor_user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("event_metadata", JSON_TYPE, nullable=True),
        _created_at(),
    )


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_index("ix_evaluations_session_evaluator", table_name="evaluations")
    op.drop_table("evaluations")
    op.drop_index("ix_groups_session_id", table_name="groups")
    op.drop_table("groups")
    op.drop_index("ix_sessions_activity_id", table_name="sessions")
    op.drop_table("sessions")
    op.drop_index("ix_participant_submissions_activity_id", table_name="participant_submissions")
    op.drop_table("participant_submissions")
    op.drop_table("invite_links")
    op.drop_index("ix_activities_created_by_user_id", table_name="activities")
    op.drop_table("activities")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
