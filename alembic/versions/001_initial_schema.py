"""Initial schema - users, plans, tasks, focus sessions and derived caches

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    # Study plans
    op.create_table(
        "study_plans",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("color", sa.String(32), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_study_plans"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_study_plans_user_id_users", ondelete="CASCADE"),
    )
    op.create_index("ix_study_plans_user_id", "study_plans", ["user_id"])

    # Tasks
    op.create_table(
        "tasks",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("plan_id", sa.Uuid(), nullable=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(20), nullable=False, server_default="TODO"),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_tasks"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_tasks_user_id_users", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["plan_id"], ["study_plans.id"], name="fk_tasks_plan_id_study_plans", ondelete="CASCADE"),
    )
    op.create_index("ix_tasks_user_id", "tasks", ["user_id"])
    op.create_index("ix_tasks_plan_id", "tasks", ["plan_id"])

    # Focus sessions
    op.create_table(
        "focus_sessions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("plan_id", sa.Uuid(), nullable=True),
        sa.Column("task_id", sa.Uuid(), nullable=True),
        sa.Column("session_type", sa.String(20), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("planned_minutes", sa.Integer(), nullable=True),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("interrupted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_focus_sessions"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_focus_sessions_user_id_users", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["plan_id"], ["study_plans.id"], name="fk_focus_sessions_plan_id_study_plans", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], name="fk_focus_sessions_task_id_tasks", ondelete="SET NULL"),
    )
    op.create_index("ix_focus_sessions_user_id", "focus_sessions", ["user_id"])
    op.create_index("ix_focus_sessions_plan_id", "focus_sessions", ["plan_id"])
    op.create_index("ix_focus_sessions_user_started", "focus_sessions", ["user_id", "started_at"])

    # Daily stats (rebuildable cache)
    op.create_table(
        "daily_stats",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("total_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sessions_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sessions_interrupted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tasks_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("focus_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_daily_stats"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_daily_stats_user_id_users", ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "date", name="uq_daily_stats_user_date"),
    )
    op.create_index("ix_daily_stats_user_id", "daily_stats", ["user_id"])

    # Study streaks (one row per user)
    op.create_table(
        "study_streaks",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_study_date", sa.Date(), nullable=True),
        sa.Column("streak_start_date", sa.Date(), nullable=True),
        sa.Column("total_study_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_study_streaks"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_study_streaks_user_id_users", ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", name="uq_study_streaks_user_id"),
    )

    # Timer settings (one row per user)
    op.create_table(
        "timer_settings",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("pomodoro_length", sa.Integer(), nullable=False, server_default="25"),
        sa.Column("short_break_length", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("long_break_length", sa.Integer(), nullable=False, server_default="15"),
        sa.Column("long_break_interval", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("auto_start_breaks", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("auto_start_pomodoros", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sound_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("volume", sa.Integer(), nullable=False, server_default="80"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_timer_settings"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_timer_settings_user_id_users", ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", name="uq_timer_settings_user_id"),
    )

    # Achievements
    op.create_table(
        "user_achievements",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("unlocked_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_user_achievements"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_user_achievements_user_id_users", ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "code", name="uq_user_achievements_user_code"),
    )
    op.create_index("ix_user_achievements_user_id", "user_achievements", ["user_id"])


def downgrade() -> None:
    op.drop_table("user_achievements")
    op.drop_table("timer_settings")
    op.drop_table("study_streaks")
    op.drop_table("daily_stats")
    op.drop_table("focus_sessions")
    op.drop_table("tasks")
    op.drop_table("study_plans")
    op.drop_table("users")
