"""Initial schema with row-level security mirroring the application access policy.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000

The API sets ``app.current_user_id`` per transaction. Policies are enabled but
not forced, so the application role that owns the tables keeps full access
(it enforces the same rules in ``teamboard.core.access``) while any other
role, such as a reporting user or a direct SQL client, is held to them.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)

RLS_TABLES = [
    "profiles",
    "projects",
    "project_members",
    "tasks",
    "task_assignments",
    "subtasks",
    "messages",
    "notifications",
]

# (table, policy name, command, USING, WITH CHECK)
POLICIES = [
    # profiles
    ("profiles", "profiles_select", "SELECT",
     "tb_is_admin() OR user_id = tb_current_user() OR (tb_is_approved() AND is_approved)", None),
    ("profiles", "profiles_update", "UPDATE",
     "tb_is_admin() OR user_id = tb_current_user()", "tb_is_admin() OR user_id = tb_current_user()"),
    ("profiles", "profiles_delete", "DELETE", "tb_is_admin()", None),
    # projects
    ("projects", "projects_select", "SELECT", "tb_can_access_project(id)", None),
    ("projects", "projects_insert", "INSERT", None, "tb_is_admin()"),
    ("projects", "projects_update", "UPDATE", "tb_is_admin()", "tb_is_admin()"),
    ("projects", "projects_delete", "DELETE", "tb_is_admin()", None),
    # project_members
    ("project_members", "project_members_select", "SELECT", "tb_can_access_project(project_id)", None),
    ("project_members", "project_members_write", "ALL", "tb_is_admin()", "tb_is_admin()"),
    # tasks: anyone who sees a task may move it, everything else is admin-only
    ("tasks", "tasks_select", "SELECT", "tb_can_access_project(project_id)", None),
    ("tasks", "tasks_insert", "INSERT", None, "tb_is_admin()"),
    ("tasks", "tasks_update", "UPDATE",
     "tb_can_access_project(project_id)", "tb_can_access_project(project_id)"),
    ("tasks", "tasks_delete", "DELETE", "tb_is_admin()", None),
    # task_assignments
    ("task_assignments", "task_assignments_select", "SELECT", "tb_can_access_task(task_id)", None),
    ("task_assignments", "task_assignments_write", "ALL", "tb_is_admin()", "tb_is_admin()"),
    # subtasks
    ("subtasks", "subtasks_select", "SELECT", "tb_can_access_task(task_id)", None),
    ("subtasks", "subtasks_insert", "INSERT", None,
     "tb_can_access_task(task_id) AND created_by = tb_current_user()"),
    ("subtasks", "subtasks_update", "UPDATE",
     "tb_can_edit_subtask(task_id, created_by)", "tb_can_edit_subtask(task_id, created_by)"),
    ("subtasks", "subtasks_delete", "DELETE", "tb_can_edit_subtask(task_id, created_by)", None),
    # messages: append-only
    ("messages", "messages_select", "SELECT", "tb_can_access_project(project_id)", None),
    ("messages", "messages_insert", "INSERT", None,
     "sender_id = tb_current_user() AND tb_can_access_project(project_id)"),
    # notifications: inserted by application triggers, owned by the recipient
    ("notifications", "notifications_select", "SELECT", "user_id = tb_current_user()", None),
    ("notifications", "notifications_insert", "INSERT", None, "true"),
    ("notifications", "notifications_update", "UPDATE",
     "user_id = tb_current_user()", "user_id = tb_current_user()"),
    ("notifications", "notifications_delete", "DELETE", "user_id = tb_current_user()", None),
]

FUNCTIONS = [
    """
    CREATE OR REPLACE FUNCTION tb_current_user() RETURNS uuid
    LANGUAGE sql STABLE AS $$
        SELECT NULLIF(current_setting('app.current_user_id', true), '')::uuid
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION tb_is_approved() RETURNS boolean
    LANGUAGE sql STABLE SECURITY DEFINER AS $$
        SELECT EXISTS (
            SELECT 1 FROM profiles
            WHERE user_id = tb_current_user() AND is_approved
        )
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION tb_is_admin() RETURNS boolean
    LANGUAGE sql STABLE SECURITY DEFINER AS $$
        SELECT EXISTS (
            SELECT 1 FROM profiles
            WHERE user_id = tb_current_user() AND role = 'admin' AND is_approved
        )
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION tb_can_access_project(p_project_id uuid) RETURNS boolean
    LANGUAGE sql STABLE SECURITY DEFINER AS $$
        SELECT tb_is_admin() OR (
            tb_is_approved() AND EXISTS (
                SELECT 1 FROM project_members
                WHERE project_id = p_project_id AND user_id = tb_current_user()
            )
        )
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION tb_can_access_task(p_task_id uuid) RETURNS boolean
    LANGUAGE sql STABLE SECURITY DEFINER AS $$
        SELECT EXISTS (
            SELECT 1 FROM tasks
            WHERE id = p_task_id AND tb_can_access_project(project_id)
        )
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION tb_can_edit_subtask(p_task_id uuid, p_created_by uuid) RETURNS boolean
    LANGUAGE sql STABLE SECURITY DEFINER AS $$
        SELECT tb_is_admin() OR (
            tb_is_approved() AND (
                p_created_by = tb_current_user()
                OR EXISTS (
                    SELECT 1 FROM task_assignments
                    WHERE task_id = p_task_id AND user_id = tb_current_user()
                )
            )
        )
    $$
    """,
    # Self-updates may touch names only; role and approval belong to admins.
    """
    CREATE OR REPLACE FUNCTION tb_guard_profile_privileges() RETURNS trigger
    LANGUAGE plpgsql AS $$
    BEGIN
        IF (NEW.role IS DISTINCT FROM OLD.role OR NEW.is_approved IS DISTINCT FROM OLD.is_approved)
           AND tb_current_user() IS NOT NULL
           AND NOT tb_is_admin() THEN
            RAISE EXCEPTION 'only admins can change role or approval'
                USING ERRCODE = 'insufficient_privilege';
        END IF;
        RETURN NEW;
    END;
    $$
    """,
]

FUNCTION_NAMES = [
    "tb_guard_profile_privileges()",
    "tb_can_edit_subtask(uuid, uuid)",
    "tb_can_access_task(uuid)",
    "tb_can_access_project(uuid)",
    "tb_is_admin()",
    "tb_is_approved()",
    "tb_current_user()",
]


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # -----------------------------------------------------------------------
    # 1. Tables
    # -----------------------------------------------------------------------

    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "profiles",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=False, server_default=""),
        sa.Column("last_name", sa.Text(), nullable=False, server_default=""),
        sa.Column("role", sa.Text(), nullable=False, server_default="developer"),
        sa.Column("is_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint("role IN ('developer', 'admin')", name="ck_profiles_role"),
    )
    op.create_index("ix_profiles_user_id", "profiles", ["user_id"], unique=True)

    op.create_table(
        "projects",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="active"),
        sa.Column("priority", sa.Text(), nullable=False, server_default="medium"),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", UUID, sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("status IN ('active', 'inactive', 'completed')", name="ck_projects_status"),
        sa.CheckConstraint("priority IN ('low', 'medium', 'high')", name="ck_projects_priority"),
        sa.CheckConstraint("end_date IS NULL OR start_date IS NULL OR end_date >= start_date",
                           name="ck_projects_dates"),
    )

    op.create_table(
        "project_members",
        sa.Column("project_id", UUID, sa.ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("is_leader", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_project_members_user_id", "project_members", ["user_id"])

    op.create_table(
        "tasks",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("project_id", UUID, sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="todo"),
        sa.Column("priority", sa.Text(), nullable=False, server_default="medium"),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", UUID, sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('todo', 'in_progress', 'review', 'to_modify', 'completed', 'cancelled')",
            name="ck_tasks_status",
        ),
        sa.CheckConstraint("priority IN ('low', 'medium', 'high', 'urgent')", name="ck_tasks_priority"),
        sa.CheckConstraint("end_date IS NULL OR start_date IS NULL OR end_date >= start_date",
                           name="ck_tasks_dates"),
    )
    op.create_index("ix_tasks_project_id", "tasks", ["project_id"])
    op.create_index("ix_tasks_project_status", "tasks", ["project_id", "status"])

    op.create_table(
        "task_assignments",
        sa.Column("task_id", UUID, sa.ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("is_leader", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_task_assignments_user_id", "task_assignments", ["user_id"])

    op.create_table(
        "subtasks",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("task_id", UUID, sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by", UUID, sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_subtasks_task_id", "subtasks", ["task_id"])

    op.create_table(
        "messages",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("project_id", UUID, sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True),
        sa.Column("task_id", UUID, sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True),
        sa.Column("sender_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("mentioned_users", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("file_url", sa.Text(), nullable=True),
        sa.Column("file_name", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("project_id IS NOT NULL OR task_id IS NOT NULL", name="ck_messages_parent"),
    )
    op.create_index("ix_messages_project_id", "messages", ["project_id"])
    op.create_index("ix_messages_task_id", "messages", ["task_id"])

    op.create_table(
        "notifications",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False, server_default="assignment"),
        sa.Column("related_type", sa.Text(), nullable=True, server_default="task"),
        sa.Column("related_id", UUID, nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_notifications_user_created", "notifications", ["user_id", "created_at"])

    # -----------------------------------------------------------------------
    # 2. Policy helper functions and the privilege guard
    # -----------------------------------------------------------------------

    for ddl in FUNCTIONS:
        op.execute(ddl)

    op.execute("""
        CREATE TRIGGER profiles_guard_privileges
        BEFORE UPDATE ON profiles
        FOR EACH ROW EXECUTE FUNCTION tb_guard_profile_privileges()
    """)

    # -----------------------------------------------------------------------
    # 3. Row Level Security (RLS) policies
    # -----------------------------------------------------------------------

    for table in RLS_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")

    for table, name, command, using, check in POLICIES:
        clause = f"CREATE POLICY {name} ON {table} FOR {command}"
        if using:
            clause += f" USING ({using})"
        if check:
            clause += f" WITH CHECK ({check})"
        op.execute(clause)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for table, name, _command, _using, _check in reversed(POLICIES):
        op.execute(f"DROP POLICY IF EXISTS {name} ON {table}")
    for table in reversed(RLS_TABLES):
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")

    op.execute("DROP TRIGGER IF EXISTS profiles_guard_privileges ON profiles")
    for signature in FUNCTION_NAMES:
        op.execute(f"DROP FUNCTION IF EXISTS {signature}")

    op.drop_table("notifications")
    op.drop_table("messages")
    op.drop_table("subtasks")
    op.drop_table("task_assignments")
    op.drop_table("tasks")
    op.drop_table("project_members")
    op.drop_table("projects")
    op.drop_table("profiles")
    op.drop_table("users")
