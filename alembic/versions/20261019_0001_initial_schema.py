"""Initial schema: users, projects, team members and risks.

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("supabase_id", sa.String(length=64), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=True),
        sa.Column("display_name", sa.String(length=100), nullable=True),
        sa.Column("job_title", sa.String(length=100), nullable=True),
        sa.Column("department", sa.String(length=100), nullable=True),
        sa.Column("company", sa.String(length=150), nullable=True),
        sa.Column("phone_number", sa.String(length=40), nullable=True),
        sa.Column("photo_url", sa.String(length=500), nullable=True),
        sa.Column("role", sa.String(length=20), server_default=sa.text("'user'"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("ai_provider", sa.String(length=30), server_default=sa.text("'riskvision'"), nullable=False),
        sa.Column("ai_api_key", sa.String(length=255), nullable=True),
        sa.Column("ai_model", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_supabase_id", "users", ["supabase_id"], unique=True)

    op.create_table(
        "projects",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_projects_owner_id", "projects", ["owner_id"], unique=False)

    op.create_table(
        "team_members",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("project_id", sa.String(length=36), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=True),
        sa.Column("job_title", sa.String(length=100), nullable=True),
        sa.Column("project_role", sa.String(length=100), nullable=True),
        sa.Column("role", sa.String(length=20), server_default=sa.text("'member'"), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_id", "email", name="uq_team_members_project_email"),
    )
    op.create_index("ix_team_members_email", "team_members", ["email"], unique=False)
    op.create_index("ix_team_members_project_id", "team_members", ["project_id"], unique=False)

    op.create_table(
        "risks",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("project_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=20), nullable=False),
        sa.Column("probability", sa.Integer(), nullable=False),
        sa.Column("impact", sa.Integer(), nullable=False),
        sa.Column("priority", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'open'"), nullable=False),
        sa.Column("assigned_to", sa.String(length=255), server_default=sa.text("''"), nullable=False),
        sa.Column("tags_json", sa.Text(), server_default=sa.text("'[]'"), nullable=False),
        sa.Column("mitigation_json", sa.Text(), nullable=True),
        sa.Column("solutions_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_risks_assigned_to", "risks", ["assigned_to"], unique=False)
    op.create_index("ix_risks_category", "risks", ["category"], unique=False)
    op.create_index("ix_risks_priority", "risks", ["priority"], unique=False)
    op.create_index("ix_risks_project_id", "risks", ["project_id"], unique=False)
    op.create_index("ix_risks_status", "risks", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_risks_status", table_name="risks")
    op.drop_index("ix_risks_project_id", table_name="risks")
    op.drop_index("ix_risks_priority", table_name="risks")
    op.drop_index("ix_risks_category", table_name="risks")
    op.drop_index("ix_risks_assigned_to", table_name="risks")
    op.drop_table("risks")

    op.drop_index("ix_team_members_project_id", table_name="team_members")
    op.drop_index("ix_team_members_email", table_name="team_members")
    op.drop_table("team_members")

    op.drop_index("ix_projects_owner_id", table_name="projects")
    op.drop_table("projects")

    op.drop_index("ix_users_supabase_id", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
