"""Initial Study Mode schema.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

Creates:
- Tables: users, projects, materials, study_chats, study_messages,
  study_memories, artifacts, assessments, assessment_attempts
- Indexes used by the chat, artifact and assessment queries
- Triggers: updated_at auto-update function and triggers
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UPDATED_AT_TABLES = [
    "users",
    "projects",
    "materials",
    "study_chats",
    "study_memories",
    "artifacts",
    "assessments",
    "assessment_attempts",
]


def _id() -> sa.Column:
    return sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))


def _fk(name: str, target: str, nullable: bool = False, ondelete: str = "CASCADE") -> sa.Column:
    return sa.Column(name, UUID(as_uuid=True), sa.ForeignKey(target, ondelete=ondelete), nullable=nullable)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
    ]


def upgrade() -> None:
    # ==========================================================================
    # USERS + PROJECTS
    # ==========================================================================
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(255), nullable=True, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "projects",
        _id(),
        _fk("user_id", "users.id"),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("stats", JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        *_timestamps(),
    )
    op.create_index("idx_projects_user_id", "projects", ["user_id"])

    # ==========================================================================
    # MATERIALS
    # ==========================================================================
    op.create_table(
        "materials",
        _id(),
        _fk("project_id", "projects.id"),
        _fk("user_id", "users.id"),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),

        # Extracted content
        sa.Column("text_content", sa.Text(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("youtube_url", sa.String(), nullable=True),

        # File blob + provider handle
        sa.Column("file_name", sa.String(), nullable=True),
        sa.Column("file_mime_type", sa.String(100), nullable=True),
        sa.Column("storage_key", sa.String(), nullable=True),
        sa.Column("gemini_uri", sa.String(), nullable=True),
        sa.Column("gemini_file_name", sa.String(), nullable=True),
        sa.Column("gemini_uploaded_at", TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_materials_project_status", "materials", ["project_id", "status"])
    op.create_index("idx_materials_user_id", "materials", ["user_id"])

    # ==========================================================================
    # STUDY CHATS + MESSAGES
    # ==========================================================================
    op.create_table(
        "study_chats",
        _id(),
        _fk("project_id", "projects.id"),
        _fk("user_id", "users.id"),
        sa.Column("title", sa.String(200), nullable=False, server_default="New Chat"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("message_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_activity_at", TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        *_timestamps(),
    )
    op.create_index("idx_study_chats_project_user", "study_chats", ["project_id", "user_id"])
    op.create_index("idx_study_chats_last_activity", "study_chats", ["last_activity_at"])

    op.create_table(
        "study_messages",
        _id(),
        _fk("chat_id", "study_chats.id"),
        _fk("user_id", "users.id"),
        sa.Column("role", sa.String(20), nullable=False),  # 'user' or 'assistant'
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("attachments", JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("tool_calls", JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("artifact_actions", JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("inline_question", JSONB(), nullable=True),
        sa.Column("metadata", JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
    )
    op.create_index("idx_study_messages_chat_created", "study_messages", ["chat_id", "created_at", "id"])

    # ==========================================================================
    # STUDY MEMORIES
    # ==========================================================================
    op.create_table(
        "study_memories",
        _id(),
        _fk("project_id", "projects.id"),
        _fk("user_id", "users.id"),
        sa.Column("content", sa.String(500), nullable=False),
        sa.Column("category", sa.String(20), nullable=False, server_default="other"),
        sa.Column("importance", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _fk("source_chat_id", "study_chats.id", nullable=True, ondelete="SET NULL"),
        *_timestamps(),
    )
    op.create_index(
        "idx_study_memories_project_user_active",
        "study_memories",
        ["project_id", "user_id", "is_active"],
    )

    # ==========================================================================
    # ARTIFACTS
    # ==========================================================================
    op.create_table(
        "artifacts",
        _id(),
        _fk("project_id", "projects.id"),
        _fk("chat_id", "study_chats.id", nullable=True, ondelete="SET NULL"),
        _fk("user_id", "users.id"),
        sa.Column("type", sa.String(20), nullable=False),  # lesson, study_plan, flashcards
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("content", JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_edited_by", sa.String(20), nullable=False, server_default="assistant"),
        sa.Column("source_message_id", UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_artifacts_project_user_status", "artifacts", ["project_id", "user_id", "status"])
    op.create_index("idx_artifacts_chat_id", "artifacts", ["chat_id"])

    # ==========================================================================
    # ASSESSMENTS + ATTEMPTS
    # ==========================================================================
    op.create_table(
        "assessments",
        _id(),
        _fk("project_id", "projects.id"),
        _fk("user_id", "users.id"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("questions", JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("settings", JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("total_points", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("stats", JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        *_timestamps(),
    )
    op.create_index("idx_assessments_project_user", "assessments", ["project_id", "user_id"])

    op.create_table(
        "assessment_attempts",
        _id(),
        _fk("assessment_id", "assessments.id"),
        _fk("project_id", "projects.id"),
        _fk("user_id", "users.id"),
        sa.Column("status", sa.String(20), nullable=False, server_default="in_progress"),
        sa.Column("answers", JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("score_earned", sa.Float(), nullable=False, server_default="0"),
        sa.Column("score_total", sa.Float(), nullable=False, server_default="0"),
        sa.Column("score_percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("started_at", TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("submitted_at", TIMESTAMP(timezone=True), nullable=True),
        sa.Column("graded_at", TIMESTAMP(timezone=True), nullable=True),
        sa.Column("time_taken", sa.Integer(), nullable=True),  # seconds
        *_timestamps(),
    )
    op.create_index(
        "idx_assessment_attempts_assessment_user",
        "assessment_attempts",
        ["assessment_id", "user_id"],
    )

    # ==========================================================================
    # UPDATED_AT TRIGGER FUNCTION
    # ==========================================================================
    op.execute("""
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)

    for table in UPDATED_AT_TABLES:
        op.execute(f"""
            CREATE TRIGGER update_{table}_updated_at
                BEFORE UPDATE ON {table}
                FOR EACH ROW EXECUTE FUNCTION update_updated_at_column();
        """)


def downgrade() -> None:
    for table in UPDATED_AT_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS update_{table}_updated_at ON {table}")

    op.execute("DROP FUNCTION IF EXISTS update_updated_at_column()")

    # Drop tables in reverse dependency order
    op.drop_table("assessment_attempts")
    op.drop_table("assessments")
    op.drop_table("artifacts")
    op.drop_table("study_memories")
    op.drop_table("study_messages")
    op.drop_table("study_chats")
    op.drop_table("materials")
    op.drop_table("projects")
    op.drop_table("users")
