"""AI engine tables

Creates the pgvector extension and the tables of the agent engine:
- ai_agents, ai_tools, ai_workflows: configuration
- ai_conversations, ai_messages, ai_citations: transcripts
- ai_agent_executions: execution ledger
- ai_knowledge_base: retrievable knowledge with embeddings

Revision ID: 001_ai_engine
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

from alembic import op
from juris.core.config import settings

# revision identifiers, used by Alembic.
revision: str = "001_ai_engine"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _id() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def _json(name: str, default: str | None) -> sa.Column:
    if default is None:
        return sa.Column(name, postgresql.JSONB, nullable=True)
    return sa.Column(name, postgresql.JSONB, nullable=False, server_default=default)


def upgrade() -> None:
    """Create the AI engine tables."""
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    # ============================================================================
    # Configuration
    # ============================================================================

    op.create_table(
        "ai_agents",
        _id(),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("model", sa.String(255), nullable=False),
        sa.Column("system_prompt", sa.Text, nullable=False),
        _json("capabilities", "[]"),
        _json("tools", "[]"),
        _json("config", "{}"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )
    op.create_index("ix_ai_agents_slug", "ai_agents", ["slug"], unique=True)

    op.create_table(
        "ai_tools",
        _id(),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("function_name", sa.String(100), nullable=False),
        _json("parameters_schema", "{}"),
        sa.Column("requires_auth", sa.Boolean, nullable=False, server_default="false"),
        _json("allowed_agents", None),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )
    op.create_index("ix_ai_tools_slug", "ai_tools", ["slug"], unique=True)

    op.create_table(
        "ai_workflows",
        _id(),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        _json("agent_sequence", "[]"),
        _json("steps", "[]"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )
    op.create_index("ix_ai_workflows_slug", "ai_workflows", ["slug"], unique=True)

    # ============================================================================
    # Transcripts
    # ============================================================================

    op.create_table(
        "ai_conversations",
        _id(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "agent_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ai_agents.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("folder_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("mode", sa.String(20), nullable=False, server_default="single"),
        sa.Column("total_tokens", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        _json("metadata", "{}"),
        *_timestamps(),
    )
    op.create_index("ix_ai_conversations_user_id", "ai_conversations", ["user_id"])
    op.create_index("ix_ai_conversations_folder_id", "ai_conversations", ["folder_id"])

    op.create_table(
        "ai_messages",
        _id(),
        sa.Column(
            "conversation_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ai_conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sequence", sa.Integer, nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column(
            "agent_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ai_agents.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _json("tool_calls", None),
        _json("tool_results", None),
        sa.Column("tokens", sa.Integer, nullable=False, server_default="0"),
        sa.Column("finish_reason", sa.String(50), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "conversation_id", "sequence", name="uq_ai_messages_sequence"
        ),
    )
    op.create_index("ix_ai_messages_conversation_id", "ai_messages", ["conversation_id"])

    op.create_table(
        "ai_citations",
        _id(),
        sa.Column(
            "message_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ai_messages.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("knowledge_entry_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("source_type", sa.String(50), nullable=False),
        sa.Column("source_url", sa.Text, nullable=True),
        sa.Column("source_title", sa.String(500), nullable=True),
        sa.Column("excerpt", sa.Text, nullable=False),
        sa.Column("confidence_score", sa.Float, nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 1",
            name="ck_ai_citations_confidence_range",
        ),
    )
    op.create_index("ix_ai_citations_message_id", "ai_citations", ["message_id"])

    # ============================================================================
    # Execution ledger
    # ============================================================================

    op.create_table(
        "ai_agent_executions",
        _id(),
        sa.Column(
            "conversation_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ai_conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "agent_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ai_agents.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("agent_slug", sa.String(100), nullable=False),
        sa.Column(
            "workflow_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ai_workflows.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("workflow_slug", sa.String(100), nullable=True),
        sa.Column("step_index", sa.Integer, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        _json("input", "{}"),
        sa.Column("output", sa.Text, nullable=True),
        _json("tool_calls", "[]"),
        sa.Column("tokens_used", sa.Integer, nullable=False, server_default="0"),
        sa.Column("duration_ms", sa.Integer, nullable=True),
        sa.Column("error_type", sa.String(50), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_ai_agent_executions_conversation_id",
        "ai_agent_executions",
        ["conversation_id"],
    )
    op.create_index(
        "ix_ai_agent_executions_agent_id", "ai_agent_executions", ["agent_id"]
    )
    op.create_index(
        "ix_ai_agent_executions_started_at", "ai_agent_executions", ["started_at"]
    )
    op.create_index(
        "ix_ai_agent_executions_status_started",
        "ai_agent_executions",
        ["status", "started_at"],
    )

    # ============================================================================
    # Knowledge base
    # ============================================================================

    op.create_table(
        "ai_knowledge_base",
        _id(),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("embedding", Vector(settings.EMBEDDING_DIMENSION), nullable=True),
        sa.Column("source_type", sa.String(50), nullable=False),
        sa.Column("source_id", sa.String(255), nullable=True),
        sa.Column("source_url", sa.Text, nullable=True),
        sa.Column("title", sa.String(500), nullable=True),
        _json("tags", "[]"),
        sa.Column("language", sa.String(10), nullable=False, server_default="pt-BR"),
        _json("metadata", "{}"),
        *_timestamps(),
    )
    op.create_index(
        "ix_ai_knowledge_base_source_type", "ai_knowledge_base", ["source_type"]
    )
    op.create_index("ix_ai_knowledge_base_source_id", "ai_knowledge_base", ["source_id"])
    op.create_index(
        "ix_ai_knowledge_base_tags",
        "ai_knowledge_base",
        ["tags"],
        postgresql_using="gin",
    )
    op.create_index(
        "ix_ai_knowledge_base_embedding",
        "ai_knowledge_base",
        ["embedding"],
        postgresql_using="hnsw",
        postgresql_ops={"embedding": "vector_cosine_ops"},
    )


def downgrade() -> None:
    """Drop the AI engine tables (the vector extension is left installed)."""
    op.drop_table("ai_knowledge_base")
    op.drop_table("ai_agent_executions")
    op.drop_table("ai_citations")
    op.drop_table("ai_messages")
    op.drop_table("ai_conversations")
    op.drop_table("ai_workflows")
    op.drop_table("ai_tools")
    op.drop_table("ai_agents")
