"""Initial schema for SpecForge.

Creates the project store: projects, conversation_turns,
research_artifacts, generated_documents, download_events and the
outbound_events notification outbox.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum type names follow SQLAlchemy's default (lowercased class name)
ENUMS = {
    "projectstatus": (
        "chatting", "researching", "generating", "review", "complete", "archived",
    ),
    "researchprogress": ("pending", "in_progress", "complete", "skipped"),
    "specprogress": ("draft", "complete"),
    "turnrole": ("user", "assistant", "system"),
    "researchstatus": (
        "generating", "phase_1", "phase_2", "phase_3", "phase_4", "complete", "failed",
    ),
    "documentstatus": ("generating", "validating", "complete", "failed"),
    "outboundstatus": ("pending", "delivered", "failed"),
}


def _enum(name: str) -> sa.Enum:
    return sa.Enum(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        sa.Enum(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), server_default=sa.text("gen_random_uuid()"), primary_key=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("status", _enum("projectstatus"), nullable=False, server_default="chatting"),
        sa.Column(
            "research_status",
            _enum("researchprogress"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("spec_status", _enum("specprogress"), nullable=False, server_default="draft"),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("parent_project_id", sa.Uuid(), sa.ForeignKey("projects.id"), nullable=True),
        sa.Column(
            "status_changed_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_projects_user_id", "projects", ["user_id"])
    op.create_index("idx_projects_status_changed", "projects", ["status", "status_changed_at"])

    op.create_table(
        "conversation_turns",
        sa.Column("id", sa.Uuid(), server_default=sa.text("gen_random_uuid()"), primary_key=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("role", _enum("turnrole"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("message_order", sa.Integer(), nullable=False),
        sa.Column(
            "turn_metadata",
            JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        *_timestamps(),
        sa.UniqueConstraint("project_id", "message_order", name="uq_turn_order"),
    )
    op.create_index("ix_conversation_turns_project_id", "conversation_turns", ["project_id"])

    op.create_table(
        "research_artifacts",
        sa.Column("id", sa.Uuid(), server_default=sa.text("gen_random_uuid()"), primary_key=True),
        sa.Column(
            "project_id",
            sa.Uuid(),
            sa.ForeignKey("projects.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column(
            "status",
            _enum("researchstatus"),
            nullable=False,
            server_default="generating",
        ),
        sa.Column("domain_analysis", JSONB, nullable=True),
        sa.Column("feature_decomposition", JSONB, nullable=True),
        sa.Column("technical_requirements", JSONB, nullable=True),
        sa.Column("competitive_gaps", JSONB, nullable=True),
        sa.Column("novel_category", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "skipped_phases",
            JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("failed_phase", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("total_cost_usd", sa.Float(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "generated_documents",
        sa.Column("id", sa.Uuid(), server_default=sa.text("gen_random_uuid()"), primary_key=True),
        sa.Column(
            "project_id",
            sa.Uuid(),
            sa.ForeignKey("projects.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column(
            "status",
            _enum("documentstatus"),
            nullable=False,
            server_default="generating",
        ),
        *[sa.Column(f"gate_{n}", JSONB, nullable=True) for n in range(6)],
        sa.Column("full_document", sa.Text(), nullable=True),
        sa.Column("recommended_stack", JSONB, nullable=True),
        sa.Column("entity_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("state_change_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quality_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("findings", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("complexity_rating", sa.Text(), nullable=True),
        sa.Column("build_hours_min", sa.Integer(), nullable=True),
        sa.Column("build_hours_max", sa.Integer(), nullable=True),
        sa.Column("generation_cost_usd", sa.Float(), nullable=False, server_default="0"),
        sa.Column("fix_attempted", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table(
        "download_events",
        sa.Column("id", sa.Uuid(), server_default=sa.text("gen_random_uuid()"), primary_key=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column(
            "document_id",
            sa.Uuid(),
            sa.ForeignKey("generated_documents.id"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("archive_size_bytes", sa.Integer(), nullable=False),
        sa.Column(
            "included_files",
            JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        *_timestamps(),
    )
    op.create_index("ix_download_events_project_id", "download_events", ["project_id"])

    op.create_table(
        "outbound_events",
        sa.Column("id", sa.Uuid(), server_default=sa.text("gen_random_uuid()"), primary_key=True),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=True),
        sa.Column("payload", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("status", _enum("outboundstatus"), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_outbound_events_event_type", "outbound_events", ["event_type"])
    op.create_index(
        "idx_outbound_events_pending",
        "outbound_events",
        ["created_at"],
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index("idx_outbound_events_pending", table_name="outbound_events")
    op.drop_index("ix_outbound_events_event_type", table_name="outbound_events")
    op.drop_table("outbound_events")
    op.drop_index("ix_download_events_project_id", table_name="download_events")
    op.drop_table("download_events")
    op.drop_table("generated_documents")
    op.drop_table("research_artifacts")
    op.drop_index("ix_conversation_turns_project_id", table_name="conversation_turns")
    op.drop_table("conversation_turns")
    op.drop_index("idx_projects_status_changed", table_name="projects")
    op.drop_index("ix_projects_user_id", table_name="projects")
    op.drop_table("projects")

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        sa.Enum(name=name).drop(bind, checkfirst=True)
