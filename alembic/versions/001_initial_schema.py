"""Initial schema — Moai match engine tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _profile_fk(name: str, nullable: bool = False, **kwargs) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=nullable,
        **kwargs,
    )


def upgrade() -> None:
    # ── 1. profiles ─────────────────────────────────────────────────
    op.create_table(
        "profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("display_name", sa.String, nullable=False),
        sa.Column("city", sa.String, nullable=True),
        sa.Column("lat", sa.Float, nullable=False),
        sa.Column("lng", sa.Float, nullable=False),
        sa.Column(
            "radius_km",
            sa.Float,
            nullable=False,
            server_default="15",
            comment="Max acceptable distance",
        ),
        sa.Column("is_active", sa.Boolean, server_default="true", nullable=False),
        sa.Column("is_paused", sa.Boolean, server_default="false", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ── 2. preferences ──────────────────────────────────────────────
    op.create_table(
        "preferences",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _profile_fk("user_id", unique=True),
        sa.Column(
            "languages",
            postgresql.JSONB,
            nullable=False,
            server_default="[]",
            comment="Array of language codes",
        ),
        sa.Column(
            "availability_slots",
            postgresql.JSONB,
            nullable=False,
            server_default="{}",
            comment="time bucket -> flag, e.g. {'sat_morning': true}",
        ),
        sa.Column("reminder_opt_in", sa.Boolean, server_default="true", nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ── 3. intake_profiles ──────────────────────────────────────────
    op.create_table(
        "intake_profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _profile_fk("user_id", unique=True),
        sa.Column(
            "answers",
            postgresql.JSONB,
            nullable=False,
            server_default="{}",
            comment="Categorical answers by field",
        ),
        sa.Column("hobbies", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column("topics", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column(
            "embedding",
            postgresql.JSONB,
            nullable=True,
            comment="Free-text answer embedding",
        ),
        sa.Column(
            "completed_at",
            sa.DateTime(timezone=True),
            nullable=True,
            comment="Set once ready for matching",
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ── 4. blocks ───────────────────────────────────────────────────
    op.create_table(
        "blocks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _profile_fk("blocker_id"),
        _profile_fk("blocked_id"),
        sa.Column("reason", sa.String, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("blocker_id", "blocked_id", name="uq_block_pair"),
    )

    # ── 5. match_candidates ─────────────────────────────────────────
    op.create_table(
        "match_candidates",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("batch_week", sa.Date, nullable=False),
        _profile_fk(
            "user_a",
            comment="Initiator: the user whose weekly batch produced this row",
        ),
        _profile_fk("user_b"),
        sa.Column("score", sa.Float, nullable=False),
        sa.Column(
            "reasons",
            postgresql.JSONB,
            nullable=False,
            comment="{overlaps: [...], complement: str}",
        ),
        sa.Column(
            "status",
            sa.String,
            nullable=False,
            server_default="pending",
            comment="pending / accepted / rejected / expired",
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "user_a", "user_b", "batch_week", name="uq_candidate_batch_pair"
        ),
    )
    op.create_index("idx_match_candidates_user_b", "match_candidates", ["user_b"])
    op.create_index("idx_match_candidates_created_at", "match_candidates", ["created_at"])

    # ── 6. consents ─────────────────────────────────────────────────
    op.create_table(
        "consents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "candidate_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("match_candidates.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _profile_fk("user_id"),
        sa.Column("response", sa.Boolean, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "candidate_id", "user_id", name="uq_consent_candidate_user"
        ),
    )

    # ── 7. conversations ────────────────────────────────────────────
    op.create_table(
        "conversations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "candidate_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("match_candidates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _profile_fk("user_a"),
        _profile_fk("user_b"),
        sa.Column("pair_low", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("pair_high", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("batch_week", sa.Date, nullable=False),
        sa.Column("ai_present", sa.Boolean, server_default="true", nullable=False),
        sa.Column(
            "status",
            sa.String,
            nullable=False,
            server_default="active",
            comment="active / archived / blocked",
        ),
        sa.Column(
            "opened_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "last_activity_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "pair_low", "pair_high", "batch_week", name="uq_conversation_pair_week"
        ),
    )
    op.create_index("idx_conversations_user_a", "conversations", ["user_a"])
    op.create_index("idx_conversations_user_b", "conversations", ["user_b"])

    # ── 8. messages ─────────────────────────────────────────────────
    op.create_table(
        "messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "conversation_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sender_type", sa.String, nullable=False, comment="user / ai"),
        sa.Column(
            "sender_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("profiles.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("text", sa.Text, nullable=False),
        sa.Column(
            "metadata",
            postgresql.JSONB,
            nullable=True,
            comment="Extra metadata (column name: metadata)",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "idx_messages_conversation_created",
        "messages",
        ["conversation_id", "created_at"],
    )


def downgrade() -> None:
    # Drop in reverse order (children / dependents first).
    op.drop_index("idx_messages_conversation_created", table_name="messages")
    op.drop_table("messages")

    op.drop_index("idx_conversations_user_b", table_name="conversations")
    op.drop_index("idx_conversations_user_a", table_name="conversations")
    op.drop_table("conversations")

    op.drop_table("consents")

    op.drop_index("idx_match_candidates_created_at", table_name="match_candidates")
    op.drop_index("idx_match_candidates_user_b", table_name="match_candidates")
    op.drop_table("match_candidates")

    op.drop_table("blocks")
    op.drop_table("intake_profiles")
    op.drop_table("preferences")
    op.drop_table("profiles")
