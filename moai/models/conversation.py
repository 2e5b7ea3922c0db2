"""
Moai — Conversation and Message models.

A conversation is unique per unordered pair and batch week
(``pair_low``/``pair_high`` hold the sorted participant ids), so two directed
candidate rows for the same people can never open two conversations.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from moai.database import Base, JSONType


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint(
            "pair_low", "pair_high", "batch_week", name="uq_conversation_pair_week"
        ),
        Index("idx_conversations_user_a", "user_a"),
        Index("idx_conversations_user_b", "user_b"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    candidate_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("match_candidates.id", ondelete="SET NULL"), nullable=True
    )
    user_a: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    user_b: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    pair_low: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    pair_high: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    batch_week: Mapped[date] = mapped_column(Date, nullable=False)
    ai_present: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="active", comment="active / archived / blocked"
    )
    opened_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # ── Relationships ──────────────────────────────────────────────
    messages: Mapped[list["Message"]] = relationship(
        "Message", back_populates="conversation", cascade="all, delete-orphan",
        order_by="Message.created_at",
    )

    def has_participant(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.user_a, self.user_b)

    def __repr__(self) -> str:
        return (
            f"<Conversation {self.user_a} <-> {self.user_b} "
            f"week={self.batch_week} status={self.status!r}>"
        )


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_conversation_created", "conversation_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_type: Mapped[str] = mapped_column(String, nullable=False, comment="user / ai")
    sender_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata", JSONType, nullable=True, comment="Extra metadata (column name: metadata)"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # ── Relationships ──────────────────────────────────────────────
    conversation: Mapped["Conversation"] = relationship(
        "Conversation", back_populates="messages"
    )

    def __repr__(self) -> str:
        return f"<Message conv={self.conversation_id} sender={self.sender_type!r}>"
