"""
Moai — Conversation initiator.

Opens the conversation for a mutually accepted candidate and seeds it with
an AI-written opener.  Creation is guarded by the
``(pair_low, pair_high, batch_week)`` unique constraint: whichever consent
event inserts first owns the conversation, every other caller gets the
existing row back and does nothing else.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from moai import repository
from moai.exceptions import ConversationClosed, ConversationNotFound, NotAParticipant
from moai.models import Conversation, MatchCandidate, Message
from moai.services.opener_service import OpenerContext, OpenerGenerator

logger = structlog.get_logger("moai.conversation_service")


class ConversationService:
    """Create conversations and append messages to them."""

    def __init__(self, opener_service: OpenerGenerator) -> None:
        self.opener_service = opener_service

    async def open_conversation(
        self,
        candidate: MatchCandidate,
        db: AsyncSession,
        now: datetime | None = None,
    ) -> Conversation | None:
        """Create the conversation for ``candidate`` exactly once.

        Returns the existing conversation when the pair already has one for
        this batch week, or ``None`` if that row was deleted between the
        conflicting insert and the read-back.
        """
        now = now or datetime.now(timezone.utc)
        log = logger.bind(
            candidate_id=str(candidate.id),
            user_a=str(candidate.user_a),
            user_b=str(candidate.user_b),
        )
        low, high = repository.canonical_pair(candidate.user_a, candidate.user_b)

        conversation_id = await repository.insert_conversation(
            db,
            {
                "id": uuid.uuid4(),
                "candidate_id": candidate.id,
                "user_a": candidate.user_a,
                "user_b": candidate.user_b,
                "pair_low": low,
                "pair_high": high,
                "batch_week": candidate.batch_week,
                "ai_present": True,
                "status": "active",
                "opened_at": now,
                "last_activity_at": now,
            },
        )

        if conversation_id is None:
            existing = await repository.get_conversation_for_pair(
                db, candidate.user_a, candidate.user_b, candidate.batch_week
            )
            log.info(
                "conversation_already_exists",
                conversation_id=str(existing.id) if existing else None,
            )
            return existing

        opener = await self.opener_service.generate_opener(
            OpenerContext.from_reasons(candidate.score, candidate.reasons)
        )
        await repository.add_message(
            db,
            id=uuid.uuid4(),
            conversation_id=conversation_id,
            sender_type="ai",
            sender_id=None,
            text=opener.text,
            metadata_={"type": "opening", "source": opener.source},
            created_at=now,
        )

        conversation = await repository.get_conversation(db, conversation_id)
        log.info(
            "conversation_opened",
            conversation_id=str(conversation_id),
            opener_source=opener.source,
        )
        return conversation

    async def append_message(
        self,
        conversation_id: uuid.UUID,
        sender_id: uuid.UUID,
        text: str,
        db: AsyncSession,
        now: datetime | None = None,
    ) -> Message:
        """Append a user message and bump the conversation's activity time."""
        now = now or datetime.now(timezone.utc)

        conversation = await repository.get_conversation(db, conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        if not conversation.has_participant(sender_id):
            raise NotAParticipant(sender_id, f"conversation {conversation_id}")
        if conversation.status != "active":
            raise ConversationClosed(conversation_id, conversation.status)

        message = await repository.add_message(
            db,
            id=uuid.uuid4(),
            conversation_id=conversation_id,
            sender_type="user",
            sender_id=sender_id,
            text=text,
            created_at=now,
        )
        conversation.last_activity_at = now
        await db.flush()

        logger.info(
            "message_appended",
            conversation_id=str(conversation_id),
            sender_id=str(sender_id),
        )
        return message
