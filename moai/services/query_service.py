"""
Moai — Read-side queries consumed by the UI and chat collaborators.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from moai import repository
from moai.exceptions import CandidateNotFound, ConversationNotFound, NotAParticipant
from moai.models import Conversation, MatchCandidate, Message
from moai.services.consent_service import check_mutual_consent
from moai.services.state_machine import CandidateStatus, effective_status, is_mutual

logger = structlog.get_logger("moai.query_service")


async def get_pending_candidates(
    user_id: uuid.UUID, db: AsyncSession, now: datetime | None = None
) -> list[MatchCandidate]:
    """Unexpired, unresolved candidates where ``user_id`` is either side."""
    now = now or datetime.now(timezone.utc)
    return await repository.list_pending_candidates(db, user_id, now)


async def has_mutual_consent(candidate_id: uuid.UUID, db: AsyncSession) -> bool:
    candidate = await repository.get_candidate(db, candidate_id)
    if candidate is None:
        raise CandidateNotFound(candidate_id)
    return await check_mutual_consent(db, candidate)


async def get_candidate_state(
    candidate_id: uuid.UUID, db: AsyncSession, now: datetime | None = None
) -> dict[str, Any]:
    """Effective status, per-user responses and the conversation, if any."""
    now = now or datetime.now(timezone.utc)

    candidate = await repository.get_candidate(db, candidate_id)
    if candidate is None:
        raise CandidateNotFound(candidate_id)

    responses = await repository.consent_responses(db, candidate_id)
    conversation = await repository.get_conversation_for_pair(
        db, candidate.user_a, candidate.user_b, candidate.batch_week
    )
    return {
        "candidate": candidate,
        "status": effective_status(candidate.status, now, candidate.expires_at),
        "responses": responses,
        "mutual": is_mutual(CandidateStatus(candidate.status), responses),
        "conversation_id": conversation.id if conversation is not None else None,
    }


async def list_conversations(user_id: uuid.UUID, db: AsyncSession) -> list[Conversation]:
    return await repository.list_conversations(db, user_id)


async def list_messages(
    conversation_id: uuid.UUID,
    db: AsyncSession,
    viewer_id: uuid.UUID | None = None,
) -> list[Message]:
    """Messages in creation order; ``viewer_id`` restricts to participants."""
    conversation = await repository.get_conversation(db, conversation_id)
    if conversation is None:
        raise ConversationNotFound(conversation_id)
    if viewer_id is not None and not conversation.has_participant(viewer_id):
        raise NotAParticipant(viewer_id, f"conversation {conversation_id}")
    return await repository.list_messages(db, conversation_id)


async def expire_stale_candidates(db: AsyncSession, now: datetime | None = None) -> int:
    """Persist ``expired`` for pending rows past their deadline."""
    now = now or datetime.now(timezone.utc)
    count = await repository.expire_stale_candidates(db, now)
    logger.info("expire_stale_candidates", expired=count)
    return count
