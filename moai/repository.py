"""
Moai — Persistence helpers for the match engine.

Every write that can race goes through an ``INSERT … ON CONFLICT`` against
one of the natural unique constraints, so the database rather than the
application decides who wins:

  match_candidates  (user_a, user_b, batch_week)       DO NOTHING
  consents          (candidate_id, user_id)            DO UPDATE
  conversations     (pair_low, pair_high, batch_week)  DO NOTHING

PostgreSQL and SQLite both support the construct; ``_insert`` picks the
dialect-specific ``insert`` for the session at hand.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import and_, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from moai.database import dialect_name
from moai.models import (
    Block,
    Consent,
    Conversation,
    IntakeProfile,
    MatchCandidate,
    Message,
    PreferenceSet,
    Profile,
)
from moai.services.state_machine import CandidateStatus


def _insert(db: AsyncSession, model: Any):
    if dialect_name(db) == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)


def canonical_pair(user_a: uuid.UUID, user_b: uuid.UUID) -> tuple[uuid.UUID, uuid.UUID]:
    low, high = sorted((user_a, user_b))
    return low, high


# ──────────────────────────────────────────────────────────────────────────────
# Profiles & pool
# ──────────────────────────────────────────────────────────────────────────────

async def get_profile(db: AsyncSession, user_id: uuid.UUID) -> Profile | None:
    stmt = (
        select(Profile)
        .where(Profile.id == user_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_eligible_profiles(
    db: AsyncSession, exclude_user_id: uuid.UUID
) -> list[Profile]:
    """Active, unpaused profiles with preferences and a completed intake."""
    stmt = (
        select(Profile)
        .join(PreferenceSet, PreferenceSet.user_id == Profile.id)
        .join(IntakeProfile, IntakeProfile.user_id == Profile.id)
        .where(
            Profile.is_active.is_(True),
            Profile.is_paused.is_(False),
            Profile.id != exclude_user_id,
            IntakeProfile.completed_at.is_not(None),
        )
        .order_by(Profile.id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return list(result.scalars().unique().all())


async def blocked_user_ids(db: AsyncSession, user_id: uuid.UUID) -> set[uuid.UUID]:
    """Users blocked by, or blocking, ``user_id``."""
    stmt = select(Block.blocker_id, Block.blocked_id).where(
        or_(Block.blocker_id == user_id, Block.blocked_id == user_id)
    )
    result = await db.execute(stmt)
    ids: set[uuid.UUID] = set()
    for blocker_id, blocked_id in result.all():
        ids.add(blocked_id if blocker_id == user_id else blocker_id)
    return ids


async def cooldown_partner_ids(
    db: AsyncSession,
    user_id: uuid.UUID,
    since: datetime,
    current_week: date,
) -> set[uuid.UUID]:
    """Users paired with ``user_id`` in either direction since ``since``.

    Rows the user initiated in ``current_week`` are left out; the batch
    counts those against the slate instead.
    """
    stmt = select(MatchCandidate.user_a, MatchCandidate.user_b).where(
        MatchCandidate.created_at >= since,
        or_(
            and_(
                MatchCandidate.user_a == user_id,
                MatchCandidate.batch_week != current_week,
            ),
            MatchCandidate.user_b == user_id,
        ),
    )
    result = await db.execute(stmt)
    return {
        user_b if user_a == user_id else user_a
        for user_a, user_b in result.all()
    }


# ──────────────────────────────────────────────────────────────────────────────
# Candidates
# ──────────────────────────────────────────────────────────────────────────────

async def insert_candidate(db: AsyncSession, values: dict[str, Any]) -> uuid.UUID | None:
    """Insert a candidate row; ``None`` when the batch pair already exists."""
    stmt = (
        _insert(db, MatchCandidate)
        .values(**values)
        .on_conflict_do_nothing(index_elements=["user_a", "user_b", "batch_week"])
        .returning(MatchCandidate.id)
    )
    async with db.begin_nested():
        result = await db.execute(stmt)
        return result.scalar_one_or_none()


async def list_initiated_partner_ids(
    db: AsyncSession, user_id: uuid.UUID, batch_week: date
) -> list[uuid.UUID]:
    """Partners already on ``user_id``'s slate for ``batch_week``, best first."""
    stmt = (
        select(MatchCandidate.user_b)
        .where(
            MatchCandidate.user_a == user_id,
            MatchCandidate.batch_week == batch_week,
        )
        .order_by(MatchCandidate.score.desc(), MatchCandidate.user_b)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_candidate(
    db: AsyncSession, candidate_id: uuid.UUID, *, for_update: bool = False
) -> MatchCandidate | None:
    stmt = select(MatchCandidate).where(MatchCandidate.id == candidate_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def get_candidates(db: AsyncSession, ids: list[uuid.UUID]) -> list[MatchCandidate]:
    if not ids:
        return []
    stmt = (
        select(MatchCandidate)
        .where(MatchCandidate.id.in_(ids))
        .order_by(MatchCandidate.score.desc(), MatchCandidate.user_b)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def set_candidate_status(
    db: AsyncSession, candidate: MatchCandidate, status: CandidateStatus
) -> None:
    candidate.status = status.value
    await db.flush()


async def list_pending_candidates(
    db: AsyncSession, user_id: uuid.UUID, now: datetime
) -> list[MatchCandidate]:
    stmt = (
        select(MatchCandidate)
        .where(
            or_(MatchCandidate.user_a == user_id, MatchCandidate.user_b == user_id),
            MatchCandidate.status == CandidateStatus.PENDING.value,
            MatchCandidate.expires_at > now,
        )
        .order_by(MatchCandidate.created_at.desc(), MatchCandidate.score.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def expire_stale_candidates(db: AsyncSession, now: datetime) -> int:
    stmt = (
        update(MatchCandidate)
        .where(
            MatchCandidate.status == CandidateStatus.PENDING.value,
            MatchCandidate.expires_at < now,
        )
        .values(status=CandidateStatus.EXPIRED.value)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount or 0


# ──────────────────────────────────────────────────────────────────────────────
# Consents
# ──────────────────────────────────────────────────────────────────────────────

async def upsert_consent(
    db: AsyncSession,
    candidate_id: uuid.UUID,
    user_id: uuid.UUID,
    response: bool,
    now: datetime,
) -> None:
    stmt = _insert(db, Consent).values(
        id=uuid.uuid4(),
        candidate_id=candidate_id,
        user_id=user_id,
        response=response,
        created_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["candidate_id", "user_id"],
        set_={"response": stmt.excluded.response, "updated_at": now},
    )
    await db.execute(stmt)


async def consent_responses(
    db: AsyncSession, candidate_id: uuid.UUID
) -> dict[uuid.UUID, bool]:
    """Latest response per user, read straight from the table."""
    stmt = select(Consent.user_id, Consent.response).where(
        Consent.candidate_id == candidate_id
    )
    result = await db.execute(stmt)
    return {user_id: bool(response) for user_id, response in result.all()}


# ──────────────────────────────────────────────────────────────────────────────
# Conversations & messages
# ──────────────────────────────────────────────────────────────────────────────

async def insert_conversation(db: AsyncSession, values: dict[str, Any]) -> uuid.UUID | None:
    """Insert a conversation; ``None`` when the pair already has one this week."""
    stmt = (
        _insert(db, Conversation)
        .values(**values)
        .on_conflict_do_nothing(index_elements=["pair_low", "pair_high", "batch_week"])
        .returning(Conversation.id)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_conversation(
    db: AsyncSession, conversation_id: uuid.UUID
) -> Conversation | None:
    stmt = (
        select(Conversation)
        .where(Conversation.id == conversation_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_conversation_for_pair(
    db: AsyncSession, user_a: uuid.UUID, user_b: uuid.UUID, batch_week: date
) -> Conversation | None:
    low, high = canonical_pair(user_a, user_b)
    stmt = select(Conversation).where(
        Conversation.pair_low == low,
        Conversation.pair_high == high,
        Conversation.batch_week == batch_week,
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_conversations(db: AsyncSession, user_id: uuid.UUID) -> list[Conversation]:
    stmt = (
        select(Conversation)
        .where(or_(Conversation.user_a == user_id, Conversation.user_b == user_id))
        .order_by(Conversation.last_activity_at.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def add_message(db: AsyncSession, **values: Any) -> Message:
    message = Message(**values)
    db.add(message)
    await db.flush()
    return message


async def list_messages(db: AsyncSession, conversation_id: uuid.UUID) -> list[Message]:
    stmt = (
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at, Message.id)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
