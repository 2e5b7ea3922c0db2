"""
Moai — Weekly batch generator.

For one requesting user and one batch week:

  1. load profile + intake + preferences     (MissingPrerequisite if absent)
  2. load the active, unpaused, onboarded pool (minus blocks)
  3. score everyone, keep score > MIN_MATCH_SCORE
  4. sort by score desc, candidate id asc
  5. drop anyone paired with the user in the last COOLDOWN_WEEKS
  6. keep the top WEEKLY_SLATE_SIZE
  7. insert pending candidates expiring CANDIDATE_TTL_DAYS after creation

Inserts tolerate the ``(user_a, user_b, batch_week)`` constraint, so a
re-run for the same week is a no-op rather than a duplicate.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from moai import repository
from moai.config import get_settings
from moai.exceptions import MissingPrerequisite
from moai.models import MatchCandidate, Profile
from moai.services.scoring_service import MatchScore, MatchSubject, ScoringService
from moai.services.state_machine import CandidateStatus

logger = structlog.get_logger("moai.batch_service")


def week_anchor(now: datetime) -> date:
    """Sunday that opens the delivery week containing ``now`` (UTC)."""
    day = now.astimezone(timezone.utc).date()
    # Monday=0 … Sunday=6
    return day - timedelta(days=(day.weekday() + 1) % 7)


@dataclass
class ScoredCandidate:
    user_id: uuid.UUID
    score: MatchScore


@dataclass
class BatchResult:
    user_id: uuid.UUID
    batch_week: date
    created: list[MatchCandidate] = field(default_factory=list)
    skipped: list[uuid.UUID] = field(default_factory=list)
    failed: list[uuid.UUID] = field(default_factory=list)


class BatchService:
    """Generate a user's weekly slate of match candidates."""

    def __init__(self, scoring_service: ScoringService | None = None) -> None:
        settings = get_settings()
        self.scoring_service = scoring_service or ScoringService()
        self.min_score: float = settings.MIN_MATCH_SCORE
        self.slate_size: int = settings.WEEKLY_SLATE_SIZE
        self.cooldown: timedelta = timedelta(weeks=settings.COOLDOWN_WEEKS)
        self.ttl: timedelta = timedelta(days=settings.CANDIDATE_TTL_DAYS)

    # ── Public API ────────────────────────────────────────────────────────

    async def generate_weekly_matches(
        self,
        user_id: uuid.UUID,
        batch_week: date,
        db: AsyncSession,
        now: datetime | None = None,
    ) -> BatchResult:
        """Score the pool for ``user_id`` and persist this week's slate.

        ``batch_week`` must already be normalised by the caller (for
        example with ``week_anchor``); it is the deduplication key.
        """
        now = now or datetime.now(timezone.utc)
        log = logger.bind(user_id=str(user_id), batch_week=batch_week.isoformat())
        log.info("batch_start")

        requester = await self._load_requester(user_id, db)
        subject = MatchSubject.from_profile(requester)

        pool = await repository.list_eligible_profiles(db, exclude_user_id=user_id)
        blocked = await repository.blocked_user_ids(db, user_id)

        ranked = self.rank_candidates(
            subject,
            [p for p in pool if p.id not in blocked],
        )

        recent = await repository.cooldown_partner_ids(
            db, user_id, since=now - self.cooldown, current_week=batch_week
        )
        # Rows from an earlier run this week occupy slate slots.
        existing = await repository.list_initiated_partner_ids(db, user_id, batch_week)
        open_slots = max(0, self.slate_size - len(existing))
        slate = [
            c for c in ranked
            if c.user_id not in recent and c.user_id not in existing
        ][:open_slots]

        log.info(
            "batch_slate_selected",
            pool_size=len(pool),
            blocked=len(blocked),
            above_threshold=len(ranked),
            in_cooldown=len(recent),
            already_issued=len(existing),
            slate_size=len(slate),
        )

        result = BatchResult(user_id=user_id, batch_week=batch_week)
        result.skipped.extend(existing)
        created_ids: list[uuid.UUID] = []

        for candidate in slate:
            try:
                inserted_id = await repository.insert_candidate(
                    db,
                    {
                        "id": uuid.uuid4(),
                        "batch_week": batch_week,
                        "user_a": user_id,
                        "user_b": candidate.user_id,
                        "score": candidate.score.value,
                        "reasons": candidate.score.reasons,
                        "status": CandidateStatus.PENDING.value,
                        "created_at": now,
                        "expires_at": now + self.ttl,
                    },
                )
            except SQLAlchemyError as exc:
                log.error(
                    "batch_candidate_insert_failed",
                    user_b=str(candidate.user_id),
                    error=str(exc),
                )
                result.failed.append(candidate.user_id)
                continue

            if inserted_id is None:
                log.info("batch_candidate_exists", user_b=str(candidate.user_id))
                result.skipped.append(candidate.user_id)
            else:
                created_ids.append(inserted_id)

        result.created = await repository.get_candidates(db, created_ids)

        log.info(
            "batch_complete",
            created=len(result.created),
            skipped=len(result.skipped),
            failed=len(result.failed),
        )
        return result

    def rank_candidates(
        self, subject: MatchSubject, pool: list[Profile]
    ) -> list[ScoredCandidate]:
        """Score ``pool`` against ``subject``; drop low scores; sort."""
        scored: list[ScoredCandidate] = []
        for profile in pool:
            match = self.scoring_service.score(subject, MatchSubject.from_profile(profile))
            if match.value <= self.min_score:
                continue
            scored.append(ScoredCandidate(user_id=profile.id, score=match))

        scored.sort(key=lambda c: (-c.score.value, str(c.user_id)))
        return scored

    # ── Internal helpers ──────────────────────────────────────────────────

    @staticmethod
    async def _load_requester(user_id: uuid.UUID, db: AsyncSession) -> Profile:
        profile = await repository.get_profile(db, user_id)

        missing: list[str] = []
        if profile is None:
            missing.append("profile")
        else:
            if profile.intake is None:
                missing.append("intake")
            elif not profile.intake.is_complete:
                missing.append("intake (incomplete)")
            if profile.preferences is None:
                missing.append("preferences")

        if missing:
            logger.warning("batch_missing_prerequisite", user_id=str(user_id), missing=missing)
            raise MissingPrerequisite(user_id, missing)
        return profile
