"""
Moai — Consent tracker.

Records each participant's yes/no for a match candidate and drives the
candidate through the state machine.  The mutual-consent check is re-run
in the same transaction straight after every consent write, so whichever
of two near-simultaneous "yes" submissions lands second sees both answers.
Conversation creation itself is idempotent (see ``ConversationService``),
so both submissions reaching the check at once still yields a single
conversation.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from moai import repository
from moai.exceptions import CandidateExpired, CandidateNotFound, NotAParticipant
from moai.models import MatchCandidate
from moai.services.conversation_service import ConversationService
from moai.services.state_machine import CandidateStatus, as_utc, is_mutual, transition

logger = structlog.get_logger("moai.consent_service")


@dataclass
class ConsentResult:
    candidate_id: uuid.UUID
    status: CandidateStatus
    mutual: bool
    conversation_id: uuid.UUID | None = None


async def check_mutual_consent(db: AsyncSession, candidate: MatchCandidate) -> bool:
    """True once the candidate is accepted, or while it is pending with at
    least two consents that are all yes."""
    responses = await repository.consent_responses(db, candidate.id)
    return is_mutual(CandidateStatus(candidate.status), responses)


class ConsentService:
    """Record consents and react to the transition into ``accepted``."""

    def __init__(self, conversation_service: ConversationService) -> None:
        self.conversation_service = conversation_service

    async def record_consent(
        self,
        candidate_id: uuid.UUID,
        user_id: uuid.UUID,
        response: bool,
        db: AsyncSession,
        now: datetime | None = None,
    ) -> ConsentResult:
        """Upsert ``user_id``'s answer and re-evaluate the candidate.

        Raises
        ------
        CandidateNotFound
            Unknown candidate id.
        NotAParticipant
            ``user_id`` is neither side of the candidate.
        CandidateExpired
            The answer window closed before this submission; nothing is
            recorded.
        """
        now = now or datetime.now(timezone.utc)
        log = logger.bind(candidate_id=str(candidate_id), user_id=str(user_id))

        candidate = await repository.get_candidate(db, candidate_id, for_update=True)
        if candidate is None:
            raise CandidateNotFound(candidate_id)
        if user_id not in candidate.participants():
            raise NotAParticipant(user_id, f"candidate {candidate_id}")

        current = CandidateStatus(candidate.status)
        if current is CandidateStatus.PENDING and now > as_utc(candidate.expires_at):
            await repository.set_candidate_status(db, candidate, CandidateStatus.EXPIRED)
            log.info("consent_on_expired_candidate")
            raise CandidateExpired(candidate_id)
        if current is CandidateStatus.EXPIRED:
            raise CandidateExpired(candidate_id)

        await repository.upsert_consent(db, candidate_id, user_id, response, now)
        log.info("consent_recorded", response=response, status_before=current.value)

        responses = await repository.consent_responses(db, candidate_id)
        new_status = transition(
            current,
            responses,
            candidate.participants(),
            now,
            candidate.expires_at,
        )

        if new_status is not current:
            await repository.set_candidate_status(db, candidate, new_status)
            log.info(
                "candidate_transition",
                from_status=current.value,
                to_status=new_status.value,
            )

        mutual = is_mutual(new_status, responses)
        conversation_id: uuid.UUID | None = None
        if new_status is CandidateStatus.ACCEPTED:
            conversation = await self.conversation_service.open_conversation(
                candidate, db, now=now
            )
            conversation_id = conversation.id if conversation is not None else None

        return ConsentResult(
            candidate_id=candidate_id,
            status=new_status,
            mutual=mutual,
            conversation_id=conversation_id,
        )
