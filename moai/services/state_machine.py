"""
Moai — Match candidate state machine.

    pending --(both participants said yes)--> accepted
    pending --(either participant said no)--> rejected
    pending --(now > expires_at)------------> expired

accepted, rejected and expired are terminal.  ``transition`` is the only
place a status is decided; everything that persists a status goes through it.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Mapping


class CandidateStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not CandidateStatus.PENDING


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps coming back from the store as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def transition(
    current: CandidateStatus,
    responses: Mapping[uuid.UUID, bool],
    participants: tuple[uuid.UUID, uuid.UUID],
    now: datetime,
    expires_at: datetime,
) -> CandidateStatus:
    """Return the status a candidate should hold given its latest consents.

    ``responses`` maps user id -> latest response for this candidate.
    Responses from users outside ``participants`` are ignored.
    """
    if current.is_terminal:
        return current

    if as_utc(now) > as_utc(expires_at):
        return CandidateStatus.EXPIRED

    relevant = {uid: responses[uid] for uid in participants if uid in responses}

    if any(answer is False for answer in relevant.values()):
        return CandidateStatus.REJECTED

    if len(relevant) == 2 and all(relevant.values()):
        return CandidateStatus.ACCEPTED

    return CandidateStatus.PENDING


def effective_status(status: str, now: datetime, expires_at: datetime) -> CandidateStatus:
    """Status as seen by readers: a pending row past its deadline is expired
    even if nothing has persisted that yet."""
    current = CandidateStatus(status)
    if current is CandidateStatus.PENDING and as_utc(now) > as_utc(expires_at):
        return CandidateStatus.EXPIRED
    return current


def is_mutual(status: CandidateStatus, responses: Mapping[uuid.UUID, bool]) -> bool:
    """Whether the pair has mutual consent.

    A terminal status settles the answer: accepted rows stay mutual and
    rejected or expired rows never become mutual, whatever is submitted
    afterwards.  Pending rows need two consents, all of them yes.
    """
    if status is CandidateStatus.ACCEPTED:
        return True
    if status.is_terminal:
        return False
    return len(responses) >= 2 and all(responses.values())
