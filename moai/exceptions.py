"""
Moai — Match engine error hierarchy.

Services raise these; the API layer maps them onto HTTP status codes via
``MatchEngineError.status_code``.
"""

from __future__ import annotations

import uuid


class MatchEngineError(Exception):
    """Base class for all errors raised by the match engine."""

    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MissingPrerequisite(MatchEngineError):
    """The requesting user has not finished onboarding (profile, intake or
    preferences absent), so no matching can run for them yet."""

    status_code = 409

    def __init__(self, user_id: uuid.UUID, missing: list[str]) -> None:
        super().__init__(
            f"User {user_id} cannot be matched yet; missing: {', '.join(missing)}"
        )
        self.user_id = user_id
        self.missing = missing


class CandidateNotFound(MatchEngineError):
    status_code = 404

    def __init__(self, candidate_id: uuid.UUID) -> None:
        super().__init__(f"Match candidate {candidate_id} not found")
        self.candidate_id = candidate_id


class CandidateExpired(MatchEngineError):
    status_code = 410

    def __init__(self, candidate_id: uuid.UUID) -> None:
        super().__init__(f"Match candidate {candidate_id} has expired")
        self.candidate_id = candidate_id


class NotAParticipant(MatchEngineError):
    status_code = 403

    def __init__(self, user_id: uuid.UUID, target: str) -> None:
        super().__init__(f"User {user_id} is not a participant of {target}")
        self.user_id = user_id


class ConversationNotFound(MatchEngineError):
    status_code = 404

    def __init__(self, conversation_id: uuid.UUID) -> None:
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class ConversationClosed(MatchEngineError):
    status_code = 409

    def __init__(self, conversation_id: uuid.UUID, status: str) -> None:
        super().__init__(
            f"Conversation {conversation_id} is {status} and no longer accepts messages"
        )
        self.conversation_id = conversation_id
