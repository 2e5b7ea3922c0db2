"""
Moai — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from moai.models.profile import Profile
from moai.models.preferences import PreferenceSet
from moai.models.intake import IntakeProfile
from moai.models.block import Block
from moai.models.match import MatchCandidate, Consent
from moai.models.conversation import Conversation, Message

__all__ = [
    "Profile",
    "PreferenceSet",
    "IntakeProfile",
    "Block",
    "MatchCandidate",
    "Consent",
    "Conversation",
    "Message",
]
