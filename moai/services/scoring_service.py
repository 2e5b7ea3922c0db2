"""
Moai — Pairwise compatibility scorer.

Combines the similarity primitives into one score in [0, 1] plus the
human-readable reasons shown on a match card.

  1. Hard gate:  distance > radius_km of either party  ->  score 0
  2. Penalty:    min(distance / 10, 0.3)
  3. Weighted:   0.2 * languages + 0.3 * hobbies
                 + 0.3 * embedding + 0.2 * availability
  4. Final:      round(max(0, weighted - penalty), 2)

Disclosure thresholds decide which overlaps are surfaced as reasons; they
never change the numeric score.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog

from moai.config import get_settings
from moai.services.similarity import cosine, haversine_km, jaccard

logger = structlog.get_logger("moai.scoring_service")

TOO_FAR_APART = "Too far apart"
NEUTRAL_COMPLEMENT = "complementary personalities"


@dataclass(frozen=True)
class MatchSubject:
    """Everything the scorer needs to know about one user."""

    user_id: uuid.UUID
    name: str
    lat: float
    lng: float
    radius_km: float
    city: str | None = None
    languages: list[str] = field(default_factory=list)
    hobbies: list[str] = field(default_factory=list)
    availability_slots: dict[str, Any] = field(default_factory=dict)
    embedding: list[float] | None = None

    @classmethod
    def from_profile(cls, profile: Any) -> "MatchSubject":
        """Build a subject from a ``Profile`` with its preferences and
        intake relationships loaded."""
        prefs = profile.preferences
        intake = profile.intake
        return cls(
            user_id=profile.id,
            name=profile.display_name,
            lat=profile.lat,
            lng=profile.lng,
            radius_km=profile.radius_km,
            city=profile.city,
            languages=list(prefs.languages or []) if prefs else [],
            hobbies=list(intake.hobbies or []) if intake else [],
            availability_slots=dict(prefs.availability_slots or {}) if prefs else {},
            embedding=list(intake.embedding) if intake and intake.embedding else None,
        )

    @property
    def marked_slots(self) -> set[str]:
        return {slot for slot, flag in self.availability_slots.items() if flag}


@dataclass
class MatchScore:
    value: float
    overlaps: list[str]
    complement: str
    breakdown: dict[str, float] = field(default_factory=dict)

    @property
    def reasons(self) -> dict[str, Any]:
        return {"overlaps": list(self.overlaps), "complement": self.complement}


class ScoringService:
    """Score a candidate pair. Stateless; safe to share across requests."""

    # ── Disclosure thresholds (label, threshold) ────────────────────
    LANGUAGE_LABEL: str = "speak common languages"
    HOBBY_LABEL: str = "share hobbies"
    EMBEDDING_LABEL: str = "similar communication style"
    AVAILABILITY_LABEL: str = "similar availability"

    LANGUAGE_DISCLOSURE: float = 0.0
    HOBBY_DISCLOSURE: float = 0.3
    EMBEDDING_DISCLOSURE: float = 0.5
    AVAILABILITY_DISCLOSURE: float = 0.5

    def __init__(self) -> None:
        settings = get_settings()
        self.w_language: float = settings.LANGUAGE_WEIGHT
        self.w_hobby: float = settings.HOBBY_WEIGHT
        self.w_embedding: float = settings.EMBEDDING_WEIGHT
        self.w_availability: float = settings.AVAILABILITY_WEIGHT
        self.penalty_km: float = settings.DISTANCE_PENALTY_KM
        self.max_penalty: float = settings.MAX_DISTANCE_PENALTY

    # ── Public API ──────────────────────────────────────────────────

    def score(self, user_a: MatchSubject, user_b: MatchSubject) -> MatchScore:
        """Score ``user_b`` as a candidate for ``user_a``.

        Returns a ``MatchScore`` whose ``value`` is 0 with the
        "Too far apart" complement when either party's radius is exceeded.
        """
        distance = haversine_km(user_a.lat, user_a.lng, user_b.lat, user_b.lng)

        if distance > user_a.radius_km or distance > user_b.radius_km:
            logger.debug(
                "score.distance_gate",
                user_a=str(user_a.user_id),
                user_b=str(user_b.user_id),
                distance_km=round(distance, 2),
            )
            return MatchScore(
                value=0.0,
                overlaps=[],
                complement=TOO_FAR_APART,
                breakdown={"distance_km": round(distance, 4)},
            )

        penalty = self._distance_penalty(distance)

        language = jaccard(user_a.languages, user_b.languages)
        hobby = jaccard(user_a.hobbies, user_b.hobbies)
        availability = jaccard(user_a.marked_slots, user_b.marked_slots)
        embedding = 0.0
        if user_a.embedding and user_b.embedding:
            # only the positive range counts toward the score
            embedding = max(0.0, cosine(user_a.embedding, user_b.embedding))

        weighted = (
            self.w_language * language
            + self.w_hobby * hobby
            + self.w_embedding * embedding
            + self.w_availability * availability
        )
        value = round(max(0.0, weighted - penalty), 2)

        overlaps = self._disclosed_overlaps(language, hobby, embedding, availability)
        complement = self._complement_reason(user_a, user_b)

        logger.debug(
            "score.computed",
            user_a=str(user_a.user_id),
            user_b=str(user_b.user_id),
            value=value,
            distance_km=round(distance, 2),
        )

        return MatchScore(
            value=value,
            overlaps=overlaps,
            complement=complement,
            breakdown={
                "distance_km": round(distance, 4),
                "distance_penalty": round(penalty, 4),
                "language": round(language, 4),
                "hobbies": round(hobby, 4),
                "embedding": round(embedding, 4),
                "availability": round(availability, 4),
                "weighted_sum": round(weighted, 4),
            },
        )

    # ── Internal helpers ────────────────────────────────────────────

    def _distance_penalty(self, distance_km: float) -> float:
        """Linear in the first ``penalty_km`` kilometres, capped."""
        return min(distance_km / self.penalty_km, self.max_penalty)

    def _disclosed_overlaps(
        self,
        language: float,
        hobby: float,
        embedding: float,
        availability: float,
    ) -> list[str]:
        overlaps: list[str] = []
        if language > self.LANGUAGE_DISCLOSURE:
            overlaps.append(self.LANGUAGE_LABEL)
        if hobby > self.HOBBY_DISCLOSURE:
            overlaps.append(self.HOBBY_LABEL)
        if embedding > self.EMBEDDING_DISCLOSURE:
            overlaps.append(self.EMBEDDING_LABEL)
        if availability > self.AVAILABILITY_DISCLOSURE:
            overlaps.append(self.AVAILABILITY_LABEL)
        return overlaps

    @staticmethod
    def _complement_reason(user_a: MatchSubject, user_b: MatchSubject) -> str:
        """Describe how the two differ in a way that helps the match."""
        parts: list[str] = []

        hobbies_a = len(set(user_a.hobbies))
        hobbies_b = len(set(user_b.hobbies))
        if hobbies_a > hobbies_b:
            parts.append(f"{user_a.name} could introduce {user_b.name} to new activities")
        elif hobbies_b > hobbies_a:
            parts.append(f"{user_b.name} could introduce {user_a.name} to new activities")

        if user_a.city and user_b.city and user_a.city != user_b.city:
            parts.append("different neighborhoods to explore together")

        if not parts:
            return NEUTRAL_COMPLEMENT
        return ", ".join(parts)
