"""
Moai — MatchCandidate and Consent models.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from moai.database import Base, JSONType


class MatchCandidate(Base):
    __tablename__ = "match_candidates"
    __table_args__ = (
        UniqueConstraint("user_a", "user_b", "batch_week", name="uq_candidate_batch_pair"),
        Index("idx_match_candidates_user_b", "user_b"),
        Index("idx_match_candidates_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    batch_week: Mapped[date] = mapped_column(Date, nullable=False)
    user_a: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False,
        comment="Initiator: the user whose weekly batch produced this row",
    )
    user_b: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    score: Mapped[float] = mapped_column(Float, nullable=False)
    reasons: Mapped[dict] = mapped_column(
        JSONType, nullable=False, comment="{overlaps: [...], complement: str}"
    )
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending",
        comment="pending / accepted / rejected / expired",
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # ── Relationships ──────────────────────────────────────────────
    consents: Mapped[list["Consent"]] = relationship(
        "Consent", back_populates="candidate", cascade="all, delete-orphan",
        lazy="selectin",
    )

    def participants(self) -> tuple[uuid.UUID, uuid.UUID]:
        return self.user_a, self.user_b

    def other_party(self, user_id: uuid.UUID) -> uuid.UUID:
        return self.user_b if user_id == self.user_a else self.user_a

    def __repr__(self) -> str:
        return (
            f"<MatchCandidate {self.user_a} -> {self.user_b} "
            f"week={self.batch_week} score={self.score:.2f} status={self.status!r}>"
        )


class Consent(Base):
    __tablename__ = "consents"
    __table_args__ = (
        UniqueConstraint("candidate_id", "user_id", name="uq_consent_candidate_user"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    candidate_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("match_candidates.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    response: Mapped[bool] = mapped_column(Boolean, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # ── Relationships ──────────────────────────────────────────────
    candidate: Mapped["MatchCandidate"] = relationship(
        "MatchCandidate", back_populates="consents"
    )

    def __repr__(self) -> str:
        return f"<Consent candidate={self.candidate_id} user={self.user_id} yes={self.response}>"
