"""
Moai — IntakeProfile model (structured questionnaire answers).
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from moai.database import Base, JSONType


class IntakeProfile(Base):
    __tablename__ = "intake_profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    answers: Mapped[dict] = mapped_column(
        JSONType, nullable=False, default=dict, comment="Categorical answers by field"
    )
    hobbies: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    topics: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    embedding: Mapped[list | None] = mapped_column(
        JSONType, nullable=True, comment="Free-text answer embedding"
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Set once ready for matching"
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    # ── Relationships ──────────────────────────────────────────────
    profile: Mapped["Profile"] = relationship("Profile", back_populates="intake")

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None

    def __repr__(self) -> str:
        return (
            f"<IntakeProfile user={self.user_id} "
            f"hobbies={len(self.hobbies or [])} complete={self.is_complete}>"
        )
