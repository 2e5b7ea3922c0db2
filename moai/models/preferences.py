"""
Moai — PreferenceSet model (languages, availability slots, opt-ins).
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from moai.database import Base, JSONType


class PreferenceSet(Base):
    __tablename__ = "preferences"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    languages: Mapped[list] = mapped_column(
        JSONType, nullable=False, default=list, comment="Array of language codes"
    )
    availability_slots: Mapped[dict] = mapped_column(
        JSONType, nullable=False, default=dict,
        comment="time bucket -> flag, e.g. {'sat_morning': true}",
    )
    reminder_opt_in: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    # ── Relationships ──────────────────────────────────────────────
    profile: Mapped["Profile"] = relationship("Profile", back_populates="preferences")

    def __repr__(self) -> str:
        return f"<PreferenceSet user={self.user_id} languages={self.languages!r}>"
