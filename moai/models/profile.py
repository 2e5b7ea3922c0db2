"""
Moai — Profile model (identity, location and matching availability).
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from moai.database import Base


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    city: Mapped[str | None] = mapped_column(String, nullable=True)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)
    radius_km: Mapped[float] = mapped_column(
        Float, nullable=False, default=15.0, comment="Max acceptable distance"
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    is_paused: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    # ── Relationships ──────────────────────────────────────────────
    preferences: Mapped["PreferenceSet"] = relationship(
        "PreferenceSet", back_populates="profile", uselist=False,
        cascade="all, delete-orphan", lazy="selectin",
    )
    intake: Mapped["IntakeProfile"] = relationship(
        "IntakeProfile", back_populates="profile", uselist=False,
        cascade="all, delete-orphan", lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Profile {self.display_name!r} id={self.id}>"
