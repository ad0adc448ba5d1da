from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from boxcheckr.models.base import Base, UTCDateTime, utcnow


class ShareLink(Base):
    """Time-limited capability granting read access to the whole fleet."""

    __tablename__ = "share_links"

    # The id is the secret; it appears directly in /share/{id}.
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_by: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    creator = relationship("User", lazy="raise")

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now
