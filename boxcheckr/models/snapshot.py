from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from boxcheckr.models.base import Base, UTCDateTime, utcnow


class InventorySnapshot(Base):
    """One compliance observation posted by an agent. Rows are never updated."""

    __tablename__ = "inventory_snapshots"
    __table_args__ = (
        Index("ix_inventory_snapshots_latest", "machine_id", "collected_at", "id"),
    )

    # Autoincrement id doubles as the insertion sequence for tie-breaks.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    machine_id: Mapped[str] = mapped_column(ForeignKey("machines.id", ondelete="CASCADE"), index=True, nullable=False)
    collected_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, index=True, nullable=False)

    hostname: Mapped[str] = mapped_column(Text, nullable=False, default="")
    os: Mapped[str] = mapped_column(Text, nullable=False, default="")
    os_version: Mapped[str] = mapped_column(Text, nullable=False, default="")

    disk_encrypted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    disk_encryption_details: Mapped[str] = mapped_column(Text, nullable=False, default="")
    antivirus_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    antivirus_details: Mapped[str] = mapped_column(Text, nullable=False, default="")
    firewall_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    firewall_details: Mapped[str] = mapped_column(Text, nullable=False, default="")
    screen_lock_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    screen_lock_timeout: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    screen_lock_details: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Request body exactly as received, for audit.
    raw_data: Mapped[str] = mapped_column(Text, nullable=False, default="")
