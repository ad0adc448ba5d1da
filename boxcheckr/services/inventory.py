"""Snapshot storage and latest-state resolution.

A machine's current state is never stored; it is always the snapshot with
the greatest ``(collected_at, id)``. The autoincrement id is the insertion
sequence, so two snapshots stamped with the same instant resolve to the one
inserted last. Every read path in the application orders by
``LATEST_ORDER`` or joins through ``latest_snapshot_id`` so the dashboard,
machine detail, admin fleet and share views all agree.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from boxcheckr.core.errors import NotFoundError
from boxcheckr.models.base import utcnow
from boxcheckr.models.machine import Machine
from boxcheckr.models.snapshot import InventorySnapshot

DEFAULT_HISTORY_LIMIT = 50

LATEST_ORDER = (InventorySnapshot.collected_at.desc(), InventorySnapshot.id.desc())


@dataclass(frozen=True)
class InventoryReport:
    """Parsed agent payload with absent fields already defaulted."""

    hostname: str = ""
    os: str = ""
    os_version: str = ""
    disk_encrypted: bool = False
    disk_encryption_details: str = ""
    antivirus_enabled: bool = False
    antivirus_details: str = ""
    firewall_enabled: bool = False
    firewall_details: str = ""
    screen_lock_enabled: bool = False
    screen_lock_timeout: int = 0
    screen_lock_details: str = ""


@dataclass(frozen=True)
class MachineWithLatest:
    machine: Machine
    latest: InventorySnapshot | None


@dataclass(frozen=True)
class DashboardStats:
    total_machines: int = 0
    encrypted_count: int = 0
    unencrypted_count: int = 0
    protected_count: int = 0
    unprotected_count: int = 0
    last_checked: datetime | None = None


def latest_snapshot_id(machine_id_column):
    """Correlated scalar subquery: id of the newest snapshot for a machine."""
    newest = aliased(InventorySnapshot)
    return (
        select(newest.id)
        .where(newest.machine_id == machine_id_column)
        .order_by(newest.collected_at.desc(), newest.id.desc())
        .limit(1)
        .correlate_except(newest)
        .scalar_subquery()
    )


def last_activity():
    return func.coalesce(InventorySnapshot.collected_at, Machine.created_at)


async def create_snapshot(
    db: AsyncSession,
    machine_id: str,
    report: InventoryReport,
    raw_data: str,
    collected_at: datetime | None = None,
) -> InventorySnapshot:
    if await db.get(Machine, machine_id) is None:
        raise NotFoundError("Machine not found")

    snap = InventorySnapshot(
        machine_id=machine_id,
        collected_at=collected_at or utcnow(),
        hostname=report.hostname,
        os=report.os,
        os_version=report.os_version,
        disk_encrypted=report.disk_encrypted,
        disk_encryption_details=report.disk_encryption_details,
        antivirus_enabled=report.antivirus_enabled,
        antivirus_details=report.antivirus_details,
        firewall_enabled=report.firewall_enabled,
        firewall_details=report.firewall_details,
        screen_lock_enabled=report.screen_lock_enabled,
        screen_lock_timeout=report.screen_lock_timeout,
        screen_lock_details=report.screen_lock_details,
        raw_data=raw_data,
    )
    db.add(snap)
    try:
        await db.commit()
    except IntegrityError as e:
        # Machine deleted between the lookup and the insert.
        await db.rollback()
        raise NotFoundError("Machine not found") from e
    return snap


async def get_latest_snapshot(db: AsyncSession, machine_id: str) -> InventorySnapshot | None:
    q = await db.execute(
        select(InventorySnapshot)
        .where(InventorySnapshot.machine_id == machine_id)
        .order_by(*LATEST_ORDER)
        .limit(1)
    )
    return q.scalars().first()


def _coerce_limit(limit) -> int:
    try:
        value = int(limit)
    except (TypeError, ValueError):
        return DEFAULT_HISTORY_LIMIT
    return value if value > 0 else DEFAULT_HISTORY_LIMIT


async def get_snapshot_history(db: AsyncSession, machine_id: str, limit=None) -> list[InventorySnapshot]:
    q = await db.execute(
        select(InventorySnapshot)
        .where(InventorySnapshot.machine_id == machine_id)
        .order_by(*LATEST_ORDER)
        .limit(_coerce_limit(limit))
    )
    return list(q.scalars().all())


async def list_machines_with_latest(db: AsyncSession, user_id: str) -> list[MachineWithLatest]:
    # One statement: each row pairs a machine with one whole snapshot row.
    q = await db.execute(
        select(Machine, InventorySnapshot)
        .outerjoin(InventorySnapshot, InventorySnapshot.id == latest_snapshot_id(Machine.id))
        .where(Machine.user_id == user_id)
        .order_by(last_activity().desc(), Machine.id.asc())
    )
    return [MachineWithLatest(machine=m, latest=s) for m, s in q.all()]


def summarize(rows: list[MachineWithLatest]) -> DashboardStats:
    encrypted = unencrypted = protected = unprotected = 0
    last_checked = None
    for row in rows:
        snap = row.latest
        if snap is None:
            continue
        if snap.disk_encrypted:
            encrypted += 1
        else:
            unencrypted += 1
        if snap.antivirus_enabled:
            protected += 1
        else:
            unprotected += 1
        if last_checked is None or snap.collected_at > last_checked:
            last_checked = snap.collected_at

    return DashboardStats(
        total_machines=len(rows),
        encrypted_count=encrypted,
        unencrypted_count=unencrypted,
        protected_count=protected,
        unprotected_count=unprotected,
        last_checked=last_checked,
    )


async def get_dashboard_stats(db: AsyncSession, user_id: str) -> DashboardStats:
    return summarize(await list_machines_with_latest(db, user_id))
