from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from boxcheckr.core.security import generate_token
from boxcheckr.models.machine import Machine
from boxcheckr.models.note import MachineNote
from boxcheckr.models.snapshot import InventorySnapshot
from boxcheckr.models.user import User
from boxcheckr.services.inventory import last_activity, latest_snapshot_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MachineWithOwner:
    machine: Machine
    owner_email: str
    owner_name: str
    latest: InventorySnapshot | None
    notes: list[MachineNote] = field(default_factory=list)


# Users


async def upsert_user(db: AsyncSession, user_id: str, email: str, name: str, is_admin: bool) -> User:
    dialect = db.get_bind().dialect.name
    insert = pg_insert if dialect == "postgresql" else sqlite_insert
    stmt = insert(User).values(id=user_id, email=email, name=name, is_admin=is_admin)
    stmt = stmt.on_conflict_do_update(
        index_elements=[User.id],
        set_={"email": stmt.excluded.email, "name": stmt.excluded.name, "is_admin": stmt.excluded.is_admin},
    )
    await db.execute(stmt)
    await db.commit()

    q = await db.execute(select(User).where(User.id == user_id).execution_options(populate_existing=True))
    return q.scalars().one()


async def get_user(db: AsyncSession, user_id: str) -> User | None:
    q = await db.execute(select(User).where(User.id == user_id))
    return q.scalars().first()


# Machines


async def create_machine(db: AsyncSession, user_id: str, name: str) -> Machine:
    machine = Machine(user_id=user_id, name=name, enrollment_token=generate_token(32))
    db.add(machine)
    await db.commit()
    logger.info("machine enrolled id=%s user=%s", machine.id, user_id)
    return machine


async def get_machine(db: AsyncSession, machine_id: str) -> Machine | None:
    q = await db.execute(select(Machine).where(Machine.id == machine_id))
    return q.scalars().first()


async def get_machine_by_token(db: AsyncSession, token: str) -> Machine | None:
    q = await db.execute(select(Machine).where(Machine.enrollment_token == token))
    return q.scalars().first()


async def list_machines_by_user(db: AsyncSession, user_id: str) -> list[Machine]:
    q = await db.execute(
        select(Machine)
        .outerjoin(InventorySnapshot, InventorySnapshot.id == latest_snapshot_id(Machine.id))
        .where(Machine.user_id == user_id)
        .order_by(last_activity().desc(), Machine.id.asc())
    )
    return list(q.scalars().all())


async def delete_machine(db: AsyncSession, machine_id: str) -> bool:
    """Delete a machine with its snapshots and notes in one transaction."""
    await db.execute(delete(InventorySnapshot).where(InventorySnapshot.machine_id == machine_id))
    await db.execute(delete(MachineNote).where(MachineNote.machine_id == machine_id))
    res = await db.execute(delete(Machine).where(Machine.id == machine_id))
    await db.commit()
    deleted = res.rowcount > 0
    if deleted:
        logger.info("machine deleted id=%s", machine_id)
    return deleted


# Fleet


def _contains(column, value: str):
    # Case-insensitive substring; % and _ in user input match literally.
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return column.ilike(f"%{escaped}%", escape="\\")


async def list_fleet(db: AsyncSession, owner: str | None = None, machine: str | None = None) -> list[MachineWithOwner]:
    stmt = (
        select(Machine, User.email, User.name, InventorySnapshot)
        .join(User, Machine.user_id == User.id)
        .outerjoin(InventorySnapshot, InventorySnapshot.id == latest_snapshot_id(Machine.id))
    )
    if owner:
        stmt = stmt.where(_contains(User.email, owner) | _contains(User.name, owner))
    if machine:
        stmt = stmt.where(_contains(Machine.name, machine))
    stmt = stmt.order_by(
        func.lower(User.name), func.lower(User.email), last_activity().desc(), Machine.id.asc()
    )

    rows = (await db.execute(stmt)).all()
    if not rows:
        return []

    notes_by_machine: dict[str, list[MachineNote]] = {}
    q = await db.execute(
        select(MachineNote)
        .options(joinedload(MachineNote.author))
        .where(MachineNote.machine_id.in_([m.id for m, *_ in rows]))
        .order_by(MachineNote.created_at.desc(), MachineNote.id.desc())
    )
    for n in q.scalars().all():
        notes_by_machine.setdefault(n.machine_id, []).append(n)

    return [
        MachineWithOwner(
            machine=m,
            owner_email=email,
            owner_name=name,
            latest=snap,
            notes=notes_by_machine.get(m.id, []),
        )
        for m, email, name, snap in rows
    ]
