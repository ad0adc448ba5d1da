from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from boxcheckr.models.base import utcnow
from boxcheckr.models.note import MachineNote


async def get_note(db: AsyncSession, note_id: int) -> MachineNote | None:
    q = await db.execute(
        select(MachineNote)
        .options(joinedload(MachineNote.author))
        .where(MachineNote.id == note_id)
        .execution_options(populate_existing=True)
    )
    return q.scalars().first()


async def create_note(db: AsyncSession, machine_id: str, author_id: str, content: str) -> MachineNote:
    now = utcnow()
    note = MachineNote(machine_id=machine_id, author_id=author_id, content=content, created_at=now, updated_at=now)
    db.add(note)
    await db.commit()
    # Reload so the author is available for rendering.
    return await get_note(db, note.id)


async def list_notes(db: AsyncSession, machine_id: str) -> list[MachineNote]:
    q = await db.execute(
        select(MachineNote)
        .options(joinedload(MachineNote.author))
        .where(MachineNote.machine_id == machine_id)
        .order_by(MachineNote.created_at.desc(), MachineNote.id.desc())
    )
    return list(q.scalars().all())


async def update_note(db: AsyncSession, note_id: int, content: str) -> MachineNote | None:
    note = await db.get(MachineNote, note_id)
    if note is None:
        return None
    note.content = content
    note.updated_at = utcnow()
    await db.commit()
    return await get_note(db, note_id)


async def delete_note(db: AsyncSession, note_id: int) -> None:
    await db.execute(delete(MachineNote).where(MachineNote.id == note_id))
    await db.commit()
