"""Share links: unguessable, time-limited read access to the fleet view.

Validity is a point-in-time check made in the query on every request.
Nothing is cached and nothing sweeps expired rows; they stay listable for
admins until deleted but never validate.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from boxcheckr.core.security import generate_token
from boxcheckr.models.base import utcnow
from boxcheckr.models.share_link import ShareLink

logger = logging.getLogger(__name__)

DEFAULT_HOURS = 24
MAX_HOURS = 8760  # one year


def parse_share_hours(raw) -> int:
    if raw is None or isinstance(raw, bool):
        return DEFAULT_HOURS
    try:
        hours = int(str(raw).strip())
    except ValueError:
        return DEFAULT_HOURS
    if 0 < hours <= MAX_HOURS:
        return hours
    return DEFAULT_HOURS


async def create_share_link(db: AsyncSession, created_by: str, hours=None, now: datetime | None = None) -> ShareLink:
    now = now or utcnow()
    link = ShareLink(
        id=generate_token(32),
        created_by=created_by,
        expires_at=now + timedelta(hours=parse_share_hours(hours)),
        created_at=now,
    )
    db.add(link)
    await db.commit()
    logger.info("share link created by=%s expires_at=%s", created_by, link.expires_at.isoformat())
    return link


async def get_valid_share_link(db: AsyncSession, link_id: str, now: datetime | None = None) -> ShareLink | None:
    # Absent and expired both come back as None.
    if not link_id:
        return None
    q = await db.execute(
        select(ShareLink).where(ShareLink.id == link_id, ShareLink.expires_at > (now or utcnow()))
    )
    return q.scalars().first()


async def list_share_links(db: AsyncSession) -> list[ShareLink]:
    q = await db.execute(
        select(ShareLink)
        .options(joinedload(ShareLink.creator))
        .order_by(ShareLink.created_at.desc(), ShareLink.id.asc())
    )
    return list(q.scalars().all())


async def delete_share_link(db: AsyncSession, link_id: str) -> None:
    res = await db.execute(delete(ShareLink).where(ShareLink.id == link_id))
    await db.commit()
    if res.rowcount:
        logger.info("share link deleted")
