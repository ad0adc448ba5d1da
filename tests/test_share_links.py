from __future__ import annotations

from datetime import timedelta

import pytest

from boxcheckr.models.base import utcnow
from boxcheckr.services.inventory import InventoryReport, create_snapshot
from boxcheckr.services.machines import create_machine, upsert_user
from boxcheckr.services.notes import create_note
from boxcheckr.services.share_links import (
    DEFAULT_HOURS,
    create_share_link,
    delete_share_link,
    get_valid_share_link,
    list_share_links,
    parse_share_hours,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        (None, DEFAULT_HOURS),
        ("", DEFAULT_HOURS),
        ("abc", DEFAULT_HOURS),
        ("0", DEFAULT_HOURS),
        ("-5", DEFAULT_HOURS),
        ("10000", DEFAULT_HOURS),
        ("100", 100),
        (" 168 ", 168),
        ("8760", 8760),
        (1, 1),
    ],
)
def test_parse_share_hours(raw, expected) -> None:
    assert parse_share_hours(raw) == expected


async def _admin(db):
    return await upsert_user(db, "sub-admin", "admin@example.com", "Ada Admin", True)


@pytest.mark.asyncio
async def test_create_link_expiry(db) -> None:
    admin = await _admin(db)
    now = utcnow()

    link = await create_share_link(db, admin.id, "100", now=now)
    assert link.expires_at == now + timedelta(hours=100)
    assert len(link.id) >= 32

    fallback = await create_share_link(db, admin.id, "10000", now=now)
    assert fallback.expires_at == now + timedelta(hours=DEFAULT_HOURS)
    assert fallback.id != link.id


@pytest.mark.asyncio
async def test_expired_link_is_listed_but_not_valid(db) -> None:
    admin = await _admin(db)
    past = utcnow() - timedelta(hours=2)
    expired = await create_share_link(db, admin.id, 1, now=past)
    live = await create_share_link(db, admin.id, 1)

    assert await get_valid_share_link(db, expired.id) is None
    assert (await get_valid_share_link(db, live.id)).id == live.id
    assert await get_valid_share_link(db, "") is None
    assert await get_valid_share_link(db, "unknown") is None

    links = await list_share_links(db)
    assert [link.id for link in links] == [live.id, expired.id]
    assert links[0].creator.name == "Ada Admin"
    assert links[1].is_expired(utcnow())


@pytest.mark.asyncio
async def test_validity_is_checked_at_the_given_instant(db) -> None:
    admin = await _admin(db)
    now = utcnow()
    link = await create_share_link(db, admin.id, 1, now=now)

    assert await get_valid_share_link(db, link.id, now=now + timedelta(minutes=59)) is not None
    assert await get_valid_share_link(db, link.id, now=now + timedelta(hours=1)) is None


@pytest.mark.asyncio
async def test_delete_is_idempotent(db) -> None:
    admin = await _admin(db)
    link = await create_share_link(db, admin.id)

    await delete_share_link(db, link.id)
    await delete_share_link(db, link.id)
    await delete_share_link(db, "never-existed")

    assert await get_valid_share_link(db, link.id) is None
    assert await list_share_links(db) == []


@pytest.mark.asyncio
async def test_shared_view_is_public_and_read_only(client, db) -> None:
    admin = await _admin(db)
    alice = await upsert_user(db, "sub-alice", "alice@example.com", "Alice", False)
    machine = await create_machine(db, alice.id, "Alice Laptop")
    await create_snapshot(db, machine.id, InventoryReport(disk_encrypted=True), "{}")
    await create_note(db, machine.id, admin.id, "Replaced battery")
    link = await create_share_link(db, admin.id)

    r = await client.get(f"/share/{link.id}")
    assert r.status_code == 200
    assert "Alice Laptop" in r.text
    assert "alice@example.com" in r.text
    assert "Replaced battery" in r.text
    assert "/delete" not in r.text
    assert machine.enrollment_token not in r.text


@pytest.mark.asyncio
async def test_shared_view_rejects_expired_and_unknown(client, db) -> None:
    admin = await _admin(db)
    expired = await create_share_link(db, admin.id, 1, now=utcnow() - timedelta(hours=3))

    for link_id in (expired.id, "does-not-exist"):
        r = await client.get(f"/share/{link_id}")
        assert r.status_code == 404
        assert "expired" in r.text
