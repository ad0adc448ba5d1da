from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from boxcheckr.api import api as api_module
from boxcheckr.services.inventory import InventoryReport, create_snapshot
from boxcheckr.services.machines import create_machine, get_machine, upsert_user
from boxcheckr.services.notes import list_notes
from boxcheckr.services.share_links import list_share_links


async def _enroll(client, name: str) -> str:
    r = await client.post("/enroll", data={"name": name})
    assert r.status_code == 303
    return r.headers["location"].rsplit("/", 1)[-1]


@pytest.mark.asyncio
async def test_healthz(client) -> None:
    r = await client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_pages_redirect_to_login_without_session(client) -> None:
    for path in ("/", "/enroll", "/admin/machines", "/admin/share"):
        r = await client.get(path)
        assert r.status_code == 303, path
        assert r.headers["location"] == "/auth/login"


@pytest.mark.asyncio
async def test_callback_rejects_state_mismatch(client) -> None:
    await client.get("/auth/login")
    r = await client.get("/auth/callback", params={"state": "forged", "code": "alice"})
    assert r.status_code == 400

    # The state is single use.
    r = await client.get("/auth/callback", params={"state": "forged", "code": "alice"})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_callback_provider_failure(client) -> None:
    r = await client.get("/auth/login")
    state = r.headers["location"].split("state=")[1].split("&")[0]
    r = await client.get("/auth/callback", params={"state": state, "code": "mallory"})
    assert r.status_code == 502


@pytest.mark.asyncio
async def test_login_enroll_and_dashboard(login_as, db) -> None:
    alice = await login_as("alice")

    r = await alice.get("/auth/login")
    assert r.status_code == 303
    assert r.headers["location"] == "/"

    machine_id = await _enroll(alice, "  Work Laptop  ")
    machine = await get_machine(db, machine_id)
    assert machine.name == "Work Laptop"
    assert machine.user_id == "sub-alice"

    await create_snapshot(db, machine_id, InventoryReport(disk_encrypted=True), "{}")

    r = await alice.get("/")
    assert r.status_code == 200
    assert "Work Laptop" in r.text

    r = await alice.get(f"/machines/{machine_id}")
    assert r.status_code == 200
    assert f"http://test/machines/{machine_id}/script" in r.text


@pytest.mark.asyncio
async def test_enroll_requires_name(login_as) -> None:
    alice = await login_as("alice")
    r = await alice.post("/enroll", data={"name": "   "})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_logout_clears_session(login_as) -> None:
    alice = await login_as("alice")
    r = await alice.get("/auth/logout")
    assert r.status_code == 200

    r = await alice.get("/")
    assert r.status_code == 303


@pytest.mark.asyncio
async def test_other_users_machine_is_forbidden(login_as, db) -> None:
    alice = await login_as("alice")
    bob = await login_as("bob")
    machine_id = await _enroll(alice, "Alice Laptop")

    r = await bob.get(f"/machines/{machine_id}")
    assert r.status_code == 403

    r = await bob.post(f"/machines/{machine_id}/delete")
    assert r.status_code == 403
    assert await get_machine(db, machine_id) is not None

    r = await bob.get("/")
    assert "Alice Laptop" not in r.text

    r = await bob.get("/machines/missing")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_owner_deletes_machine(login_as, db) -> None:
    alice = await login_as("alice")
    machine_id = await _enroll(alice, "Old Laptop")

    r = await alice.post(f"/machines/{machine_id}/delete", headers={"HX-Request": "true"})
    assert r.status_code == 200
    assert r.text == ""
    assert await get_machine(db, machine_id) is None


@pytest.mark.asyncio
async def test_admin_can_view_and_delete_any_machine(login_as, db) -> None:
    alice = await login_as("alice")
    admin = await login_as("admin")
    machine_id = await _enroll(alice, "Alice Laptop")

    r = await admin.get(f"/machines/{machine_id}")
    assert r.status_code == 200

    r = await admin.post(f"/admin/machines/{machine_id}/delete")
    assert r.status_code == 303
    assert r.headers["location"] == "/admin/machines"
    assert await get_machine(db, machine_id) is None

    r = await admin.post(f"/admin/machines/{machine_id}/delete")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_admin_pages_require_admin(login_as) -> None:
    alice = await login_as("alice")
    for path in ("/admin/machines", "/admin/share"):
        r = await alice.get(path)
        assert r.status_code == 403, path

    r = await alice.post("/admin/share", data={"hours": "24"})
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_admin_fleet_filters_and_partial(login_as) -> None:
    alice = await login_as("alice")
    bob = await login_as("bob")
    admin = await login_as("admin")
    await _enroll(alice, "Alice Laptop")
    await _enroll(alice, "Alice Desktop")
    await _enroll(bob, "Bob Laptop")

    r = await admin.get("/admin/machines", params={"owner": "alice", "machine": "laptop"})
    assert r.status_code == 200
    assert "Alice Laptop" in r.text
    assert "Alice Desktop" not in r.text
    assert "Bob Laptop" not in r.text
    assert "<html" in r.text

    r = await admin.get("/admin/machines", params={"owner": "bob"}, headers={"HX-Request": "true"})
    assert r.status_code == 200
    assert "Bob Laptop" in r.text
    assert "<html" not in r.text


@pytest.mark.asyncio
async def test_notes_are_admin_only(login_as, db) -> None:
    alice = await login_as("alice")
    admin = await login_as("admin")
    machine_id = await _enroll(alice, "Alice Laptop")

    r = await alice.post(f"/machines/{machine_id}/notes", data={"content": "mine"})
    assert r.status_code == 403

    r = await admin.post(f"/machines/{machine_id}/notes", data={"content": "Reimaged"}, headers={"HX-Request": "true"})
    assert r.status_code == 200
    assert "Reimaged" in r.text
    assert "Ada Admin" in r.text

    (note,) = await list_notes(db, machine_id)

    r = await admin.post(f"/machines/{machine_id}/notes/{note.id}/edit", data={"content": "Reimaged twice"})
    assert r.status_code == 303

    r = await alice.get(f"/machines/{machine_id}")
    assert "Reimaged twice" in r.text
    assert "/notes/" not in r.text

    r = await admin.post(f"/machines/{machine_id}/notes", data={"content": "  "})
    assert r.status_code == 400

    r = await admin.post(f"/machines/{machine_id}/notes/{note.id}/delete")
    assert r.status_code == 303
    assert await list_notes(db, machine_id) == []

    r = await admin.post(f"/machines/{machine_id}/notes/{note.id}/delete")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_admin_share_link_flow(login_as, client, db) -> None:
    admin = await login_as("admin")

    r = await admin.post("/admin/share", data={"hours": "168"})
    assert r.status_code == 303
    link_id = r.headers["location"].split("new=")[1]

    r = await admin.get("/admin/share", params={"new": link_id})
    assert r.status_code == 200
    assert f"http://test/share/{link_id}" in r.text

    r = await client.get(f"/share/{link_id}")
    assert r.status_code == 200

    r = await admin.post(f"/admin/share/{link_id}/delete")
    assert r.status_code == 303
    assert await list_share_links(db) == []

    r = await client.get(f"/share/{link_id}")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_script_endpoint(client, db, login_as) -> None:
    alice = await login_as("alice")
    machine_id = await _enroll(alice, "Laptop")
    machine = await get_machine(db, machine_id)

    r = await client.get(f"/machines/{machine_id}/script")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/x-shellscript")
    assert "boxcheckr-agent.sh" in r.headers["content-disposition"]
    assert machine.enrollment_token in r.text
    assert 'SERVER_URL="http://test"' in r.text
    assert "alice@example.com" in r.text

    r = await client.get(f"/machines/{machine_id}/script", params={"os": "windows"})
    assert r.headers["content-type"].startswith("text/plain")
    assert "boxcheckr-agent.ps1" in r.headers["content-disposition"]

    r = await client.get(f"/machines/{machine_id}/script", headers={"User-Agent": "Mozilla/5.0 (Windows NT 10.0) PowerShell/7.4"})
    assert "boxcheckr-agent.ps1" in r.headers["content-disposition"]

    r = await client.get("/machines/missing/script")
    assert r.status_code == 404
    assert r.text == "Machine not found"


@pytest.mark.asyncio
async def test_api_errors_are_json(client, db) -> None:
    carol = await upsert_user(db, "sub-carol", "carol@example.com", "Carol", False)
    machine = await create_machine(db, carol.id, "Laptop")
    r = await client.post(
        "/api/v1/inventory", content="{", headers={"Authorization": f"Bearer {machine.enrollment_token}"}
    )
    assert r.status_code == 400
    assert r.headers["content-type"].startswith("application/json")


@pytest.mark.asyncio
async def test_unexpected_errors_are_logged_and_opaque(app, db, monkeypatch, caplog) -> None:
    async def explode(db, machine, body):
        raise RuntimeError("disk on fire at /var/lib/secret")

    monkeypatch.setattr(api_module, "ingest_snapshot", explode)
    carol = await upsert_user(db, "sub-carol", "carol@example.com", "Carol", False)
    machine = await create_machine(db, carol.id, "Laptop")

    # The server error middleware re-raises after responding.
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        r = await client.post(
            "/api/v1/inventory", content="{}", headers={"Authorization": f"Bearer {machine.enrollment_token}"}
        )

    assert r.status_code == 500
    assert r.json() == {"detail": "Internal server error"}
    assert "disk on fire" not in r.text
    assert any(rec.levelname == "ERROR" and rec.exc_info for rec in caplog.records if rec.name == "boxcheckr.main")
