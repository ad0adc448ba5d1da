from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import PlainTextResponse, RedirectResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from boxcheckr.api.templating import is_htmx, templates
from boxcheckr.core.auth import (
    SESSION_USER_ID,
    ensure_can_manage,
    get_current_user,
    get_identity_provider,
    require_admin,
)
from boxcheckr.core.config import Settings, get_settings
from boxcheckr.core.errors import IdentityProviderError, NotFoundError, ValidationError
from boxcheckr.core.security import generate_state
from boxcheckr.db.session import get_db
from boxcheckr.models.machine import Machine
from boxcheckr.models.user import User
from boxcheckr.services.identity import IdentityProvider, is_admin
from boxcheckr.services.inventory import get_latest_snapshot, get_snapshot_history, list_machines_with_latest, summarize
from boxcheckr.services.machines import create_machine, delete_machine, get_machine, get_user, list_fleet, upsert_user
from boxcheckr.services.notes import create_note, delete_note, get_note, list_notes, update_note
from boxcheckr.services.scripts import (
    ScriptData,
    normalize_mode,
    normalize_os,
    render_script,
    script_filename,
    script_media_type,
)
from boxcheckr.services.share_links import get_valid_share_link

logger = logging.getLogger(__name__)

router = APIRouter()

MACHINE_HISTORY_ROWS = 20


def _callback_url(settings: Settings) -> str:
    return f"{settings.public_url}/auth/callback"


async def _machine_or_404(db: AsyncSession, machine_id: str) -> Machine:
    machine = await get_machine(db, machine_id)
    if not machine:
        raise NotFoundError("Machine not found")
    return machine


@router.get("/healthz")
async def healthz():
    return {"status": "ok"}


# Auth


@router.get("/auth/login")
async def login(
    request: Request,
    settings: Settings = Depends(get_settings),
    provider: IdentityProvider = Depends(get_identity_provider),
):
    if request.session.get(SESSION_USER_ID):
        return RedirectResponse(url="/", status_code=303)

    state = generate_state()
    nonce = generate_state()
    request.session["oauth_state"] = state
    request.session["oauth_nonce"] = nonce
    url = await provider.authorization_url(state=state, nonce=nonce, redirect_uri=_callback_url(settings))
    return RedirectResponse(url=url, status_code=307)


@router.get("/auth/callback")
async def callback(
    request: Request,
    state: str | None = None,
    code: str | None = None,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    provider: IdentityProvider = Depends(get_identity_provider),
):
    expected_state = request.session.pop("oauth_state", None)
    nonce = request.session.pop("oauth_nonce", None)
    if not expected_state:
        raise ValidationError("Invalid session state")
    if state != expected_state:
        raise ValidationError("State mismatch")
    if not code:
        raise ValidationError("No code in callback")

    try:
        identity = await provider.exchange(code=code, nonce=nonce or "", redirect_uri=_callback_url(settings))
    except IdentityProviderError as e:
        logger.warning("login failed: %s", e.message)
        raise

    admin = is_admin(identity.roles, settings.azure_admin_role)
    user = await upsert_user(db, identity.subject, identity.email, identity.name, admin)

    request.session[SESSION_USER_ID] = user.id
    logger.info("login user=%s admin=%s", user.id, admin)
    return RedirectResponse(url="/", status_code=303)


@router.get("/auth/logout")
async def logout(request: Request):
    request.session.clear()
    return templates.TemplateResponse(request, "logout.html", {"user": None, "title": "Signed Out"})


# Dashboard and enrollment


@router.get("/")
async def dashboard(request: Request, db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)):
    machines = await list_machines_with_latest(db, user.id)
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {"user": user, "title": "Dashboard", "active": "dashboard", "machines": machines, "stats": summarize(machines)},
    )


@router.get("/enroll")
async def enroll_page(request: Request, user: User = Depends(get_current_user)):
    return templates.TemplateResponse(request, "enroll.html", {"user": user, "title": "Enroll Machine", "active": "enroll"})


@router.post("/enroll")
async def enroll_machine(db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user), name: str = Form("")):
    name = name.strip()
    if not name:
        raise ValidationError("Machine name is required")
    machine = await create_machine(db, user.id, name)
    return RedirectResponse(url=f"/machines/{machine.id}", status_code=303)


# Machines


@router.get("/machines/{machine_id}")
async def machine_detail(
    request: Request,
    machine_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    machine = await _machine_or_404(db, machine_id)
    ensure_can_manage(user, machine, "view")

    return templates.TemplateResponse(
        request,
        "machine.html",
        {
            "user": user,
            "title": machine.name,
            "active": "dashboard",
            "machine": machine,
            "latest": await get_latest_snapshot(db, machine_id),
            "history": await get_snapshot_history(db, machine_id, MACHINE_HISTORY_ROWS),
            "notes": await list_notes(db, machine_id),
            "script_url": f"{settings.public_url}/machines/{machine_id}/script",
        },
    )


@router.post("/machines/{machine_id}/delete")
async def machine_delete(
    request: Request,
    machine_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    machine = await _machine_or_404(db, machine_id)
    ensure_can_manage(user, machine, "delete")
    await delete_machine(db, machine_id)

    if is_htmx(request):
        return Response(status_code=200)
    return RedirectResponse(url="/", status_code=303)


@router.get("/machines/{machine_id}/script")
async def machine_script(
    request: Request,
    machine_id: str,
    os: str | None = None,
    mode: str | None = None,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    # No session: this is fetched by curl / irm from the user's terminal.
    machine = await get_machine(db, machine_id)
    if not machine:
        return PlainTextResponse("Machine not found", status_code=404)

    owner = await get_user(db, machine.user_id)
    os_type = normalize_os(os, request.headers.get("user-agent"))
    data = ScriptData(
        token=machine.enrollment_token,
        server_url=settings.public_url,
        email=owner.email if owner else "",
        mode=normalize_mode(mode),
        machine_id=machine.id,
    )
    return Response(
        content=render_script(os_type, data),
        media_type=script_media_type(os_type),
        headers={"Content-Disposition": f"inline; filename={script_filename(os_type)}"},
    )


# Notes (admin only)


@router.post("/machines/{machine_id}/notes")
async def add_note(
    request: Request,
    machine_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_admin),
    content: str = Form(""),
):
    await _machine_or_404(db, machine_id)
    if not content.strip():
        raise ValidationError("Note content is required")

    note = await create_note(db, machine_id, user.id, content)
    if is_htmx(request):
        return templates.TemplateResponse(request, "partials/note.html", {"note": note, "user": user})
    return RedirectResponse(url=f"/machines/{machine_id}", status_code=303)


@router.post("/machines/{machine_id}/notes/{note_id}/edit")
async def edit_note(
    request: Request,
    machine_id: str,
    note_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_admin),
    content: str = Form(""),
):
    note = await get_note(db, note_id)
    if not note or note.machine_id != machine_id:
        raise NotFoundError("Note not found")
    if not content.strip():
        raise ValidationError("Note content is required")

    note = await update_note(db, note_id, content)
    if is_htmx(request):
        return templates.TemplateResponse(request, "partials/note.html", {"note": note, "user": user})
    return RedirectResponse(url=f"/machines/{machine_id}", status_code=303)


@router.post("/machines/{machine_id}/notes/{note_id}/delete")
async def remove_note(
    request: Request,
    machine_id: str,
    note_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_admin),
):
    note = await get_note(db, note_id)
    if not note or note.machine_id != machine_id:
        raise NotFoundError("Note not found")
    await delete_note(db, note_id)

    if is_htmx(request):
        return Response(status_code=200)
    return RedirectResponse(url=f"/machines/{machine_id}", status_code=303)


# Public share view


@router.get("/share/{link_id}")
async def shared_inventory(request: Request, link_id: str, db: AsyncSession = Depends(get_db)):
    link = await get_valid_share_link(db, link_id)
    if link is None:
        raise NotFoundError("Share link not found or has expired")

    machines = await list_fleet(db)
    return templates.TemplateResponse(
        request,
        "public/shared.html",
        {"title": "Shared Inventory", "machines": machines, "share_link": link},
    )
