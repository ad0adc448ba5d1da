from __future__ import annotations

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from boxcheckr.api.templating import is_htmx, templates
from boxcheckr.core.auth import require_admin
from boxcheckr.core.config import Settings, get_settings
from boxcheckr.core.errors import NotFoundError
from boxcheckr.db.session import get_db
from boxcheckr.models.base import utcnow
from boxcheckr.models.user import User
from boxcheckr.services.machines import delete_machine, get_machine, list_fleet
from boxcheckr.services.share_links import create_share_link, delete_share_link, list_share_links

router = APIRouter(prefix="/admin")


@router.get("/machines")
async def admin_machines(
    request: Request,
    owner: str = "",
    machine: str = "",
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_admin),
):
    machines = await list_fleet(db, owner=owner.strip() or None, machine=machine.strip() or None)
    ctx = {
        "user": user,
        "title": "All Machines",
        "active": "admin",
        "machines": machines,
        "filter_owner": owner,
        "filter_machine": machine,
    }
    if is_htmx(request):
        return templates.TemplateResponse(request, "admin/machines_table.html", ctx)
    return templates.TemplateResponse(request, "admin/machines.html", ctx)


@router.post("/machines/{machine_id}/delete")
async def admin_delete_machine(
    request: Request,
    machine_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_admin),
):
    if not await get_machine(db, machine_id):
        raise NotFoundError("Machine not found")
    await delete_machine(db, machine_id)

    if is_htmx(request):
        return Response(status_code=200)
    return RedirectResponse(url="/admin/machines", status_code=303)


@router.get("/share")
async def admin_share_links(
    request: Request,
    new: str = "",
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_admin),
    settings: Settings = Depends(get_settings),
):
    return templates.TemplateResponse(
        request,
        "admin/share.html",
        {
            "user": user,
            "title": "Share Links",
            "active": "share",
            "share_links": await list_share_links(db),
            "new_link_id": new,
            "base_url": settings.public_url,
            "current_time": utcnow(),
        },
    )


@router.post("/share")
async def admin_create_share_link(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_admin),
    hours: str | None = Form(None),
):
    link = await create_share_link(db, user.id, hours)
    return RedirectResponse(url=f"/admin/share?new={link.id}", status_code=303)


@router.post("/share/{link_id}/delete")
async def admin_delete_share_link(
    request: Request,
    link_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_admin),
):
    await delete_share_link(db, link_id)

    if is_htmx(request):
        return Response(status_code=200)
    return RedirectResponse(url="/admin/share", status_code=303)
