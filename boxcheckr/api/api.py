from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from boxcheckr.core.errors import ValidationError
from boxcheckr.db.session import get_db
from boxcheckr.services.ingest import authenticate_agent, ingest_snapshot

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/v1/inventory")
async def submit_inventory(request: Request, db: AsyncSession = Depends(get_db)):
    # Token first: an unknown token is a 401 whatever the body holds.
    machine = await authenticate_agent(db, request.headers.get("authorization"))

    body = await request.body()
    try:
        await ingest_snapshot(db, machine, body)
    except ValidationError as e:
        logger.info("inventory rejected machine=%s: %s", machine.id, e.message)
        raise

    return {"status": "ok", "machine": machine.name}
