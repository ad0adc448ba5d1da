from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from boxcheckr.core.errors import AuthenticationError, NotFoundError
from boxcheckr.core.security import extract_bearer_token
from boxcheckr.models.machine import Machine
from boxcheckr.models.snapshot import InventorySnapshot
from boxcheckr.services.inventory import create_snapshot
from boxcheckr.services.machines import get_machine_by_token
from boxcheckr.services.validation import parse_inventory

logger = logging.getLogger(__name__)


async def authenticate_agent(db: AsyncSession, authorization: str | None) -> Machine:
    token = extract_bearer_token(authorization)
    if not token:
        logger.info("inventory rejected: missing or malformed authorization header")
        raise AuthenticationError("Missing or invalid Authorization header")

    machine = await get_machine_by_token(db, token)
    if not machine:
        logger.info("inventory rejected: unknown token")
        raise AuthenticationError("Invalid token")
    return machine


async def ingest_snapshot(db: AsyncSession, machine: Machine, body: bytes) -> InventorySnapshot:
    report = parse_inventory(body)
    raw_data = body.decode("utf-8")

    try:
        snap = await create_snapshot(db, machine.id, report, raw_data)
    except NotFoundError as e:
        # The machine was deleted mid-request; its token is no longer valid.
        raise AuthenticationError("Invalid token") from e

    logger.info("inventory stored machine=%s snapshot=%s", machine.id, snap.id)
    return snap
