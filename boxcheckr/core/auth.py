from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from boxcheckr.core.errors import AuthenticationError, AuthorizationError
from boxcheckr.db.session import get_db
from boxcheckr.models.machine import Machine
from boxcheckr.models.user import User
from boxcheckr.services.identity import IdentityProvider
from boxcheckr.services.machines import get_user

SESSION_USER_ID = "user_id"


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    user_id = request.session.get(SESSION_USER_ID)
    if not user_id:
        raise AuthenticationError("Not authenticated")

    user = await get_user(db, str(user_id))
    if not user:
        request.session.clear()
        raise AuthenticationError("Not authenticated")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise AuthorizationError("Admin required")
    return user


def ensure_can_manage(user: User, machine: Machine, action: str = "view") -> None:
    if machine.user_id != user.id and not user.is_admin:
        raise AuthorizationError(f"You don't have permission to {action} this machine")


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity_provider
