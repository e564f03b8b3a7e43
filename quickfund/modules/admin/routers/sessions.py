"""
Admin session management endpoints.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from quickfund.core.database import get_db
from quickfund.core.dependencies import get_session_store, require_permission
from quickfund.core.exceptions import NotFoundError
from quickfund.core.security import Permission
from quickfund.modules.auth.schemas import LogoutResponse
from quickfund.modules.auth.sessions import SessionStats, SessionStore
from quickfund.modules.users.models import User

router = APIRouter(tags=["admin-sessions"])


@router.get("/sessions/stats", response_model=SessionStats)
async def session_statistics(
    session_store: SessionStore = Depends(get_session_store),
    admin: User = Depends(require_permission(Permission.MANAGE_SESSIONS))
):
    return session_store.stats()


@router.post("/users/{user_id}/force-logout", response_model=LogoutResponse)
async def force_logout(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    session_store: SessionStore = Depends(get_session_store),
    admin: User = Depends(require_permission(Permission.MANAGE_SESSIONS))
):
    """Invalidate every session of a user"""
    if await db.get(User, user_id) is None:
        raise NotFoundError("User not found")

    count = session_store.invalidate_user(user_id, reason="force_logout")
    return LogoutResponse(message=f"User {user_id} logged out", sessions_invalidated=count)
