from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, Dict

from quickfund.core.config import settings
from quickfund.core.database import get_db, get_redis
from quickfund.core.exceptions import AuthenticationError, AuthorizationError, RateLimitExceededError
from quickfund.core.queue import JobQueue
from quickfund.core.security import ADMIN_ROLES, Permission, decode_token, permissions_for
from quickfund.modules.auth.sessions import Session, SessionStore
from quickfund.modules.notifications.dispatcher import NotificationDispatcher
from quickfund.modules.users.models import User

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_scoring_queue(request: Request) -> JobQueue:
    return request.app.state.scoring_queue


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode an access token and check it carries a user and a session"""
    payload = decode_token(token)
    if payload.get("type") != "access" or not payload.get("sub") or not payload.get("sid"):
        raise AuthenticationError("Could not validate credentials")
    return payload


async def authenticate(token: str, db: AsyncSession, session_store: SessionStore) -> User:
    """Resolve a bearer token to its user; the backing session must still be valid"""
    payload = decode_access_token(token)
    user_id = int(payload["sub"])

    if not session_store.validate(payload["sid"], user_id):
        raise AuthenticationError("Session expired or invalidated")

    user = await db.get(User, user_id)
    if user is None:
        raise AuthenticationError("Could not validate credentials")
    if not user.is_active:
        raise AuthorizationError("Account is deactivated. Please contact support.")

    return user


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
    session_store: SessionStore = Depends(get_session_store)
) -> User:
    """Get current authenticated user from JWT token"""
    return await authenticate(token, db, session_store)


async def get_current_session(
    token: str = Depends(oauth2_scheme),
    session_store: SessionStore = Depends(get_session_store),
    current_user: User = Depends(get_current_user)
) -> Session:
    """The session the current request's access token was issued for"""
    session = session_store.get(decode_access_token(token)["sid"])
    if session is None:
        raise AuthenticationError("Session expired or invalidated")
    return session


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """Ensure the user holds a staff role"""
    if current_user.role not in ADMIN_ROLES:
        raise AuthorizationError("Admin access required")
    return current_user


def require_permission(permission: Permission):
    """Dependency factory checking the user's role grants ``permission``"""
    async def checker(current_user: User = Depends(require_admin)) -> User:
        if permission.value not in permissions_for(current_user.role):
            raise AuthorizationError(f"Missing permission: {permission.value}")
        return current_user

    return checker


async def rate_limiter(request: Request) -> None:
    """
    Fixed-window request counters per client IP.

    - One window per minute and one per hour, both kept in Redis
    - Disabled with RATE_LIMIT_ENABLED=false
    """
    if not settings.RATE_LIMIT_ENABLED:
        return

    client_ip = request.client.host if request.client else "unknown"
    redis = await get_redis()

    minute_key = f"ratelimit:{client_ip}:minute"
    hour_key = f"ratelimit:{client_ip}:hour"

    pipe = redis.pipeline()
    pipe.incr(minute_key)
    pipe.expire(minute_key, 60, nx=True)
    pipe.incr(hour_key)
    pipe.expire(hour_key, 3600, nx=True)
    minute_count, _, hour_count, _ = await pipe.execute()

    if minute_count > settings.RATE_LIMIT_PER_MINUTE or hour_count > settings.RATE_LIMIT_PER_HOUR:
        raise RateLimitExceededError("Too many requests. Please try again later.")
