"""
In-memory session registry.

Sessions live only in process memory: a restart logs every user out. The
store is owned by whoever creates it (the FastAPI lifespan in production, a
fixture in tests) and runs its own periodic sweep task between ``start()``
and ``stop()``.

Mutations happen on the event loop thread only, so no lock is taken.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from quickfund.core.config import settings
from quickfund.core.generators import generate_session_id

logger = logging.getLogger(__name__)

SessionListener = Callable[[str, Dict[str, Any]], None]


class Session(BaseModel):
    """One authenticated session"""
    id: str
    user_id: int
    device_id: str
    ip_address: str
    user_agent: str
    role: str
    permissions: List[str] = Field(default_factory=list)
    access_token: Optional[str] = None
    refresh_token: str
    is_active: bool = True
    created_at: datetime
    last_activity: datetime
    expires_at: datetime
    token_rotation_count: int = 0
    last_token_rotation: datetime


class SessionStats(BaseModel):
    total: int
    active: int
    expired: int
    users: int
    average_sessions_per_user: float


class SessionStore:
    """Tracks authenticated sessions with per-user, expiry and rotation ceilings"""

    def __init__(
        self,
        max_sessions_per_user: int = settings.MAX_SESSIONS_PER_USER,
        session_timeout: timedelta = timedelta(minutes=settings.SESSION_TIMEOUT_MINUTES),
        token_rotation_limit: int = settings.TOKEN_ROTATION_LIMIT,
        cleanup_interval: float = settings.SESSION_CLEANUP_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.max_sessions_per_user = max_sessions_per_user
        self.session_timeout = session_timeout
        self.token_rotation_limit = token_rotation_limit
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._listeners: List[SessionListener] = []
        self._sweep_task: Optional[asyncio.Task] = None

    # ============ Events ============

    def subscribe(self, listener: SessionListener) -> None:
        """Register a callback receiving (event_name, payload) for every session event"""
        self._listeners.append(listener)

    def _emit(self, event: str, session: Session, **extra: Any) -> None:
        payload = {
            "session_id": session.id,
            "user_id": session.user_id,
            "device_id": session.device_id,
            "timestamp": self._clock(),
            **extra,
        }
        logger.debug(f"{event}: {payload}")
        for listener in self._listeners:
            listener(event, payload)

    # ============ Lifecycle ============

    def start(self) -> None:
        """Start the periodic sweep on the running event loop"""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info(f"Session sweep started (every {self.cleanup_interval}s)")

    async def stop(self) -> None:
        """Cancel the periodic sweep"""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
            logger.info("Session sweep stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            try:
                removed = self.sweep()
                if removed:
                    logger.info(f"Scheduled cleanup: removed {removed} sessions")
            except Exception:
                logger.exception("Error during scheduled session cleanup")

    # ============ Operations ============

    def create(
        self,
        user_id: int,
        device_id: str,
        ip_address: str,
        user_agent: str,
        refresh_token: str,
        access_token: Optional[str],
        role: str,
        permissions: List[str],
    ) -> Session:
        """Register a new session, evicting the user's oldest one at the ceiling"""
        existing = self.get_user_sessions(user_id)
        if len(existing) >= self.max_sessions_per_user:
            oldest = min(existing, key=lambda s: s.created_at)
            self._remove(oldest.id)
            self._emit(
                "session.limit_exceeded",
                oldest,
                evicted_session_id=oldest.id,
                ip_address=ip_address,
            )

        now = self._clock()
        session = Session(
            id=generate_session_id(),
            user_id=user_id,
            device_id=device_id,
            ip_address=ip_address,
            user_agent=user_agent,
            role=role,
            permissions=list(permissions),
            access_token=access_token,
            refresh_token=refresh_token,
            created_at=now,
            last_activity=now,
            expires_at=now + self.session_timeout,
            last_token_rotation=now,
        )
        self._sessions[session.id] = session
        self._emit("session.created", session, ip_address=ip_address)

        logger.info(f"Session created: {session.id} for user: {user_id}")
        return session

    def validate(self, session_id: str, user_id: int) -> bool:
        """Check a session and slide its expiry window on success"""
        session = self._sessions.get(session_id)

        if session is None:
            logger.warning(f"Session not found: {session_id}")
            return False

        if session.user_id != user_id:
            logger.warning(f"Session {session_id} does not belong to user {user_id}")
            self._remove(session_id)
            return False

        if not session.is_active:
            logger.warning(f"Session {session_id} is inactive")
            return False

        now = self._clock()
        if now > session.expires_at:
            logger.warning(f"Session {session_id} has expired")
            self._remove(session_id)
            return False

        if session.token_rotation_count >= self.token_rotation_limit:
            logger.warning(f"Session {session_id} exceeded token rotation limit")
            self._remove(session_id)
            return False

        session.last_activity = now
        session.expires_at = now + self.session_timeout
        return True

    def refresh(
        self,
        session_id: str,
        refresh_token: str,
        access_token: str,
        role: Optional[str] = None,
        permissions: Optional[List[str]] = None,
    ) -> Optional[Session]:
        """Rotate a session's tokens"""
        session = self._sessions.get(session_id)
        if session is None or not session.is_active:
            return None

        now = self._clock()
        session.refresh_token = refresh_token
        session.access_token = access_token
        session.token_rotation_count += 1
        session.last_token_rotation = now
        session.last_activity = now
        session.expires_at = now + self.session_timeout

        if role:
            session.role = role
        if permissions is not None:
            session.permissions = list(permissions)

        self._emit("session.token_rotated", session, rotation_count=session.token_rotation_count)
        logger.info(f"Session {session_id} tokens rotated (count: {session.token_rotation_count})")
        return session

    def invalidate(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False

        self._emit("session.invalidated", session, reason="manual_logout")
        self._remove(session_id)
        logger.info(f"Session {session_id} invalidated")
        return True

    def invalidate_user(self, user_id: int, reason: str = "force_logout") -> int:
        sessions = self.get_user_sessions(user_id)
        for session in sessions:
            self._emit("session.invalidated", session, reason=reason)
            self._remove(session.id)

        logger.info(f"All sessions invalidated for user {user_id} (reason: {reason})")
        return len(sessions)

    def invalidate_device(self, user_id: int, device_id: str) -> int:
        sessions = [s for s in self.get_user_sessions(user_id) if s.device_id == device_id]
        for session in sessions:
            self._emit("session.invalidated", session, reason="device_logout")
            self._remove(session.id)

        logger.info(f"Device sessions invalidated for user {user_id}, device {device_id}")
        return len(sessions)

    def update_role(self, user_id: int, role: str, permissions: List[str]) -> None:
        """Propagate a role change to every live session of the user"""
        now = self._clock()
        for session in self.get_user_sessions(user_id):
            session.role = role
            session.permissions = list(permissions)
            session.last_activity = now

        logger.info(f"Role updated in all sessions for user {user_id}: {role}")

    # ============ Sweep ============

    def cleanup_expired(self) -> int:
        now = self._clock()
        expired = [s for s in self._sessions.values() if now > s.expires_at]
        for session in expired:
            self._emit("session.expired", session)
            self._remove(session.id)
        return len(expired)

    def cleanup_excessive_rotations(self) -> int:
        excessive = [
            s for s in self._sessions.values()
            if s.token_rotation_count >= self.token_rotation_limit
        ]
        for session in excessive:
            self._emit("session.excessive_rotations", session, rotation_count=session.token_rotation_count)
            self._remove(session.id)
        return len(excessive)

    def sweep(self) -> int:
        """Remove expired and over-rotated sessions; returns how many were removed"""
        return self.cleanup_expired() + self.cleanup_excessive_rotations()

    # ============ Queries ============

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def get_user_sessions(self, user_id: int) -> List[Session]:
        return [s for s in self._sessions.values() if s.user_id == user_id and s.is_active]

    def stats(self) -> SessionStats:
        now = self._clock()
        sessions = list(self._sessions.values())
        active = sum(1 for s in sessions if s.is_active)
        users = len({s.user_id for s in sessions})
        return SessionStats(
            total=len(sessions),
            active=active,
            expired=sum(1 for s in sessions if now > s.expires_at),
            users=users,
            average_sessions_per_user=active / users if users else 0.0,
        )

    def __len__(self) -> int:
        return len(self._sessions)

    def _remove(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None
