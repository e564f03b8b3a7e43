from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from datetime import datetime
from typing import List, NamedTuple
import logging

from quickfund.core.config import settings
from quickfund.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ValidationError,
)
from quickfund.core.security import (
    UserRole,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    mask_email,
    permissions_for,
    validate_password_strength,
    verify_password,
)
from quickfund.modules.accounts.services import VirtualAccountService
from quickfund.modules.auth.schemas import ClientInfo, TokenResponse
from quickfund.modules.auth.sessions import SessionStore
from quickfund.modules.notifications.events import NotificationEvent
from quickfund.modules.notifications.models import NotificationType
from quickfund.modules.users.models import User
from quickfund.modules.users.schemas import UserRegistrationRequest

logger = logging.getLogger(__name__)


class AuthResult(NamedTuple):
    user: User
    tokens: TokenResponse
    events: List[NotificationEvent]


class AuthService:
    """Registration, login and token rotation on top of the session store"""

    def __init__(self, db: AsyncSession, session_store: SessionStore):
        self.db = db
        self.session_store = session_store

    async def register(self, user_data: UserRegistrationRequest, client: ClientInfo) -> AuthResult:
        """
        Create the user and their virtual account in one transaction, then
        sign them in.
        """
        is_valid, error_msg = validate_password_strength(user_data.password)
        if not is_valid:
            raise ValidationError(error_msg)

        result = await self.db.execute(select(User.id).where(User.email == user_data.email))
        if result.first() is not None:
            raise ConflictError("Email already registered")

        user = User(
            email=user_data.email,
            hashed_password=get_password_hash(user_data.password),
            role=UserRole.USER,
            first_name=user_data.first_name,
            last_name=user_data.last_name,
            phone=user_data.phone,
            date_of_birth=user_data.date_of_birth,
            address=user_data.address,
            city=user_data.city,
            state=user_data.state,
            zip_code=user_data.zip_code,
            country=user_data.country,
            employment_status=user_data.employment_status,
            employer_name=user_data.employer_name,
            monthly_income=user_data.monthly_income,
            last_login_at=datetime.utcnow(),
        )

        try:
            self.db.add(user)
            await self.db.flush()
            await VirtualAccountService.create(self.db, user.id)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Email already registered")

        await self.db.refresh(user)
        logger.info(f"User registered: {mask_email(user.email)} (id {user.id})")

        tokens = self._start_session(user, client)
        welcome = NotificationEvent(
            type=NotificationType.WELCOME,
            user_id=user.id,
            data={"first_name": user.first_name},
        )
        return AuthResult(user, tokens, [welcome])

    async def login(self, email: str, password: str, client: ClientInfo) -> AuthResult:
        result = await self.db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if not user or not verify_password(password, user.hashed_password):
            logger.warning(f"Failed login for {mask_email(email)}")
            raise AuthenticationError("Invalid email or password")

        if not user.is_active:
            raise AuthorizationError("Account is deactivated. Please contact support.")

        user.last_login_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(user)

        tokens = self._start_session(user, client)
        logger.info(f"User {user.id} logged in from {client.ip_address}")
        return AuthResult(user, tokens, [])

    async def refresh(self, refresh_token: str) -> TokenResponse:
        """
        Rotate both tokens of the session the refresh token belongs to.

        The presented token must be the session's current one; the session's
        role snapshot is refreshed from the database.
        """
        payload = decode_token(refresh_token)
        if payload.get("type") != "refresh" or not payload.get("sub") or not payload.get("sid"):
            raise AuthenticationError("Invalid refresh token")

        user_id = int(payload["sub"])
        session_id = payload["sid"]

        if not self.session_store.validate(session_id, user_id):
            raise AuthenticationError("Session expired or invalidated")

        session = self.session_store.get(session_id)
        if session.refresh_token != refresh_token:
            raise AuthenticationError("Invalid refresh token")

        user = await self.db.get(User, user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("Invalid refresh token")

        access_token, new_refresh_token = self._issue_tokens(user, session_id)
        self.session_store.refresh(
            session_id,
            new_refresh_token,
            access_token,
            role=user.role.value,
            permissions=permissions_for(user.role),
        )

        return self._token_response(access_token, new_refresh_token, session_id)

    def logout(self, session_id: str) -> int:
        return 1 if self.session_store.invalidate(session_id) else 0

    def logout_all(self, user_id: int) -> int:
        return self.session_store.invalidate_user(user_id, reason="manual_logout")

    # ============ Helpers ============

    def _start_session(self, user: User, client: ClientInfo) -> TokenResponse:
        session = self.session_store.create(
            user_id=user.id,
            device_id=client.device_id,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
            refresh_token="",
            access_token=None,
            role=user.role.value,
            permissions=permissions_for(user.role),
        )
        access_token, refresh_token = self._issue_tokens(user, session.id)
        session.access_token = access_token
        session.refresh_token = refresh_token
        return self._token_response(access_token, refresh_token, session.id)

    @staticmethod
    def _issue_tokens(user: User, session_id: str) -> tuple[str, str]:
        claims = {"sub": str(user.id), "role": user.role.value, "sid": session_id}
        return create_access_token(data=claims), create_refresh_token(data=claims)

    @staticmethod
    def _token_response(access_token: str, refresh_token: str, session_id: str) -> TokenResponse:
        return TokenResponse(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type="bearer",
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            session_id=session_id,
        )
