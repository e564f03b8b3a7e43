from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from quickfund.core.database import get_db
from quickfund.core.dependencies import (
    get_current_session,
    get_current_user,
    get_dispatcher,
    get_session_store,
    rate_limiter,
)
from quickfund.modules.auth import schemas
from quickfund.modules.auth.services import AuthService
from quickfund.modules.auth.sessions import Session, SessionStore
from quickfund.modules.notifications.dispatcher import NotificationDispatcher
from quickfund.modules.users.models import User
from quickfund.modules.users.schemas import UserProfileResponse, UserRegistrationRequest

router = APIRouter(prefix="/api/v1/auth", tags=["auth"], dependencies=[Depends(rate_limiter)])


def client_info(request: Request) -> schemas.ClientInfo:
    return schemas.ClientInfo(
        device_id=request.headers.get("x-device-id", "unknown"),
        ip_address=request.client.host if request.client else "unknown",
        user_agent=request.headers.get("user-agent", "unknown"),
    )


@router.post("/register", response_model=schemas.AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegistrationRequest,
    client: schemas.ClientInfo = Depends(client_info),
    db: AsyncSession = Depends(get_db),
    session_store: SessionStore = Depends(get_session_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """
    Register a new borrower.

    - Opens the user's virtual account
    - Signs the user in and returns a token pair
    """
    result = await AuthService(db, session_store).register(user_data, client)
    await dispatcher.dispatch(result.events)
    return schemas.AuthResponse(**result.tokens.model_dump(), user=UserProfileResponse.model_validate(result.user))


@router.post("/login", response_model=schemas.AuthResponse)
async def login(
    credentials: schemas.LoginRequest,
    client: schemas.ClientInfo = Depends(client_info),
    db: AsyncSession = Depends(get_db),
    session_store: SessionStore = Depends(get_session_store)
):
    """
    Login with email and password.

    - Creates a new session; the oldest one is evicted at the per-user limit
    """
    result = await AuthService(db, session_store).login(credentials.email, credentials.password, client)
    return schemas.AuthResponse(**result.tokens.model_dump(), user=UserProfileResponse.model_validate(result.user))


@router.post("/refresh", response_model=schemas.TokenResponse)
async def refresh_tokens(
    body: schemas.RefreshRequest,
    db: AsyncSession = Depends(get_db),
    session_store: SessionStore = Depends(get_session_store)
):
    """Rotate the access and refresh tokens of a session"""
    return await AuthService(db, session_store).refresh(body.refresh_token)


@router.post("/logout", response_model=schemas.LogoutResponse)
async def logout(
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
    session_store: SessionStore = Depends(get_session_store)
):
    """End the current session"""
    count = AuthService(db, session_store).logout(session.id)
    return schemas.LogoutResponse(message="Logged out successfully", sessions_invalidated=count)


@router.post("/logout-all", response_model=schemas.LogoutResponse)
async def logout_all(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    session_store: SessionStore = Depends(get_session_store)
):
    """End every session of the current user on every device"""
    count = AuthService(db, session_store).logout_all(current_user.id)
    return schemas.LogoutResponse(message="Logged out from all devices", sessions_invalidated=count)


@router.get("/me", response_model=UserProfileResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.get("/sessions", response_model=schemas.SessionListResponse)
async def list_sessions(
    current_user: User = Depends(get_current_user),
    current_session: Session = Depends(get_current_session),
    session_store: SessionStore = Depends(get_session_store)
):
    """Active sessions of the current user"""
    sessions = [
        schemas.SessionInfo(**s.model_dump(), current=s.id == current_session.id)
        for s in session_store.get_user_sessions(current_user.id)
    ]
    return schemas.SessionListResponse(sessions=sessions)
