from pydantic import BaseModel, EmailStr
from typing import List
from datetime import datetime

from quickfund.modules.users.schemas import UserProfileResponse


class ClientInfo(BaseModel):
    """Where a login came from"""
    device_id: str = "unknown"
    ip_address: str = "unknown"
    user_agent: str = "unknown"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    """JWT token response"""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    session_id: str


class AuthResponse(TokenResponse):
    user: UserProfileResponse


class SessionInfo(BaseModel):
    id: str
    device_id: str
    ip_address: str
    user_agent: str
    created_at: datetime
    last_activity: datetime
    expires_at: datetime
    token_rotation_count: int
    current: bool = False


class SessionListResponse(BaseModel):
    sessions: List[SessionInfo]


class LogoutResponse(BaseModel):
    message: str
    sessions_invalidated: int
