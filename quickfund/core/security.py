from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List
from jose import JWTError, jwt
from passlib.context import CryptContext
from quickfund.core.config import settings
from quickfund.core.exceptions import AuthenticationError
import enum
import secrets
import string

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)


class UserRole(str, enum.Enum):
    """User roles"""
    USER = "user"
    LOAN_OFFICER = "loan_officer"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class Permission(str, enum.Enum):
    """Granular permissions"""
    READ_LOANS = "read:loans"
    CREATE_LOANS = "create:loans"
    APPROVE_LOANS = "approve:loans"
    REJECT_LOANS = "reject:loans"
    DISBURSE_LOANS = "disburse:loans"
    READ_PAYMENTS = "read:payments"
    CREATE_PAYMENTS = "create:payments"
    READ_VIRTUAL_ACCOUNTS = "read:virtual_accounts"
    READ_NOTIFICATIONS = "read:notifications"
    MANAGE_SESSIONS = "manage:sessions"


USER_PERMISSIONS = [
    Permission.READ_LOANS,
    Permission.CREATE_LOANS,
    Permission.READ_PAYMENTS,
    Permission.CREATE_PAYMENTS,
    Permission.READ_VIRTUAL_ACCOUNTS,
    Permission.READ_NOTIFICATIONS,
]

LOAN_OFFICER_PERMISSIONS = USER_PERMISSIONS + [
    Permission.APPROVE_LOANS,
    Permission.REJECT_LOANS,
]

ADMIN_PERMISSIONS = LOAN_OFFICER_PERMISSIONS + [
    Permission.DISBURSE_LOANS,
    Permission.MANAGE_SESSIONS,
]

ROLE_PERMISSIONS: Dict[UserRole, List[Permission]] = {
    UserRole.USER: USER_PERMISSIONS,
    UserRole.LOAN_OFFICER: LOAN_OFFICER_PERMISSIONS,
    UserRole.ADMIN: ADMIN_PERMISSIONS,
    UserRole.SUPER_ADMIN: list(Permission),
}

ADMIN_ROLES = (UserRole.LOAN_OFFICER, UserRole.ADMIN, UserRole.SUPER_ADMIN)


def permissions_for(role: UserRole) -> List[str]:
    """Permission values granted to a role"""
    return [permission.value for permission in ROLE_PERMISSIONS.get(UserRole(role), [])]


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password"""
    return pwd_context.hash(password)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire, "iat": datetime.utcnow(), "jti": secrets.token_hex(16), "type": "access"})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


def create_refresh_token(data: Dict[str, Any]) -> str:
    """Create JWT refresh token"""
    to_encode = data.copy()
    expire = datetime.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    to_encode.update({"exp": expire, "iat": datetime.utcnow(), "jti": secrets.token_hex(16), "type": "refresh"})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate JWT token"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload
    except JWTError:
        raise AuthenticationError("Could not validate credentials")


def validate_password_strength(password: str) -> tuple[bool, str]:
    """
    Validate password strength
    Returns: (is_valid, error_message)
    """
    if len(password) < 8:
        return False, "Password must be at least 8 characters long"

    if not any(char.isupper() for char in password):
        return False, "Password must contain at least one uppercase letter"

    if not any(char.islower() for char in password):
        return False, "Password must contain at least one lowercase letter"

    if not any(char.isdigit() for char in password):
        return False, "Password must contain at least one digit"

    if not any(char in string.punctuation for char in password):
        return False, "Password must contain at least one special character"

    return True, ""


def mask_email(email: str) -> str:
    """Mask email address"""
    if '@' not in email:
        return email

    username, domain = email.split('@')
    if len(username) <= 2:
        masked_username = username[0] + '*'
    else:
        masked_username = username[0] + '*' * (len(username) - 2) + username[-1]

    return f"{masked_username}@{domain}"
