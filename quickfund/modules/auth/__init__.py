# Auth module
from quickfund.modules.auth.sessions import Session, SessionStore

__all__ = ["Session", "SessionStore"]
