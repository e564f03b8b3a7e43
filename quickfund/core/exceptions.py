"""
Domain exceptions for the QuickFund lending core.

Services raise these and never catch them; the HTTP layer translates them
into responses with a single exception handler (see ``main.py``).
"""
from typing import Optional


class QuickFundError(Exception):
    """Base exception for all domain errors"""
    status_code = 400
    error_code = "ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        super().__init__(self.message)


class NotFoundError(QuickFundError):
    """Entity absent, or not owned by the caller"""
    status_code = 404
    error_code = "NOT_FOUND"


class InvalidStateError(QuickFundError):
    """Transition is not legal from the entity's current status"""
    status_code = 400
    error_code = "INVALID_STATE"


class ValidationError(QuickFundError):
    """Malformed input that got past schema validation"""
    status_code = 422
    error_code = "VALIDATION"


class ConflictError(QuickFundError):
    """Duplicate of something that must be unique"""
    status_code = 409
    error_code = "CONFLICT"


class AuthorizationError(QuickFundError):
    """Role or permission insufficient"""
    status_code = 403
    error_code = "AUTHORIZATION"


class AuthenticationError(QuickFundError):
    """Missing or invalid session or token"""
    status_code = 401
    error_code = "UNAUTHENTICATED"


class ActiveLoanExistsError(ConflictError):
    """User already holds an active loan"""
    status_code = 400
    error_code = "ALREADY_HAS_ACTIVE_LOAN"


class InsufficientFundsError(ValidationError):
    """Virtual account balance too low for a debit"""
    status_code = 400
    error_code = "INSUFFICIENT_FUNDS"


class PaymentDeclinedError(ValidationError):
    """Payment gateway refused the charge"""
    status_code = 402
    error_code = "PAYMENT_DECLINED"


class RateLimitExceededError(QuickFundError):
    """Client sent too many requests in the current window"""
    status_code = 429
    error_code = "RATE_LIMITED"
