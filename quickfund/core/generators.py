"""Reference and identifier generators"""
import secrets
import string
from datetime import datetime

_ALPHANUMERIC = string.ascii_uppercase + string.digits


def _random_code(length: int = 5) -> str:
    return ''.join(secrets.choice(_ALPHANUMERIC) for _ in range(length))


def generate_account_number() -> str:
    """QF followed by 12 random digits"""
    return "QF" + ''.join(secrets.choice(string.digits) for _ in range(12))


def generate_payment_reference(now: datetime = None) -> str:
    """QF-PAY-YYYYMMDD-HHMMSS-XXXXX"""
    now = now or datetime.utcnow()
    return f"QF-PAY-{now:%Y%m%d}-{now:%H%M%S}-{_random_code()}"


def generate_transaction_id() -> str:
    """QF-TXN-XXXXX"""
    return f"QF-TXN-{_random_code()}"


def generate_loan_reference() -> str:
    """QF-LOAN-XXXXX"""
    return f"QF-LOAN-{_random_code()}"


def generate_session_id() -> str:
    return secrets.token_hex(32)


def generate_job_id() -> str:
    return secrets.token_hex(16)


def is_valid_account_number(account_number: str) -> bool:
    """QuickFund account numbers are 'QF' plus 12 digits"""
    return (
        len(account_number) == 14
        and account_number.startswith("QF")
        and account_number[2:].isdigit()
    )
