from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Enum as SQLEnum
from sqlalchemy.sql import func
from quickfund.core.database import Base
import enum


class PaymentType(str, enum.Enum):
    """What a payment is for"""
    INSTALLMENT = "installment"
    EARLY_REPAYMENT = "early_repayment"
    LATE_FEE = "late_fee"
    LOAN_REPAYMENT = "loan_repayment"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    VIRTUAL_ACCOUNT = "virtual_account"


class Payment(Base):
    """A repayment attempt. Rows are never updated; a retry is a new row."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    loan_id = Column(Integer, ForeignKey("loans.id"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    type = Column(SQLEnum(PaymentType), nullable=False)
    status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False, index=True)
    reference = Column(String(50), unique=True, nullable=False, index=True)
    gateway = Column(SQLEnum(PaymentMethod), nullable=False)
    gateway_ref = Column(String(50), nullable=True)
    failure_reason = Column(String(255), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
