from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Text, Enum as SQLEnum
from sqlalchemy.sql import func
from quickfund.core.database import Base
import enum


class LoanStatus(str, enum.Enum):
    """Loan lifecycle status"""
    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"
    DISBURSED = "disbursed"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"


class Loan(Base):
    __tablename__ = "loans"

    id = Column(Integer, primary_key=True, index=True)
    reference_number = Column(String(20), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Application
    amount = Column(Numeric(15, 2), nullable=False)
    purpose = Column(Text, nullable=False)
    term = Column(Integer, nullable=False)  # months

    # Terms
    interest_rate = Column(Numeric(6, 4), nullable=False)  # annual, as a fraction
    monthly_payment = Column(Numeric(15, 2), nullable=False)
    total_amount = Column(Numeric(15, 2), nullable=False)

    # Status
    status = Column(SQLEnum(LoanStatus), default=LoanStatus.PENDING, nullable=False, index=True)
    score = Column(Integer, nullable=True)  # 0-1000, written by the scoring job

    # Review
    approved_by = Column(Integer, nullable=True)  # Admin user ID
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(Integer, nullable=True)  # Admin user ID
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # Disbursement
    disbursed_at = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Loan(id={self.id}, ref={self.reference_number}, status={self.status})>"
