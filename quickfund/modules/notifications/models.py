from sqlalchemy import Column, Integer, String, DateTime, Text, Enum as SQLEnum, ForeignKey, JSON
from sqlalchemy.sql import func
from quickfund.core.database import Base
import enum


class NotificationType(str, enum.Enum):
    """Type of notification"""
    WELCOME = "welcome"
    LOAN_APPLICATION = "loan_application"
    LOAN_APPROVED = "loan_approved"
    LOAN_REJECTED = "loan_rejected"
    LOAN_DISBURSED = "loan_disbursed"
    PAYMENT_RECEIVED = "payment_received"


class Notification(Base):
    """In-app notification shown in the user's notification bell"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    type = Column(SQLEnum(NotificationType), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    # Related loan (optional)
    loan_id = Column(Integer, ForeignKey("loans.id"), nullable=True)

    # Additional metadata (JSON for flexibility)
    extra_data = Column(JSON, nullable=True)  # e.g., {"amount": "50000.00"}

    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
