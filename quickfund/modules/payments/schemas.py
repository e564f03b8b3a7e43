from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from quickfund.modules.payments.models import PaymentMethod, PaymentStatus, PaymentType


class PaymentRequest(BaseModel):
    """Repay a loan by card or from the virtual account"""
    loan_id: int
    amount: Decimal = Field(..., ge=100, description="Minimum payment is ₦100")
    type: PaymentType = PaymentType.INSTALLMENT
    payment_method: PaymentMethod = PaymentMethod.CARD

    # Card details, required when paying by card
    card_number: Optional[str] = Field(None, max_length=23)
    expiry: Optional[str] = Field(None, description="MM/YY")
    cvv: Optional[str] = Field(None, max_length=4)


class PaymentResponse(BaseModel):
    id: int
    loan_id: int
    amount: Decimal
    type: PaymentType
    status: PaymentStatus
    reference: str
    gateway: PaymentMethod
    gateway_ref: Optional[str]
    failure_reason: Optional[str]
    processed_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentListResponse(BaseModel):
    payments: List[PaymentResponse]
    total: int
    page: int
    limit: int


class PaymentStatistics(BaseModel):
    total_payments: int
    total_amount: Decimal
    completed_payments: int
    failed_payments: int
    pending_payments: int
    average_payment_amount: Decimal
