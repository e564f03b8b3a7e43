from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from quickfund.modules.loans.models import LoanStatus
from quickfund.modules.loans.scoring import LoanDecision, LoanQuote
from quickfund.modules.payments.models import PaymentStatus
from quickfund.modules.users.models import EmploymentStatus

SCORE_LOAN_JOB = "score-loan"


# ============ Requests ============

class LoanApplicationRequest(BaseModel):
    """Apply for a loan"""
    amount: Decimal = Field(..., ge=10000, le=1000000, description="Loan amount in Naira")
    purpose: str = Field(..., min_length=1, max_length=500)
    term: int = Field(..., ge=3, le=60, description="Loan term in months")

    @field_validator("purpose")
    @classmethod
    def purpose_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Purpose is required")
        return v.strip()


class LoanApproveRequest(BaseModel):
    approved_amount: Optional[Decimal] = Field(None, gt=0, description="Override the requested amount")


class LoanRejectRequest(BaseModel):
    reason: str = Field(..., max_length=1000)


# ============ Responses ============

class LoanResponse(BaseModel):
    id: int
    reference_number: str
    user_id: int
    amount: Decimal
    purpose: str
    term: int
    interest_rate: Decimal
    monthly_payment: Decimal
    total_amount: Decimal
    status: LoanStatus
    score: Optional[int]
    approved_by: Optional[int]
    approved_at: Optional[datetime]
    rejected_by: Optional[int]
    rejected_at: Optional[datetime]
    rejection_reason: Optional[str]
    disbursed_at: Optional[datetime]
    due_date: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RepaymentSummary(BaseModel):
    """Repayment position of a disbursed loan"""
    total_paid: Decimal
    remaining_balance: Decimal
    progress_percent: float
    payments_made: int
    next_payment_date: Optional[datetime]
    days_overdue: int
    late_fee: Decimal
    early_repayment_discount: Decimal


class LoanDetailResponse(LoanResponse):
    repayment: Optional[RepaymentSummary] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class LoanListResponse(BaseModel):
    loans: List[LoanResponse]
    pagination: Pagination


class LoanStatistics(BaseModel):
    """Portfolio totals for the admin dashboard"""
    total_loans: int
    total_amount: Decimal
    average_amount: Decimal
    total_disbursed: Decimal
    by_status: Dict[str, int]


class UserLoanStats(BaseModel):
    total_loans: int
    active_loans: int
    pending_loans: int
    completed_loans: int
    total_borrowed: Decimal
    total_repaid: Decimal
    outstanding_balance: Decimal
    next_payment_date: Optional[datetime]
    next_payment_amount: Optional[Decimal]


class LoanAssessment(BaseModel):
    """Live scoring view used when an admin reviews an application"""
    loan_id: int
    score: int
    stored_score: Optional[int]
    decision: LoanDecision
    quote: LoanQuote


# ============ Jobs ============

class LoanScoringJob(BaseModel):
    """Snapshot carried by a score-loan job"""
    loan_id: int
    user_id: int
    amount: Decimal
    term: Optional[int] = None
    income: Optional[Decimal] = None
    employment_status: Optional[EmploymentStatus] = None
    loan_history: List[LoanStatus] = Field(default_factory=list)
    payment_history: List[PaymentStatus] = Field(default_factory=list)
