"""
Credit scoring.

``score_applicant`` is the only scoring table. Callers describe what they
know about the applicant in a ``ScoringProfile``; fields left as None
contribute no points. The API path fills every field from the database, the
background job fills the subset carried in its payload.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quickfund.core.exceptions import NotFoundError
from quickfund.modules.loans.calculator import round_money, to_decimal, Number
from quickfund.modules.loans.models import Loan, LoanStatus
from quickfund.modules.payments.models import Payment, PaymentStatus
from quickfund.modules.users.models import EmploymentStatus, User

MIN_SCORE = 0
MAX_SCORE = 1000

EMPLOYMENT_POINTS = {
    EmploymentStatus.EMPLOYED: 200,
    EmploymentStatus.SELF_EMPLOYED: 150,
    EmploymentStatus.RETIRED: 100,
    EmploymentStatus.STUDENT: 50,
    EmploymentStatus.UNEMPLOYED: 0,
}

# (minimum monthly income, points), highest first
INCOME_BRACKETS = [
    (Decimal("500000"), 200),
    (Decimal("300000"), 150),
    (Decimal("200000"), 120),
    (Decimal("100000"), 100),
    (Decimal("50000"), 80),
]

# (maximum amount, points), smallest first; anything larger earns 20
AMOUNT_BRACKETS = [
    (Decimal("50000"), 100),
    (Decimal("100000"), 80),
    (Decimal("200000"), 60),
    (Decimal("500000"), 40),
]

# (maximum term in months, points), shortest first; anything longer earns 20
TERM_BRACKETS = [(6, 100), (12, 80), (24, 60), (36, 40)]

NEW_BORROWER_BONUS = 50
COMPLETED_LOAN_POINTS = 50
DEFAULTED_LOAN_PENALTY = 200
FAILED_PAYMENT_PENALTY = 20
PROFILE_FIELD_POINTS = 20
VERIFIED_POINTS = 100


class ProfileCompleteness(BaseModel):
    """Which optional profile fields the applicant has filled in"""
    phone: bool = False
    address: bool = False
    city: bool = False
    state: bool = False
    employer: bool = False
    income: bool = False


class ScoringProfile(BaseModel):
    """Everything the scorer may know about an applicant"""
    amount: Decimal
    term: Optional[int] = None
    is_verified: Optional[bool] = None
    employment_status: Optional[EmploymentStatus] = None
    monthly_income: Optional[Decimal] = None
    loan_history: Optional[List[LoanStatus]] = None
    payment_history: Optional[List[PaymentStatus]] = None
    profile: Optional[ProfileCompleteness] = None


class LoanDecision(BaseModel):
    approved: bool
    reason: str
    suggested_amount: Optional[Decimal] = None
    suggested_term: Optional[int] = None


class LoanQuote(BaseModel):
    interest_rate: Decimal
    monthly_payment: Decimal
    total_amount: Decimal


def employment_score(status: Optional[EmploymentStatus]) -> int:
    if status is None:
        return 0
    return EMPLOYMENT_POINTS.get(EmploymentStatus(status), 0)


def income_score(monthly_income: Optional[Decimal]) -> int:
    if not monthly_income:
        return 0
    for threshold, points in INCOME_BRACKETS:
        if monthly_income >= threshold:
            return points
    return 0


def loan_history_score(statuses: List[LoanStatus]) -> int:
    """Only finished loans count; an applicant with none gets the new-borrower bonus"""
    completed = sum(1 for s in statuses if s == LoanStatus.COMPLETED)
    defaulted = sum(1 for s in statuses if s == LoanStatus.DEFAULTED)
    if completed + defaulted == 0:
        return NEW_BORROWER_BONUS
    return completed * COMPLETED_LOAN_POINTS - defaulted * DEFAULTED_LOAN_PENALTY


def payment_history_score(statuses: List[PaymentStatus]) -> int:
    if not statuses:
        return 0

    completed = sum(1 for s in statuses if s == PaymentStatus.COMPLETED)
    failed = sum(1 for s in statuses if s == PaymentStatus.FAILED)
    success_rate = completed / len(statuses)

    if success_rate >= 0.95:
        score = 150
    elif success_rate >= 0.9:
        score = 100
    elif success_rate >= 0.8:
        score = 50
    else:
        score = 0

    return score - failed * FAILED_PAYMENT_PENALTY


def amount_score(amount: Decimal) -> int:
    for ceiling, points in AMOUNT_BRACKETS:
        if amount <= ceiling:
            return points
    return 20


def term_score(term: int) -> int:
    for ceiling, points in TERM_BRACKETS:
        if term <= ceiling:
            return points
    return 20


def profile_score(profile: ProfileCompleteness) -> int:
    return PROFILE_FIELD_POINTS * sum(profile.model_dump().values())


def score_applicant(profile: ScoringProfile) -> int:
    """Sum the point table over the known fields and clamp to [0, 1000]"""
    score = 0

    if profile.is_verified:
        score += VERIFIED_POINTS
    score += employment_score(profile.employment_status)
    score += income_score(profile.monthly_income)
    if profile.loan_history is not None:
        score += loan_history_score(profile.loan_history)
    if profile.payment_history is not None:
        score += payment_history_score(profile.payment_history)
    score += amount_score(profile.amount)
    if profile.term is not None:
        score += term_score(profile.term)
    if profile.profile is not None:
        score += profile_score(profile.profile)

    return max(MIN_SCORE, min(MAX_SCORE, score))


def should_approve_loan(score: int, amount: Number, term: int) -> LoanDecision:
    """
    Advisory decision table for the admin review screen.

    The lifecycle never acts on this; every application waits for a human.
    """
    amount = to_decimal(amount)

    if score < 600:
        return LoanDecision(approved=False, reason="Credit score too low. Minimum required: 600")

    if amount > 500000 and score < 750:
        return LoanDecision(approved=False, reason="High loan amount requires higher credit score")

    if term > 24 and score < 700:
        return LoanDecision(approved=False, reason="Long-term loans require higher credit score")

    if score < 650:
        if amount > 200000:
            return LoanDecision(
                approved=False,
                reason="Consider reducing loan amount for better approval chances",
                suggested_amount=Decimal("150000"),
            )
        if term > 12:
            return LoanDecision(
                approved=False,
                reason="Consider shorter loan term for better approval chances",
                suggested_term=12,
            )

    return LoanDecision(approved=True, reason="Loan application meets approval criteria")


def quote_interest_rate(amount: Decimal, term: int, score: int) -> Decimal:
    if score >= 800:
        rate = Decimal("0.10")
    elif score >= 700:
        rate = Decimal("0.12")
    elif score >= 600:
        rate = Decimal("0.15")
    else:
        rate = Decimal("0.20")

    if amount > 500000:
        rate += Decimal("0.02")
    if amount < 50000:
        rate -= Decimal("0.01")
    if term > 24:
        rate += Decimal("0.01")

    return rate


def calculate_loan_terms(amount: Number, term: int, score: int) -> LoanQuote:
    """
    Score-priced quote. The total compounds the annual rate over the term,
    P·(1+rate)^(term/12), so it differs from monthly_payment × term.
    """
    amount = to_decimal(amount)
    rate = quote_interest_rate(amount, term, score)
    monthly_rate = rate / 12
    growth = (1 + monthly_rate) ** term

    monthly_payment = amount * monthly_rate * growth / (growth - 1)
    total_amount = amount * (1 + rate) ** (Decimal(term) / 12)

    return LoanQuote(
        interest_rate=rate,
        monthly_payment=round_money(monthly_payment),
        total_amount=total_amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
    )


class ScoringService:
    """Scores an applicant from their persisted profile and history"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def build_profile(self, user: User, amount: Number, term: Optional[int]) -> ScoringProfile:
        loans_result = await self.db.execute(
            select(Loan.status).where(
                Loan.user_id == user.id,
                Loan.status.in_([LoanStatus.COMPLETED, LoanStatus.DEFAULTED]),
            )
        )
        payments_result = await self.db.execute(
            select(Payment.status).join(Loan, Payment.loan_id == Loan.id).where(Loan.user_id == user.id)
        )

        return ScoringProfile(
            amount=to_decimal(amount),
            term=term,
            is_verified=user.is_verified,
            employment_status=user.employment_status,
            monthly_income=user.monthly_income,
            loan_history=list(loans_result.scalars().all()),
            payment_history=list(payments_result.scalars().all()),
            profile=ProfileCompleteness(
                phone=bool(user.phone),
                address=bool(user.address),
                city=bool(user.city),
                state=bool(user.state),
                employer=bool(user.employer_name),
                income=bool(user.monthly_income),
            ),
        )

    async def calculate_credit_score(self, user_id: int, amount: Number, term: int) -> int:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")

        profile = await self.build_profile(user, amount, term)
        return score_applicant(profile)
