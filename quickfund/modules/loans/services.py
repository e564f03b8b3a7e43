"""
Loan lifecycle.

    PENDING ──approve──▶ ACTIVE ──disburse──▶ DISBURSED
       └────reject────▶ REJECTED

Every mutating operation commits its own transaction and returns a
``LoanTransition``: the loan plus the notification events the caller should
dispatch once the commit has succeeded. Nothing here sends notifications.
"""
import logging
import math
from datetime import datetime
from decimal import Decimal
from typing import List, NamedTuple, Optional, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from quickfund.core.exceptions import (
    ActiveLoanExistsError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from quickfund.core.generators import generate_loan_reference
from quickfund.core.queue import JobQueue
from quickfund.modules.accounts.services import VirtualAccountService
from quickfund.modules.loans import calculator
from quickfund.modules.loans.models import Loan, LoanStatus
from quickfund.modules.loans.schemas import (
    SCORE_LOAN_JOB,
    LoanAssessment,
    LoanScoringJob,
    LoanStatistics,
    RepaymentSummary,
    UserLoanStats,
)
from quickfund.modules.loans.scoring import ScoringService, calculate_loan_terms, should_approve_loan
from quickfund.modules.notifications.events import NotificationEvent
from quickfund.modules.notifications.models import NotificationType
from quickfund.modules.payments.models import Payment, PaymentStatus
from quickfund.modules.users.models import User

logger = logging.getLogger(__name__)

# Loans that can still receive repayments
REPAYABLE_STATUSES = (LoanStatus.ACTIVE, LoanStatus.DISBURSED)


class LoanTransition(NamedTuple):
    loan: Loan
    events: List[NotificationEvent]


def _loan_event(event_type: NotificationType, loan: Loan, **data) -> NotificationEvent:
    return NotificationEvent(
        type=event_type,
        user_id=loan.user_id,
        loan_id=loan.id,
        data={"amount": str(loan.amount), "reference": loan.reference_number, **data},
    )


class LoanService:
    def __init__(self, db: AsyncSession, scoring_queue: Optional[JobQueue] = None):
        self.db = db
        self.scoring_queue = scoring_queue

    # ============ Lifecycle ============

    async def apply_for_loan(self, user_id: int, amount: Decimal, purpose: str, term: int) -> LoanTransition:
        """
        Create a PENDING application priced at the default rate and queue it
        for scoring. The score never gates the application; an admin decides.
        """
        existing = await self.db.execute(
            select(Loan.id).where(and_(Loan.user_id == user_id, Loan.status == LoanStatus.ACTIVE))
        )
        if existing.first() is not None:
            raise ActiveLoanExistsError("You already have an active loan")

        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")

        terms = calculator.calculate_loan_terms(amount, term)

        loan = Loan(
            reference_number=await self._unique_reference(),
            user_id=user_id,
            amount=calculator.round_money(calculator.to_decimal(amount)),
            purpose=purpose,
            term=term,
            interest_rate=terms.interest_rate,
            monthly_payment=terms.monthly_payment,
            total_amount=terms.total_amount,
            status=LoanStatus.PENDING,
        )
        self.db.add(loan)
        await self.db.commit()
        await self.db.refresh(loan)

        logger.info(f"Loan {loan.reference_number} applied by user {user_id} for {loan.amount} over {term} months")

        await self._enqueue_scoring(loan, user)

        return LoanTransition(loan, [_loan_event(NotificationType.LOAN_APPLICATION, loan, purpose=purpose)])

    async def approve_loan(
        self, admin_id: int, loan_id: int, approved_amount: Optional[Decimal] = None
    ) -> LoanTransition:
        """PENDING → ACTIVE; an amount override is re-priced at the loan's original rate"""
        loan = await self._get_loan(loan_id)

        if loan.status != LoanStatus.PENDING:
            raise InvalidStateError("Loan is not in pending status")

        requested_amount = loan.amount
        if approved_amount is not None and calculator.to_decimal(approved_amount) != loan.amount:
            terms = calculator.calculate_loan_terms(approved_amount, loan.term, loan.interest_rate)
            loan.amount = calculator.round_money(calculator.to_decimal(approved_amount))
            loan.monthly_payment = terms.monthly_payment
            loan.total_amount = terms.total_amount

        loan.status = LoanStatus.ACTIVE
        loan.approved_by = admin_id
        loan.approved_at = datetime.utcnow()

        await self.db.commit()
        await self.db.refresh(loan)

        logger.info(f"Loan {loan.reference_number} approved by admin {admin_id} for {loan.amount}")

        event = _loan_event(NotificationType.LOAN_APPROVED, loan, requested_amount=str(requested_amount))
        return LoanTransition(loan, [event])

    async def reject_loan(self, admin_id: int, loan_id: int, reason: str) -> LoanTransition:
        """PENDING → REJECTED; a reason is mandatory"""
        if not reason or not reason.strip():
            raise ValidationError("Rejection reason is required")

        loan = await self._get_loan(loan_id)

        if loan.status != LoanStatus.PENDING:
            raise InvalidStateError("Loan is not in pending status")

        loan.status = LoanStatus.REJECTED
        loan.rejected_by = admin_id
        loan.rejected_at = datetime.utcnow()
        loan.rejection_reason = reason.strip()

        await self.db.commit()
        await self.db.refresh(loan)

        logger.info(f"Loan {loan.reference_number} rejected by admin {admin_id}: {loan.rejection_reason}")

        event = _loan_event(NotificationType.LOAN_REJECTED, loan, reason=loan.rejection_reason)
        return LoanTransition(loan, [event])

    async def disburse_loan(self, admin_id: int, loan_id: int) -> LoanTransition:
        """
        ACTIVE → DISBURSED and credit the borrower's virtual account.

        The status change and the balance increment commit together or not at all.
        """
        loan = await self._get_loan(loan_id)

        if loan.status != LoanStatus.ACTIVE:
            raise InvalidStateError("Loan must be active before disbursement")

        now = datetime.utcnow()
        try:
            loan.status = LoanStatus.DISBURSED
            loan.disbursed_at = now
            loan.due_date = calculator.calculate_due_date(now, loan.term)

            account = await VirtualAccountService.credit(self.db, loan.user_id, loan.amount)
            account_number = account.account_number

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception(f"Disbursement of loan {loan_id} failed; rolled back")
            raise

        await self.db.refresh(loan)
        logger.info(f"Loan {loan.reference_number} disbursed by admin {admin_id} to account {account_number}")

        event = _loan_event(NotificationType.LOAN_DISBURSED, loan, account_number=account_number)
        return LoanTransition(loan, [event])

    # ============ Scoring ============

    async def build_scoring_job(self, loan: Loan, user: User) -> LoanScoringJob:
        """Snapshot of the applicant's history, excluding the loan being scored"""
        loans_result = await self.db.execute(
            select(Loan.status).where(and_(Loan.user_id == user.id, Loan.id != loan.id))
        )
        payments_result = await self.db.execute(
            select(Payment.status).join(Loan, Payment.loan_id == Loan.id).where(Loan.user_id == user.id)
        )

        return LoanScoringJob(
            loan_id=loan.id,
            user_id=user.id,
            amount=loan.amount,
            term=loan.term,
            income=user.monthly_income,
            employment_status=user.employment_status,
            loan_history=list(loans_result.scalars().all()),
            payment_history=list(payments_result.scalars().all()),
        )

    async def _enqueue_scoring(self, loan: Loan, user: User) -> None:
        if self.scoring_queue is None:
            logger.warning(f"No scoring queue configured; loan {loan.reference_number} will not be scored")
            return

        job = await self.build_scoring_job(loan, user)
        await self.scoring_queue.enqueue(SCORE_LOAN_JOB, job.model_dump(mode="json"))

    async def assess_loan(self, loan_id: int) -> LoanAssessment:
        """Live score, advisory decision and score-priced quote for admin review"""
        loan = await self._get_loan(loan_id)

        score = await ScoringService(self.db).calculate_credit_score(loan.user_id, loan.amount, loan.term)

        return LoanAssessment(
            loan_id=loan.id,
            score=score,
            stored_score=loan.score,
            decision=should_approve_loan(score, loan.amount, loan.term),
            quote=calculate_loan_terms(loan.amount, loan.term, score),
        )

    # ============ Queries ============

    async def get_user_loans(self, user_id: int) -> List[Loan]:
        result = await self.db.execute(
            select(Loan).where(Loan.user_id == user_id).order_by(Loan.created_at.desc(), Loan.id.desc())
        )
        return list(result.scalars().all())

    async def get_loan(self, user_id: int, loan_id: int) -> Loan:
        """Owner-scoped lookup; someone else's loan is reported as missing"""
        result = await self.db.execute(
            select(Loan).where(and_(Loan.id == loan_id, Loan.user_id == user_id))
        )
        loan = result.scalar_one_or_none()
        if loan is None:
            raise NotFoundError("Loan not found")
        return loan

    async def get_loan_by_id(self, loan_id: int) -> Loan:
        return await self._get_loan(loan_id)

    async def get_all_loans(
        self, status: Optional[LoanStatus] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[Loan], int, int]:
        """Returns (loans, total, pages)"""
        query = select(Loan)
        if status:
            query = query.where(Loan.status == status)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery())) or 0

        result = await self.db.execute(
            query.order_by(Loan.created_at.desc(), Loan.id.desc()).offset((page - 1) * limit).limit(limit)
        )
        pages = math.ceil(total / limit) if limit else 0
        return list(result.scalars().all()), total, pages

    async def get_loan_statistics(self) -> LoanStatistics:
        result = await self.db.execute(
            select(Loan.status, func.count(Loan.id), func.coalesce(func.sum(Loan.amount), 0))
            .group_by(Loan.status)
        )
        rows = result.all()

        by_status = {status.value: 0 for status in LoanStatus}
        total_loans = 0
        total_amount = Decimal("0")
        total_disbursed = Decimal("0")

        for status, count, amount in rows:
            amount = calculator.to_decimal(amount)
            by_status[LoanStatus(status).value] = count
            total_loans += count
            total_amount += amount
            if status in (LoanStatus.DISBURSED, LoanStatus.COMPLETED, LoanStatus.DEFAULTED):
                total_disbursed += amount

        average = calculator.round_money(total_amount / total_loans) if total_loans else Decimal("0.00")

        return LoanStatistics(
            total_loans=total_loans,
            total_amount=calculator.round_money(total_amount),
            average_amount=average,
            total_disbursed=calculator.round_money(total_disbursed),
            by_status=by_status,
        )

    async def get_total_paid(self, loan_id: int) -> Tuple[Decimal, int]:
        """Sum and count of completed payments on a loan"""
        result = await self.db.execute(
            select(func.coalesce(func.sum(Payment.amount), 0), func.count(Payment.id)).where(
                and_(Payment.loan_id == loan_id, Payment.status == PaymentStatus.COMPLETED)
            )
        )
        total, count = result.one()
        return calculator.round_money(calculator.to_decimal(total)), count

    async def get_repayment_summary(self, loan: Loan, now: Optional[datetime] = None) -> Optional[RepaymentSummary]:
        """None until the loan has been disbursed"""
        if loan.disbursed_at is None:
            return None

        now = now or datetime.utcnow()
        total_paid, payments_made = await self.get_total_paid(loan.id)
        remaining = calculator.calculate_remaining_balance(loan.total_amount, total_paid)
        disbursed_at = loan.disbursed_at.replace(tzinfo=None)

        next_payment_date = None
        days_overdue = 0
        if remaining > 0 and payments_made < loan.term:
            next_payment_date = calculator.calculate_next_payment_date(disbursed_at, payments_made)
            days_overdue = max(0, (now - next_payment_date).days)

        late_fee = (
            calculator.calculate_late_fee(loan.monthly_payment, days_overdue) if days_overdue else Decimal("0.00")
        )

        return RepaymentSummary(
            total_paid=total_paid,
            remaining_balance=remaining,
            progress_percent=calculator.calculate_payment_progress(loan.total_amount, total_paid),
            payments_made=payments_made,
            next_payment_date=next_payment_date,
            days_overdue=days_overdue,
            late_fee=late_fee,
            early_repayment_discount=calculator.calculate_early_repayment_discount(
                remaining, loan.term - payments_made
            ),
        )

    async def get_user_loan_stats(self, user_id: int) -> UserLoanStats:
        loans = await self.get_user_loans(user_id)

        total_borrowed = Decimal("0")
        total_repaid = Decimal("0")
        outstanding = Decimal("0")
        next_payment_date = None
        next_payment_amount = None

        for loan in loans:
            if loan.status not in (LoanStatus.DISBURSED, LoanStatus.COMPLETED, LoanStatus.DEFAULTED):
                continue
            total_borrowed += loan.amount

            summary = await self.get_repayment_summary(loan)
            if summary is None:
                continue
            total_repaid += summary.total_paid
            if loan.status == LoanStatus.DISBURSED:
                outstanding += summary.remaining_balance
                if summary.next_payment_date and (
                    next_payment_date is None or summary.next_payment_date < next_payment_date
                ):
                    next_payment_date = summary.next_payment_date
                    next_payment_amount = loan.monthly_payment

        return UserLoanStats(
            total_loans=len(loans),
            active_loans=sum(1 for loan in loans if loan.status in REPAYABLE_STATUSES),
            pending_loans=sum(1 for loan in loans if loan.status == LoanStatus.PENDING),
            completed_loans=sum(1 for loan in loans if loan.status == LoanStatus.COMPLETED),
            total_borrowed=calculator.round_money(total_borrowed),
            total_repaid=calculator.round_money(total_repaid),
            outstanding_balance=calculator.round_money(outstanding),
            next_payment_date=next_payment_date,
            next_payment_amount=next_payment_amount,
        )

    # ============ Helpers ============

    async def _get_loan(self, loan_id: int) -> Loan:
        loan = await self.db.get(Loan, loan_id)
        if loan is None:
            raise NotFoundError("Loan not found")
        return loan

    async def _unique_reference(self) -> str:
        while True:
            reference = generate_loan_reference()
            result = await self.db.execute(select(Loan.id).where(Loan.reference_number == reference))
            if result.first() is None:
                return reference
