from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_
from datetime import datetime
from decimal import Decimal
from typing import List, NamedTuple, Optional, Tuple
import logging

from quickfund.core.exceptions import InvalidStateError, NotFoundError, PaymentDeclinedError
from quickfund.core.generators import generate_payment_reference
from quickfund.modules.accounts.services import VirtualAccountService
from quickfund.modules.loans.calculator import round_money, to_decimal
from quickfund.modules.loans.models import Loan, LoanStatus
from quickfund.modules.notifications.events import NotificationEvent
from quickfund.modules.notifications.models import NotificationType
from quickfund.modules.payments.gateway import CardGateway
from quickfund.modules.payments.models import Payment, PaymentMethod, PaymentStatus
from quickfund.modules.payments.schemas import PaymentRequest, PaymentStatistics

logger = logging.getLogger(__name__)


class PaymentResult(NamedTuple):
    payment: Payment
    events: List[NotificationEvent]


class PaymentService:
    """Loan repayments. Payment rows are written once and never updated."""

    def __init__(self, db: AsyncSession, card_gateway: Optional[CardGateway] = None):
        self.db = db
        self.card_gateway = card_gateway or CardGateway()

    async def make_payment(self, user_id: int, request: PaymentRequest) -> PaymentResult:
        """
        Repay a loan the user owns.

        - Loan must be active or disbursed
        - Virtual account: debit and payment row commit together
        - Card: a declined charge is recorded as a failed payment, then raised
        """
        result = await self.db.execute(
            select(Loan).where(and_(Loan.id == request.loan_id, Loan.user_id == user_id))
        )
        loan = result.scalar_one_or_none()

        if not loan:
            raise NotFoundError("Loan not found")

        if loan.status not in (LoanStatus.ACTIVE, LoanStatus.DISBURSED):
            raise InvalidStateError("Loan is not active for payments")

        loan_reference = loan.reference_number
        reference = generate_payment_reference()

        if request.payment_method == PaymentMethod.VIRTUAL_ACCOUNT:
            payment = await self._pay_from_virtual_account(user_id, request, reference)
        else:
            payment = await self._pay_by_card(request, reference)

        logger.info(f"Payment {payment.reference} of {payment.amount} completed for loan {loan_reference}")

        event = NotificationEvent(
            type=NotificationType.PAYMENT_RECEIVED,
            user_id=user_id,
            loan_id=request.loan_id,
            data={
                "amount": str(payment.amount),
                "reference": loan_reference,
                "payment_reference": payment.reference,
            },
        )
        return PaymentResult(payment, [event])

    async def _pay_from_virtual_account(self, user_id: int, request: PaymentRequest, reference: str) -> Payment:
        try:
            await VirtualAccountService.debit(self.db, user_id, request.amount)
            payment = Payment(
                loan_id=request.loan_id,
                amount=request.amount,
                type=request.type,
                status=PaymentStatus.COMPLETED,
                reference=reference,
                gateway=PaymentMethod.VIRTUAL_ACCOUNT,
                processed_at=datetime.utcnow(),
            )
            self.db.add(payment)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(payment)
        return payment

    async def _pay_by_card(self, request: PaymentRequest, reference: str) -> Payment:
        try:
            gateway_ref = await self.card_gateway.charge(request.card_number, request.expiry, request.cvv)
        except PaymentDeclinedError as e:
            failed = Payment(
                loan_id=request.loan_id,
                amount=request.amount,
                type=request.type,
                status=PaymentStatus.FAILED,
                reference=reference,
                gateway=PaymentMethod.CARD,
                failure_reason=e.message,
                processed_at=datetime.utcnow(),
            )
            self.db.add(failed)
            await self.db.commit()
            logger.warning(f"Card payment {reference} declined: {e.message}")
            raise

        payment = Payment(
            loan_id=request.loan_id,
            amount=request.amount,
            type=request.type,
            status=PaymentStatus.COMPLETED,
            reference=reference,
            gateway=PaymentMethod.CARD,
            gateway_ref=gateway_ref,
            processed_at=datetime.utcnow(),
        )
        self.db.add(payment)
        await self.db.commit()
        await self.db.refresh(payment)
        return payment

    # ============ Queries ============

    async def get_user_payments(self, user_id: int, skip: int = 0, limit: int = 20) -> Tuple[List[Payment], int]:
        query = select(Payment).join(Loan, Payment.loan_id == Loan.id).where(Loan.user_id == user_id)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.db.execute(
            query.order_by(Payment.created_at.desc(), Payment.id.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def get_payment(self, user_id: int, payment_id: int) -> Payment:
        result = await self.db.execute(
            select(Payment)
            .join(Loan, Payment.loan_id == Loan.id)
            .where(and_(Payment.id == payment_id, Loan.user_id == user_id))
        )
        payment = result.scalar_one_or_none()

        if not payment:
            raise NotFoundError("Payment not found")

        return payment

    async def get_loan_payments(
        self, user_id: int, loan_id: int, status: Optional[PaymentStatus] = None
    ) -> List[Payment]:
        """Payment history of a loan the user owns"""
        loan = await self.db.execute(
            select(Loan.id).where(and_(Loan.id == loan_id, Loan.user_id == user_id))
        )
        if loan.first() is None:
            raise NotFoundError("Loan not found")

        query = select(Payment).where(Payment.loan_id == loan_id)
        if status:
            query = query.where(Payment.status == status)

        result = await self.db.execute(query.order_by(Payment.created_at.desc(), Payment.id.desc()))
        return list(result.scalars().all())

    async def get_all_payments(
        self, status: Optional[PaymentStatus] = None, skip: int = 0, limit: int = 20
    ) -> Tuple[List[Payment], int]:
        query = select(Payment)
        if status:
            query = query.where(Payment.status == status)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.db.execute(
            query.order_by(Payment.created_at.desc(), Payment.id.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def get_payment_statistics(self) -> PaymentStatistics:
        result = await self.db.execute(
            select(Payment.status, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0))
            .group_by(Payment.status)
        )

        counts = {status: 0 for status in PaymentStatus}
        total_payments = 0
        total_amount = Decimal("0")
        for status, count, amount in result.all():
            counts[PaymentStatus(status)] = count
            total_payments += count
            total_amount += to_decimal(amount)

        average = round_money(total_amount / total_payments) if total_payments else Decimal("0.00")

        return PaymentStatistics(
            total_payments=total_payments,
            total_amount=round_money(total_amount),
            completed_payments=counts[PaymentStatus.COMPLETED],
            failed_payments=counts[PaymentStatus.FAILED],
            pending_payments=counts[PaymentStatus.PENDING],
            average_payment_amount=average,
        )
