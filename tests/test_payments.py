"""
Repayment tests: card gateway and virtual account debits
"""
import pytest
from decimal import Decimal
from datetime import datetime

import pydantic
from sqlalchemy import select

from quickfund.core.exceptions import (
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    PaymentDeclinedError,
)
from quickfund.modules.accounts.services import VirtualAccountService
from quickfund.modules.loans.models import LoanStatus
from quickfund.modules.notifications.models import NotificationType
from quickfund.modules.payments.gateway import CardGateway, expiry_valid, luhn_valid
from quickfund.modules.payments.models import Payment, PaymentMethod, PaymentStatus
from quickfund.modules.payments.schemas import PaymentRequest
from quickfund.modules.payments.services import PaymentService

from tests.conftest import create_loan

VALID_CARD = {"card_number": "4111111111111111", "expiry": "12/99", "cvv": "123"}


def card_payment(loan_id, amount="9025.83", **card):
    return PaymentRequest(
        loan_id=loan_id,
        amount=Decimal(amount),
        payment_method=PaymentMethod.CARD,
        **{**VALID_CARD, **card}
    )


def account_payment(loan_id, amount="9025.83"):
    return PaymentRequest(loan_id=loan_id, amount=Decimal(amount), payment_method=PaymentMethod.VIRTUAL_ACCOUNT)


@pytest.fixture
def payment_service(db_session):
    return PaymentService(db_session, CardGateway(delay=0))


class TestCardGateway:

    @pytest.mark.unit
    @pytest.mark.parametrize("number,valid", [
        ("4111111111111111", True),
        ("5500005555555559", True),
        ("4111111111111112", False),
        ("1234567812345678", False),
    ])
    def test_luhn(self, number, valid):
        assert luhn_valid(number) is valid

    @pytest.mark.unit
    def test_expiry(self):
        now = datetime(2026, 6, 15)

        assert expiry_valid("06/26", now)
        assert expiry_valid("01/30", now)
        assert not expiry_valid("05/26", now)
        assert not expiry_valid("13/27", now)
        assert not expiry_valid("1227", now)
        assert not expiry_valid("12/2027", now)

    @pytest.mark.unit
    @pytest.mark.parametrize("card,message", [
        ({"card_number": "4111111111111112"}, "Invalid card number"),
        ({"card_number": "4111"}, "Invalid card number"),
        ({"expiry": "01/20"}, "Card has expired or expiry is invalid"),
        ({"expiry": None}, "Card has expired or expiry is invalid"),
        ({"cvv": "12"}, "Invalid CVV"),
        ({"cvv": "abc"}, "Invalid CVV"),
    ])
    def test_declines(self, card, message):
        details = {**VALID_CARD, **card}
        with pytest.raises(PaymentDeclinedError, match=message):
            CardGateway(delay=0).check(details["card_number"], details["expiry"], details["cvv"])

    @pytest.mark.unit
    async def test_charge_returns_transaction_id(self):
        gateway_ref = await CardGateway(delay=0).charge("4111 1111 1111 1111", "12/99", "123")
        assert gateway_ref.startswith("QF-TXN-")


class TestPaymentRequest:

    @pytest.mark.unit
    def test_minimum_amount(self):
        with pytest.raises(pydantic.ValidationError):
            PaymentRequest(loan_id=1, amount=Decimal("99.99"))


class TestMakePayment:

    @pytest.mark.integration
    async def test_card_payment(self, payment_service, disbursed_loan, test_user):
        result = await payment_service.make_payment(test_user.id, card_payment(disbursed_loan.id))
        payment = result.payment

        assert payment.status == PaymentStatus.COMPLETED
        assert payment.gateway == PaymentMethod.CARD
        assert payment.gateway_ref.startswith("QF-TXN-")
        assert payment.reference.startswith("QF-PAY-")
        assert payment.amount == Decimal("9025.83")

        [event] = result.events
        assert event.type == NotificationType.PAYMENT_RECEIVED
        assert event.data["reference"] == disbursed_loan.reference_number
        assert event.data["payment_reference"] == payment.reference

    @pytest.mark.integration
    async def test_declined_card_records_failed_payment(self, db_session, payment_service, disbursed_loan, test_user):
        with pytest.raises(PaymentDeclinedError):
            await payment_service.make_payment(
                test_user.id, card_payment(disbursed_loan.id, card_number="4111111111111112")
            )

        result = await db_session.execute(select(Payment).where(Payment.loan_id == disbursed_loan.id))
        [failed] = result.scalars().all()
        assert failed.status == PaymentStatus.FAILED
        assert failed.failure_reason == "Invalid card number"
        assert failed.gateway_ref is None

    @pytest.mark.integration
    async def test_active_loan_accepts_payments(self, payment_service, active_loan, test_user):
        result = await payment_service.make_payment(test_user.id, card_payment(active_loan.id))
        assert result.payment.status == PaymentStatus.COMPLETED

    @pytest.mark.integration
    async def test_virtual_account_payment(self, db_session, payment_service, disbursed_loan, test_user):
        await VirtualAccountService.credit(db_session, test_user.id, Decimal("20000.00"))
        await db_session.commit()

        result = await payment_service.make_payment(test_user.id, account_payment(disbursed_loan.id))

        assert result.payment.status == PaymentStatus.COMPLETED
        assert result.payment.gateway == PaymentMethod.VIRTUAL_ACCOUNT
        account = await VirtualAccountService.get_for_user(db_session, test_user.id)
        await db_session.refresh(account)
        assert account.balance == Decimal("10974.17")

    @pytest.mark.integration
    async def test_virtual_account_insufficient_funds(self, db_session, payment_service, disbursed_loan, test_user):
        with pytest.raises(InsufficientFundsError):
            await payment_service.make_payment(test_user.id, account_payment(disbursed_loan.id))

        result = await db_session.execute(select(Payment).where(Payment.loan_id == disbursed_loan.id))
        assert result.scalars().all() == []

    @pytest.mark.integration
    @pytest.mark.parametrize("status", [LoanStatus.PENDING, LoanStatus.REJECTED, LoanStatus.COMPLETED])
    async def test_loan_must_be_repayable(self, db_session, payment_service, test_user, status):
        loan = await create_loan(db_session, test_user, status)

        with pytest.raises(InvalidStateError, match="Loan is not active for payments"):
            await payment_service.make_payment(test_user.id, card_payment(loan.id))

    @pytest.mark.integration
    async def test_cannot_pay_someone_elses_loan(self, payment_service, disbursed_loan, other_user):
        with pytest.raises(NotFoundError):
            await payment_service.make_payment(other_user.id, card_payment(disbursed_loan.id))


class TestPaymentQueries:

    @pytest.mark.integration
    async def test_history_and_statistics(self, payment_service, disbursed_loan, test_user, other_user):
        await payment_service.make_payment(test_user.id, card_payment(disbursed_loan.id, amount="1000"))
        await payment_service.make_payment(test_user.id, card_payment(disbursed_loan.id, amount="3000"))
        with pytest.raises(PaymentDeclinedError):
            await payment_service.make_payment(test_user.id, card_payment(disbursed_loan.id, cvv="1"))

        payments, total = await payment_service.get_user_payments(test_user.id)
        assert total == 3
        assert len(payments) == 3

        failed = await payment_service.get_loan_payments(test_user.id, disbursed_loan.id, PaymentStatus.FAILED)
        assert len(failed) == 1

        with pytest.raises(NotFoundError):
            await payment_service.get_loan_payments(other_user.id, disbursed_loan.id)
        with pytest.raises(NotFoundError):
            await payment_service.get_payment(other_user.id, payments[0].id)

        stats = await payment_service.get_payment_statistics()
        assert stats.total_payments == 3
        assert stats.completed_payments == 2
        assert stats.failed_payments == 1
        assert stats.pending_payments == 0
        assert stats.total_amount == Decimal("13025.83")
        assert stats.average_payment_amount == Decimal("4341.94")

    @pytest.mark.integration
    async def test_all_payments_filter(self, payment_service, disbursed_loan, test_user):
        await payment_service.make_payment(test_user.id, card_payment(disbursed_loan.id))

        payments, total = await payment_service.get_all_payments(PaymentStatus.COMPLETED)
        assert total == 1
        assert payments[0].loan_id == disbursed_loan.id

        payments, total = await payment_service.get_all_payments(PaymentStatus.FAILED)
        assert (payments, total) == ([], 0)
