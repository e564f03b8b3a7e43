"""
Virtual account ledger tests
"""
import pytest
from decimal import Decimal

from quickfund.core.exceptions import (
    ConflictError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from quickfund.core.generators import is_valid_account_number
from quickfund.modules.accounts.services import VirtualAccountService

from tests.conftest import create_user


class TestCreateAccount:

    @pytest.mark.integration
    async def test_create(self, db_session):
        user = await create_user(db_session, "fresh@quickfund.ng", with_account=False)

        account = await VirtualAccountService.create(db_session, user.id)
        await db_session.commit()

        assert is_valid_account_number(account.account_number)
        assert account.bank_name == "QuickFund Bank"
        assert account.balance == Decimal("0.00")
        assert account.is_active

    @pytest.mark.integration
    async def test_one_account_per_user(self, db_session, test_user):
        with pytest.raises(ConflictError):
            await VirtualAccountService.create(db_session, test_user.id)

    @pytest.mark.integration
    async def test_lookup_by_number(self, db_session, test_user):
        account = await VirtualAccountService.get_for_user(db_session, test_user.id)

        found = await VirtualAccountService.get_by_account_number(db_session, account.account_number)
        assert found.id == account.id

        with pytest.raises(NotFoundError):
            await VirtualAccountService.get_by_account_number(db_session, "QF000000000000")


class TestBalance:

    @pytest.mark.integration
    async def test_credit_then_debit(self, db_session, test_user):
        await VirtualAccountService.credit(db_session, test_user.id, Decimal("5000.00"))
        account = await VirtualAccountService.debit(db_session, test_user.id, Decimal("1200.50"))
        await db_session.commit()

        assert account.balance == Decimal("3799.50")

    @pytest.mark.integration
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10")])
    async def test_amount_must_be_positive(self, db_session, test_user, amount):
        with pytest.raises(ValidationError):
            await VirtualAccountService.credit(db_session, test_user.id, amount)
        with pytest.raises(ValidationError):
            await VirtualAccountService.debit(db_session, test_user.id, amount)

    @pytest.mark.integration
    async def test_debit_never_overdraws(self, db_session, test_user):
        await VirtualAccountService.credit(db_session, test_user.id, Decimal("100.00"))

        with pytest.raises(InsufficientFundsError):
            await VirtualAccountService.debit(db_session, test_user.id, Decimal("100.01"))

        account = await VirtualAccountService.get_for_user(db_session, test_user.id)
        await db_session.refresh(account)
        assert account.balance == Decimal("100.00")

    @pytest.mark.integration
    async def test_inactive_account(self, db_session, test_user):
        account = await VirtualAccountService.get_for_user(db_session, test_user.id)
        account.is_active = False
        await db_session.commit()

        with pytest.raises(InvalidStateError):
            await VirtualAccountService.credit(db_session, test_user.id, Decimal("100"))

    @pytest.mark.integration
    async def test_missing_account(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            await VirtualAccountService.credit(db_session, admin_user.id, Decimal("100"))
