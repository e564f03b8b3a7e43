from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_
from decimal import Decimal
from typing import Optional
import logging

from quickfund.core.config import settings
from quickfund.core.exceptions import (
    ConflictError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from quickfund.core.generators import generate_account_number
from quickfund.modules.accounts.models import VirtualAccount

logger = logging.getLogger(__name__)


class VirtualAccountService:
    """Service layer for virtual account ledger operations"""

    @staticmethod
    async def get_for_user(db: AsyncSession, user_id: int) -> Optional[VirtualAccount]:
        result = await db.execute(select(VirtualAccount).where(VirtualAccount.user_id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_account_number(db: AsyncSession, account_number: str) -> VirtualAccount:
        result = await db.execute(
            select(VirtualAccount).where(VirtualAccount.account_number == account_number)
        )
        account = result.scalar_one_or_none()

        if not account:
            raise NotFoundError("Virtual account not found")

        return account

    @staticmethod
    async def create(db: AsyncSession, user_id: int) -> VirtualAccount:
        """
        Open the user's virtual account.

        - One account per user
        - Account number is regenerated until unique
        - Flushed, not committed: registration commits user and account together
        """
        if await VirtualAccountService.get_for_user(db, user_id):
            raise ConflictError("User already has a virtual account")

        account_number = generate_account_number()
        while True:
            result = await db.execute(
                select(VirtualAccount.id).where(VirtualAccount.account_number == account_number)
            )
            if not result.scalar_one_or_none():
                break
            account_number = generate_account_number()

        account = VirtualAccount(
            user_id=user_id,
            account_number=account_number,
            bank_name=settings.BANK_NAME,
            balance=Decimal("0.00"),
            is_active=True,
        )
        db.add(account)
        await db.flush()

        logger.info(f"Virtual account {account_number} opened for user {user_id}")
        return account

    @staticmethod
    async def _get_active(db: AsyncSession, user_id: int) -> VirtualAccount:
        account = await VirtualAccountService.get_for_user(db, user_id)
        if not account:
            raise NotFoundError("Virtual account not found")
        if not account.is_active:
            raise InvalidStateError("Virtual account is not active")
        return account

    @staticmethod
    async def credit(db: AsyncSession, user_id: int, amount: Decimal) -> VirtualAccount:
        """Increment the balance in SQL. The caller owns the transaction."""
        if amount <= 0:
            raise ValidationError("Credit amount must be positive")

        account = await VirtualAccountService._get_active(db, user_id)
        await db.execute(
            update(VirtualAccount)
            .where(VirtualAccount.id == account.id)
            .values(balance=VirtualAccount.balance + amount)
        )
        await db.refresh(account)
        return account

    @staticmethod
    async def debit(db: AsyncSession, user_id: int, amount: Decimal) -> VirtualAccount:
        """Decrement the balance in SQL, refusing to go below zero. The caller owns the transaction."""
        if amount <= 0:
            raise ValidationError("Debit amount must be positive")

        account = await VirtualAccountService._get_active(db, user_id)
        result = await db.execute(
            update(VirtualAccount)
            .where(
                and_(
                    VirtualAccount.id == account.id,
                    VirtualAccount.balance >= amount,
                )
            )
            .values(balance=VirtualAccount.balance - amount)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            raise InsufficientFundsError("Insufficient virtual account balance")

        await db.refresh(account)
        return account
