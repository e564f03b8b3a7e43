from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from quickfund.core.database import get_db
from quickfund.core.dependencies import get_current_user
from quickfund.core.exceptions import NotFoundError
from quickfund.modules.users.models import User
from quickfund.modules.accounts import schemas
from quickfund.modules.accounts.services import VirtualAccountService

router = APIRouter(prefix="/api/v1/accounts", tags=["accounts"])


@router.get("/me", response_model=schemas.VirtualAccountResponse)
async def get_my_account(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get the current user's virtual account.

    - Balance reflects disbursed loans minus repayments made from the account
    """
    account = await VirtualAccountService.get_for_user(db, current_user.id)
    if not account:
        raise NotFoundError("Virtual account not found")
    return account
