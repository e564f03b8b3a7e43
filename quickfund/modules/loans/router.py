from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from quickfund.core.database import get_db
from quickfund.core.dependencies import get_current_user, get_dispatcher, get_scoring_queue, rate_limiter
from quickfund.core.queue import JobQueue
from quickfund.modules.users.models import User
from quickfund.modules.loans import schemas
from quickfund.modules.loans.services import LoanService
from quickfund.modules.notifications.dispatcher import NotificationDispatcher

router = APIRouter(prefix="/api/v1/loans", tags=["loans"], dependencies=[Depends(rate_limiter)])


@router.post("/apply", response_model=schemas.LoanResponse, status_code=status.HTTP_201_CREATED)
async def apply_for_loan(
    application: schemas.LoanApplicationRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    scoring_queue: JobQueue = Depends(get_scoring_queue),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """
    Apply for a loan.

    - Rejected if the user already has an active loan
    - Priced at the default rate; the credit score is computed in the background
    - Stays pending until an admin approves or rejects it
    """
    service = LoanService(db, scoring_queue)
    transition = await service.apply_for_loan(
        current_user.id, application.amount, application.purpose, application.term
    )
    await dispatcher.dispatch(transition.events)
    return transition.loan


@router.get("", response_model=List[schemas.LoanResponse])
async def list_my_loans(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List the current user's loans, newest first"""
    return await LoanService(db).get_user_loans(current_user.id)


@router.get("/stats", response_model=schemas.UserLoanStats)
async def get_my_loan_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Borrowing summary for the current user.

    - Counts by lifecycle stage
    - Amount borrowed, repaid and outstanding
    - Next installment date and amount
    """
    return await LoanService(db).get_user_loan_stats(current_user.id)


@router.get("/{loan_id}", response_model=schemas.LoanDetailResponse)
async def get_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Loan details with the repayment position once disbursed"""
    service = LoanService(db)
    loan = await service.get_loan(current_user.id, loan_id)
    detail = schemas.LoanDetailResponse.model_validate(loan)
    detail.repayment = await service.get_repayment_summary(loan)
    return detail
