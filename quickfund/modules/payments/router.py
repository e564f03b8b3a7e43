from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from quickfund.core.database import get_db
from quickfund.core.dependencies import get_current_user, get_dispatcher, rate_limiter
from quickfund.modules.users.models import User
from quickfund.modules.notifications.dispatcher import NotificationDispatcher
from quickfund.modules.payments import schemas
from quickfund.modules.payments.models import PaymentStatus
from quickfund.modules.payments.services import PaymentService

router = APIRouter(prefix="/api/v1/payments", tags=["payments"], dependencies=[Depends(rate_limiter)])


@router.post("", response_model=schemas.PaymentResponse, status_code=status.HTTP_201_CREATED)
async def make_payment(
    payment_data: schemas.PaymentRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """
    Make a loan repayment.

    - Card payments go through the card processor; declines return 402
    - Virtual account payments debit the user's balance
    """
    result = await PaymentService(db).make_payment(current_user.id, payment_data)
    await dispatcher.dispatch(result.events)
    return result.payment


@router.get("", response_model=schemas.PaymentListResponse)
async def list_my_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Payments across all of the current user's loans, newest first"""
    payments, total = await PaymentService(db).get_user_payments(
        current_user.id, skip=(page - 1) * limit, limit=limit
    )
    return schemas.PaymentListResponse(
        payments=[schemas.PaymentResponse.model_validate(p) for p in payments],
        total=total,
        page=page,
        limit=limit
    )


@router.get("/loan/{loan_id}", response_model=List[schemas.PaymentResponse])
async def get_loan_payments(
    loan_id: int,
    payment_status: Optional[PaymentStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Payment history for one of the current user's loans"""
    return await PaymentService(db).get_loan_payments(current_user.id, loan_id, payment_status)


@router.get("/{payment_id}", response_model=schemas.PaymentResponse)
async def get_payment(
    payment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await PaymentService(db).get_payment(current_user.id, payment_id)
