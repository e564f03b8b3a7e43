"""
Admin loan review endpoints.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from quickfund.core.database import get_db
from quickfund.core.dependencies import get_dispatcher, require_admin, require_permission
from quickfund.core.security import Permission
from quickfund.modules.loans import schemas
from quickfund.modules.loans.models import LoanStatus
from quickfund.modules.loans.services import LoanService
from quickfund.modules.notifications.dispatcher import NotificationDispatcher
from quickfund.modules.users.models import User

router = APIRouter(prefix="/loans", tags=["admin-loans"])


@router.get("", response_model=schemas.LoanListResponse)
async def list_loans(
    status: Optional[LoanStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """List all loans, optionally by status"""
    loans, total, pages = await LoanService(db).get_all_loans(status, page, limit)
    return schemas.LoanListResponse(
        loans=[schemas.LoanResponse.model_validate(loan) for loan in loans],
        pagination=schemas.Pagination(page=page, limit=limit, total=total, pages=pages)
    )


@router.get("/stats", response_model=schemas.LoanStatistics)
async def loan_statistics(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    return await LoanService(db).get_loan_statistics()


@router.get("/{loan_id}", response_model=schemas.LoanDetailResponse)
async def get_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    service = LoanService(db)
    loan = await service.get_loan_by_id(loan_id)
    detail = schemas.LoanDetailResponse.model_validate(loan)
    detail.repayment = await service.get_repayment_summary(loan)
    return detail


@router.get("/{loan_id}/assessment", response_model=schemas.LoanAssessment)
async def assess_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """
    Live credit assessment for review.

    - Score recomputed from the applicant's current profile and history
    - Advisory approve/reject suggestion; it never changes the loan
    - Score-priced quote for comparison with the stored terms
    """
    return await LoanService(db).assess_loan(loan_id)


@router.post("/{loan_id}/approve", response_model=schemas.LoanResponse)
async def approve_loan(
    loan_id: int,
    body: Optional[schemas.LoanApproveRequest] = None,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_permission(Permission.APPROVE_LOANS)),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """
    Approve a pending loan.

    - Optional approved_amount re-prices the loan at its original rate
    """
    approved_amount = body.approved_amount if body else None
    transition = await LoanService(db).approve_loan(admin.id, loan_id, approved_amount)
    await dispatcher.dispatch(transition.events)
    return transition.loan


@router.post("/{loan_id}/reject", response_model=schemas.LoanResponse)
async def reject_loan(
    loan_id: int,
    body: schemas.LoanRejectRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_permission(Permission.REJECT_LOANS)),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Reject a pending loan with a reason"""
    transition = await LoanService(db).reject_loan(admin.id, loan_id, body.reason)
    await dispatcher.dispatch(transition.events)
    return transition.loan


@router.post("/{loan_id}/disburse", response_model=schemas.LoanResponse)
async def disburse_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_permission(Permission.DISBURSE_LOANS)),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """
    Disburse an approved loan.

    - Credits the borrower's virtual account in the same transaction
    """
    transition = await LoanService(db).disburse_loan(admin.id, loan_id)
    await dispatcher.dispatch(transition.events)
    return transition.loan
