"""
Admin payment endpoints.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from quickfund.core.database import get_db
from quickfund.core.dependencies import require_admin
from quickfund.modules.payments import schemas
from quickfund.modules.payments.models import PaymentStatus
from quickfund.modules.payments.services import PaymentService
from quickfund.modules.users.models import User

router = APIRouter(prefix="/payments", tags=["admin-payments"])


@router.get("", response_model=schemas.PaymentListResponse)
async def list_payments(
    status: Optional[PaymentStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """List all payments, optionally by status"""
    payments, total = await PaymentService(db).get_all_payments(status, skip=(page - 1) * limit, limit=limit)
    return schemas.PaymentListResponse(
        payments=[schemas.PaymentResponse.model_validate(p) for p in payments],
        total=total,
        page=page,
        limit=limit
    )


@router.get("/stats", response_model=schemas.PaymentStatistics)
async def payment_statistics(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    return await PaymentService(db).get_payment_statistics()
