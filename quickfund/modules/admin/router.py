"""
Admin module sub-routers organized by domain.
"""
from fastapi import APIRouter

from quickfund.modules.admin.routers.loans import router as loans_router
from quickfund.modules.admin.routers.payments import router as payments_router
from quickfund.modules.admin.routers.sessions import router as sessions_router

# Main admin router
router = APIRouter(prefix="/api/v1/admin", tags=["admin"])

# Include all sub-routers
router.include_router(loans_router)
router.include_router(payments_router)
router.include_router(sessions_router)
