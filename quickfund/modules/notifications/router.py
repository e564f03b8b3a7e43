from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from quickfund.core.database import AsyncSessionLocal, get_db
from quickfund.core.dependencies import authenticate, get_current_user
from quickfund.core.exceptions import QuickFundError
from quickfund.core.security import ADMIN_ROLES
from quickfund.modules.users.models import User
from quickfund.modules.notifications import schemas
from quickfund.modules.notifications.models import NotificationType
from quickfund.modules.notifications.services import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])
ws_router = APIRouter(tags=["notifications"])


@router.get("", response_model=schemas.NotificationListResponse)
async def get_notifications(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    notification_type: Optional[NotificationType] = Query(None, description="Filter by type"),
    unread_only: bool = Query(False, description="Only show unread"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get paginated list of notifications for the current user.

    - Newest first
    - Returns total count and unread count
    """
    notifications, total, unread_count = await NotificationService.get_user_notifications(
        db=db,
        user_id=current_user.id,
        skip=(page - 1) * limit,
        limit=limit,
        notification_type=notification_type,
        unread_only=unread_only
    )

    return schemas.NotificationListResponse(
        notifications=[schemas.NotificationResponse.model_validate(n) for n in notifications],
        total=total,
        unread_count=unread_count,
        page=page,
        limit=limit
    )


@router.post("/read-all", response_model=schemas.MarkAllReadResponse)
async def mark_all_as_read(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Mark every unread notification as read"""
    updated = await NotificationService.mark_all_as_read(db, current_user.id)
    return schemas.MarkAllReadResponse(updated=updated)


@router.post("/{notification_id}/read", response_model=schemas.NotificationResponse)
async def mark_as_read(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Mark a single notification as read"""
    return await NotificationService.mark_as_read(db, notification_id, current_user.id)


@ws_router.websocket("/ws/notifications")
async def notifications_ws(websocket: WebSocket):
    """
    Live notification feed.

    Authenticates with ``?token=<access token>``. Users join their own room;
    staff additionally join the admin feed.
    """
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    session_store = websocket.app.state.session_store
    try:
        async with AsyncSessionLocal() as db:
            user = await authenticate(token, db, session_store)
    except QuickFundError as e:
        logger.warning(f"WebSocket authentication failed: {e.message}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    manager = websocket.app.state.connection_manager
    await manager.connect(websocket, user.id, is_admin=user.role in ADMIN_ROLES)
    try:
        await websocket.send_json({"event": "connected", "user_id": user.id})
        while True:
            data = await websocket.receive_text()
            await websocket.send_json({"event": "ack", "data": data})
    except WebSocketDisconnect:
        manager.disconnect(websocket)
        logger.info(f"WebSocket disconnected for user {user.id}")
