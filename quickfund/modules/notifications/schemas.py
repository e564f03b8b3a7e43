from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime

from quickfund.modules.notifications.models import NotificationType


class NotificationResponse(BaseModel):
    id: int
    user_id: int
    type: NotificationType
    title: str
    message: str
    loan_id: Optional[int]
    extra_data: Optional[Dict[str, Any]]
    read_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    """Paginated notifications"""
    notifications: List[NotificationResponse]
    total: int
    unread_count: int
    page: int
    limit: int


class MarkAllReadResponse(BaseModel):
    updated: int
