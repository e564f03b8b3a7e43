from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_, update
from datetime import datetime
from typing import List, Optional

from quickfund.core.exceptions import NotFoundError
from quickfund.modules.notifications.models import Notification, NotificationType


class NotificationService:
    """In-app notification reads for the notification bell"""

    @staticmethod
    async def get_user_notifications(
        db: AsyncSession,
        user_id: int,
        skip: int = 0,
        limit: int = 20,
        notification_type: Optional[NotificationType] = None,
        unread_only: bool = False
    ) -> tuple[List[Notification], int, int]:
        """Newest first, with total and unread counts"""
        query = select(Notification).where(Notification.user_id == user_id)

        if notification_type:
            query = query.where(Notification.type == notification_type)
        if unread_only:
            query = query.where(Notification.read_at.is_(None))

        total = await db.scalar(select(func.count()).select_from(query.subquery()))

        unread_count = await db.scalar(
            select(func.count())
            .select_from(Notification)
            .where(and_(Notification.user_id == user_id, Notification.read_at.is_(None)))
        )

        query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(skip).limit(limit)
        result = await db.execute(query)

        return list(result.scalars().all()), total or 0, unread_count or 0

    @staticmethod
    async def mark_as_read(db: AsyncSession, notification_id: int, user_id: int) -> Notification:
        """Idempotent; another user's notification is reported as missing"""
        result = await db.execute(
            select(Notification).where(
                and_(Notification.id == notification_id, Notification.user_id == user_id)
            )
        )
        notification = result.scalar_one_or_none()

        if not notification:
            raise NotFoundError("Notification not found")

        if not notification.read_at:
            notification.read_at = datetime.utcnow()
            await db.commit()
            await db.refresh(notification)

        return notification

    @staticmethod
    async def mark_all_as_read(db: AsyncSession, user_id: int) -> int:
        result = await db.execute(
            update(Notification)
            .where(and_(Notification.user_id == user_id, Notification.read_at.is_(None)))
            .values(read_at=datetime.utcnow())
        )
        await db.commit()
        return result.rowcount
