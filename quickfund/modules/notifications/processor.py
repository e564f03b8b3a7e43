import logging
from typing import Any, Dict, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from quickfund.modules.notifications.email import EmailService
from quickfund.modules.notifications.events import NotificationEvent, RenderedNotification, render
from quickfund.modules.notifications.gateway import ADMIN_ROOM, admin_message, user_room
from quickfund.modules.notifications.models import Notification
from quickfund.modules.users.models import User

logger = logging.getLogger(__name__)


class RoomBroadcaster(Protocol):
    async def send_to_room(self, room: str, message: Dict[str, Any]) -> int: ...


class NotificationProcessor:
    """
    Handles ``send-notification`` jobs.

    Delivers over three independent channels: the in-app record, WebSocket
    rooms, and email. A failing channel is logged and the others still run.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        broadcaster: RoomBroadcaster,
        email_service: EmailService,
    ):
        self.session_factory = session_factory
        self.broadcaster = broadcaster
        self.email_service = email_service

    async def handle(self, payload: Dict[str, Any]) -> Optional[int]:
        """Returns the stored notification id, or None if it could not be stored"""
        event = NotificationEvent.model_validate(payload)
        rendered = render(event)

        async with self.session_factory() as db:
            user = await db.get(User, event.user_id)
            if user is None:
                logger.warning(f"Skipping {event.type.value} notification: user {event.user_id} not found")
                return None
            email = user.email
            notification = await self._store(db, event, rendered)

        await self._push_to_user(event, rendered, notification)
        await self._push_to_admins(event, rendered)
        await self._send_email(email, rendered)

        logger.info(f"Processed {event.type.value} notification for user {event.user_id}")
        return notification.id if notification else None

    async def _store(
        self, db: AsyncSession, event: NotificationEvent, rendered: RenderedNotification
    ) -> Optional[Notification]:
        try:
            notification = Notification(
                user_id=event.user_id,
                type=event.type,
                title=rendered.title,
                message=rendered.message,
                loan_id=event.loan_id,
                extra_data=event.data,
            )
            db.add(notification)
            await db.commit()
            await db.refresh(notification)
            return notification
        except Exception:
            await db.rollback()
            logger.exception(f"Failed to store notification for user {event.user_id}")
            return None

    async def _push_to_user(
        self, event: NotificationEvent, rendered: RenderedNotification, notification: Optional[Notification]
    ) -> None:
        try:
            await self.broadcaster.send_to_room(user_room(event.user_id), {
                "event": "user-notification",
                "id": notification.id if notification else None,
                "type": event.type.value,
                "title": rendered.title,
                "message": rendered.message,
                "loan_id": event.loan_id,
            })
        except Exception:
            logger.exception(f"Failed to push notification to user {event.user_id}")

    async def _push_to_admins(self, event: NotificationEvent, rendered: RenderedNotification) -> None:
        if not rendered.admin_title:
            return
        try:
            metadata = {"user_id": event.user_id, "loan_id": event.loan_id, **event.data}
            await self.broadcaster.send_to_room(
                ADMIN_ROOM, admin_message(rendered.admin_title, rendered.admin_message, metadata)
            )
        except Exception:
            logger.exception(f"Failed to broadcast {event.type.value} to admins")

    async def _send_email(self, email: str, rendered: RenderedNotification) -> None:
        try:
            await self.email_service.send(email, rendered.title, rendered.message)
        except Exception:
            logger.exception(f"Failed to send email to {email}")
