import logging
from typing import Iterable

from quickfund.core.queue import JobQueue
from quickfund.modules.notifications.events import NotificationEvent, SEND_NOTIFICATION_JOB

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Hands committed events to the notification queue, one job per event"""

    def __init__(self, queue: JobQueue):
        self.queue = queue

    async def dispatch(self, events: Iterable[NotificationEvent]) -> int:
        """Returns how many events were enqueued. Failures are logged, never raised."""
        sent = 0
        for event in events:
            try:
                await self.queue.enqueue(SEND_NOTIFICATION_JOB, event.model_dump(mode="json"))
                sent += 1
            except Exception:
                logger.exception(f"Failed to dispatch {event.type.value} notification for user {event.user_id}")
        return sent
