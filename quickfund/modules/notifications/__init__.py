# Notifications module
from quickfund.modules.notifications.models import Notification, NotificationType

__all__ = ["Notification", "NotificationType"]
