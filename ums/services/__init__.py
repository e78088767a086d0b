"""Services for the UMS enrollment workflow."""

from ums.services.notifications import EmailNotificationDispatcher, NotificationDispatcher

__all__ = [
    "EmailNotificationDispatcher",
    "NotificationDispatcher",
]
