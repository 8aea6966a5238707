"""
Notifications repository.
"""

from __future__ import annotations

from typing import Callable, List, Optional

from passit.live import ErrorCallback, Subscription
from passit.remote import RemoteDataSource
from shared.types import Notification, NotificationType


class NotificationRepository:
    def __init__(self, remote: RemoteDataSource):
        self.remote = remote

    def observe_notifications(
        self,
        user_id: str,
        callback: Callable[[List[Notification]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        return self.remote.observe_notifications(user_id, callback, on_error)

    def notify(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        related_id: str = "",
    ) -> str:
        return self.remote.add_notification(
            Notification(
                user_id=user_id,
                type=notification_type,
                title=title,
                message=message,
                related_id=related_id,
            )
        )

    def mark_read(self, notification_id: str) -> None:
        self.remote.mark_notification_read(notification_id)
