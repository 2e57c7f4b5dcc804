"""
Notification Service
Creates student notifications for progression and grading events
"""

from typing import List, Optional

from .database import DatabaseService, get_db_service
from .logging import get_logging_service
from ..exceptions import (
    DatabaseError,
    NotificationError,
    NotificationNotFoundError,
    StudentNotFoundError,
)
from ..models import IdLike, Notification, NotificationType, try_normalize_id


class NotificationService:
    """Best-effort notification sink"""

    def __init__(self, db: Optional[DatabaseService] = None):
        self.db = db or get_db_service()
        self.logging_service = get_logging_service()
        self.logger = self.logging_service.get_logger("notifications")

    def _write(
        self,
        student_id: IdLike,
        title: str,
        message: str,
        notification_type: NotificationType,
    ) -> Notification:
        try:
            return self.db.create_notification(
                student_id, title, message, notification_type
            )
        except (DatabaseError, ValueError) as e:
            raise NotificationError(f"Could not store notification '{title}': {e}") from e

    def create(
        self,
        student_id: IdLike,
        title: str,
        message: str,
        notification_type: NotificationType = NotificationType.INFO,
    ) -> Optional[Notification]:
        """
        Create a notification.

        Failures are logged and swallowed so that the primary write that
        triggered the notification is never rolled back.

        Returns:
            The stored notification, or None when it could not be written
        """
        try:
            return self._write(student_id, title, message, notification_type)
        except NotificationError as e:
            self.logging_service.log_error(
                "notification_failed",
                str(e),
                student_id=str(student_id),
                level="WARNING",
                title=title,
            )
            return None

    def list_for_student(
        self, student_id: IdLike, unread_only: bool = False
    ) -> List[Notification]:
        """Notifications of a student, newest first"""
        if not self.db.get_student(student_id):
            raise StudentNotFoundError(f"Student {student_id} not found")
        return self.db.list_notifications(student_id, unread_only)

    def mark_as_read(self, student_id: IdLike, notification_id: IdLike) -> Notification:
        """Mark as read; marking an already-read notification is a no-op"""
        notification = None
        if try_normalize_id(student_id) and try_normalize_id(notification_id):
            notification = self.db.mark_notification_read(student_id, notification_id)
        if notification is None:
            raise NotificationNotFoundError(
                f"Notification {notification_id} not found for student {student_id}"
            )
        return notification


def get_notification_service() -> NotificationService:
    """Notification service bound to the global database"""
    return NotificationService()
