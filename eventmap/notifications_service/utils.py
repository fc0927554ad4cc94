"""
Notification helpers used by the other services.
Notifications are written inside the caller's transaction.
"""

from typing import Optional

EVENT_CHANGED = "EVENT_CHANGED"
EVENT_CANCELLED = "EVENT_CANCELLED"
USER_INTERESTED = "USER_INTERESTED"
PERMISSION_REQUEST = "PERMISSION_REQUEST"
EVENT_REMINDER = "EVENT_REMINDER"


def create_notification(cur, user_id: int, notification_type: str, title: str,
                        message: str, link: Optional[str] = None) -> None:
    """
    Insert an in-app notification for a user.

    Args:
        cur: Open cursor; the caller commits.
        user_id (int): Recipient.
        notification_type (str): One of the notification type constants.
        title (str): Short heading.
        message (str): Body text.
        link (str, optional): Frontend path the notification points to.
    """
    cur.execute(
        """
        INSERT INTO notifications (user_id, type, title, message, link)
        VALUES (%s, %s, %s, %s, %s);
        """,
        (user_id, notification_type, title, message, link),
    )
