from .base import Base
from .notification import (
    Notification,
    NotificationChannel,
    NotificationStatus,
    NotificationPriority,
    NotificationCategory,
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
)
from .preference import UserNotificationPreference
from .template import NotificationTemplate
from .user import User

__all__ = [
    'Base',
    'Notification',
    'NotificationChannel',
    'NotificationStatus',
    'NotificationPriority',
    'NotificationCategory',
    'ALLOWED_TRANSITIONS',
    'TERMINAL_STATUSES',
    'UserNotificationPreference',
    'NotificationTemplate',
    'User',
]
