"""
Preference policy: may this user receive this category on this channel,
and is now inside their quiet hours?

PreferenceResolver is pure over a UserNotificationPreference record; it
never touches the database.
"""

import logging
from datetime import datetime, timedelta, time, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.utils import utcnow
from database.models import (
    NotificationCategory,
    NotificationChannel,
    UserNotificationPreference,
)

logger = logging.getLogger(__name__)

CHANNEL_FLAGS = {
    NotificationChannel.EMAIL: 'email_enabled',
    NotificationChannel.SMS: 'sms_enabled',
    NotificationChannel.WHATSAPP: 'whatsapp_enabled',
    NotificationChannel.PUSH: 'push_enabled',
    NotificationChannel.IN_APP: 'in_app_enabled',
}

DEFAULT_PREFERENCES = {
    'enabled': True,
    'email_enabled': True,
    'sms_enabled': True,
    'whatsapp_enabled': False,
    'push_enabled': True,
    'in_app_enabled': True,
    'quiet_hours_enabled': False,
    'quiet_hours_start': '22:00',
    'quiet_hours_end': '08:00',
    'timezone': 'UTC',
    'digest_enabled': False,
    'digest_frequency': 'daily',
    'digest_time': '09:00',
    'preferred_locale': 'en',
    'alternate_email': None,
    'alternate_phone': None,
}


def build_default_preference(user_id) -> UserNotificationPreference:
    return UserNotificationPreference(user_id=user_id, category_preferences={}, **DEFAULT_PREFERENCES)


def reset_to_defaults(preference: UserNotificationPreference) -> None:
    for field, value in DEFAULT_PREFERENCES.items():
        setattr(preference, field, value)
    preference.category_preferences = {}


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(':')
    return time(int(hours), int(minutes))


class PreferenceResolver:
    def __init__(self, preference: UserNotificationPreference):
        self.preference = preference

    @property
    def tz(self):
        name = self.preference.timezone or 'UTC'
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone '{name}' for user {self.preference.user_id}, using UTC")
            return timezone.utc

    def is_channel_enabled(self, channel: NotificationChannel) -> bool:
        if not self.preference.enabled:
            return False
        return bool(getattr(self.preference, CHANNEL_FLAGS[NotificationChannel(channel)]))

    def is_allowed(self, category: NotificationCategory, channel: NotificationChannel) -> bool:
        """Category overrides win over the channel flag, but never over a disabled channel."""
        if not self.is_channel_enabled(channel):
            return False

        overrides = (self.preference.category_preferences or {}).get(NotificationCategory(category).value)
        if overrides:
            override = overrides.get(NotificationChannel(channel).value)
            if override is not None:
                return bool(override)

        return True

    def is_in_quiet_hours(self, now: Optional[datetime] = None) -> bool:
        if not self.preference.quiet_hours_enabled:
            return False

        local_now = (now or utcnow()).astimezone(self.tz)
        current = local_now.strftime('%H:%M')
        start = self.preference.quiet_hours_start
        end = self.preference.quiet_hours_end

        if start <= end:
            return start <= current < end
        # Window spans midnight
        return current >= start or current < end

    def quiet_hours_end(self, now: Optional[datetime] = None) -> datetime:
        """UTC instant at which the current quiet-hours window ends."""
        local_now = (now or utcnow()).astimezone(self.tz)
        end = datetime.combine(local_now.date(), _parse_hhmm(self.preference.quiet_hours_end), tzinfo=self.tz)
        if end <= local_now:
            end = datetime.combine(local_now.date() + timedelta(days=1), end.time(), tzinfo=self.tz)
        return end.astimezone(timezone.utc)

    def get_preferred_channels(self, category: NotificationCategory) -> List[NotificationChannel]:
        return [channel for channel in NotificationChannel if self.is_allowed(category, channel)]

    def set_category_preference(
        self,
        category: NotificationCategory,
        channel: NotificationChannel,
        enabled: bool,
    ) -> None:
        # Reassign a copy so the JSON column is flagged dirty
        current = {k: dict(v) for k, v in (self.preference.category_preferences or {}).items()}
        current.setdefault(NotificationCategory(category).value, {})[NotificationChannel(channel).value] = enabled
        self.preference.category_preferences = current
