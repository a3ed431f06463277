import uuid

from sqlalchemy import Column, Text, Boolean, DateTime, JSON, Uuid

from core.utils import utcnow
from .base import Base


class UserNotificationPreference(Base):
    """
    Per-user delivery policy. One row per user, created lazily with defaults.

    category_preferences is sparse: {"marketing": {"email": false}}. A missing
    category/channel pair falls back to the channel flag.
    """
    __tablename__ = 'user_notification_preferences'

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, unique=True, index=True)

    # Master switch
    enabled = Column(Boolean, nullable=False, default=True)

    # Channel switches
    email_enabled = Column(Boolean, nullable=False, default=True)
    sms_enabled = Column(Boolean, nullable=False, default=True)
    whatsapp_enabled = Column(Boolean, nullable=False, default=False)
    push_enabled = Column(Boolean, nullable=False, default=True)
    in_app_enabled = Column(Boolean, nullable=False, default=True)

    category_preferences = Column(JSON, nullable=False, default=dict)

    # Quiet hours, "HH:MM" in the user's timezone
    quiet_hours_enabled = Column(Boolean, nullable=False, default=False)
    quiet_hours_start = Column(Text, nullable=False, default="22:00")
    quiet_hours_end = Column(Text, nullable=False, default="08:00")
    timezone = Column(Text, nullable=False, default="UTC")

    # Digest
    digest_enabled = Column(Boolean, nullable=False, default=False)
    digest_frequency = Column(Text, nullable=False, default="daily")
    digest_time = Column(Text, nullable=False, default="09:00")

    preferred_locale = Column(Text, nullable=False, default="en")
    alternate_email = Column(Text)
    alternate_phone = Column(Text)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
