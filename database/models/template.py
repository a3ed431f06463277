import uuid

from sqlalchemy import Column, Text, Boolean, Integer, DateTime, JSON, Uuid

from core.utils import utcnow
from .base import Base
from .notification import NotificationChannel, NotificationCategory, enum_column


class NotificationTemplate(Base):
    """
    Named message template with {{variable}} placeholders.

    variables is an ordered list of
    {"name", "required", "default_value", "description", "example"}.
    System templates are read-only; clone them to customise.
    """
    __tablename__ = 'notification_templates'

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(Text, nullable=False, unique=True, index=True)
    name = Column(Text, nullable=False)
    description = Column(Text)

    channel = enum_column(NotificationChannel, nullable=False)
    category = enum_column(NotificationCategory, nullable=False)

    subject = Column(Text, nullable=False)
    body = Column(Text, nullable=False)
    body_html = Column(Text)

    variables = Column(JSON, nullable=False, default=list)
    channel_config = Column(JSON)

    is_system = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    locale = Column(Text, nullable=False, default="en")

    usage_count = Column(Integer, nullable=False, default=0)
    last_used_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def required_variable_names(self):
        return [v["name"] for v in (self.variables or []) if v.get("required")]
