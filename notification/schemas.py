"""
Data transfer objects for the notification subsystem.

Provider-facing values (payloads, results, rendered templates) are plain
dataclasses. Caller-facing inputs that need validation (filters, template
and preference updates) are pydantic models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from database.models import (
    Notification,
    NotificationCategory,
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
)

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


@dataclass
class NotificationPayload:
    """What a ChannelSender needs for one delivery."""
    recipient: str
    subject: str
    body: str
    body_html: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SendResult:
    """Outcome of one provider call. Senders never raise; they return this."""
    success: bool
    message_id: Optional[str] = None
    provider_id: Optional[str] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RenderedTemplate:
    subject: str
    body: str
    body_html: Optional[str] = None
    channel: Optional[NotificationChannel] = None
    category: Optional[NotificationCategory] = None


@dataclass
class NotificationJob:
    """
    One delivery attempt waiting in the queue.

    attempt is 1-based. next_run_at is informational; the queue backend
    owns the actual delay.
    """
    notification_id: UUID
    attempt: int = 1
    next_run_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'notification_id': str(self.notification_id),
            'attempt': self.attempt,
            'next_run_at': self.next_run_at.isoformat() if self.next_run_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotificationJob":
        next_run_at = data.get('next_run_at')
        return cls(
            notification_id=UUID(str(data['notification_id'])),
            attempt=int(data.get('attempt', 1)),
            next_run_at=datetime.fromisoformat(next_run_at) if next_run_at else None,
        )


@dataclass
class NotificationPage:
    data: List[Notification]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


@dataclass
class NotificationStats:
    total: int
    by_status: Dict[str, int]
    by_channel: Dict[str, int]
    by_category: Dict[str, int]
    delivery_rate: float  # delivered / total, 0 when there are no notifications
    average_delivery_time: Optional[float]  # seconds between sent_at and delivered_at


class TemplateVariable(BaseModel):
    name: str = Field(..., min_length=1, pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    required: bool = True
    default_value: Optional[str] = None
    description: Optional[str] = None
    example: Optional[str] = None


class TemplateCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9_\-]+$")
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    channel: NotificationChannel
    category: NotificationCategory
    subject: str
    body: str
    body_html: Optional[str] = None
    variables: List[TemplateVariable] = Field(default_factory=list)
    channel_config: Optional[Dict[str, Any]] = None
    is_active: bool = True
    locale: str = "en"


class TemplateUpdate(BaseModel):
    """Partial update; unset fields are left alone. code and is_system are immutable."""
    name: Optional[str] = None
    description: Optional[str] = None
    channel: Optional[NotificationChannel] = None
    category: Optional[NotificationCategory] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    body_html: Optional[str] = None
    variables: Optional[List[TemplateVariable]] = None
    channel_config: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None
    locale: Optional[str] = None


class PreferenceUpdate(BaseModel):
    model_config = ConfigDict(extra='forbid')

    enabled: Optional[bool] = None
    email_enabled: Optional[bool] = None
    sms_enabled: Optional[bool] = None
    whatsapp_enabled: Optional[bool] = None
    push_enabled: Optional[bool] = None
    in_app_enabled: Optional[bool] = None
    category_preferences: Optional[Dict[NotificationCategory, Dict[NotificationChannel, bool]]] = None
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    quiet_hours_end: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    timezone: Optional[str] = None
    digest_enabled: Optional[bool] = None
    digest_frequency: Optional[Literal['daily', 'weekly']] = None
    digest_time: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    preferred_locale: Optional[str] = None
    alternate_email: Optional[str] = None
    alternate_phone: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        data = self.model_dump(exclude_unset=True)
        if 'category_preferences' in data and data['category_preferences'] is not None:
            data['category_preferences'] = {
                category.value: {channel.value: enabled for channel, enabled in channels.items()}
                for category, channels in data['category_preferences'].items()
            }
        return data


class NotificationFilter(BaseModel):
    user_id: Optional[UUID] = None
    channel: Optional[NotificationChannel] = None
    category: Optional[NotificationCategory] = None
    status: Optional[NotificationStatus] = None
    priority: Optional[NotificationPriority] = None
    requires_action: Optional[bool] = None
    unread_only: bool = False
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    sort_by: Literal['created_at', 'updated_at', 'sent_at', 'scheduled_for', 'priority', 'status'] = 'created_at'
    sort_order: Literal['asc', 'desc'] = 'desc'


class StatsFilter(BaseModel):
    user_id: Optional[UUID] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator('end_date')
    @classmethod
    def end_after_start(cls, value, info):
        start = info.data.get('start_date')
        if value is not None and start is not None and value < start:
            raise ValueError("end_date must not be before start_date")
        return value
