#!/usr/bin/env python3
"""
Response models for API endpoints.

Records are converted with explicit *_to_view functions; only the fields
listed there ever leave the service.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.utils import ensure_utc
from database.models import Notification, NotificationTemplate, UserNotificationPreference
from notification.schemas import NotificationPage, NotificationStats


class NotificationView(BaseModel):
    """A notification as seen by its recipient."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "6ba7b810-9dad-11d1-80b4-00c04fd430c8",
                "channel": "in_app",
                "category": "poa_status",
                "priority": "high",
                "status": "sent",
                "subject": "Your general power of attorney was approved",
                "body": "Hello Ana, ...",
                "requires_action": False,
                "action_url": None,
                "scheduled_for": None,
                "sent_at": "2026-02-01T12:00:05+00:00",
                "read_at": None,
                "created_at": "2026-02-01T12:00:00+00:00"
            }
        }
    )

    id: str
    channel: str
    category: str
    priority: str
    status: str
    subject: str
    body: str
    body_html: Optional[str] = None
    requires_action: bool
    action_url: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    created_at: datetime


class AdminNotificationView(NotificationView):
    """Adds delivery internals for operators."""
    user_id: str
    recipient: str
    template_id: Optional[str] = None
    attempts: int
    max_attempts: int
    error_message: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None
    provider_metadata: Optional[Dict[str, Any]] = None
    updated_at: datetime


class NotificationPageResponse(BaseModel):
    data: List[NotificationView]
    total: int = Field(ge=0)
    page: int = Field(ge=1)
    limit: int = Field(ge=1)
    total_pages: int = Field(ge=0)


class AdminNotificationPageResponse(NotificationPageResponse):
    data: List[AdminNotificationView]


class PreferenceView(BaseModel):
    enabled: bool
    email_enabled: bool
    sms_enabled: bool
    whatsapp_enabled: bool
    push_enabled: bool
    in_app_enabled: bool
    category_preferences: Dict[str, Dict[str, bool]]
    quiet_hours_enabled: bool
    quiet_hours_start: str
    quiet_hours_end: str
    timezone: str
    digest_enabled: bool
    digest_frequency: str
    digest_time: str
    preferred_locale: str
    alternate_email: Optional[str] = None
    alternate_phone: Optional[str] = None


class TemplateVariableView(BaseModel):
    name: str
    required: bool
    default_value: Optional[str] = None
    description: Optional[str] = None
    example: Optional[str] = None


class TemplateView(BaseModel):
    id: str
    code: str
    name: str
    description: Optional[str] = None
    channel: str
    category: str
    subject: str
    body: str
    body_html: Optional[str] = None
    variables: List[TemplateVariableView]
    is_system: bool
    is_active: bool
    locale: str
    usage_count: int
    last_used_at: Optional[datetime] = None


class StatsResponse(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_channel: Dict[str, int]
    by_category: Dict[str, int]
    delivery_rate: float = Field(ge=0, le=1)
    average_delivery_time: Optional[float] = Field(None, description="Seconds from sent to delivered")


class UnreadCountResponse(BaseModel):
    count: int = Field(ge=0)


class CountResponse(BaseModel):
    success: bool = True
    count: int = Field(ge=0)


class BatchResponse(BaseModel):
    success: bool = True
    created: int
    notifications: List[AdminNotificationView]


class QueueStatsResponse(BaseModel):
    mode: str
    queue: Optional[str] = None
    waiting: int
    active: int
    completed: int
    failed: int
    delayed: int


class ChannelStatusResponse(BaseModel):
    channel: str
    available: bool
    batch_size: int
    batch_delay_ms: int


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value)


def notification_to_view(notification: Notification) -> NotificationView:
    return NotificationView(
        id=str(notification.id),
        channel=notification.channel.value,
        category=notification.category.value,
        priority=notification.priority.value,
        status=notification.status.value,
        subject=notification.subject,
        body=notification.body,
        body_html=notification.body_html,
        requires_action=notification.requires_action,
        action_url=notification.action_url,
        scheduled_for=_utc(notification.scheduled_for),
        sent_at=_utc(notification.sent_at),
        delivered_at=_utc(notification.delivered_at),
        read_at=_utc(notification.read_at),
        created_at=_utc(notification.created_at),
    )


def notification_to_admin_view(notification: Notification) -> AdminNotificationView:
    return AdminNotificationView(
        **notification_to_view(notification).model_dump(),
        user_id=str(notification.user_id),
        recipient=notification.recipient,
        template_id=notification.template_id,
        attempts=notification.attempts,
        max_attempts=notification.max_attempts,
        error_message=notification.error_message,
        error_details=notification.error_details,
        provider_metadata=notification.provider_metadata,
        updated_at=_utc(notification.updated_at),
    )


def page_to_response(page: NotificationPage) -> NotificationPageResponse:
    return NotificationPageResponse(
        data=[notification_to_view(n) for n in page.data],
        total=page.total,
        page=page.page,
        limit=page.limit,
        total_pages=page.total_pages,
    )


def page_to_admin_response(page: NotificationPage) -> AdminNotificationPageResponse:
    return AdminNotificationPageResponse(
        data=[notification_to_admin_view(n) for n in page.data],
        total=page.total,
        page=page.page,
        limit=page.limit,
        total_pages=page.total_pages,
    )


def preference_to_view(preference: UserNotificationPreference) -> PreferenceView:
    return PreferenceView(
        enabled=preference.enabled,
        email_enabled=preference.email_enabled,
        sms_enabled=preference.sms_enabled,
        whatsapp_enabled=preference.whatsapp_enabled,
        push_enabled=preference.push_enabled,
        in_app_enabled=preference.in_app_enabled,
        category_preferences=preference.category_preferences or {},
        quiet_hours_enabled=preference.quiet_hours_enabled,
        quiet_hours_start=preference.quiet_hours_start,
        quiet_hours_end=preference.quiet_hours_end,
        timezone=preference.timezone,
        digest_enabled=preference.digest_enabled,
        digest_frequency=preference.digest_frequency,
        digest_time=preference.digest_time,
        preferred_locale=preference.preferred_locale,
        alternate_email=preference.alternate_email,
        alternate_phone=preference.alternate_phone,
    )


def template_to_view(template: NotificationTemplate) -> TemplateView:
    return TemplateView(
        id=str(template.id),
        code=template.code,
        name=template.name,
        description=template.description,
        channel=template.channel.value,
        category=template.category.value,
        subject=template.subject,
        body=template.body,
        body_html=template.body_html,
        variables=[
            TemplateVariableView(
                name=v['name'],
                required=v.get('required', True),
                default_value=v.get('default_value'),
                description=v.get('description'),
                example=v.get('example'),
            )
            for v in (template.variables or [])
        ],
        is_system=template.is_system,
        is_active=template.is_active,
        locale=template.locale,
        usage_count=template.usage_count or 0,
        last_used_at=_utc(template.last_used_at),
    )


def stats_to_response(stats: NotificationStats) -> StatsResponse:
    return StatsResponse(
        total=stats.total,
        by_status=stats.by_status,
        by_channel=stats.by_channel,
        by_category=stats.by_category,
        delivery_rate=stats.delivery_rate,
        average_delivery_time=stats.average_delivery_time,
    )
