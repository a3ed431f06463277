#!/usr/bin/env python3
"""
Request models for API endpoints.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from database.models import (
    NotificationCategory,
    NotificationChannel,
    NotificationPriority,
)


class SendNotificationRequest(BaseModel):
    """Request to send a notification to one user."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "user_id": "550e8400-e29b-41d4-a716-446655440000",
                "channel": "email",
                "subject": "Your document is ready",
                "body": "You can download it from your dashboard.",
                "category": "system",
                "priority": "normal"
            }
        }
    )

    user_id: UUID
    channel: NotificationChannel
    subject: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1)
    body_html: Optional[str] = None
    category: Optional[NotificationCategory] = Field(None, description="Defaults to system")
    priority: Optional[NotificationPriority] = Field(None, description="Defaults to normal")
    recipient: Optional[str] = Field(None, description="Override the address from the user directory")
    requires_action: bool = False
    action_url: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None


class SendTemplateRequest(BaseModel):
    """Request to render a template and send it to one user."""
    user_id: UUID
    template_code: str = Field(..., min_length=1)
    variables: Dict[str, Any] = Field(default_factory=dict)
    channel: Optional[NotificationChannel] = Field(None, description="Defaults to the template's channel")
    priority: Optional[NotificationPriority] = None
    requires_action: bool = False
    action_url: Optional[str] = None
    scheduled_for: Optional[datetime] = None


class SendBatchRequest(BaseModel):
    """Request to send the same notification to many users."""
    user_ids: List[UUID] = Field(..., min_length=1, max_length=1000)
    channel: NotificationChannel
    subject: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1)
    category: Optional[NotificationCategory] = None
    priority: Optional[NotificationPriority] = None


class BroadcastRequest(BaseModel):
    """Request to notify every active user."""
    channel: NotificationChannel
    subject: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1)
    category: Optional[NotificationCategory] = None
    priority: Optional[NotificationPriority] = None


class MarkReadRequest(BaseModel):
    notification_ids: List[UUID] = Field(..., min_length=1, max_length=500)


class CategoryPreferenceRequest(BaseModel):
    category: NotificationCategory
    channel: NotificationChannel
    enabled: bool


class DeliveryReceiptRequest(BaseModel):
    """Provider callback reporting the final outcome of a sent notification."""
    status: Literal['delivered', 'bounced']
    occurred_at: Optional[datetime] = None
    details: Optional[Dict[str, Any]] = None


class CloneTemplateRequest(BaseModel):
    new_code: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9_\-]+$")
