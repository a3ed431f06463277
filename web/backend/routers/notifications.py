#!/usr/bin/env python3
"""
Notification endpoints for the signed-in user: inbox, read state,
preferences and personal statistics.
"""

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from ..dependencies import get_current_user_id, get_orchestrator
from ..models.requests import CategoryPreferenceRequest, MarkReadRequest
from ..models.responses import (
    CountResponse,
    NotificationPageResponse,
    NotificationView,
    PreferenceView,
    StatsResponse,
    UnreadCountResponse,
    notification_to_view,
    page_to_response,
    preference_to_view,
    stats_to_response,
)
from core.exceptions import NotificationNotFound
from database.models import (
    NotificationCategory,
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
)
from notification.schemas import NotificationFilter, PreferenceUpdate, StatsFilter
from notification.service import NotificationOrchestrator

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def notification_filter(
    channel: Optional[NotificationChannel] = None,
    category: Optional[NotificationCategory] = None,
    status: Optional[NotificationStatus] = None,
    priority: Optional[NotificationPriority] = None,
    requires_action: Optional[bool] = None,
    unread_only: bool = False,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: Literal['created_at', 'updated_at', 'sent_at', 'scheduled_for', 'priority', 'status'] = 'created_at',
    sort_order: Literal['asc', 'desc'] = 'desc',
) -> NotificationFilter:
    """Query parameters shared by the user and admin listings."""
    return NotificationFilter(
        channel=channel,
        category=category,
        status=status,
        priority=priority,
        requires_action=requires_action,
        unread_only=unread_only,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("", response_model=NotificationPageResponse)
def list_my_notifications(
    filters: NotificationFilter = Depends(notification_filter),
    user_id: UUID = Depends(get_current_user_id),
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    """List the caller's notifications, newest first by default."""
    page = orchestrator.get_user_notifications(user_id, filters)
    return page_to_response(page)


@router.get("/unread-count", response_model=UnreadCountResponse)
def get_unread_count(
    user_id: UUID = Depends(get_current_user_id),
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    """Number of unread in-app notifications."""
    return UnreadCountResponse(count=orchestrator.get_unread_count(user_id))


@router.post("/mark-read", response_model=CountResponse)
def mark_multiple_as_read(
    request: MarkReadRequest,
    user_id: UUID = Depends(get_current_user_id),
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    count = orchestrator.mark_multiple_as_read(request.notification_ids, user_id)
    return CountResponse(count=count)


@router.post("/mark-all-read", response_model=CountResponse)
def mark_all_as_read(
    user_id: UUID = Depends(get_current_user_id),
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    """Mark every unread in-app notification as read. Safe to repeat."""
    return CountResponse(count=orchestrator.mark_all_as_read(user_id))


@router.get("/preferences/me", response_model=PreferenceView)
def get_my_preferences(
    user_id: UUID = Depends(get_current_user_id),
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    """Get preferences, creating the defaults on first access."""
    return preference_to_view(orchestrator.get_preferences(user_id))


@router.patch("/preferences/me", response_model=PreferenceView)
def update_my_preferences(
    update: PreferenceUpdate,
    user_id: UUID = Depends(get_current_user_id),
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    return preference_to_view(orchestrator.update_preferences(user_id, update))


@router.post("/preferences/category", response_model=PreferenceView)
def set_category_preference(
    request: CategoryPreferenceRequest,
    user_id: UUID = Depends(get_current_user_id),
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    """Opt a single category in or out of a channel."""
    preference = orchestrator.set_category_preference(
        user_id, request.category, request.channel, request.enabled
    )
    return preference_to_view(preference)


@router.post("/preferences/reset", response_model=PreferenceView)
def reset_my_preferences(
    user_id: UUID = Depends(get_current_user_id),
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    return preference_to_view(orchestrator.reset_preferences(user_id))


@router.get("/stats/me", response_model=StatsResponse)
def get_my_stats(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    user_id: UUID = Depends(get_current_user_id),
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    filters = StatsFilter(user_id=user_id, start_date=start_date, end_date=end_date)
    return stats_to_response(orchestrator.get_stats(filters))


@router.get("/{notification_id}", response_model=NotificationView)
def get_my_notification(
    notification_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    notification = orchestrator.find_by_id(notification_id)
    if notification.user_id != user_id:
        # Other users' notifications look missing
        raise NotificationNotFound(f"Notification {notification_id} not found")
    return notification_to_view(notification)


@router.patch("/{notification_id}/read", response_model=NotificationView)
def mark_as_read(
    notification_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    """Mark one notification as read. Fails with 403 for another user's notification."""
    return notification_to_view(orchestrator.mark_as_read(notification_id, user_id))
