#!/usr/bin/env python3
"""
Operator endpoints - send, broadcast and manage deliveries.
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from ..config import get_config
from ..dependencies import get_channel_registry, get_delivery_queue, get_orchestrator
from ..models.requests import (
    BroadcastRequest,
    DeliveryReceiptRequest,
    SendBatchRequest,
    SendNotificationRequest,
    SendTemplateRequest,
)
from ..models.responses import (
    AdminNotificationPageResponse,
    AdminNotificationView,
    BatchResponse,
    ChannelStatusResponse,
    CountResponse,
    QueueStatsResponse,
    StatsResponse,
    notification_to_admin_view,
    page_to_admin_response,
    stats_to_response,
)
from .notifications import notification_filter
from notification.channels import ChannelRegistry
from notification.queue import DeliveryQueue
from notification.schemas import NotificationFilter, StatsFilter
from notification.service import NotificationOrchestrator

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)

router = APIRouter(prefix="/api/admin/notifications", tags=["admin"])


def add_rate_limit_handlers(app):
    """Add rate limit exception handlers to the FastAPI app."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


async def _rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"success": False, "error": str(exc), "type": "RateLimitExceeded"}
    )


def _broadcast_rate_limit() -> str:
    return get_config().web.broadcast_rate_limit


@router.post("/send", response_model=AdminNotificationView, status_code=201)
def send_notification(
    payload: SendNotificationRequest,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    """
    Send a notification to one user.

    The record comes back CANCELLED when the user's preferences block the
    channel, and with scheduled_for set when delivery was deferred.
    """
    notification = orchestrator.send(
        payload.user_id,
        payload.channel,
        payload.subject,
        payload.body,
        category=payload.category,
        priority=payload.priority,
        recipient=payload.recipient,
        body_html=payload.body_html,
        requires_action=payload.requires_action,
        action_url=payload.action_url,
        scheduled_for=payload.scheduled_for,
        metadata=payload.metadata,
    )
    return notification_to_admin_view(notification)


@router.post("/send-template", response_model=AdminNotificationView, status_code=201)
def send_from_template(
    payload: SendTemplateRequest,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    """Render a template and send it. Missing required variables give a 400 listing them."""
    notification = orchestrator.send_from_template(
        payload.user_id,
        payload.template_code,
        payload.variables,
        channel=payload.channel,
        priority=payload.priority,
        requires_action=payload.requires_action,
        action_url=payload.action_url,
        scheduled_for=payload.scheduled_for,
    )
    return notification_to_admin_view(notification)


@router.post("/send-batch", response_model=BatchResponse, status_code=201)
def send_batch(
    payload: SendBatchRequest,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    notifications = orchestrator.send_batch(
        payload.user_ids,
        payload.channel,
        payload.subject,
        payload.body,
        category=payload.category,
        priority=payload.priority,
    )
    return BatchResponse(
        created=len(notifications),
        notifications=[notification_to_admin_view(n) for n in notifications],
    )


@router.post("/broadcast", response_model=BatchResponse, status_code=201)
@limiter.limit(_broadcast_rate_limit)
def broadcast(
    request: Request,
    payload: BroadcastRequest,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    """
    Send to every active user.

    Rate limited per client address (web.broadcast_rate_limit).
    """
    notifications = orchestrator.broadcast(
        payload.channel,
        payload.subject,
        payload.body,
        category=payload.category,
        priority=payload.priority,
    )
    logger.info(f"Broadcast from {get_remote_address(request)} created {len(notifications)} notifications")
    return BatchResponse(
        created=len(notifications),
        notifications=[notification_to_admin_view(n) for n in notifications],
    )


@router.get("", response_model=AdminNotificationPageResponse)
def list_notifications(
    user_id: Optional[UUID] = None,
    filters: NotificationFilter = Depends(notification_filter),
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    if user_id is not None:
        filters = filters.model_copy(update={'user_id': user_id})
    return page_to_admin_response(orchestrator.find_all(filters))


@router.get("/stats", response_model=StatsResponse)
def get_stats(
    user_id: Optional[UUID] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    filters = StatsFilter(user_id=user_id, start_date=start_date, end_date=end_date)
    return stats_to_response(orchestrator.get_stats(filters))


@router.get("/queue/stats", response_model=QueueStatsResponse)
def get_queue_stats(delivery_queue: DeliveryQueue = Depends(get_delivery_queue)):
    return QueueStatsResponse(**delivery_queue.get_queue_stats())


@router.post("/queue/clean", response_model=CountResponse)
def clean_queue(
    days: Optional[int] = Query(None, ge=1, le=365),
    delivery_queue: DeliveryQueue = Depends(get_delivery_queue),
):
    """Remove finished and failed job records older than `days` (queue.clean_after_days by default)."""
    if days is None:
        days = get_config().queue.clean_after_days
    return CountResponse(count=delivery_queue.clean_old_jobs(days))


@router.get("/channels", response_model=List[ChannelStatusResponse])
def get_channel_status(registry: ChannelRegistry = Depends(get_channel_registry)):
    """Which channels have provider credentials configured."""
    return [ChannelStatusResponse(**status) for status in registry.get_status()]


@router.get("/{notification_id}", response_model=AdminNotificationView)
def get_notification(
    notification_id: UUID,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    return notification_to_admin_view(orchestrator.find_by_id(notification_id))


@router.post("/{notification_id}/retry", response_model=AdminNotificationView)
def retry_notification(
    notification_id: UUID,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    """Re-queue a FAILED or BOUNCED notification that still has attempts left."""
    return notification_to_admin_view(orchestrator.retry(notification_id))


@router.post("/{notification_id}/cancel", response_model=AdminNotificationView)
def cancel_notification(
    notification_id: UUID,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    return notification_to_admin_view(orchestrator.cancel(notification_id))


@router.post("/{notification_id}/receipt", response_model=AdminNotificationView)
def record_delivery_receipt(
    notification_id: UUID,
    payload: DeliveryReceiptRequest,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
):
    """Provider callback: marks a SENT notification DELIVERED or BOUNCED."""
    notification = orchestrator.record_delivery_receipt(
        notification_id,
        payload.status,
        occurred_at=payload.occurred_at,
        details=payload.details,
    )
    return notification_to_admin_view(notification)
