#!/usr/bin/env python3
"""
Notification Orchestrator

Public entry point of the notification subsystem:
- applies user preferences (blocked channels, quiet hours)
- creates the notification record
- hands it to the delivery queue for immediate or scheduled delivery
- answers queries, read receipts, preference changes and stats

Usage:
    from notification import NotificationOrchestrator

    orchestrator = NotificationOrchestrator(delivery_queue, template_engine)
    orchestrator.send(user_id, NotificationChannel.EMAIL, "Subject", "Body")
    orchestrator.send_from_template(user_id, "poa_approved", {"userName": "Ana", "poaType": "general"})
"""

import logging
from datetime import datetime
from statistics import mean
from typing import Any, Callable, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.exceptions import (
    NotificationNotFound,
    NotificationPermissionError,
    NotificationValidationError,
    UserNotFound,
)
from core.utils import as_uuid, ensure_utc, utcnow
from database.models import (
    Notification,
    NotificationCategory,
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
    User,
    UserNotificationPreference,
)
from database.uow import notification_uow
from notification.preferences import (
    PreferenceResolver,
    build_default_preference,
    reset_to_defaults,
)
from notification.queue import DeliveryQueue
from notification.schemas import (
    NotificationFilter,
    NotificationPage,
    NotificationStats,
    PreferenceUpdate,
    StatsFilter,
)
from notification.templates import TemplateEngine

logger = logging.getLogger(__name__)

RECEIPT_STATUSES = (NotificationStatus.DELIVERED, NotificationStatus.BOUNCED)


def resolve_recipient(
    user: User,
    preference: UserNotificationPreference,
    channel: NotificationChannel,
) -> Optional[str]:
    """Default address for a channel: alternates first, then the user directory."""
    if channel == NotificationChannel.EMAIL:
        return preference.alternate_email or user.email
    if channel in (NotificationChannel.SMS, NotificationChannel.WHATSAPP):
        return preference.alternate_phone or user.phone
    return str(user.id)


class NotificationOrchestrator:
    def __init__(
        self,
        delivery_queue: DeliveryQueue,
        template_engine: Optional[TemplateEngine] = None,
        uow_factory: Callable = notification_uow,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.delivery_queue = delivery_queue
        self.template_engine = template_engine or TemplateEngine(uow_factory)
        self.uow_factory = uow_factory
        self.clock = clock

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send(
        self,
        user_id,
        channel: NotificationChannel,
        subject: str,
        body: str,
        category: Optional[NotificationCategory] = None,
        priority: Optional[NotificationPriority] = None,
        recipient: Optional[str] = None,
        body_html: Optional[str] = None,
        template_code: Optional[str] = None,
        template_variables: Optional[Dict[str, Any]] = None,
        requires_action: bool = False,
        action_url: Optional[str] = None,
        scheduled_for: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        """
        Create a notification and queue or schedule its delivery.

        A channel/category the user has opted out of yields a CANCELLED
        record that is never enqueued. During quiet hours non-urgent,
        non-security notifications are scheduled for the end of the window.

        Raises:
            UserNotFound: unknown user
            NotificationValidationError: no recipient for this channel
        """
        channel = NotificationChannel(channel)
        category = NotificationCategory(category) if category else NotificationCategory.SYSTEM
        priority = NotificationPriority(priority) if priority else NotificationPriority.NORMAL
        now = self.clock()
        deliver_at = None

        with self.uow_factory() as uow:
            user = uow.users.get_by_id(as_uuid(user_id))
            if user is None:
                raise UserNotFound(f"User {user_id} not found")

            preference = self._get_or_create_preference(uow, user.id)
            resolver = PreferenceResolver(preference)

            recipient = recipient or resolve_recipient(user, preference, channel)
            if not recipient:
                raise NotificationValidationError(f"User {user_id} has no {channel.value} recipient")

            notification = Notification(
                user_id=user.id,
                channel=channel,
                category=category,
                priority=priority,
                status=NotificationStatus.PENDING,
                subject=subject,
                body=body,
                body_html=body_html,
                recipient=recipient,
                template_id=template_code,
                template_variables=template_variables,
                provider_metadata=dict(metadata or {}),
                requires_action=requires_action,
                action_url=action_url,
                scheduled_for=scheduled_for,
                attempts=0,
                max_attempts=self.delivery_queue.max_attempts,
            )

            if not resolver.is_allowed(category, channel):
                notification.status = NotificationStatus.CANCELLED
                notification.error_message = "Blocked by user notification preferences"
            else:
                bypass_quiet_hours = (
                    priority == NotificationPriority.URGENT
                    or category == NotificationCategory.SECURITY
                )
                if not bypass_quiet_hours and resolver.is_in_quiet_hours(now):
                    deliver_at = resolver.quiet_hours_end(now)
                    logger.info(f"User {user.id} is in quiet hours, deferring until {deliver_at.isoformat()}")
                if scheduled_for is not None:
                    requested = ensure_utc(scheduled_for)
                    deliver_at = max(deliver_at, requested) if deliver_at else requested
                notification.scheduled_for = deliver_at

            uow.notifications.add(notification)
            notification_id = notification.id
            status = notification.status

        if status == NotificationStatus.CANCELLED:
            logger.info(f"Notification {notification_id} blocked by preferences ({category.value}/{channel.value})")
            return notification

        if deliver_at is not None:
            self.delivery_queue.schedule_notification(notification_id, deliver_at)
        else:
            self.delivery_queue.queue_notification(notification_id)

        return self.find_by_id(notification_id)

    def send_from_template(
        self,
        user_id,
        template_code: str,
        variables: Optional[Dict[str, Any]] = None,
        channel: Optional[NotificationChannel] = None,
        priority: Optional[NotificationPriority] = None,
        **options,
    ) -> Notification:
        """
        Render a template and send it.

        Raises:
            MissingTemplateVariablesError: required variables absent
        """
        variables = variables or {}
        rendered = self.template_engine.render(template_code, variables)
        return self.send(
            user_id,
            channel or rendered.channel,
            rendered.subject,
            rendered.body,
            category=options.pop('category', None) or rendered.category,
            priority=priority,
            body_html=rendered.body_html,
            template_code=template_code,
            template_variables=variables,
            **options,
        )

    def send_batch(
        self,
        user_ids: Iterable,
        channel: NotificationChannel,
        subject: str,
        body: str,
        **options,
    ) -> List[Notification]:
        """Send to each user; one user's failure does not stop the others."""
        notifications = []
        failed = 0
        for user_id in user_ids:
            try:
                notifications.append(self.send(user_id, channel, subject, body, **options))
            except Exception as e:
                failed += 1
                logger.error(f"Failed to send notification to user {user_id}: {e}")

        logger.info(f"Batch send: {len(notifications)} created, {failed} failed")
        return notifications

    def broadcast(self, channel: NotificationChannel, subject: str, body: str, **options) -> List[Notification]:
        """Send to every active user."""
        with self.uow_factory() as uow:
            user_ids = uow.users.list_active_ids()

        logger.info(f"Broadcasting {NotificationChannel(channel).value} notification to {len(user_ids)} users")
        return self.send_batch(user_ids, channel, subject, body, **options)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_all(self, filters: Optional[NotificationFilter] = None) -> NotificationPage:
        filters = filters or NotificationFilter()
        with self.uow_factory() as uow:
            items, total = uow.notifications.find(filters)
        return NotificationPage(data=items, total=total, page=filters.page, limit=filters.limit)

    def find_by_id(self, notification_id) -> Notification:
        with self.uow_factory() as uow:
            notification = uow.notifications.get_by_id(as_uuid(notification_id))
            if notification is None:
                raise NotificationNotFound(f"Notification {notification_id} not found")
            return notification

    def get_user_notifications(self, user_id, filters: Optional[NotificationFilter] = None) -> NotificationPage:
        filters = (filters or NotificationFilter()).model_copy(update={'user_id': as_uuid(user_id)})
        return self.find_all(filters)

    def get_unread_count(self, user_id) -> int:
        with self.uow_factory() as uow:
            return uow.notifications.count_unread(as_uuid(user_id))

    def mark_as_read(self, notification_id, user_id) -> Notification:
        with self.uow_factory() as uow:
            notification = uow.notifications.get_by_id(as_uuid(notification_id))
            if notification is None:
                raise NotificationNotFound(f"Notification {notification_id} not found")
            if notification.user_id != as_uuid(user_id):
                raise NotificationPermissionError("You can only mark your own notifications as read")
            if notification.read_at is None:
                notification.read_at = self.clock()
            return notification

    def mark_multiple_as_read(self, notification_ids: Iterable, user_id) -> int:
        """Only the caller's own unread notifications are touched."""
        ids = [as_uuid(i) for i in notification_ids]
        if not ids:
            return 0
        with self.uow_factory() as uow:
            return uow.notifications.mark_read(as_uuid(user_id), self.clock(), ids)

    def mark_all_as_read(self, user_id) -> int:
        with self.uow_factory() as uow:
            count = uow.notifications.mark_read(as_uuid(user_id), self.clock())
        logger.info(f"Marked {count} notifications as read for user {user_id}")
        return count

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def _get_or_create_preference(self, uow, user_id) -> UserNotificationPreference:
        preference = uow.preferences.get_by_user_id(user_id)
        if preference is None:
            preference = uow.preferences.add(build_default_preference(user_id))
            logger.info(f"Created default notification preferences for user {user_id}")
        return preference

    def get_preferences(self, user_id) -> UserNotificationPreference:
        with self.uow_factory() as uow:
            return self._get_or_create_preference(uow, as_uuid(user_id))

    def update_preferences(self, user_id, update: PreferenceUpdate) -> UserNotificationPreference:
        changes = update.changes()
        if changes.get('timezone'):
            try:
                ZoneInfo(changes['timezone'])
            except (ZoneInfoNotFoundError, ValueError):
                raise NotificationValidationError(f"Unknown timezone: {changes['timezone']}")

        with self.uow_factory() as uow:
            preference = self._get_or_create_preference(uow, as_uuid(user_id))
            for field, value in changes.items():
                setattr(preference, field, value)
            return preference

    def reset_preferences(self, user_id) -> UserNotificationPreference:
        with self.uow_factory() as uow:
            preference = self._get_or_create_preference(uow, as_uuid(user_id))
            reset_to_defaults(preference)
            return preference

    def set_category_preference(
        self,
        user_id,
        category: NotificationCategory,
        channel: NotificationChannel,
        enabled: bool,
    ) -> UserNotificationPreference:
        with self.uow_factory() as uow:
            preference = self._get_or_create_preference(uow, as_uuid(user_id))
            PreferenceResolver(preference).set_category_preference(category, channel, enabled)
            return preference

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def retry(self, notification_id) -> Notification:
        self.delivery_queue.retry_notification(notification_id)
        return self.find_by_id(notification_id)

    def cancel(self, notification_id) -> Notification:
        notification = self.find_by_id(notification_id)
        if notification.status == NotificationStatus.CANCELLED:
            return notification
        if not notification.is_pending():
            raise NotificationValidationError(
                f"Only pending notifications can be cancelled (status {notification.status.value})"
            )
        return self.delivery_queue.cancel_notification(notification_id)

    def record_delivery_receipt(
        self,
        notification_id,
        status: NotificationStatus,
        occurred_at: Optional[datetime] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        """Apply a provider delivery callback (SENT -> DELIVERED or BOUNCED)."""
        status = NotificationStatus(status)
        if status not in RECEIPT_STATUSES:
            raise NotificationValidationError(f"Unsupported receipt status: {status.value}")

        with self.uow_factory() as uow:
            notification = uow.notifications.get_by_id(as_uuid(notification_id))
            if notification is None:
                raise NotificationNotFound(f"Notification {notification_id} not found")
            if notification.status == status:
                return notification

            notification.transition_to(status)
            if status == NotificationStatus.DELIVERED:
                notification.delivered_at = ensure_utc(occurred_at) or self.clock()
            else:
                notification.error_message = (details or {}).get('reason', 'Bounced by provider')
            if details:
                notification.provider_metadata = {**(notification.provider_metadata or {}), 'receipt': details}

        logger.info(f"Notification {notification_id} marked {status.value} by provider receipt")
        return notification

    def get_stats(self, filters: Optional[StatsFilter] = None) -> NotificationStats:
        filters = filters or StatsFilter()
        with self.uow_factory() as uow:
            by_status = uow.notifications.count_by(Notification.status, filters)
            by_channel = uow.notifications.count_by(Notification.channel, filters)
            by_category = uow.notifications.count_by(Notification.category, filters)
            windows = uow.notifications.delivery_windows(filters)

        total = sum(by_status.values())
        delivered = by_status.get(NotificationStatus.DELIVERED, 0)
        durations = [
            (ensure_utc(delivered_at) - ensure_utc(sent_at)).total_seconds()
            for sent_at, delivered_at in windows
        ]

        return NotificationStats(
            total=total,
            by_status={s.value: n for s, n in by_status.items()},
            by_channel={c.value: n for c, n in by_channel.items()},
            by_category={c.value: n for c, n in by_category.items()},
            delivery_rate=(delivered / total) if total else 0.0,
            average_delivery_time=mean(durations) if durations else None,
        )
