"""
Notification Module

Multi-channel notification delivery (email, SMS, WhatsApp, push, in-app)
with per-user preferences, templates and retrying async delivery.

Usage:
    from core.app_context import AppContext
    from core.config_loader import load_config
    from notification import NotificationChannel

    orchestrator = AppContext.build(load_config()).orchestrator
    orchestrator.send(
        user_id,
        NotificationChannel.EMAIL,
        subject='Payment received',
        body='Thanks!',
    )

    # Render a stored template
    orchestrator.send_from_template(user_id, 'poa_approved', {'userName': 'Ana', 'poaType': 'general'})
"""

from database.models import (
    NotificationChannel,
    NotificationStatus,
    NotificationPriority,
    NotificationCategory,
)

from notification.channels import (
    ChannelSender,
    EmailSender,
    SmsSender,
    WhatsAppSender,
    PushSender,
    InAppSender,
    ChannelRegistry,
)

from notification.preferences import PreferenceResolver

from notification.templates import TemplateEngine

from notification.queue import (
    DeliveryQueue,
    process_notification_task,
)

from notification.service import NotificationOrchestrator

from notification.events import (
    NotificationEvent,
    NotificationEventDispatcher,
    PoaSubmitted,
    PoaApproved,
    PoaRejected,
    DocumentRejected,
    PaymentReceived,
    PaymentFailed,
    SecurityAlert,
)

__all__ = [
    # Enums
    'NotificationChannel',
    'NotificationStatus',
    'NotificationPriority',
    'NotificationCategory',
    # Channels
    'ChannelSender',
    'EmailSender',
    'SmsSender',
    'WhatsAppSender',
    'PushSender',
    'InAppSender',
    'ChannelRegistry',
    # Policy and content
    'PreferenceResolver',
    'TemplateEngine',
    # Delivery
    'DeliveryQueue',
    'process_notification_task',
    'NotificationOrchestrator',
    # Events
    'NotificationEvent',
    'NotificationEventDispatcher',
    'PoaSubmitted',
    'PoaApproved',
    'PoaRejected',
    'DocumentRejected',
    'PaymentReceived',
    'PaymentFailed',
    'SecurityAlert',
]
