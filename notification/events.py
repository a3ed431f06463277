"""
Typed domain events that trigger notifications.

Producers build an event and hand it to NotificationEventDispatcher, which
renders the event's template for the affected user. Each event class names
its template and default priority; there is no string-keyed listener
registry.

Usage:
    dispatcher = NotificationEventDispatcher(orchestrator)
    dispatcher.dispatch(PoaApproved(user_id=user.id, user_name="Ana", poa_type="general"))
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Dict, Iterable, List, Optional
from uuid import UUID

from database.models import Notification, NotificationChannel, NotificationPriority

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    """Base class. Subclasses set template_code and implement variables()."""
    user_id: UUID

    template_code: ClassVar[str]
    priority: ClassVar[NotificationPriority] = NotificationPriority.NORMAL
    requires_action: ClassVar[bool] = False

    def variables(self) -> Dict[str, Any]:
        raise NotImplementedError

    def action_url(self) -> Optional[str]:
        return None


def _format_date(value: Optional[datetime]) -> Optional[str]:
    return value.strftime('%Y-%m-%d') if value else None


def _compact(values: Dict[str, Any]) -> Dict[str, Any]:
    """Drop unset optional values so template defaults apply."""
    return {k: v for k, v in values.items() if v is not None}


@dataclass(frozen=True)
class PoaSubmitted(NotificationEvent):
    user_name: str = ""
    poa_type: str = ""
    submitted_at: Optional[datetime] = None
    poa_url: Optional[str] = None

    template_code: ClassVar[str] = 'poa_submitted'

    def variables(self) -> Dict[str, Any]:
        return _compact({
            'userName': self.user_name,
            'poaType': self.poa_type,
            'submittedDate': _format_date(self.submitted_at),
            'poaUrl': self.poa_url,
        })


@dataclass(frozen=True)
class PoaApproved(NotificationEvent):
    user_name: str = ""
    poa_type: str = ""
    approved_at: Optional[datetime] = None
    poa_url: Optional[str] = None

    template_code: ClassVar[str] = 'poa_approved'
    priority: ClassVar[NotificationPriority] = NotificationPriority.HIGH

    def variables(self) -> Dict[str, Any]:
        return _compact({
            'userName': self.user_name,
            'poaType': self.poa_type,
            'approvalDate': _format_date(self.approved_at),
            'poaUrl': self.poa_url,
        })

    def action_url(self) -> Optional[str]:
        return self.poa_url


@dataclass(frozen=True)
class PoaRejected(NotificationEvent):
    user_name: str = ""
    poa_type: str = ""
    reason: str = ""
    poa_url: Optional[str] = None

    template_code: ClassVar[str] = 'poa_rejected'
    priority: ClassVar[NotificationPriority] = NotificationPriority.HIGH
    requires_action: ClassVar[bool] = True

    def variables(self) -> Dict[str, Any]:
        return _compact({
            'userName': self.user_name,
            'poaType': self.poa_type,
            'reason': self.reason,
            'poaUrl': self.poa_url,
        })

    def action_url(self) -> Optional[str]:
        return self.poa_url


@dataclass(frozen=True)
class DocumentRejected(NotificationEvent):
    user_name: str = ""
    document_name: str = ""
    reason: str = ""
    upload_url: Optional[str] = None

    template_code: ClassVar[str] = 'document_rejected'
    priority: ClassVar[NotificationPriority] = NotificationPriority.HIGH
    requires_action: ClassVar[bool] = True

    def variables(self) -> Dict[str, Any]:
        return _compact({
            'userName': self.user_name,
            'documentName': self.document_name,
            'reason': self.reason,
            'uploadUrl': self.upload_url,
        })

    def action_url(self) -> Optional[str]:
        return self.upload_url


@dataclass(frozen=True)
class PaymentReceived(NotificationEvent):
    user_name: str = ""
    amount: str = ""
    paid_at: Optional[datetime] = None
    reference: Optional[str] = None

    template_code: ClassVar[str] = 'payment_received'

    def variables(self) -> Dict[str, Any]:
        return _compact({
            'userName': self.user_name,
            'amount': self.amount,
            'paymentDate': _format_date(self.paid_at),
            'reference': self.reference,
        })


@dataclass(frozen=True)
class PaymentFailed(NotificationEvent):
    user_name: str = ""
    amount: str = ""
    reason: Optional[str] = None
    billing_url: Optional[str] = None

    template_code: ClassVar[str] = 'payment_failed'
    priority: ClassVar[NotificationPriority] = NotificationPriority.HIGH
    requires_action: ClassVar[bool] = True

    def variables(self) -> Dict[str, Any]:
        return _compact({
            'userName': self.user_name,
            'amount': self.amount,
            'reason': self.reason,
            'billingUrl': self.billing_url,
        })

    def action_url(self) -> Optional[str]:
        return self.billing_url


@dataclass(frozen=True)
class SecurityAlert(NotificationEvent):
    user_name: str = ""
    action: str = ""
    occurred_at: Optional[datetime] = None
    ip_address: Optional[str] = None

    template_code: ClassVar[str] = 'security_alert'
    priority: ClassVar[NotificationPriority] = NotificationPriority.URGENT

    def variables(self) -> Dict[str, Any]:
        return _compact({
            'userName': self.user_name,
            'action': self.action,
            'occurredAt': self.occurred_at.isoformat() if self.occurred_at else None,
            'ipAddress': self.ip_address,
        })


class NotificationEventDispatcher:
    def __init__(self, orchestrator):
        self.orchestrator = orchestrator

    def dispatch(
        self,
        event: NotificationEvent,
        channel: Optional[NotificationChannel] = None,
    ) -> Notification:
        logger.info(f"Dispatching {type(event).__name__} for user {event.user_id}")
        return self.orchestrator.send_from_template(
            event.user_id,
            event.template_code,
            event.variables(),
            channel=channel,
            priority=event.priority,
            requires_action=event.requires_action,
            action_url=event.action_url(),
        )

    def dispatch_many(
        self,
        events: Iterable[NotificationEvent],
        channel: Optional[NotificationChannel] = None,
    ) -> List[Notification]:
        """Dispatch each event; a failing event is logged and skipped."""
        notifications = []
        for event in events:
            try:
                notifications.append(self.dispatch(event, channel))
            except Exception as e:
                logger.error(f"Failed to dispatch {type(event).__name__} for user {event.user_id}: {e}")
        return notifications
