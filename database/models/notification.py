import enum
import uuid

from sqlalchemy import Column, Text, Boolean, Integer, DateTime, JSON, Uuid, Enum, Index

from core.exceptions import InvalidStatusTransition
from core.utils import utcnow, ensure_utc
from .base import Base


class NotificationChannel(str, enum.Enum):
    # Declaration order is the preference order used when listing channels
    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"
    PUSH = "push"
    IN_APP = "in_app"


class NotificationStatus(str, enum.Enum):
    PENDING = "pending"
    QUEUED = "queued"
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    BOUNCED = "bounced"
    CANCELLED = "cancelled"


class NotificationPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class NotificationCategory(str, enum.Enum):
    POA_STATUS = "poa_status"
    PAYMENT = "payment"
    APPOINTMENT = "appointment"
    SECURITY = "security"
    MARKETING = "marketing"
    SYSTEM = "system"
    CUSTOM = "custom"


def enum_column(enum_cls, **kwargs):
    """Store enums by value (e.g. 'in_app') rather than by member name."""
    return Column(
        Enum(enum_cls, native_enum=False, length=32, values_callable=lambda e: [m.value for m in e]),
        **kwargs,
    )


_S = NotificationStatus

ALLOWED_TRANSITIONS = {
    _S.PENDING: {_S.QUEUED, _S.CANCELLED},
    # QUEUED -> FAILED covers a job that died before it reached the provider
    _S.QUEUED: {_S.SENDING, _S.CANCELLED, _S.FAILED},
    _S.SENDING: {_S.SENT, _S.FAILED, _S.BOUNCED},
    _S.SENT: {_S.DELIVERED, _S.BOUNCED},
    _S.FAILED: {_S.QUEUED, _S.PENDING},
    _S.BOUNCED: {_S.QUEUED, _S.PENDING},
    _S.DELIVERED: set(),
    _S.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset({_S.DELIVERED, _S.CANCELLED})


class Notification(Base):
    """
    A single delivery of one message to one user over one channel.

    Records are never deleted; status moves only along ALLOWED_TRANSITIONS.
    """
    __tablename__ = 'notifications'

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)

    channel = enum_column(NotificationChannel, nullable=False)
    category = enum_column(NotificationCategory, nullable=False, default=NotificationCategory.SYSTEM)
    priority = enum_column(NotificationPriority, nullable=False, default=NotificationPriority.NORMAL)
    status = enum_column(NotificationStatus, nullable=False, default=NotificationStatus.PENDING)

    # Content
    subject = Column(Text, nullable=False)
    body = Column(Text, nullable=False)
    body_html = Column(Text)
    recipient = Column(Text, nullable=False)  # email address, E.164 phone, device token or user id

    # Template provenance
    template_id = Column(Text)  # template code
    template_variables = Column(JSON)

    provider_metadata = Column(JSON)

    # Lifecycle timestamps
    scheduled_for = Column(DateTime(timezone=True))
    sent_at = Column(DateTime(timezone=True))
    delivered_at = Column(DateTime(timezone=True))
    read_at = Column(DateTime(timezone=True))

    # Retry bookkeeping
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    error_message = Column(Text)
    error_details = Column(JSON)

    requires_action = Column(Boolean, nullable=False, default=False)
    action_url = Column(Text)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # Optimistic concurrency: a stale flush raises StaleDataError
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index('idx_notifications_user_created', 'user_id', 'created_at'),
        Index('idx_notifications_status', 'status'),
        Index('idx_notifications_user_unread', 'user_id', 'channel', 'read_at'),
    )

    def is_pending(self) -> bool:
        return self.status in (NotificationStatus.PENDING, NotificationStatus.QUEUED)

    def is_delivered(self) -> bool:
        return self.status == NotificationStatus.DELIVERED

    def is_failed(self) -> bool:
        return self.status in (NotificationStatus.FAILED, NotificationStatus.BOUNCED)

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_retry(self) -> bool:
        return self.is_failed() and (self.attempts or 0) < self.max_attempts

    def is_scheduled(self) -> bool:
        scheduled_for = ensure_utc(self.scheduled_for)
        return scheduled_for is not None and scheduled_for > utcnow()

    def can_transition_to(self, target: NotificationStatus) -> bool:
        if target not in ALLOWED_TRANSITIONS[self.status]:
            return False
        # Leaving a failed state is a retry and needs attempts left
        if self.is_failed() and target in (NotificationStatus.QUEUED, NotificationStatus.PENDING):
            return self.can_retry()
        return True

    def transition_to(self, target: NotificationStatus) -> None:
        if not self.can_transition_to(target):
            raise InvalidStatusTransition(self.id, self.status, target)
        self.status = target

    def __repr__(self):
        return f"<Notification {self.id} {self.channel.value} {self.status.value}>"
