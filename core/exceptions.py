"""
Error taxonomy for the notification subsystem.

Synchronous callers (Python API, HTTP routers) see NotificationValidationError,
NotFoundError, ConflictError and NotificationPermissionError.
TransientProviderError only travels between the delivery queue and its
retry scheduler.
"""

from typing import List


class NotificationError(Exception):
    """Base exception for notification subsystem errors."""
    pass


class NotificationValidationError(NotificationError):
    """Raised when input is malformed or an operation is not allowed in the current state."""
    pass


class MissingTemplateVariablesError(NotificationValidationError):
    """Raised when a template is rendered without all of its required variables."""

    def __init__(self, template_code: str, missing: List[str]):
        self.template_code = template_code
        self.missing = list(missing)
        super().__init__(f"Missing required variables: {', '.join(self.missing)}")


class InvalidStatusTransition(NotificationValidationError):
    """Raised when a notification is moved outside its lifecycle."""

    def __init__(self, notification_id, current, target):
        self.notification_id = notification_id
        self.current = current
        self.target = target
        super().__init__(
            f"Notification {notification_id}: cannot move from {current.value} to {target.value}"
        )


class NotFoundError(NotificationError):
    """Raised when an entity does not exist."""
    pass


class NotificationNotFound(NotFoundError):
    pass


class TemplateNotFound(NotFoundError):
    pass


class UserNotFound(NotFoundError):
    pass


class ConflictError(NotificationError):
    """Raised on uniqueness violations (e.g. duplicate template code)."""
    pass


class NotificationPermissionError(NotificationError):
    """Raised when a user acts on a notification they do not own."""
    pass


class TransientProviderError(NotificationError):
    """A delivery attempt failed and may succeed on a later attempt."""

    def __init__(self, notification_id, attempt: int, message: str):
        self.notification_id = notification_id
        self.attempt = attempt
        super().__init__(f"Attempt {attempt} for notification {notification_id} failed: {message}")
