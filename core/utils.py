from datetime import datetime, timezone
from typing import Optional
from uuid import UUID


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes.

    Some backends (SQLite) drop tzinfo on the way back from the database even
    for timezone-aware columns. Everything in this codebase is stored in UTC,
    so a naive value is interpreted as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def mask_recipient(recipient: Optional[str]) -> str:
    """Mask an address for logging (PII protection)."""
    if not recipient:
        return "***"
    if "@" in recipient:
        _, domain = recipient.rsplit("@", 1)
        return f"***@{domain}"
    if recipient.startswith("+") or recipient.startswith("whatsapp:"):
        return f"***{recipient[-4:]}"
    if len(recipient) > 8:
        return f"{recipient[:4]}***"
    return "***"


def as_uuid(value) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))
