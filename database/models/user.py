import uuid

from sqlalchemy import Column, Text, Boolean, DateTime, Uuid

from core.utils import utcnow
from .base import Base


class User(Base):
    """
    Read-only view of the user directory.

    Owned by the accounts system; the notification subsystem only reads
    contact details and the active flag.
    """
    __tablename__ = 'users'

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(Text, unique=True)
    phone = Column(Text)  # E.164
    display_name = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
