import contextlib
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from database.repositories import (
    NotificationRepository,
    PreferenceRepository,
    TemplateRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)


class NotificationUnitOfWork:
    """Repositories sharing one Session (and therefore one transaction)."""

    def __init__(self, session: Session):
        self.session = session
        self.notifications = NotificationRepository(session)
        self.preferences = PreferenceRepository(session)
        self.templates = TemplateRepository(session)
        self.users = UserRepository(session)

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


@contextlib.contextmanager
def notification_uow(session_factory: Optional[Callable[[], Session]] = None):
    """Per-unit-of-work transaction scope.

    Yields a NotificationUnitOfWork bound to a fresh Session. Commits on
    success, rolls back on exception, always closes.

    Usage:
        with notification_uow() as uow:
            notification = uow.notifications.get_by_id(notification_id)
            # perform operations...
        # commit happens automatically on successful exit
    """
    if session_factory is None:
        from database.database import SessionLocal
        session_factory = SessionLocal

    session = session_factory()
    try:
        uow = NotificationUnitOfWork(session)
        yield uow
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
