import logging
from datetime import datetime
from typing import List, Optional, Any, Dict, Tuple, Iterable
from sqlalchemy import select, update, func

from database.models import Notification, NotificationChannel
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = {
    'created_at': Notification.created_at,
    'updated_at': Notification.updated_at,
    'sent_at': Notification.sent_at,
    'scheduled_for': Notification.scheduled_for,
    'priority': Notification.priority,
    'status': Notification.status,
}


class NotificationRepository(BaseRepository):
    def get_by_id(self, notification_id: Any) -> Optional[Notification]:
        return self.db.get(Notification, notification_id)

    def add(self, notification: Notification) -> Notification:
        self.db.add(notification)
        self.db.flush()
        return notification

    def _apply_filters(self, stmt, filters):
        if getattr(filters, 'user_id', None) is not None:
            stmt = stmt.where(Notification.user_id == filters.user_id)
        if getattr(filters, 'channel', None) is not None:
            stmt = stmt.where(Notification.channel == filters.channel)
        if getattr(filters, 'category', None) is not None:
            stmt = stmt.where(Notification.category == filters.category)
        if getattr(filters, 'status', None) is not None:
            stmt = stmt.where(Notification.status == filters.status)
        if getattr(filters, 'priority', None) is not None:
            stmt = stmt.where(Notification.priority == filters.priority)
        if getattr(filters, 'requires_action', None) is not None:
            stmt = stmt.where(Notification.requires_action.is_(filters.requires_action))
        if getattr(filters, 'unread_only', False):
            stmt = stmt.where(Notification.read_at.is_(None))
        if getattr(filters, 'start_date', None) is not None:
            stmt = stmt.where(Notification.created_at >= filters.start_date)
        if getattr(filters, 'end_date', None) is not None:
            stmt = stmt.where(Notification.created_at <= filters.end_date)
        return stmt

    def find(self, filters) -> Tuple[List[Notification], int]:
        """Return one page of notifications matching filters, plus the total count."""
        count_stmt = self._apply_filters(select(func.count()).select_from(Notification), filters)
        total = self.db.execute(count_stmt).scalar_one()

        sort_column = SORTABLE_COLUMNS.get(filters.sort_by, Notification.created_at)
        order = sort_column.asc() if filters.sort_order == 'asc' else sort_column.desc()

        stmt = self._apply_filters(select(Notification), filters)
        stmt = stmt.order_by(order, Notification.id).offset((filters.page - 1) * filters.limit).limit(filters.limit)
        return list(self.db.execute(stmt).scalars().all()), total

    def count_unread(self, user_id: Any, channel: NotificationChannel = NotificationChannel.IN_APP) -> int:
        stmt = select(func.count()).select_from(Notification).where(
            Notification.user_id == user_id,
            Notification.channel == channel,
            Notification.read_at.is_(None),
        )
        return self.db.execute(stmt).scalar_one()

    def mark_read(self, user_id: Any, read_at: datetime, ids: Optional[Iterable[Any]] = None) -> int:
        """Set read_at on the user's unread notifications; returns rows changed."""
        stmt = update(Notification).where(
            Notification.user_id == user_id,
            Notification.read_at.is_(None),
        )
        if ids is not None:
            stmt = stmt.where(Notification.id.in_(list(ids)))
        stmt = stmt.values(
            read_at=read_at,
            updated_at=read_at,
            version=Notification.version + 1,
        ).execution_options(synchronize_session=False)
        result = self.db.execute(stmt)
        return result.rowcount or 0

    def count_by(self, column, filters) -> Dict[Any, int]:
        stmt = self._apply_filters(select(column, func.count()).select_from(Notification), filters)
        stmt = stmt.group_by(column)
        return {key: count for key, count in self.db.execute(stmt).all()}

    def delivery_windows(self, filters) -> List[Tuple[datetime, datetime]]:
        """(sent_at, delivered_at) pairs for delivered notifications."""
        stmt = self._apply_filters(
            select(Notification.sent_at, Notification.delivered_at).select_from(Notification),
            filters,
        ).where(
            Notification.sent_at.is_not(None),
            Notification.delivered_at.is_not(None),
        )
        return [(sent, delivered) for sent, delivered in self.db.execute(stmt).all()]
