from typing import List, Optional, Any, Dict
from sqlalchemy import select, func

from database.models import NotificationTemplate
from database.repositories.base import BaseRepository


class TemplateRepository(BaseRepository):
    def get_by_id(self, template_id: Any) -> Optional[NotificationTemplate]:
        return self.db.get(NotificationTemplate, template_id)

    def get_by_code(self, code: str) -> Optional[NotificationTemplate]:
        stmt = select(NotificationTemplate).where(NotificationTemplate.code == code)
        return self.db.execute(stmt).scalar_one_or_none()

    def code_exists(self, code: str) -> bool:
        stmt = select(func.count()).select_from(NotificationTemplate).where(
            NotificationTemplate.code == code
        )
        return self.db.execute(stmt).scalar_one() > 0

    def find(
        self,
        channel=None,
        category=None,
        is_active: Optional[bool] = None,
        locale: Optional[str] = None,
    ) -> List[NotificationTemplate]:
        stmt = select(NotificationTemplate)
        if channel is not None:
            stmt = stmt.where(NotificationTemplate.channel == channel)
        if category is not None:
            stmt = stmt.where(NotificationTemplate.category == category)
        if is_active is not None:
            stmt = stmt.where(NotificationTemplate.is_active.is_(is_active))
        if locale:
            stmt = stmt.where(NotificationTemplate.locale == locale)
        stmt = stmt.order_by(NotificationTemplate.name)
        return list(self.db.execute(stmt).scalars().all())

    def add(self, template: NotificationTemplate) -> NotificationTemplate:
        self.db.add(template)
        self.db.flush()
        return template

    def delete(self, template: NotificationTemplate) -> None:
        self.db.delete(template)
        self.db.flush()

    def count_by(self, column) -> Dict[Any, int]:
        stmt = select(column, func.count()).group_by(column)
        return {key: count for key, count in self.db.execute(stmt).all()}

    def most_used(self, limit: int = 10) -> List[NotificationTemplate]:
        stmt = select(NotificationTemplate).order_by(
            NotificationTemplate.usage_count.desc(), NotificationTemplate.code
        ).limit(limit)
        return list(self.db.execute(stmt).scalars().all())
