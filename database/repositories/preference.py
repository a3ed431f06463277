from typing import Optional, Any
from sqlalchemy import select

from database.models import UserNotificationPreference
from database.repositories.base import BaseRepository


class PreferenceRepository(BaseRepository):
    def get_by_user_id(self, user_id: Any) -> Optional[UserNotificationPreference]:
        stmt = select(UserNotificationPreference).where(
            UserNotificationPreference.user_id == user_id
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def add(self, preference: UserNotificationPreference) -> UserNotificationPreference:
        self.db.add(preference)
        self.db.flush()
        return preference

    def delete(self, preference: UserNotificationPreference) -> None:
        self.db.delete(preference)
        self.db.flush()
