from typing import List, Optional, Any
from sqlalchemy import select

from database.models import User
from database.repositories.base import BaseRepository


class UserRepository(BaseRepository):
    def get_by_id(self, user_id: Any) -> Optional[User]:
        return self.db.get(User, user_id)

    def list_active_ids(self) -> List[Any]:
        stmt = select(User.id).where(User.is_active.is_(True)).order_by(User.created_at)
        return list(self.db.execute(stmt).scalars().all())
