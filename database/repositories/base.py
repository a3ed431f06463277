from sqlalchemy.orm import Session


class BaseRepository:
    """Repositories share the unit of work's Session and never commit themselves."""

    def __init__(self, db: Session):
        self.db = db
