from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from core.config_loader import load_config

# DATABASE_URL overrides database.url from config.yaml
_database_config = load_config().database

engine = create_engine(_database_config.url, echo=_database_config.echo, pool_pre_ping=True)
# Records are handed back to callers after the unit of work closes
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
