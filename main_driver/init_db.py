import logging
from tenacity import retry, stop_after_attempt, wait_fixed

from core.config_loader import load_config
from database.database import engine
from database.models import Base
from notification.templates import TemplateEngine

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@retry(stop=stop_after_attempt(5), wait=wait_fixed(2))
def init_db():
    logger.info("Initializing database...")
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Tables created or verified.")
    except Exception as e:
        logger.error(f"Error initializing DB: {e}")
        raise


def seed_templates() -> int:
    config = load_config()
    if not config.templates.seed_on_startup:
        logger.info("Template seeding disabled via config.")
        return 0

    return TemplateEngine().seed_default_templates(app_url=config.templates.app_url)


def main():
    init_db()
    created = seed_templates()
    logger.info(f"Seeded {created} system templates.")


if __name__ == "__main__":
    main()
