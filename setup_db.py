import logging

from sqlalchemy_utils import database_exists, create_database

from callscrub.core.config.logging import configure_logging
from callscrub.core.config.settings import settings
from callscrub.core.database.base import Base
from callscrub.core.database.connection import engine

# Register every table on Base.metadata
import callscrub.features.storage.data.sql_models  # noqa: F401

logger = logging.getLogger("setup_db")


def main():
    configure_logging()
    settings.ensure_dirs()

    safe_url = engine.url.render_as_string(hide_password=True)
    if not database_exists(engine.url):
        logger.info(f"Database missing, creating {safe_url}")
        create_database(engine.url)

    Base.metadata.create_all(bind=engine)
    logger.info(f"✅ Tables ready on {safe_url}: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    main()
