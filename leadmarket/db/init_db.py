import logging

from leadmarket.db.base import Base
from leadmarket.db import models  # noqa: F401 - registers all tables
from leadmarket.db.session import get_session_factory

logger = logging.getLogger(__name__)


def init_db(engine=None):
    """Create all tables (development / tests). Production uses Alembic."""
    engine = engine or get_session_factory().kw["bind"]
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")


if __name__ == "__main__":
    init_db()
