"""
Database migration runner for Alembic migrations.
"""
import logging
import os

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, text

from leadmarket.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

ADVISORY_LOCK_ID = 734120987


def build_alembic_config(settings: Settings) -> Config:
    root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    alembic_cfg = Config(os.path.join(root, "alembic.ini"))
    alembic_cfg.set_main_option("script_location", os.path.join(root, "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    alembic_cfg.attributes["url_overridden"] = True
    return alembic_cfg


def run_migrations(settings: Settings = None):
    """
    Run Alembic migrations to head revision.

    On PostgreSQL an advisory lock keeps two instances booting at the same
    time from migrating concurrently.
    """
    settings = settings or get_settings()
    if not settings.database_url:
        raise ValueError("DATABASE_URL is not set")

    logger.info("Running alembic upgrade head")
    alembic_cfg = build_alembic_config(settings)

    engine = create_engine(settings.database_url, pool_pre_ping=True)
    lock_conn = None
    try:
        if settings.database_url.startswith("postgresql"):
            lock_conn = engine.connect()
            lock_conn.execute(text(f"SELECT pg_advisory_lock({ADVISORY_LOCK_ID})"))
            lock_conn.commit()
            logger.info("Migration lock acquired")

        command.upgrade(alembic_cfg, "head")
        logger.info("Migrations complete")
    except Exception:
        logger.exception("Migration failed")
        raise
    finally:
        if lock_conn is not None:
            lock_conn.execute(text(f"SELECT pg_advisory_unlock({ADVISORY_LOCK_ID})"))
            lock_conn.commit()
            lock_conn.close()
        engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_migrations()
