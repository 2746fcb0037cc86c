from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from leadmarket.core.config import get_settings


def create_session_factory(database_url: str) -> sessionmaker:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@lru_cache
def get_session_factory() -> sessionmaker:
    return create_session_factory(get_settings().database_url)
