import os
import contextlib
from typing import Optional
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from core.config_loader import DEFAULT_DATABASE_URL

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def get_engine(database_url: Optional[str] = None) -> Engine:
    """Create the process engine on first use."""
    global _engine
    if _engine is None:
        url = database_url or os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)
        _engine = create_engine(url, pool_pre_ping=True)
    return _engine


def get_session_factory(database_url: Optional[str] = None) -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=get_engine(database_url))
    return _session_factory


@contextlib.contextmanager
def db_session_scope(session_factory: Optional[sessionmaker] = None):
    """Provide a transactional scope around a series of operations."""
    session = (session_factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
