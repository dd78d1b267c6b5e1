# =============================================================================
# Database Engine & Session Management — Record Store
# =============================================================================
#
# Sync SQLAlchemy engine for the relational record store (the tabular
# ingestion source). Ingestion runs in worker threads, so a sync engine is
# all this project needs.
#
# SESSION LIFECYCLE (get_sync_session):
#   create → yield → commit (or rollback on error) → close
# =============================================================================

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from ragchat.config import settings

_sync_engine: Engine | None = None
_sync_session_factory: sessionmaker[Session] | None = None


def get_engine() -> Engine:
    """Lazily create and cache the sync SQLAlchemy engine."""
    global _sync_engine
    if _sync_engine is None:
        _sync_engine = create_engine(settings.database_url, echo=settings.debug)
    return _sync_engine


def get_session_factory() -> sessionmaker[Session]:
    """Lazily create and cache the sync session factory."""
    global _sync_session_factory
    if _sync_session_factory is None:
        _sync_session_factory = sessionmaker(
            bind=get_engine(),
            class_=Session,
            expire_on_commit=False,
        )
    return _sync_session_factory


@contextmanager
def get_sync_session(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Context manager that provides a sync database session.

    Usage:
        with get_sync_session() as session:
            dogs = session.scalars(select(Dog)).all()
            # Auto-commits on exit, auto-rollbacks on exception
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine | None = None) -> None:
    """Create the record tables if they do not exist yet."""
    from ragchat.db.models import Base

    Base.metadata.create_all(engine or get_engine())
