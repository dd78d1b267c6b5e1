# =============================================================================
# Relational Record Store
# =============================================================================
#
# The only two operations ingestion needs from the relational database:
#   find_all() — every row of the source table, as plain dicts
#   execute()  — run a statement such as delete(Dog), return rows affected
#
# No query planning happens here; callers hand over ready statements.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Executable, select
from sqlalchemy.orm import Session, sessionmaker

from ragchat.db.engine import get_sync_session
from ragchat.db.models import Base, Dog

logger = logging.getLogger(__name__)


class SqlRecordStore:
    """
    Record source backed by one ORM model.

    Args:
        model: ORM class whose rows are returned by find_all().
        session_factory: Optional factory (tests pass an in-memory SQLite
            one); defaults to the configured engine.
    """

    def __init__(
        self,
        model: type[Base] = Dog,
        session_factory: sessionmaker[Session] | None = None,
    ) -> None:
        self.model = model
        self.name = model.__tablename__
        self._session_factory = session_factory

    def find_all(self) -> list[dict[str, Any]]:
        """All rows ordered by primary key, as column → value dicts."""
        columns = [column.key for column in self.model.__table__.columns]
        primary_key = list(self.model.__table__.primary_key.columns)

        with get_sync_session(self._session_factory) as session:
            rows = session.scalars(select(self.model).order_by(*primary_key)).all()
            records = [{name: getattr(row, name) for name in columns} for row in rows]

        logger.info("Read %d records from '%s'", len(records), self.name)
        return records

    def execute(self, statement: Executable) -> int:
        """Execute a statement (e.g. delete(Dog)) and return rows affected."""
        with get_sync_session(self._session_factory) as session:
            result = session.execute(statement)
            affected = getattr(result, "rowcount", -1)

        logger.info("Executed statement on '%s': %d rows affected", self.name, affected)
        return affected
