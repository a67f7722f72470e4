"""Read-only access to the business database through SQLAlchemy."""

import logging
from typing import Any

from sqlalchemy import Engine, create_engine, inspect

logger = logging.getLogger(__name__)


class BusinessDatabase:
    """Schema introspection and read-only statement execution.

    Statements run inside a transaction that is always rolled back. Where the
    engine supports it the transaction (or connection) is also switched to
    read-only mode, so a mutating statement fails at the storage layer too.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    @classmethod
    def from_url(cls, url: str) -> "BusinessDatabase":
        return cls(create_engine(url))

    def list_tables(self) -> list[str]:
        return inspect(self.engine).get_table_names()

    def list_columns(self, table: str) -> list[tuple[str, str]]:
        return [(col["name"], str(col["type"])) for col in inspect(self.engine).get_columns(table)]

    def adapter_name(self) -> str:
        return self.engine.dialect.name

    def execute(self, statement: str, max_rows: int | None = None) -> list[dict[str, Any]]:
        """Run a read-only statement and return rows as dicts."""
        dialect = self.engine.dialect.name
        logger.debug("Executing read-only statement on %s", dialect)
        with self.engine.connect() as conn:
            if dialect in ("postgresql", "mysql", "mariadb"):
                conn.exec_driver_sql("SET TRANSACTION READ ONLY")
            elif dialect == "sqlite":
                conn.exec_driver_sql("PRAGMA query_only = ON")
            try:
                result = conn.exec_driver_sql(statement)
                if not result.returns_rows:
                    return []
                fetched = result.fetchmany(max_rows) if max_rows else result.fetchall()
                return [dict(row._mapping) for row in fetched]
            finally:
                conn.rollback()
                if dialect == "sqlite":
                    conn.exec_driver_sql("PRAGMA query_only = OFF")
