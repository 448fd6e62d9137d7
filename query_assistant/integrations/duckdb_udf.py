"""DuckDB integration: a ``query_assistant(prompt)`` scalar SQL function.

Example:
    >>> import duckdb
    >>> conn = duckdb.connect("shop.duckdb")
    >>> register_query_assistant(conn, GenerationSession.from_config())
    >>> conn.sql("SELECT query_assistant('total revenue per month')").fetchone()[0]

The function answers with SQL generated from the prompt plus the DDL of
every table visible in the database at call time.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from query_assistant.engine.session import GenerationSession

logger = logging.getLogger(__name__)

DEFAULT_FUNCTION_NAME = "query_assistant"


def collect_ddl(conn: Any) -> str:
    """Return the CREATE TABLE statements of all tables, one per line."""
    rows = conn.execute("SELECT sql FROM duckdb_tables()").fetchall()
    return "\n".join(row[0] for row in rows if row[0])


def make_query_assistant(session: GenerationSession, ddl_source: Callable[[], str]) -> Callable[[str], str]:
    def query_assistant(prompt: str) -> str:
        schema = ddl_source()
        logger.debug("query_assistant: prompt=%r schema_chars=%d", prompt, len(schema))
        return session.generate(prompt, schema)

    return query_assistant


def register_query_assistant(
    conn: Any,
    session: GenerationSession,
    *,
    name: str = DEFAULT_FUNCTION_NAME,
) -> Callable[[str], str]:
    """Register ``name(VARCHAR) -> VARCHAR`` on `conn`.

    The DDL is read through a separate cursor so the lookup does not run on
    the connection that is executing the calling query.
    """
    from duckdb.sqltypes import VARCHAR

    def ddl_source() -> str:
        cursor = conn.cursor()
        try:
            return collect_ddl(cursor)
        finally:
            cursor.close()

    fn = make_query_assistant(session, ddl_source)
    conn.create_function(name, fn, [VARCHAR], VARCHAR)
    return fn
