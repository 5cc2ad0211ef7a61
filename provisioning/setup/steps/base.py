"""Shared statement execution for setup steps."""

from __future__ import annotations

from typing import Any, Iterable

from snowflake.connector.errors import Error as SnowflakeError

from provisioning.common.logging import get_logger
from provisioning.setup.errors import InsufficientPrivilegesError, is_insufficient_privileges

logger = get_logger(__name__)


def execute_statements(conn: Any, statements: Iterable[str]) -> list[str]:
    """Run DDL statements in order and return what was executed.

    Statements run without bind parameters so literal % signs in URLs or
    JSON stay untouched.
    """
    executed: list[str] = []
    for statement in statements:
        headline = statement.strip().splitlines()[0]
        logger.info("Executing statement", extra={"object": headline})
        try:
            with conn.cursor() as cur:
                cur.execute(statement)
        except SnowflakeError as exc:
            if is_insufficient_privileges(exc):
                raise InsufficientPrivilegesError(
                    f"{getattr(exc, 'msg', exc)} (statement: {headline})"
                ) from exc
            raise
        executed.append(statement)
    return executed
