"""Snowflake connection helpers for provisioning modules."""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Any, Generator

import snowflake.connector
import yaml
from snowflake.connector import SnowflakeConnection

DEFAULT_ENV_CONFIG = "config/env.dev.yaml"
CONNECTION_KEYS = ("account", "user", "role", "warehouse")


def load_yaml_config(path: str = DEFAULT_ENV_CONFIG) -> dict[str, Any]:
    """Read the `snowflake:` section of the local dev config, if there is one."""
    if not os.path.exists(path):
        return {}
    with open(path, "r") as f:
        return (yaml.safe_load(f) or {}).get("snowflake", {}) or {}


def connection_params(path: str = DEFAULT_ENV_CONFIG) -> dict[str, Any]:
    """Build connector kwargs.

    SNOWFLAKE_<KEY> environment variables win over config/env.dev.yaml.
    The password only ever comes from SNOWFLAKE_PASSWORD.
    """
    defaults = load_yaml_config(path)
    params: dict[str, Any] = {
        key: os.getenv(f"SNOWFLAKE_{key.upper()}", defaults.get(key)) for key in CONNECTION_KEYS
    }
    params["password"] = os.getenv("SNOWFLAKE_PASSWORD")

    missing = [f"SNOWFLAKE_{key.upper()}" for key in ("account", "user") if not params[key]]
    if missing:
        raise ValueError("Missing Snowflake connection settings: " + ", ".join(missing))
    # Setup runs before the target database exists, so never pin one here.
    return {key: value for key, value in params.items() if value is not None}


@contextmanager
def get_connection() -> Generator[SnowflakeConnection, None, None]:
    """Open a Snowflake connection for one setup run."""
    # DDL auto-commits in Snowflake, so there is nothing to roll back.
    conn = snowflake.connector.connect(autocommit=True, **connection_params())
    try:
        yield conn
    finally:
        conn.close()


def fetch_dicts(
    conn: SnowflakeConnection,
    sql: str,
    params: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """Execute query and return rows keyed by lowercase column name."""
    with conn.cursor() as cur:
        cur.execute(sql, params)
        rows = cur.fetchall() or []
        description = cur.description or []
    columns = [str(col[0]).lower() for col in description]
    return [dict(zip(columns, row)) for row in rows]
