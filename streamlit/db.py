"""Snowflake data access for the document viewer."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any

import pandas as pd
import snowflake.connector

from provisioning.common.identifiers import stage_ref, string_literal
from provisioning.common.snowflake_client import connection_params
from provisioning.setup.config import SetupConfigLoader
from provisioning.setup.models import SetupConfig
from provisioning.setup.steps.verify import extract_from_file, list_stage


def get_connection() -> snowflake.connector.SnowflakeConnection:
    """Create a short-lived Snowflake connection for viewer queries."""
    return snowflake.connector.connect(autocommit=True, **connection_params())


def load_setup_config(path: str = "config/setup.yaml") -> SetupConfig:
    return SetupConfigLoader().load(path)


def load_documents(config: SetupConfig) -> pd.DataFrame:
    """List staged documents as a DataFrame."""
    with get_connection() as conn:
        files = list_stage(conn, config.stage_fqn, config.stage.url)
    return pd.DataFrame(
        [
            {
                "RELATIVE_PATH": item.relative_path,
                "SIZE": item.size,
                "LAST_MODIFIED": item.last_modified,
            }
            for item in files
        ],
        columns=["RELATIVE_PATH", "SIZE", "LAST_MODIFIED"],
    )


def load_document_bytes(config: SetupConfig, relative_path: str) -> bytes:
    """Download one staged file with GET and return its bytes."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        source = string_literal(f"{stage_ref(config.stage_fqn)}/{relative_path}")
        target = string_literal(Path(tmp_dir).resolve().as_uri() + "/")
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"GET {source} {target}")
        downloaded = Path(tmp_dir) / Path(relative_path).name
        return downloaded.read_bytes()


def run_extraction(
    config: SetupConfig,
    relative_path: str,
    response_format: dict[str, str],
) -> dict[str, Any]:
    with get_connection() as conn:
        return extract_from_file(conn, config.stage_fqn, relative_path, response_format)


def extraction_frame(result: dict[str, Any]) -> pd.DataFrame:
    """Flatten an AI_EXTRACT response into FIELD/ANSWER rows."""
    response = result.get("response", result) or {}
    if not isinstance(response, dict):
        response = {"response": response}
    return pd.DataFrame(
        [{"FIELD": key, "ANSWER": value} for key, value in response.items()],
        columns=["FIELD", "ANSWER"],
    )
