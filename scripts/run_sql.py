"""
Generic SQL runner for the provisioning SQL templates.

Templates are rendered with the names from the setup config before they run.

Usage:
    python -m scripts.run_sql provisioning/sql/namespace.sql
    python -m scripts.run_sql provisioning/sql/ --config config/setup.yaml
    python -m scripts.run_sql provisioning/sql/namespace.sql --dry-run
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any

from provisioning.common.identifiers import identifier, string_literal
from provisioning.common.snowflake_client import fetch_dicts, get_connection
from provisioning.common.sql_templates import render_sql, split_sql_statements, strip_comments
from provisioning.setup.config import DEFAULT_CONFIG_PATH, SetupConfigLoader
from provisioning.setup.models import SetupConfig
from provisioning.setup.steps.base import execute_statements


def template_context(config: SetupConfig) -> dict[str, str]:
    """Map setup config values onto template placeholders."""
    stage = config.stage
    context = {
        "database": identifier(config.namespace.database, parts=1),
        "schema": identifier(config.namespace.schema, parts=1),
        "stage": identifier(config.stage_fqn, parts=3),
        "directory": "TRUE" if stage.directory else "FALSE",
        "auto_refresh": "TRUE" if stage.directory and stage.auto_refresh else "FALSE",
    }
    if stage.url:
        context["url"] = string_literal(stage.url if stage.url.endswith("/") else stage.url + "/")
    if stage.storage_integration:
        context["storage_integration"] = identifier(stage.storage_integration, parts=1)
    if config.trust is not None:
        context["integration"] = identifier(config.trust.integration_name, parts=1)
        context["aws_role_arn"] = string_literal(config.trust.aws_role_arn)
        context["allowed_locations"] = ", ".join(
            string_literal(location) for location in config.trust.allowed_locations
        )
        context["blocked_locations_clause"] = (
            "\n  STORAGE_BLOCKED_LOCATIONS = ("
            + ", ".join(string_literal(location) for location in config.trust.blocked_locations)
            + ")"
            if config.trust.blocked_locations
            else ""
        )
    return context


def templates_for(config: SetupConfig) -> list[str]:
    """Template file names for this config, in the order the setup runs them."""
    names = ["namespace.sql"]
    if config.stage.mode == "EXTERNAL":
        if config.trust is not None:
            names.append("storage_integration.sql")
        names.append("stage_external.sql")
    else:
        names.append("stage_internal.sql")
    return names


QUERY_PREFIXES = ("DESC", "DESCRIBE", "SHOW", "LIST")


def print_rows(rows: list[dict[str, Any]]) -> None:
    """Print DESC-style rows as `property = value`, anything else as plain dicts."""
    for row in rows:
        if "property" in row:
            print(f"  {row['property']} = {row.get('property_value')}")
        else:
            print(f"  {row}")


def run_sql_file(path: Path, context: dict[str, str], dry_run: bool = False) -> None:
    """Execute one SQL file statement-by-statement on a single connection."""
    print(f"Running: {path}")

    sql = render_sql(path.read_text(), context)
    statements = split_sql_statements(sql)

    if dry_run:
        for stmt in statements:
            print(f"Would execute:\n{stmt}\n")
        return

    with get_connection() as conn:
        for stmt in statements:
            code = strip_comments(stmt).rstrip(";")
            if code.split(None, 1)[0].upper() in QUERY_PREFIXES:
                print(f"{code}:")
                print_rows(fetch_dicts(conn, code))
            else:
                execute_statements(conn, [code])

    print(f"Completed: {path} ({len(statements)} statement(s))\n")


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for running one SQL file or all SQL files in a folder."""
    parser = argparse.ArgumentParser(description="Render and run provisioning SQL templates")
    parser.add_argument("target")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args(argv)

    target = Path(args.target)
    config = SetupConfigLoader().load(args.config)
    context = template_context(config)

    if target.is_file():
        run_sql_file(target, context, args.dry_run)

    elif target.is_dir():
        # Folder mode runs the templates this config needs, in setup order.
        for name in templates_for(config):
            run_sql_file(target / name, context, args.dry_run)

    else:
        print(f"Invalid path: {target}")
        sys.exit(1)


if __name__ == "__main__":
    main()
