"""Namespace provisioner: database and schema."""

from __future__ import annotations

from typing import Any

from provisioning.common.identifiers import identifier
from provisioning.common.sql_templates import render_statements
from provisioning.setup.models import SetupConfig, SetupContext, StepResult
from provisioning.setup.steps.base import execute_statements


def ensure_namespace(conn: Any, database: str, schema: str) -> list[str]:
    """Create database and schema if missing; re-running is a no-op."""
    statements = render_statements(
        "namespace.sql",
        {
            "database": identifier(database, parts=1),
            "schema": identifier(schema, parts=1),
        },
    )
    return execute_statements(conn, statements)


class NamespaceStep:
    name = "namespace"

    def handle(self, config: SetupConfig, context: SetupContext) -> StepResult:
        executed = ensure_namespace(
            context.connection,
            config.namespace.database,
            config.namespace.schema,
        )
        return StepResult(
            run_id=context.run_id,
            step="namespace",
            status="PASS",
            details=f"Namespace {config.namespace.qualified.upper()} is ready",
            statements=tuple(executed),
        )
