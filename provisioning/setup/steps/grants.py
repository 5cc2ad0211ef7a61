"""Access grantor: least-privilege grants for the notebook role."""

from __future__ import annotations

from typing import Any

from provisioning.common.identifiers import identifier, qualify
from provisioning.setup.models import GrantTargets, SetupConfig, SetupContext, StepResult
from provisioning.setup.steps.base import execute_statements


def build_grant_statements(role: str, targets: GrantTargets) -> list[str]:
    """Return the GRANT statements for one role, in dependency order."""
    grantee = identifier(role, parts=1)
    database = identifier(targets.database, parts=1)
    schema = f"{database}.{identifier(targets.schema, parts=1)}"
    stage = qualify(targets.database, targets.schema, targets.stage)

    statements = [
        f"GRANT USAGE ON DATABASE {database} TO ROLE {grantee}",
        f"GRANT USAGE ON SCHEMA {schema} TO ROLE {grantee}",
    ]
    if targets.warehouse:
        warehouse = identifier(targets.warehouse, parts=1)
        statements.append(f"GRANT USAGE ON WAREHOUSE {warehouse} TO ROLE {grantee}")

    if targets.stage_mode == "EXTERNAL":
        statements.append(f"GRANT USAGE ON STAGE {stage} TO ROLE {grantee}")
    else:
        statements.append(f"GRANT READ ON STAGE {stage} TO ROLE {grantee}")
        if targets.stage_write:
            # WRITE requires READ to be granted first.
            statements.append(f"GRANT WRITE ON STAGE {stage} TO ROLE {grantee}")

    ai_role = identifier(targets.ai_role)
    if "." in ai_role:
        statements.append(f"GRANT DATABASE ROLE {ai_role} TO ROLE {grantee}")
    else:
        statements.append(f"GRANT ROLE {ai_role} TO ROLE {grantee}")
    return statements


def grant_access(conn: Any, role: str, targets: GrantTargets) -> list[str]:
    """Apply grants; raises InsufficientPrivilegesError when the caller cannot grant."""
    return execute_statements(conn, build_grant_statements(role, targets))


class GrantsStep:
    name = "grants"

    def handle(self, config: SetupConfig, context: SetupContext) -> StepResult:
        targets = GrantTargets(
            database=config.namespace.database,
            schema=config.namespace.schema,
            stage=config.stage.name,
            ai_role=config.access.ai_role,
            warehouse=config.access.warehouse,
            stage_mode=config.stage.mode,
            stage_write=config.access.stage_write,
        )
        executed = grant_access(context.connection, config.access.role, targets)
        return StepResult(
            run_id=context.run_id,
            step="grants",
            status="PASS",
            details=f"{len(executed)} grant(s) applied to role {config.access.role.upper()}",
            statements=tuple(executed),
        )
