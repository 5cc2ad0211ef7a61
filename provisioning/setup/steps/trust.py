"""Trust configurator: storage integration plus the AWS IAM policy documents.

Snowflake generates an IAM user ARN and an external ID for every storage
integration. The AWS role named in ``STORAGE_AWS_ROLE_ARN`` must trust that
user with that external ID before any external stage can be listed. This
module creates the integration, reads both values back with
``DESC INTEGRATION`` and renders the policy JSON the operator pastes into
the AWS console. Applying it is manual: the tool holds no AWS credentials.
"""

from __future__ import annotations

import copy
import re
from pathlib import Path
from typing import Any, Iterable

from provisioning.common.identifiers import identifier, string_literal
from provisioning.common.logging import get_logger
from provisioning.common.snowflake_client import fetch_dicts
from provisioning.common.sql_templates import render_statements
from provisioning.common.utils import load_json, write_json
from provisioning.setup.errors import SetupError
from provisioning.setup.models import SetupConfig, SetupContext, StepResult, TrustIdentifiers
from provisioning.setup.steps.base import execute_statements

logger = get_logger(__name__)

POLICY_DIR = Path(__file__).resolve().parents[3] / "policies"
TRUST_POLICY_TEMPLATE = "iam_trust_policy.template.json"
S3_POLICY_TEMPLATE = "s3_access_policy.template.json"

ROLE_ARN = re.compile(r"^arn:aws(-[a-z]+)*:iam::\d{12}:role/[\w+=,.@/-]+$")
S3_LOCATION = re.compile(r"^s3(gov)?://(?P<bucket>[a-z0-9][a-z0-9.\-]{1,61}[a-z0-9])(/(?P<prefix>.*))?$")


def validate_role_arn(arn: str) -> str:
    value = (arn or "").strip()
    if not ROLE_ARN.match(value):
        raise ValueError(f"Not an AWS IAM role ARN: {arn!r}")
    return value


def parse_location(location: str) -> tuple[str, str]:
    """Split s3://bucket/prefix/ into (bucket, prefix)."""
    match = S3_LOCATION.match((location or "").strip())
    if not match:
        raise ValueError(f"Allowed locations must be s3:// URLs, got {location!r}")
    return match.group("bucket"), match.group("prefix") or ""


def storage_integration_sql(
    integration_name: str,
    provider_role_arn: str,
    allowed_locations: Iterable[str],
    blocked_locations: Iterable[str] = (),
) -> str:
    """Render the CREATE STORAGE INTEGRATION statement after validating its inputs."""
    integration = identifier(integration_name, parts=1)
    role_arn = validate_role_arn(provider_role_arn)
    allowed = [location.strip() for location in allowed_locations]
    blocked = [location.strip() for location in blocked_locations]
    if not allowed:
        raise ValueError("At least one allowed location is required")
    for location in [*allowed, *blocked]:
        parse_location(location)

    blocked_clause = ""
    if blocked:
        blocked_clause = "\n  STORAGE_BLOCKED_LOCATIONS = (" + ", ".join(
            string_literal(location) for location in blocked
        ) + ")"
    create_sql, _describe_sql = render_statements(
        "storage_integration.sql",
        {
            "integration": integration,
            "aws_role_arn": string_literal(role_arn),
            "allowed_locations": ", ".join(string_literal(location) for location in allowed),
            "blocked_locations_clause": blocked_clause,
        },
    )
    return create_sql


def configure_trust(
    conn: Any,
    integration_name: str,
    provider_role_arn: str,
    allowed_locations: Iterable[str],
    blocked_locations: Iterable[str] = (),
) -> TrustIdentifiers:
    """Create the storage integration and return the generated trust identifiers."""
    create_sql = storage_integration_sql(
        integration_name, provider_role_arn, allowed_locations, blocked_locations
    )
    execute_statements(conn, [create_sql])
    role_arn = provider_role_arn.strip()
    integration = identifier(integration_name, parts=1)
    identifiers = describe_integration(conn, integration)
    if identifiers.aws_role_arn and identifiers.aws_role_arn != role_arn:
        # IF NOT EXISTS kept an older integration with a different role.
        logger.warning(
            "Integration %s already exists with role %s; configured role %s was not applied",
            integration,
            identifiers.aws_role_arn,
            role_arn,
        )
    return identifiers


def describe_integration(conn: Any, integration_name: str) -> TrustIdentifiers:
    """Read STORAGE_AWS_IAM_USER_ARN and STORAGE_AWS_EXTERNAL_ID from DESC INTEGRATION."""
    integration = identifier(integration_name, parts=1)
    rows = fetch_dicts(conn, f"DESC INTEGRATION {integration}")
    properties = {
        str(row.get("property", "")).upper(): row.get("property_value") for row in rows
    }
    iam_user_arn = properties.get("STORAGE_AWS_IAM_USER_ARN")
    external_id = properties.get("STORAGE_AWS_EXTERNAL_ID")
    if not iam_user_arn or not external_id:
        raise SetupError(
            f"DESC INTEGRATION {integration} returned no AWS trust identifiers",
            remedy="Check that the integration is an S3 storage integration owned by the current role.",
        )
    allowed_raw = str(properties.get("STORAGE_ALLOWED_LOCATIONS") or "")
    return TrustIdentifiers(
        integration_name=integration,
        iam_user_arn=str(iam_user_arn),
        external_id=str(external_id),
        aws_role_arn=properties.get("STORAGE_AWS_ROLE_ARN"),
        allowed_locations=tuple(item.strip() for item in allowed_raw.split(",") if item.strip()),
    )


def _substitute(node: Any, values: dict[str, str]) -> Any:
    if isinstance(node, dict):
        return {key: _substitute(value, values) for key, value in node.items()}
    if isinstance(node, list):
        return [_substitute(item, values) for item in node]
    if isinstance(node, str):
        for placeholder, value in values.items():
            node = node.replace(placeholder, value)
        return node
    return node


def build_trust_policy(
    identifiers: TrustIdentifiers,
    template_dir: str | Path = POLICY_DIR,
) -> dict[str, Any]:
    """Render the IAM role trust policy with the values Snowflake generated."""
    template = load_json(Path(template_dir) / TRUST_POLICY_TEMPLATE)
    return _substitute(
        template,
        {
            "<STORAGE_AWS_IAM_USER_ARN>": identifiers.iam_user_arn,
            "<STORAGE_AWS_EXTERNAL_ID>": identifiers.external_id,
        },
    )


def build_s3_access_policy(
    locations: Iterable[str],
    template_dir: str | Path = POLICY_DIR,
) -> dict[str, Any]:
    """Render the read-only S3 permissions policy, one statement pair per location."""
    template = load_json(Path(template_dir) / S3_POLICY_TEMPLATE)
    statements: list[dict[str, Any]] = []
    for index, location in enumerate(locations, start=1):
        bucket, prefix = parse_location(location)
        for statement in template["Statement"]:
            rendered = _substitute(
                copy.deepcopy(statement),
                {"<BUCKET>": bucket, "<PREFIX>": prefix},
            )
            rendered["Sid"] = f"{statement['Sid']}{index}"
            statements.append(rendered)
    if not statements:
        raise ValueError("At least one location is required")
    return {"Version": template["Version"], "Statement": statements}


def write_trust_policy(
    out_dir: str | Path,
    identifiers: TrustIdentifiers,
    locations: Iterable[str] = (),
) -> list[Path]:
    """Write the trust (and, when locations are given, S3 access) policy files."""
    root = Path(out_dir)
    name = identifiers.integration_name.lower()
    written = [write_json(root / f"{name}_trust_policy.json", build_trust_policy(identifiers))]
    locations = list(locations)
    if locations:
        written.append(
            write_json(root / f"{name}_s3_access_policy.json", build_s3_access_policy(locations))
        )
    return written


class TrustStep:
    name = "trust"

    def handle(self, config: SetupConfig, context: SetupContext) -> StepResult:
        if config.stage.mode != "EXTERNAL":
            return StepResult(
                run_id=context.run_id,
                step="trust",
                status="SKIP",
                details="INTERNAL stage needs no storage integration",
            )
        if config.trust is None:
            return StepResult(
                run_id=context.run_id,
                step="trust",
                status="SKIP",
                details=(
                    "No trust section; using existing integration "
                    f"{config.stage.storage_integration}"
                ),
            )

        trust = config.trust
        identifiers = configure_trust(
            context.connection,
            trust.integration_name,
            trust.aws_role_arn,
            trust.allowed_locations,
            trust.blocked_locations,
        )
        executed = [
            storage_integration_sql(
                trust.integration_name,
                trust.aws_role_arn,
                trust.allowed_locations,
                trust.blocked_locations,
            ),
            f"DESC INTEGRATION {identifiers.integration_name}",
        ]
        written = write_trust_policy(context.policy_dir, identifiers, trust.allowed_locations)
        logger.warning(
            "Apply %s to the trust relationship of %s before running verify",
            written[0],
            trust.aws_role_arn,
            extra={"run_id": context.run_id, "step": "trust", "object": identifiers.integration_name},
        )
        return StepResult(
            run_id=context.run_id,
            step="trust",
            status="PASS",
            details=(
                f"Integration {identifiers.integration_name} created; trust policy written to "
                f"{written[0]} and must be applied to {trust.aws_role_arn} manually"
            ),
            statements=tuple(executed),
            payload={
                "iam_user_arn": identifiers.iam_user_arn,
                "external_id": identifiers.external_id,
                "policy_files": [str(path) for path in written],
            },
        )
