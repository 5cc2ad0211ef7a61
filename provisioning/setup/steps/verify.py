"""Verification step: list the stage and run AI_EXTRACT once on a sample file."""

from __future__ import annotations

import json
from typing import Any

from snowflake.connector.errors import Error as SnowflakeError

from provisioning.common.identifiers import identifier, stage_ref
from provisioning.common.logging import get_logger
from provisioning.common.snowflake_client import fetch_dicts
from provisioning.setup.errors import (
    AIFunctionNotFoundError,
    EmptyExtractionError,
    NoFilesFoundError,
    SetupError,
    StageNotFoundError,
    TrustNotEstablishedError,
    is_insufficient_privileges,
    is_missing_object,
    is_trust_failure,
    is_unknown_function,
)
from provisioning.setup.models import (
    SetupConfig,
    SetupContext,
    StagedFile,
    StepResult,
    VerificationResult,
)

logger = get_logger(__name__)

DEFAULT_RESPONSE_FORMAT = {"title": "What is the title of this document?"}

EXTRACT_SQL = """
    SELECT AI_EXTRACT(
      file => TO_FILE(%(stage)s, %(path)s),
      responseFormat => PARSE_JSON(%(response_format)s)
    ) AS RESULT
"""


def relative_stage_path(listed_name: str, stage_name: str, stage_url: str | None = None) -> str:
    """Turn a LIST name into the path TO_FILE expects.

    Internal stages list ``<stage>/<path>``; external stages list the full
    cloud URL, which is stripped back to the stage URL.
    """
    name = listed_name.strip()
    if "://" in name:
        if stage_url:
            base = stage_url if stage_url.endswith("/") else stage_url + "/"
            if name.lower().startswith(base.lower()):
                return name[len(base):]
        # Without the stage URL the best guess is the path below the bucket.
        _scheme, _, rest = name.partition("://")
        return rest.partition("/")[2]
    short_name = stage_name.lstrip("@").split(".")[-1].lower()
    head, sep, tail = name.partition("/")
    if sep and head.lower() == short_name:
        return tail
    return name


def list_stage(conn: Any, stage_name: str, stage_url: str | None = None) -> list[StagedFile]:
    """LIST the stage, sorted by name."""
    ref = stage_ref(stage_name)
    try:
        rows = fetch_dicts(conn, f"LIST {ref}")
    except SnowflakeError as exc:
        if is_trust_failure(exc):
            raise TrustNotEstablishedError(f"Snowflake could not assume the AWS role for {ref}") from exc
        if is_missing_object(exc) or is_insufficient_privileges(exc):
            raise StageNotFoundError(f"Stage {ref} does not exist or is not authorized") from exc
        raise
    files = [
        StagedFile(
            name=str(row["name"]),
            relative_path=relative_stage_path(str(row["name"]), stage_name, stage_url),
            size=int(row["size"]) if row.get("size") is not None else None,
            md5=row.get("md5"),
            last_modified=str(row["last_modified"]) if row.get("last_modified") else None,
        )
        for row in rows
        if row.get("name") and not str(row["name"]).endswith("/")
    ]
    return sorted(files, key=lambda item: item.name)


def parse_extraction(value: Any) -> dict[str, Any]:
    """Normalize an AI_EXTRACT VARIANT (JSON text or dict) into a dict."""
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError) as exc:
        raise SetupError(f"AI_EXTRACT returned a non-JSON value: {value!r}") from exc
    if not isinstance(parsed, dict):
        raise SetupError(f"AI_EXTRACT returned {type(parsed).__name__}, expected an object")
    return parsed


def extract_from_file(
    conn: Any,
    stage_name: str,
    relative_path: str,
    response_format: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Run AI_EXTRACT on one staged file."""
    params = {
        "stage": stage_ref(stage_name),
        "path": relative_path,
        "response_format": json.dumps(response_format or DEFAULT_RESPONSE_FORMAT),
    }
    try:
        with conn.cursor() as cur:
            cur.execute(EXTRACT_SQL, params)
            row = cur.fetchone()
    except SnowflakeError as exc:
        if is_unknown_function(exc):
            raise AIFunctionNotFoundError("AI_EXTRACT is not available to the current role") from exc
        if is_trust_failure(exc):
            raise TrustNotEstablishedError(f"Snowflake could not read {relative_path}") from exc
        if is_missing_object(exc):
            raise StageNotFoundError(f"Stage {params['stage']} does not exist or is not authorized") from exc
        raise
    if row is None or row[0] is None:
        raise EmptyExtractionError(f"AI_EXTRACT returned no value for {relative_path}")
    result = parse_extraction(row[0])
    if not result:
        raise EmptyExtractionError(f"AI_EXTRACT returned an empty object for {relative_path}")
    if result.get("error"):
        raise SetupError(f"AI_EXTRACT failed on {relative_path}: {result['error']}")
    return result


def verify(
    conn: Any,
    stage_name: str,
    *,
    stage_url: str | None = None,
    response_format: dict[str, str] | None = None,
) -> VerificationResult:
    """List stage contents and extract from the first file as a smoke test."""
    stage = identifier(stage_name.lstrip("@"))
    files = list_stage(conn, stage, stage_url)
    if not files:
        raise NoFilesFoundError(f"Stage @{stage} is empty")
    first = files[0]
    logger.info("Running AI_EXTRACT on a sample file", extra={"object": first.relative_path})
    extraction = extract_from_file(conn, stage, first.relative_path, response_format)
    return VerificationResult(
        stage=stage,
        files=files,
        sample_file=first.relative_path,
        extraction=extraction,
    )


class VerifyStep:
    name = "verify"

    def handle(self, config: SetupConfig, context: SetupContext) -> StepResult:
        result = verify(
            context.connection,
            config.stage_fqn,
            stage_url=config.stage.url,
            response_format=config.verify.response_format,
        )
        return StepResult(
            run_id=context.run_id,
            step="verify",
            status="PASS",
            details=(
                f"{len(result.files)} file(s) on @{result.stage}; "
                f"AI_EXTRACT answered for {result.sample_file}"
            ),
            statements=(f"LIST @{result.stage}", EXTRACT_SQL.strip()),
            payload={
                "files": [item.relative_path for item in result.files],
                "sample_file": result.sample_file,
                "response": result.extraction.get("response", result.extraction),
            },
        )
