"""Stage provisioner: internal SSE stage or S3-backed external stage."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Iterable

from provisioning.common.identifiers import identifier, stage_ref, string_literal
from provisioning.common.logging import get_logger
from provisioning.common.sql_templates import render_statements
from provisioning.common.utils import sha256_for_file
from provisioning.setup.errors import DocumentNotFoundError, InvalidStageError, MissingIntegrationError
from provisioning.setup.models import SetupConfig, SetupContext, StepResult
from provisioning.setup.steps.base import execute_statements

logger = get_logger(__name__)

S3_URL = re.compile(r"^s3(gov)?://[a-z0-9][a-z0-9.\-]{1,61}[a-z0-9](/.*)?$")


def _flag(value: bool) -> str:
    return "TRUE" if value else "FALSE"


def create_stage(
    conn: Any,
    name: str,
    mode: str,
    *,
    url: str | None = None,
    storage_integration: str | None = None,
    directory: bool = True,
    auto_refresh: bool = True,
) -> list[str]:
    """Create the document stage.

    INTERNAL stages get server-side encryption; EXTERNAL stages point at an
    S3 URL through a storage integration. Both keep a directory table.
    """
    stage_mode = (mode or "").strip().upper()
    stage = identifier(name)
    if stage_mode == "INTERNAL":
        if url:
            raise InvalidStageError("url only applies to EXTERNAL stages")
        statements = render_statements(
            "stage_internal.sql",
            {"stage": stage, "directory": _flag(directory)},
        )
    elif stage_mode == "EXTERNAL":
        if not storage_integration:
            raise MissingIntegrationError(
                f"EXTERNAL stage {stage} needs a storage integration name"
            )
        if not url or not S3_URL.match(url):
            raise InvalidStageError(f"EXTERNAL stage {stage} needs an s3:// URL, got {url!r}")
        statements = render_statements(
            "stage_external.sql",
            {
                "stage": stage,
                "url": string_literal(url if url.endswith("/") else url + "/"),
                "storage_integration": identifier(storage_integration, parts=1),
                "directory": _flag(directory),
                # Auto refresh is meaningless without a directory table.
                "auto_refresh": _flag(directory and auto_refresh),
            },
        )
    else:
        raise InvalidStageError(f"Unsupported stage mode: {mode!r}")
    return execute_statements(conn, statements)


def refresh_stage(conn: Any, name: str) -> list[str]:
    """Sync the stage directory table with the files actually stored."""
    statements = render_statements("refresh_stage.sql", {"stage": identifier(name)})
    return execute_statements(conn, statements)


def check_documents(paths: Iterable[str | Path]) -> list[Path]:
    """Resolve upload paths; every one must be an existing local file."""
    files = [Path(path) for path in paths]
    missing = [str(path) for path in files if not path.is_file()]
    if missing:
        raise DocumentNotFoundError(f"Missing documents: {', '.join(missing)}")
    return files


def upload_documents(conn: Any, name: str, paths: Iterable[str | Path]) -> list[dict[str, Any]]:
    """PUT local documents onto an internal stage and refresh its directory.

    PDFs are uploaded uncompressed; AI_EXTRACT cannot read gzipped files.
    """
    files = check_documents(paths)

    manifest: list[dict[str, Any]] = []
    statements = []
    for path in files:
        source = string_literal("file://" + path.resolve().as_posix())
        statements.append(f"PUT {source} {stage_ref(name)} AUTO_COMPRESS=FALSE OVERWRITE=TRUE")
        manifest.append(
            {
                "filename": path.name,
                "bytes": path.stat().st_size,
                "sha256": sha256_for_file(path),
            }
        )
    execute_statements(conn, statements)
    if manifest:
        refresh_stage(conn, name)
    return manifest


class StageStep:
    name = "stage"

    def handle(self, config: SetupConfig, context: SetupContext) -> StepResult:
        stage_config = config.stage
        # Upload inputs are checked before any DDL runs.
        documents: list[Path] = []
        if context.documents:
            if stage_config.mode != "INTERNAL":
                raise InvalidStageError(
                    f"Documents can only be uploaded to INTERNAL stages, not {stage_config.mode}",
                    remedy="Copy the files to the S3 prefix behind the stage, then re-run verify.",
                )
            documents = check_documents(context.documents)

        executed = create_stage(
            context.connection,
            config.stage_fqn,
            stage_config.mode,
            url=stage_config.url,
            storage_integration=stage_config.storage_integration,
            directory=stage_config.directory,
            auto_refresh=stage_config.auto_refresh,
        )
        payload: dict[str, Any] = {"stage": config.stage_fqn.upper(), "mode": stage_config.mode}
        if documents:
            payload["uploaded"] = upload_documents(context.connection, config.stage_fqn, documents)
            logger.info(
                "Uploaded %s document(s)",
                len(payload["uploaded"]),
                extra={"run_id": context.run_id, "step": "stage"},
            )
        return StepResult(
            run_id=context.run_id,
            step="stage",
            status="PASS",
            details=f"{stage_config.mode} stage {config.stage_fqn.upper()} is ready",
            statements=tuple(executed),
            payload=payload,
        )
