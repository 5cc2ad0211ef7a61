"""Typed models for the document AI setup run."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal


StageMode = Literal["INTERNAL", "EXTERNAL"]
StepName = Literal["namespace", "trust", "stage", "grants", "verify"]
StepStatus = Literal["PASS", "FAIL", "SKIP"]

STEP_ORDER: tuple[StepName, ...] = ("namespace", "trust", "stage", "grants", "verify")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class NamespaceConfig:
    database: str
    schema: str

    @property
    def qualified(self) -> str:
        return f"{self.database}.{self.schema}"


@dataclass(frozen=True)
class StageConfig:
    """Stage options; `url` and `storage_integration` only apply to EXTERNAL."""

    name: str
    mode: StageMode = "INTERNAL"
    url: str | None = None
    storage_integration: str | None = None
    directory: bool = True
    auto_refresh: bool = True


@dataclass(frozen=True)
class TrustConfig:
    integration_name: str
    aws_role_arn: str
    allowed_locations: tuple[str, ...]
    blocked_locations: tuple[str, ...] = ()


@dataclass(frozen=True)
class AccessConfig:
    role: str
    warehouse: str | None = None
    ai_role: str = "SNOWFLAKE.CORTEX_USER"
    stage_write: bool = False


@dataclass(frozen=True)
class VerifyConfig:
    response_format: dict[str, str] = field(
        default_factory=lambda: {"title": "What is the title of this document?"}
    )


@dataclass(frozen=True)
class SetupConfig:
    """Single source of names shared by every step."""

    namespace: NamespaceConfig
    stage: StageConfig
    access: AccessConfig
    trust: TrustConfig | None = None
    verify: VerifyConfig = field(default_factory=VerifyConfig)

    @property
    def stage_fqn(self) -> str:
        return f"{self.namespace.qualified}.{self.stage.name}"


@dataclass(frozen=True)
class GrantTargets:
    """Objects the access role is granted privileges on."""

    database: str
    schema: str
    stage: str
    ai_role: str
    warehouse: str | None = None
    stage_mode: StageMode = "INTERNAL"
    stage_write: bool = False


@dataclass(frozen=True)
class TrustIdentifiers:
    """Values Snowflake generated for the out-of-band IAM trust policy."""

    integration_name: str
    iam_user_arn: str
    external_id: str
    aws_role_arn: str | None = None
    allowed_locations: tuple[str, ...] = ()


@dataclass(frozen=True)
class StagedFile:
    name: str
    relative_path: str
    size: int | None = None
    md5: str | None = None
    last_modified: str | None = None


@dataclass(frozen=True)
class VerificationResult:
    stage: str
    files: list[StagedFile]
    sample_file: str
    extraction: dict[str, Any]


@dataclass(frozen=True)
class SetupContext:
    """Execution context shared by step handlers."""

    run_id: str
    connection: Any
    policy_dir: Path = Path("out")
    documents: tuple[Path, ...] = ()


@dataclass(frozen=True)
class StepResult:
    """Normalized result contract for every setup step."""

    run_id: str
    step: StepName
    status: StepStatus
    details: str | None = None
    remedy: str | None = None
    statements: tuple[str, ...] = ()
    payload: dict[str, Any] = field(default_factory=dict)
    executed_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class SetupSummary:
    """Aggregated run summary used for the exit code and evidence file."""

    run_id: str
    total: int
    passed: int
    failed: int
    skipped: int
    results: list[StepResult]

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def failed_step(self) -> StepResult | None:
        return next((item for item in self.results if item.status == "FAIL"), None)
