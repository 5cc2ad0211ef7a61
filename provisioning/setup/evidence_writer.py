"""Persist setup step outcomes to the log and a local JSON artifact."""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Any

from provisioning.common.logging import get_logger
from provisioning.common.utils import write_json
from provisioning.setup.models import SetupSummary, StepResult

logger = get_logger(__name__)


class RunEvidenceWriter:
    """Collects step results and writes evidence/<run_id>.json at the end."""

    def __init__(self, out_dir: str | Path = "evidence") -> None:
        self.out_dir = Path(out_dir)
        self.persisted: list[StepResult] = []

    def persist(self, result: StepResult) -> None:
        self.persisted.append(result)
        extra = {"run_id": result.run_id, "step": result.step}
        if result.status == "FAIL":
            logger.error("%s: %s", result.status, result.details, extra=extra)
            if result.remedy:
                logger.error("Remedy: %s", result.remedy, extra=extra)
        else:
            logger.info("%s: %s", result.status, result.details, extra=extra)

    def write(self, summary: SetupSummary) -> Path:
        """Write the run summary for offline audit."""
        payload: dict[str, Any] = {
            "run_id": summary.run_id,
            "ok": summary.ok,
            "total": summary.total,
            "passed": summary.passed,
            "failed": summary.failed,
            "skipped": summary.skipped,
            "results": [asdict(result) for result in summary.results],
        }
        return write_json(self.out_dir / f"{summary.run_id}.json", payload)
