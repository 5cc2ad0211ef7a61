"""Setup engine running the provisioning steps in dependency order."""

from __future__ import annotations

from typing import Iterable

from snowflake.connector.errors import Error as SnowflakeError

from provisioning.setup.errors import SetupError
from provisioning.setup.evidence_writer import RunEvidenceWriter
from provisioning.setup.models import (
    STEP_ORDER,
    SetupConfig,
    SetupContext,
    SetupSummary,
    StepName,
    StepResult,
)
from provisioning.setup.steps import GrantsStep, NamespaceStep, StageStep, TrustStep, VerifyStep


class SetupEngine:
    """Executes steps in order, stops at the first failure, persists every result."""

    def __init__(
        self,
        writer: RunEvidenceWriter | None = None,
        steps: dict[str, object] | None = None,
    ) -> None:
        self._writer = writer or RunEvidenceWriter()
        self._steps = steps or {
            "namespace": NamespaceStep(),
            "trust": TrustStep(),
            "stage": StageStep(),
            "grants": GrantsStep(),
            "verify": VerifyStep(),
        }

    def run(
        self,
        config: SetupConfig,
        context: SetupContext,
        *,
        only: Iterable[StepName] | None = None,
    ) -> SetupSummary:
        selected = set(only) if only is not None else set(STEP_ORDER)
        unknown = selected - set(STEP_ORDER)
        if unknown:
            raise ValueError(f"Unknown setup step(s): {', '.join(sorted(unknown))}")

        results: list[StepResult] = []
        failed: StepResult | None = None
        for step in STEP_ORDER:
            if step not in selected:
                continue
            if failed is not None:
                result = StepResult(
                    run_id=context.run_id,
                    step=step,
                    status="SKIP",
                    details=f"Not run: step {failed.step} failed",
                )
            else:
                result = self._run_step(step, config, context)
                if result.status == "FAIL":
                    failed = result
            results.append(result)
            self._writer.persist(result)

        return SetupSummary(
            run_id=context.run_id,
            total=len(results),
            passed=sum(1 for item in results if item.status == "PASS"),
            failed=sum(1 for item in results if item.status == "FAIL"),
            skipped=sum(1 for item in results if item.status == "SKIP"),
            results=results,
        )

    def _run_step(self, step: StepName, config: SetupConfig, context: SetupContext) -> StepResult:
        handler = self._steps[step]
        try:
            return handler.handle(config, context)  # type: ignore[attr-defined]
        except SetupError as exc:
            return StepResult(
                run_id=context.run_id,
                step=step,
                status="FAIL",
                details=f"{exc.category}: {exc}",
                remedy=exc.remedy,
            )
        except SnowflakeError as exc:
            return StepResult(
                run_id=context.run_id,
                step=step,
                status="FAIL",
                details=str(exc),
                remedy="Inspect the Snowflake error above, fix it and re-run this step.",
            )
        except (ValueError, OSError) as exc:
            # Bad names, paths or policy inputs found while the step was running.
            return StepResult(
                run_id=context.run_id,
                step=step,
                status="FAIL",
                details=f"invalid input: {exc}",
                remedy="Fix the setup config or the command-line arguments and re-run this step.",
            )
