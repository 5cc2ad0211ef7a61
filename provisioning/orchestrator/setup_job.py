"""Setup entrypoint: provision the document AI objects in one run."""

from __future__ import annotations

import argparse
from pathlib import Path

from provisioning.common.logging import configure_logging, get_logger
from provisioning.common.snowflake_client import get_connection
from provisioning.common.utils import new_run_id
from provisioning.setup.config import DEFAULT_CONFIG_PATH, SetupConfigLoader
from provisioning.setup.engine import SetupEngine
from provisioning.setup.evidence_writer import RunEvidenceWriter
from provisioning.setup.models import STEP_ORDER, SetupContext

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH)
    parser.add_argument(
        "--step",
        action="append",
        choices=[*STEP_ORDER, "all"],
        help="Run only this step (repeatable). Defaults to all steps.",
    )
    parser.add_argument("--upload", nargs="*", default=[], help="Local PDFs to PUT on an internal stage")
    parser.add_argument("--policy-dir", default="out")
    parser.add_argument("--evidence-dir", default="evidence")
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the selected setup steps and return a process exit code."""
    args = parse_args(argv)
    configure_logging(args.log_level)
    config = SetupConfigLoader().load(args.config)
    steps = None if not args.step or "all" in args.step else args.step
    run_id = new_run_id()
    writer = RunEvidenceWriter(args.evidence_dir)

    with get_connection() as conn:
        context = SetupContext(
            run_id=run_id,
            connection=conn,
            policy_dir=Path(args.policy_dir),
            documents=tuple(Path(path) for path in args.upload),
        )
        summary = SetupEngine(writer=writer).run(config, context, only=steps)

    evidence = writer.write(summary)
    logger.info(
        "Setup finished: %s passed, %s failed, %s skipped (evidence: %s)",
        summary.passed,
        summary.failed,
        summary.skipped,
        evidence,
        extra={"run_id": run_id},
    )
    return 0 if summary.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
