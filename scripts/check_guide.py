"""
Consistency check for the setup guide and the IAM policy templates.

Usage:
    python -m scripts.check_guide
    python -m scripts.check_guide docs/SETUP_GUIDE.md --policies policies/
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from provisioning.docs.guide_checks import check_guide


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Check the setup guide for consistency")
    parser.add_argument("guide", nargs="?", default="docs/SETUP_GUIDE.md")
    parser.add_argument("--policies", default="policies")
    args = parser.parse_args(argv)

    policy_paths = sorted(Path(args.policies).glob("*.json"))
    issues = check_guide(args.guide, policy_paths)
    for issue in issues:
        print(issue)

    if issues:
        print(f"{len(issues)} issue(s) found in {args.guide}")
        return 1
    print(f"{args.guide}: OK ({len(policy_paths)} policy template(s) checked)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
