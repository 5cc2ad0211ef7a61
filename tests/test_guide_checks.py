"""Tests for setup guide consistency checks."""

from __future__ import annotations

from pathlib import Path

from provisioning.docs.guide_checks import (
    check_external_id_placeholders,
    check_guide,
    check_json_blocks,
    check_no_real_external_ids,
    check_sql_blocks,
    check_sql_statement,
    check_stage_names,
    extract_blocks,
)
from scripts.check_guide import main as check_guide_main

ROOT = Path(__file__).resolve().parents[1]
GUIDE = ROOT / "docs" / "SETUP_GUIDE.md"
POLICIES = sorted((ROOT / "policies").glob("*.json"))


def _guide(*sql_blocks: str) -> str:
    return "\n\n".join(f"```sql\n{block}\n```" for block in sql_blocks) + "\n"


def test_shipped_guide_and_policies_are_consistent() -> None:
    assert POLICIES
    assert check_guide(GUIDE, POLICIES) == []


def test_cli_exit_codes(tmp_path: Path) -> None:
    broken = tmp_path / "guide.md"
    broken.write_text(_guide("LIST @MISSING_STAGE;"), encoding="utf-8")

    assert check_guide_main([str(GUIDE), "--policies", str(ROOT / "policies")]) == 0
    assert check_guide_main([str(broken), "--policies", str(tmp_path)]) == 1


def test_extract_blocks_reports_first_body_line() -> None:
    markdown = "# Title\n\n```sql\nSELECT 1;\n```\n"

    (block,) = extract_blocks(markdown, "sql")

    assert block.line == 4
    assert block.body == "SELECT 1;\n"


def test_stage_referenced_but_never_created() -> None:
    markdown = _guide(
        "CREATE STAGE IF NOT EXISTS DB.S.DOC_STAGE DIRECTORY = (ENABLE = TRUE);",
        "LIST @DB.S.DOCS_STAGE;",
    )

    issues = check_stage_names(markdown)

    assert [issue.message for issue in issues] == ["stage DOCS_STAGE is referenced but never created"]


def test_stage_referenced_before_creation() -> None:
    markdown = _guide(
        "GRANT READ ON STAGE DB.S.DOC_STAGE TO ROLE R;",
        "CREATE STAGE DB.S.DOC_STAGE;",
    )

    issues = check_stage_names(markdown)

    assert len(issues) == 1
    assert "before it is created" in issues[0].message


def test_stage_inside_to_file_literal_counts_as_reference() -> None:
    markdown = _guide(
        "CREATE STAGE DB.S.DOC_STAGE;",
        "SELECT AI_EXTRACT(file => TO_FILE('@DB.S.DOC_STAGE', 'a.pdf'));",
    )

    assert check_stage_names(markdown) == []


def test_guide_without_any_stage() -> None:
    issues = check_stage_names(_guide("SELECT 1;"))

    assert [issue.message for issue in issues] == ["guide never creates a stage"]


def test_sql_statement_problems() -> None:
    assert check_sql_statement("CREATE DATABASE IF NOT EXISTS DB;") == []
    assert "statement is not terminated by ';'" in check_sql_statement("CREATE DATABASE DB")
    assert "unbalanced single quotes" in check_sql_statement("SELECT 'a;")
    assert "unbalanced parentheses" in check_sql_statement("SELECT COUNT(*;")
    assert check_sql_statement("CRATE DATABASE DB;") == ["unexpected leading keyword 'CRATE'"]
    assert check_sql_statement("GRANT USAGE ON DATABASE <db> TO ROLE R;") == [
        "placeholder <db> outside a string literal"
    ]
    assert check_sql_statement("SELECT '<inside a string>';") == []
    assert "unrendered template placeholder" in check_sql_statement("USE ROLE {{role}};")


def test_sql_issues_point_at_the_failing_statement() -> None:
    markdown = (
        "# Setup\n"
        "\n"
        "```sql\n"
        "-- namespace\n"
        "CREATE DATABASE IF NOT EXISTS DB;\n"
        "\n"
        "-- schema\n"
        "CRATE SCHEMA IF NOT EXISTS DB.S;\n"
        "GRANT USAGE\n"
        "  ON DATABASE <db> TO ROLE R;\n"
        "```\n"
    )

    issues = check_sql_blocks(markdown)

    assert [(issue.line, issue.message) for issue in issues] == [
        (8, "unexpected leading keyword 'CRATE'"),
        (9, "placeholder <db> outside a string literal"),
    ]


def test_trust_policy_with_real_external_id_is_flagged() -> None:
    policy = {
        "Statement": [
            {"Condition": {"StringEquals": {"sts:ExternalId": "MYACCOUNT_SFCRole=2_abcdefgh="}}}
        ]
    }

    issues = check_external_id_placeholders(policy, line=7)

    assert len(issues) == 1
    assert issues[0].line == 7
    assert check_no_real_external_ids('"sts:ExternalId": "MYACCOUNT_SFCRole=2_abcdefgh="')


def test_json_blocks_must_parse() -> None:
    markdown = "```json\n{\"Version\": \"2012-10-17\",}\n```\n"

    issues = check_json_blocks(markdown)

    assert len(issues) == 1
    assert issues[0].check == "json"
