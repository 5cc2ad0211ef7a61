"""Consistency checks for the setup guide and its IAM policy templates.

The guide is documentation, so the only things worth checking are that it
stays internally consistent: stages referenced in later steps were created
in an earlier one, IAM policies carry placeholders rather than real
external IDs, and every SQL block can be pasted into a worksheet as is.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from provisioning.common.sql_templates import split_sql_statements, strip_comments

FENCE = re.compile(r"^```(?P<lang>[A-Za-z0-9_+-]*)[ \t]*\n(?P<body>.*?)^```[ \t]*$", re.M | re.S)

NAME = r"[A-Za-z_][A-Za-z0-9_$]*(?:\.[A-Za-z_][A-Za-z0-9_$]*){0,2}"
CREATE_STAGE = re.compile(
    rf"\bCREATE\s+(?:OR\s+REPLACE\s+)?STAGE\s+(?:IF\s+NOT\s+EXISTS\s+)?(?P<name>{NAME})", re.I
)
STAGE_KEYWORD_REF = re.compile(
    rf"\b(?:ON|ALTER|DESC|DESCRIBE|DROP)\s+STAGE\s+(?:IF\s+EXISTS\s+)?(?P<name>{NAME})", re.I
)
AT_REF = re.compile(rf"(?<![\w@])@(?P<name>{NAME})")

PLACEHOLDER = re.compile(r"^(<[A-Z0-9_]+>|\{\{\s*\w+\s*\}\})$")
REAL_EXTERNAL_ID = re.compile(r"[A-Z0-9]+_SFCRole=\d+_[A-Za-z0-9+/=]+")
ANGLE_PLACEHOLDER = re.compile(r"<[A-Za-z0-9_ -]+>")

SQL_KEYWORDS = {
    "ALTER",
    "CALL",
    "CREATE",
    "DESC",
    "DESCRIBE",
    "DROP",
    "GET",
    "GRANT",
    "LIST",
    "LS",
    "PUT",
    "REMOVE",
    "REVOKE",
    "SELECT",
    "SHOW",
    "USE",
    "WITH",
}


@dataclass(frozen=True)
class CodeBlock:
    lang: str
    line: int
    body: str


@dataclass(frozen=True)
class GuideIssue:
    check: str
    line: int | None
    message: str

    def __str__(self) -> str:
        where = f"line {self.line}" if self.line is not None else "-"
        return f"[{self.check}] {where}: {self.message}"


def extract_blocks(markdown: str, lang: str | None = None) -> list[CodeBlock]:
    """Return fenced code blocks with the 1-based line of their first body line."""
    blocks = []
    for match in FENCE.finditer(markdown):
        block_lang = match.group("lang").lower()
        if lang is not None and block_lang != lang:
            continue
        line = markdown.count("\n", 0, match.start("body")) + 1
        blocks.append(CodeBlock(lang=block_lang, line=line, body=match.group("body")))
    return blocks


def _short(name: str) -> str:
    return name.split(".")[-1].upper()


def _without_strings(sql: str) -> str:
    """Blank out single-quoted literals so names inside strings are ignored."""
    return re.sub(r"'(?:[^']|'')*'", "''", sql)


def stage_names(blocks: Iterable[CodeBlock]) -> tuple[dict[str, int], list[tuple[str, int]]]:
    """Return (created stage -> line, [(referenced stage, line)])."""
    created: dict[str, int] = {}
    referenced: list[tuple[str, int]] = []
    for block in blocks:
        for offset, raw_line in enumerate(block.body.splitlines()):
            line_no = block.line + offset
            code = strip_comments(raw_line)
            if not code:
                continue
            for match in CREATE_STAGE.finditer(code):
                created.setdefault(_short(match.group("name")), line_no)
            for match in STAGE_KEYWORD_REF.finditer(code):
                referenced.append((_short(match.group("name")), line_no))
            # TO_FILE('@STAGE', ...) keeps the stage inside a string literal.
            for match in AT_REF.finditer(code):
                referenced.append((_short(match.group("name")), line_no))
    return created, referenced


def check_stage_names(markdown: str) -> list[GuideIssue]:
    """Every stage referenced must be created earlier in the guide."""
    created, referenced = stage_names(extract_blocks(markdown, "sql"))
    issues = []
    if not created:
        issues.append(GuideIssue("stage-names", None, "guide never creates a stage"))
    for name, line in referenced:
        if name not in created:
            issues.append(
                GuideIssue("stage-names", line, f"stage {name} is referenced but never created")
            )
        elif line < created[name]:
            issues.append(
                GuideIssue(
                    "stage-names",
                    line,
                    f"stage {name} is referenced before it is created (line {created[name]})",
                )
            )
    return issues


def _external_ids(node: Any) -> list[str]:
    found: list[str] = []
    if isinstance(node, dict):
        for key, value in node.items():
            if key == "sts:ExternalId":
                found.extend(value if isinstance(value, list) else [value])
            else:
                found.extend(_external_ids(value))
    elif isinstance(node, list):
        for item in node:
            found.extend(_external_ids(item))
    return found


def check_external_id_placeholders(policy: dict[str, Any], line: int | None = None) -> list[GuideIssue]:
    """The trust policy must carry a placeholder, never a generated external ID."""
    issues = []
    for value in _external_ids(policy):
        if not isinstance(value, str) or not PLACEHOLDER.match(value):
            issues.append(
                GuideIssue(
                    "external-id",
                    line,
                    f"sts:ExternalId must be a placeholder like <STORAGE_AWS_EXTERNAL_ID>, got {value!r}",
                )
            )
    return issues


def check_no_real_external_ids(text: str) -> list[GuideIssue]:
    issues = []
    for match in REAL_EXTERNAL_ID.finditer(text):
        line = text.count("\n", 0, match.start()) + 1
        issues.append(GuideIssue("external-id", line, "looks like a real Snowflake external ID"))
    return issues


def check_sql_statement(statement: str) -> list[str]:
    """Return problems that stop a statement from running when pasted on its own."""
    problems: list[str] = []
    code = strip_comments(statement)
    if not code:
        return problems
    first = code.split(None, 1)[0].upper()
    if first not in SQL_KEYWORDS:
        problems.append(f"unexpected leading keyword {first!r}")
    if not code.rstrip().endswith(";"):
        problems.append("statement is not terminated by ';'")
    if code.replace("''", "").count("'") % 2:
        problems.append("unbalanced single quotes")
    outside = _without_strings(code)
    depth = 0
    for char in outside:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                break
    if depth != 0:
        problems.append("unbalanced parentheses")
    placeholder = ANGLE_PLACEHOLDER.search(outside)
    if placeholder:
        problems.append(f"placeholder {placeholder.group(0)} outside a string literal")
    if "{{" in code:
        problems.append("unrendered template placeholder")
    return problems


def statement_lines(block: CodeBlock) -> list[tuple[int, str]]:
    """Pair each statement in a block with the guide line of its first code line."""
    located = []
    cursor = 0
    for statement in split_sql_statements(block.body):
        start = block.body.find(statement, cursor)
        cursor = start + len(statement)
        line = block.line + block.body.count("\n", 0, start)
        for text in statement.splitlines():
            if text.strip() and not text.strip().startswith("--"):
                break
            line += 1
        located.append((line, statement))
    return located


def check_sql_blocks(markdown: str) -> list[GuideIssue]:
    issues = []
    for block in extract_blocks(markdown, "sql"):
        for line, statement in statement_lines(block):
            for problem in check_sql_statement(statement):
                issues.append(GuideIssue("sql-syntax", line, problem))
    return issues


def check_json_blocks(markdown: str) -> list[GuideIssue]:
    """JSON blocks must parse and any trust policy among them must use placeholders."""
    issues = []
    for block in extract_blocks(markdown, "json"):
        try:
            payload = json.loads(block.body)
        except ValueError as exc:
            issues.append(GuideIssue("json", block.line, f"invalid JSON: {exc}"))
            continue
        issues.extend(check_external_id_placeholders(payload, block.line))
    return issues


def check_policy_file(path: str | Path) -> list[GuideIssue]:
    text = Path(path).read_text(encoding="utf-8")
    try:
        payload = json.loads(text)
    except ValueError as exc:
        return [GuideIssue("json", None, f"{path}: invalid JSON: {exc}")]
    return check_external_id_placeholders(payload) + check_no_real_external_ids(text)


def check_guide(
    guide_path: str | Path,
    policy_paths: Iterable[str | Path] = (),
) -> list[GuideIssue]:
    """Run every check against the guide and the given policy templates."""
    markdown = Path(guide_path).read_text(encoding="utf-8")
    issues = [
        *check_stage_names(markdown),
        *check_sql_blocks(markdown),
        *check_json_blocks(markdown),
        *check_no_real_external_ids(markdown),
    ]
    for path in policy_paths:
        issues.extend(check_policy_file(path))
    return issues
