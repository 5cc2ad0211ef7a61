"""Load and render the versioned SQL templates under provisioning/sql."""

from __future__ import annotations

import re
from pathlib import Path

SQL_DIR = Path(__file__).resolve().parents[1] / "sql"

_PLACEHOLDER = re.compile(r"\{\{[^}]+\}\}")


def load_sql_text(name: str, sql_dir: str | Path = SQL_DIR) -> str:
    """Read a template, refusing paths that escape the template folder."""
    root = Path(sql_dir).resolve()
    file_path = (root / name).resolve()
    if root not in file_path.parents:
        raise ValueError(f"Invalid template path outside sql_dir: {name}")
    return file_path.read_text(encoding="utf-8")


def render_sql(template: str, sql_context: dict[str, str]) -> str:
    """Replace {{key}} placeholders and fail on anything left unresolved."""
    rendered = template
    for key, value in sql_context.items():
        rendered = rendered.replace(f"{{{{{key}}}}}", value)
    unresolved = _PLACEHOLDER.findall(rendered)
    if unresolved:
        raise ValueError(
            f"Unresolved SQL template placeholders: {', '.join(sorted(set(unresolved)))}"
        )
    return rendered


def split_sql_statements(sql: str) -> list[str]:
    """
    Split SQL script into executable statements.
    Keeps $$ blocks intact and drops comment-only chunks.
    """
    statements = []
    buffer: list[str] = []
    in_dollar_block = False

    for line in sql.splitlines():
        stripped = line.strip()

        # Detect start or end of $$ block
        if stripped.count("$$") % 2 == 1:
            in_dollar_block = not in_dollar_block

        buffer.append(line)

        # Only split on semicolon if not inside $$ block
        if not in_dollar_block and stripped.endswith(";"):
            statements.append("\n".join(buffer).strip())
            buffer = []

    # Catch any trailing content
    if buffer:
        statements.append("\n".join(buffer).strip())

    return [stmt for stmt in statements if _has_code(stmt)]


def render_statements(name: str, sql_context: dict[str, str]) -> list[str]:
    """Render a template file and return its statements without trailing ';'."""
    rendered = render_sql(load_sql_text(name), sql_context)
    return [strip_comments(stmt).rstrip(";").strip() for stmt in split_sql_statements(rendered)]


def strip_comments(statement: str) -> str:
    """Drop full-line -- comments from a statement."""
    lines = [line for line in statement.splitlines() if not line.strip().startswith("--")]
    return "\n".join(lines).strip()


def _has_code(statement: str) -> bool:
    return bool(strip_comments(statement))
