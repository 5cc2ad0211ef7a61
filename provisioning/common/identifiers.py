"""Identifier and literal helpers for DDL that cannot use bind variables."""

from __future__ import annotations

import re

_PART = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")


def identifier(name: str, *, parts: int | None = None) -> str:
    """Validate a (possibly dotted) Snowflake identifier and return it uppercased.

    Snowflake SQL bind variables cannot be used for object names, so every
    name that ends up interpolated into DDL goes through here first.
    """
    raw = (name or "").strip()
    if not raw:
        raise ValueError("Identifier must not be empty")
    pieces = raw.split(".")
    if parts is not None and len(pieces) != parts:
        raise ValueError(f"Expected {parts}-part identifier, got {raw!r}")
    for piece in pieces:
        if not _PART.match(piece):
            raise ValueError(f"Invalid Snowflake identifier: {raw!r}")
    return ".".join(piece.upper() for piece in pieces)


def qualify(database: str, schema: str, name: str) -> str:
    """Return DB.SCHEMA.NAME, accepting names that are already qualified."""
    if "." in name:
        return identifier(name, parts=3)
    return identifier(f"{database}.{schema}.{name}", parts=3)


def string_literal(value: str) -> str:
    """Quote a value as a single-quoted SQL string literal."""
    return "'" + str(value).replace("\\", "\\\\").replace("'", "''") + "'"


def stage_ref(stage: str) -> str:
    """Return the @-prefixed reference for a validated stage name."""
    return "@" + identifier(stage.lstrip("@"))
