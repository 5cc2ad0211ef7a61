"""Shared fakes for tests that talk to a Snowflake connection."""

from __future__ import annotations

from typing import Any

import pytest


class _FakeCursor:
    def __init__(self, conn: "_FakeConnection") -> None:
        self._conn = conn
        self._rows: list[tuple[Any, ...]] = []
        self.description: list[tuple[str]] = []

    def __enter__(self) -> "_FakeCursor":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        return False

    def execute(self, sql: str, params: Any = None) -> "_FakeCursor":
        self._conn.executed.append(" ".join(sql.split()))
        self._conn.params.append(params)
        for fragment, outcome in self._conn.rules:
            if fragment in sql:
                if isinstance(outcome, Exception):
                    raise outcome
                columns, rows = outcome
                self.description = [(column,) for column in columns]
                self._rows = list(rows)
                return self
        self.description = []
        self._rows = []
        return self

    def fetchone(self) -> tuple[Any, ...] | None:
        return self._rows[0] if self._rows else None

    def fetchall(self) -> list[tuple[Any, ...]]:
        return list(self._rows)


class _FakeConnection:
    """Records SQL and answers statements that contain a registered fragment."""

    def __init__(self) -> None:
        self.rules: list[tuple[str, Any]] = []
        self.executed: list[str] = []
        self.params: list[Any] = []

    def on(
        self,
        fragment: str,
        columns: tuple[str, ...] = (),
        rows: list[tuple[Any, ...]] | None = None,
        error: Exception | None = None,
    ) -> "_FakeConnection":
        self.rules.append((fragment, error if error is not None else (columns, rows or [])))
        return self

    def cursor(self) -> _FakeCursor:
        return _FakeCursor(self)


@pytest.fixture
def fake_conn() -> _FakeConnection:
    return _FakeConnection()


@pytest.fixture
def desc_integration_rows() -> list[tuple[str, str, str, str]]:
    return [
        ("ENABLED", "Boolean", "true", "false"),
        ("STORAGE_PROVIDER", "String", "S3", ""),
        (
            "STORAGE_ALLOWED_LOCATIONS",
            "List",
            "s3://my-document-bucket/documents/",
            "[]",
        ),
        ("STORAGE_AWS_IAM_USER_ARN", "String", "arn:aws:iam::999999999999:user/abc1-s-test", ""),
        ("STORAGE_AWS_ROLE_ARN", "String", "arn:aws:iam::123456789012:role/snowflake-doc-ai", ""),
        ("STORAGE_AWS_EXTERNAL_ID", "String", "TEST_EXTERNAL_ID_0000", ""),
    ]
