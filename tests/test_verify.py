"""Tests for the LIST + AI_EXTRACT verification step."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from snowflake.connector.errors import ProgrammingError

from provisioning.setup.engine import SetupEngine
from provisioning.setup.errors import (
    AIFunctionNotFoundError,
    EmptyExtractionError,
    NoFilesFoundError,
    SetupError,
    StageNotFoundError,
    TrustNotEstablishedError,
)
from provisioning.setup.evidence_writer import RunEvidenceWriter
from provisioning.setup.models import (
    AccessConfig,
    NamespaceConfig,
    SetupConfig,
    SetupContext,
    StageConfig,
)
from provisioning.setup.steps.verify import (
    VerifyStep,
    extract_from_file,
    list_stage,
    parse_extraction,
    relative_stage_path,
    verify,
)

LIST_COLUMNS = ("name", "size", "md5", "last_modified")
STAGE = "DOC_AI_DB.DOCS.DOC_STAGE"


def _answer(payload: dict) -> list[tuple[str]]:
    return [(json.dumps(payload),)]


@pytest.mark.parametrize(
    ("listed", "stage_url", "expected"),
    [
        ("doc_stage/invoice_001.pdf", None, "invoice_001.pdf"),
        ("doc_stage/2024/q1/invoice.pdf", None, "2024/q1/invoice.pdf"),
        ("s3://my-document-bucket/documents/a.pdf", "s3://my-document-bucket/documents/", "a.pdf"),
        ("s3://my-document-bucket/documents/a.pdf", "s3://my-document-bucket/documents", "a.pdf"),
        ("s3://my-document-bucket/documents/a.pdf", None, "documents/a.pdf"),
        ("other/a.pdf", None, "other/a.pdf"),
    ],
)
def test_relative_stage_path(listed: str, stage_url: str | None, expected: str) -> None:
    assert relative_stage_path(listed, STAGE, stage_url) == expected


def test_list_stage_sorts_and_skips_folders(fake_conn) -> None:
    fake_conn.on(
        "LIST @",
        LIST_COLUMNS,
        [
            ("doc_stage/b.pdf", 20, "m2", "Mon, 1 Jan 2024 00:00:00 GMT"),
            ("doc_stage/folder/", 0, None, None),
            ("doc_stage/a.pdf", 10, "m1", "Mon, 1 Jan 2024 00:00:00 GMT"),
        ],
    )

    files = list_stage(fake_conn, STAGE)

    assert fake_conn.executed == [f"LIST @{STAGE}"]
    assert [item.relative_path for item in files] == ["a.pdf", "b.pdf"]
    assert files[0].size == 10


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ProgrammingError(msg="Stage 'X' does not exist or not authorized.", errno=2003), StageNotFoundError),
        (ProgrammingError(msg="Insufficient privileges to operate on stage", errno=3001), StageNotFoundError),
        (
            ProgrammingError(msg="Error assuming AWS_ROLE. Please verify the role and externalId.", errno=91004),
            TrustNotEstablishedError,
        ),
    ],
)
def test_list_stage_maps_errors(fake_conn, error, expected) -> None:
    fake_conn.on("LIST @", error=error)

    with pytest.raises(expected):
        list_stage(fake_conn, STAGE)


def test_unmapped_snowflake_error_propagates(fake_conn) -> None:
    fake_conn.on("LIST @", error=ProgrammingError(msg="SQL compilation error", errno=1003))

    with pytest.raises(ProgrammingError):
        list_stage(fake_conn, STAGE)


def test_parse_extraction_variants() -> None:
    assert parse_extraction(None) == {}
    assert parse_extraction({"response": {"title": "A"}}) == {"response": {"title": "A"}}
    assert parse_extraction(b'{"response": {"title": "A"}}') == {"response": {"title": "A"}}
    with pytest.raises(SetupError):
        parse_extraction("not json")
    with pytest.raises(SetupError):
        parse_extraction("[1, 2]")


def test_extraction_binds_stage_path_and_response_format(fake_conn) -> None:
    fake_conn.on("AI_EXTRACT", ("RESULT",), _answer({"response": {"title": "Invoice"}}))

    result = extract_from_file(fake_conn, STAGE, "invoice_001.pdf", {"title": "Title?"})

    assert result == {"response": {"title": "Invoice"}}
    params = fake_conn.params[-1]
    assert params["stage"] == f"@{STAGE}"
    assert params["path"] == "invoice_001.pdf"
    assert json.loads(params["response_format"]) == {"title": "Title?"}
    assert "TO_FILE(%(stage)s, %(path)s)" in fake_conn.executed[-1]


def test_extraction_unknown_function(fake_conn) -> None:
    fake_conn.on("AI_EXTRACT", error=ProgrammingError(msg="Unknown function AI_EXTRACT", errno=2140))

    with pytest.raises(AIFunctionNotFoundError) as exc_info:
        extract_from_file(fake_conn, STAGE, "a.pdf")

    assert "CORTEX_USER" in exc_info.value.remedy


def test_extraction_error_payload_fails(fake_conn) -> None:
    fake_conn.on("AI_EXTRACT", ("RESULT",), _answer({"error": "unsupported file"}))

    with pytest.raises(SetupError, match="unsupported file"):
        extract_from_file(fake_conn, STAGE, "a.pdf")


@pytest.mark.parametrize("rows", [[], [(None,)], [("{}",)]])
def test_extraction_without_a_value_fails(fake_conn, rows) -> None:
    fake_conn.on("AI_EXTRACT", ("RESULT",), rows)

    with pytest.raises(EmptyExtractionError) as exc_info:
        extract_from_file(fake_conn, STAGE, "a.pdf")

    assert exc_info.value.category == "AI_EXTRACT returned no result"
    assert "a.pdf" in str(exc_info.value)


def test_verify_empty_stage_reports_no_files(fake_conn) -> None:
    fake_conn.on("LIST @", LIST_COLUMNS, [])

    with pytest.raises(NoFilesFoundError) as exc_info:
        verify(fake_conn, STAGE)

    assert exc_info.value.category == "no files found"
    assert not any("AI_EXTRACT" in sql for sql in fake_conn.executed)


def test_verify_step_extracts_from_first_file(fake_conn) -> None:
    fake_conn.on("LIST @", LIST_COLUMNS, [("doc_stage/a.pdf", 10, "m1", None), ("doc_stage/b.pdf", 20, "m2", None)])
    fake_conn.on("AI_EXTRACT", ("RESULT",), _answer({"response": {"title": "Invoice A"}}))
    config = SetupConfig(
        namespace=NamespaceConfig(database="DOC_AI_DB", schema="DOCS"),
        stage=StageConfig(name="DOC_STAGE"),
        access=AccessConfig(role="DOC_AI_ROLE"),
    )

    result = VerifyStep().handle(config, SetupContext(run_id="T", connection=fake_conn))

    assert result.status == "PASS"
    assert result.payload["files"] == ["a.pdf", "b.pdf"]
    assert result.payload["sample_file"] == "a.pdf"
    assert result.payload["response"] == {"title": "Invoice A"}


def test_verify_step_with_null_extraction_fails_in_engine(fake_conn, tmp_path: Path) -> None:
    fake_conn.on("LIST @", LIST_COLUMNS, [("doc_stage/a.pdf", 10, "m1", None)])
    fake_conn.on("AI_EXTRACT", ("RESULT",), [(None,)])
    config = SetupConfig(
        namespace=NamespaceConfig(database="DOC_AI_DB", schema="DOCS"),
        stage=StageConfig(name="DOC_STAGE"),
        access=AccessConfig(role="DOC_AI_ROLE"),
    )

    summary = SetupEngine(writer=RunEvidenceWriter(tmp_path)).run(
        config, SetupContext(run_id="T", connection=fake_conn), only=["verify"]
    )

    (result,) = summary.results
    assert result.status == "FAIL"
    assert result.details == "AI_EXTRACT returned no result: AI_EXTRACT returned no value for a.pdf"
    assert not summary.ok
