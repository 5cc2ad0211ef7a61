"""Tests for setup config loading and schema validation."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest

from provisioning.setup.config import SetupConfigLoader

CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


def _valid_payload() -> dict[str, Any]:
    return {
        "namespace": {"database": "DOC_AI_DB", "schema": "DOCS"},
        "stage": {"name": "DOC_STAGE", "mode": "internal"},
        "access": {"role": "DOC_AI_ROLE"},
    }


def test_shipped_internal_config_loads() -> None:
    config = SetupConfigLoader().load(str(CONFIG_DIR / "setup.yaml"))

    assert config.stage.mode == "INTERNAL"
    assert config.stage_fqn == "DOC_AI_DB.DOCS.DOC_STAGE"
    assert config.trust is None
    assert config.access.ai_role == "SNOWFLAKE.CORTEX_USER"
    assert "title" in config.verify.response_format


def test_shipped_external_config_loads() -> None:
    config = SetupConfigLoader().load(str(CONFIG_DIR / "setup.external.yaml"))

    assert config.stage.mode == "EXTERNAL"
    assert config.stage.storage_integration == "DOC_S3_INTEGRATION"
    assert config.trust is not None
    assert config.trust.allowed_locations == ("s3://my-document-bucket/documents/",)


def test_minimal_mapping_gets_defaults() -> None:
    config = SetupConfigLoader().from_mapping(_valid_payload())

    assert config.stage.mode == "INTERNAL"
    assert config.stage.directory is True
    assert config.access.stage_write is False
    assert config.verify.response_format == {"title": "What is the title of this document?"}


def test_external_stage_defaults_integration_from_trust() -> None:
    payload = _valid_payload()
    payload["stage"] = {"name": "DOC_S3_STAGE", "mode": "EXTERNAL", "url": "s3://bucket/docs/"}
    payload["trust"] = {
        "integration_name": "DOC_S3_INTEGRATION",
        "aws_role_arn": "arn:aws:iam::123456789012:role/snowflake-doc-ai",
        "allowed_locations": ["s3://bucket/docs/"],
    }

    config = SetupConfigLoader().from_mapping(payload)

    assert config.stage.storage_integration == "DOC_S3_INTEGRATION"


def test_stage_url_and_integration_are_stripped() -> None:
    payload = _valid_payload()
    payload["stage"] = {
        "name": "DOC_S3_STAGE",
        "mode": "EXTERNAL",
        "url": "  s3://my-document-bucket/documents/  ",
        "storage_integration": " DOC_S3_INTEGRATION\n",
    }

    config = SetupConfigLoader().from_mapping(payload)

    assert config.stage.url == "s3://my-document-bucket/documents/"
    assert config.stage.storage_integration == "DOC_S3_INTEGRATION"


def test_blank_stage_url_loads_as_none() -> None:
    payload = _valid_payload()
    payload["stage"]["url"] = "   "

    assert SetupConfigLoader().from_mapping(payload).stage.url is None


def test_mismatched_integration_names_are_rejected() -> None:
    payload = _valid_payload()
    payload["stage"] = {
        "name": "DOC_S3_STAGE",
        "mode": "EXTERNAL",
        "url": "s3://bucket/docs/",
        "storage_integration": "OTHER_INTEGRATION",
    }
    payload["trust"] = {
        "integration_name": "DOC_S3_INTEGRATION",
        "aws_role_arn": "arn:aws:iam::123456789012:role/snowflake-doc-ai",
        "allowed_locations": ["s3://bucket/docs/"],
    }

    with pytest.raises(ValueError, match="must match"):
        SetupConfigLoader().from_mapping(payload)


@pytest.mark.parametrize(
    "mutate",
    [
        lambda p: p.pop("access"),
        lambda p: p["stage"].update(mode="hybrid"),
        lambda p: p["namespace"].update(owner="x"),
        lambda p: p.update(verify={"response_format": {}}),
    ],
)
def test_schema_violations_are_reported(mutate: Any) -> None:
    payload = copy.deepcopy(_valid_payload())
    mutate(payload)

    with pytest.raises(ValueError, match="Invalid setup config"):
        SetupConfigLoader().from_mapping(payload)


def test_bad_identifier_fails_before_any_sql() -> None:
    payload = _valid_payload()
    payload["stage"]["name"] = "DOC-STAGE"

    with pytest.raises(ValueError, match="identifier"):
        SetupConfigLoader().from_mapping(payload)


def test_validate_returns_paths() -> None:
    payload = _valid_payload()
    payload["stage"]["mode"] = "hybrid"

    errors = SetupConfigLoader().validate(payload)

    assert errors and errors[0].startswith("stage.mode:")
