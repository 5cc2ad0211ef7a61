"""Setup config loader (config/setup.yaml -> typed SetupConfig)."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator

from provisioning.common.identifiers import identifier
from provisioning.common.utils import load_json, load_yaml
from provisioning.setup.models import (
    AccessConfig,
    NamespaceConfig,
    SetupConfig,
    StageConfig,
    TrustConfig,
    VerifyConfig,
)

DEFAULT_CONFIG_PATH = "config/setup.yaml"
DEFAULT_SCHEMA_PATH = Path(__file__).resolve().parents[2] / "schemas" / "setup_config_schema.json"


class SetupConfigLoader:
    """Loads and validates the setup configuration from YAML."""

    def __init__(
        self,
        path: str = DEFAULT_CONFIG_PATH,
        schema_path: str | Path = DEFAULT_SCHEMA_PATH,
    ) -> None:
        self.path = path
        self.schema_path = schema_path

    def load_raw(self, config_path: str | None = None) -> dict[str, Any]:
        return load_yaml(config_path or self.path)

    def validate(self, payload: dict[str, Any]) -> list[str]:
        """Return human-readable schema errors (empty when valid)."""
        validator = Draft202012Validator(load_json(self.schema_path))
        errors = sorted(validator.iter_errors(payload), key=lambda err: list(err.path))
        return [
            f"{'.'.join(str(part) for part in err.path) or '<root>'}: {err.message}"
            for err in errors
        ]

    def load(self, config_path: str | None = None) -> SetupConfig:
        payload = self.load_raw(config_path)
        return self.from_mapping(payload)

    def from_mapping(self, payload: dict[str, Any]) -> SetupConfig:
        errors = self.validate(payload)
        if errors:
            raise ValueError("Invalid setup config: " + "; ".join(errors[:5]))

        namespace = payload["namespace"]
        stage = payload["stage"]
        access = payload["access"]
        trust = payload.get("trust")
        verify = payload.get("verify") or {}

        trust_config = None
        if trust:
            trust_config = TrustConfig(
                integration_name=str(trust["integration_name"]).strip(),
                aws_role_arn=str(trust["aws_role_arn"]).strip(),
                allowed_locations=tuple(str(item).strip() for item in trust["allowed_locations"]),
                blocked_locations=tuple(
                    str(item).strip() for item in trust.get("blocked_locations") or []
                ),
            )

        mode = str(stage.get("mode", "INTERNAL")).strip().upper()
        url = str(stage["url"]).strip() if stage.get("url") else None
        storage_integration = stage.get("storage_integration")
        if storage_integration:
            storage_integration = str(storage_integration).strip()
        if mode == "EXTERNAL" and not storage_integration and trust_config is not None:
            # The stage uses the integration the trust step creates.
            storage_integration = trust_config.integration_name
        if (
            mode == "EXTERNAL"
            and trust_config is not None
            and str(storage_integration).upper() != trust_config.integration_name.upper()
        ):
            raise ValueError(
                f"stage.storage_integration ({storage_integration}) must match "
                f"trust.integration_name ({trust_config.integration_name})"
            )

        verify_config = VerifyConfig()
        if verify.get("response_format"):
            verify_config = VerifyConfig(
                response_format={
                    str(key): str(value) for key, value in verify["response_format"].items()
                }
            )

        # Fail on bad names before the first statement runs.
        for name in (
            namespace["database"],
            namespace["schema"],
            stage["name"],
            access["role"],
            storage_integration,
            access.get("warehouse"),
        ):
            if name:
                identifier(str(name).strip(), parts=1)
        identifier(str(access.get("ai_role", "SNOWFLAKE.CORTEX_USER")).strip())

        return SetupConfig(
            namespace=NamespaceConfig(
                database=str(namespace["database"]).strip(),
                schema=str(namespace["schema"]).strip(),
            ),
            stage=StageConfig(
                name=str(stage["name"]).strip(),
                mode=mode,  # type: ignore[arg-type]
                url=url or None,
                storage_integration=storage_integration,
                directory=bool(stage.get("directory", True)),
                auto_refresh=bool(stage.get("auto_refresh", True)),
            ),
            access=AccessConfig(
                role=str(access["role"]).strip(),
                warehouse=access.get("warehouse"),
                ai_role=str(access.get("ai_role", "SNOWFLAKE.CORTEX_USER")).strip(),
                stage_write=bool(access.get("stage_write", False)),
            ),
            trust=trust_config,
            verify=verify_config,
        )
