"""User-facing setup failures and connector error classification."""

from __future__ import annotations

from snowflake.connector.errors import Error as SnowflakeError

# Snowflake error numbers seen during setup.
ERRNO_OBJECT_MISSING = 2003
ERRNO_UNKNOWN_FUNCTION = 2140
ERRNO_INSUFFICIENT_PRIVILEGES = 3001


class SetupError(Exception):
    """Terminal failure for the current run; the operator fixes and re-runs."""

    category = "setup failed"
    default_remedy = "Fix the reported problem and re-run the setup."

    def __init__(self, message: str, remedy: str | None = None) -> None:
        super().__init__(message)
        self.remedy = remedy or self.default_remedy

    def diagnostic(self) -> str:
        return f"{self.category}: {self} (remedy: {self.remedy})"


class StageNotFoundError(SetupError):
    category = "stage not found"
    default_remedy = (
        "Check the stage name matches the one created in the stage step and that "
        "the current role has USAGE on the database and schema and READ or USAGE on the stage."
    )


class AIFunctionNotFoundError(SetupError):
    category = "function not found"
    default_remedy = (
        "Make sure Cortex AI functions are available in this region and grant "
        "DATABASE ROLE SNOWFLAKE.CORTEX_USER to the role running the notebook."
    )


class NoFilesFoundError(SetupError):
    category = "no files found"
    default_remedy = (
        "Upload at least one PDF to the stage (PUT for internal stages, the S3 "
        "prefix for external stages) and run ALTER STAGE ... REFRESH."
    )


class MissingIntegrationError(SetupError):
    category = "storage integration missing"
    default_remedy = "Set stage.storage_integration (and the trust section) for EXTERNAL stages."


class InvalidStageError(SetupError):
    category = "invalid stage settings"
    default_remedy = (
        "Fix the stage section of the setup config: INTERNAL stages take no url, "
        "EXTERNAL stages need an s3:// url and a storage integration."
    )


class DocumentNotFoundError(SetupError):
    category = "document not found"
    default_remedy = "Check the --upload paths point at existing local files and re-run the stage step."


class EmptyExtractionError(SetupError):
    category = "AI_EXTRACT returned no result"
    default_remedy = (
        "Check the staged file is a readable, unencrypted PDF or image and that the "
        "verify.response_format questions are non-empty."
    )


class InsufficientPrivilegesError(SetupError):
    category = "insufficient privileges"
    default_remedy = (
        "Run the setup with a role that owns the target objects or has MANAGE GRANTS "
        "(for example ACCOUNTADMIN or SECURITYADMIN)."
    )


class TrustNotEstablishedError(SetupError):
    category = "trust not established"
    default_remedy = (
        "Apply the rendered trust policy to the AWS role, wait a minute for IAM to "
        "propagate and re-run the verify step."
    )


def is_missing_object(exc: SnowflakeError) -> bool:
    message = str(getattr(exc, "msg", "") or exc).lower()
    return exc.errno == ERRNO_OBJECT_MISSING or "does not exist or not authorized" in message


def is_unknown_function(exc: SnowflakeError) -> bool:
    message = str(getattr(exc, "msg", "") or exc).lower()
    return exc.errno == ERRNO_UNKNOWN_FUNCTION or "unknown function" in message


def is_insufficient_privileges(exc: SnowflakeError) -> bool:
    message = str(getattr(exc, "msg", "") or exc).lower()
    return exc.errno == ERRNO_INSUFFICIENT_PRIVILEGES or "insufficient privileges" in message


def is_trust_failure(exc: SnowflakeError) -> bool:
    message = str(getattr(exc, "msg", "") or exc).lower()
    return "error assuming aws_role" in message or "sts:assumerole" in message
