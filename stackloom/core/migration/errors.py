"""Migration error taxonomy and structured event logging.

Every failure that crosses a pipeline stage is a :class:`MigrationError`
carrying a machine-readable ``code`` and a ``recoverable`` flag.  The
Recovery Manager selects strategies by ``code``; fatal configuration
errors (bad rule sets, duplicate backups, transaction misuse) are never
recoverable and propagate to the caller.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Keys whose values never reach the logs
_REDACTED_KEYS = frozenset({
    "access_token",
    "accesstoken",
    "api_key",
    "apikey",
    "token",
    "password",
    "secret",
})


class MigrationError(Exception):
    """Base class for all migration pipeline errors."""

    def __init__(
        self,
        message: str,
        code: str = "MIGRATION_ERROR",
        recoverable: bool = False,
        status_code: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.recoverable = recoverable
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "recoverable": self.recoverable,
            "status_code": self.status_code,
        }


class TransformationError(MigrationError):
    """A transformation pass failed for a file."""

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
        suggestions: Optional[List[str]] = None,
    ):
        super().__init__(message, "TRANSFORMATION_ERROR", recoverable=True, status_code=500)
        self.file_path = file_path
        self.line = line
        self.column = column
        self.suggestions = suggestions or []


class ValidationError(MigrationError):
    """Input failed validation."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, "VALIDATION_ERROR", recoverable=True, status_code=400)
        self.field = field


class RuleSetError(MigrationError):
    """The migration rule set is malformed. Always fatal."""

    def __init__(self, message: str):
        super().__init__(message, "INVALID_RULES", recoverable=False, status_code=400)


class GitHubAPIError(MigrationError):
    """A repository host call failed.

    403 responses with an exhausted quota become ``RATE_LIMIT_EXCEEDED``;
    5xx and 429 responses are recoverable.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        rate_limit_remaining: Optional[int] = None,
        rate_limit_reset: Optional[int] = None,
    ):
        rate_limited = status_code == 403 and rate_limit_remaining == 0
        super().__init__(
            message,
            "RATE_LIMIT_EXCEEDED" if rate_limited else "GITHUB_API_ERROR",
            recoverable=status_code >= 500 or status_code == 429 or rate_limited,
            status_code=status_code,
        )
        self.rate_limit_remaining = rate_limit_remaining
        self.rate_limit_reset = rate_limit_reset


class AIServiceError(MigrationError):
    """The semantic (LLM) service failed."""

    def __init__(self, message: str, provider: str = "unknown", retryable: bool = True):
        super().__init__(message, "AI_SERVICE_ERROR", recoverable=retryable, status_code=503)
        self.provider = provider


class ParseError(MigrationError):
    """Source could not be parsed."""

    def __init__(self, message: str, file_path: Optional[str] = None, line: Optional[int] = None):
        super().__init__(message, "PARSE_ERROR", recoverable=False, status_code=400)
        self.file_path = file_path
        self.line = line


class OrchestrationError(MigrationError):
    """Job-level sequencing failed."""

    def __init__(self, message: str, phase: Optional[str] = None):
        super().__init__(message, "ORCHESTRATION_ERROR", recoverable=False, status_code=500)
        self.phase = phase


class BackupError(MigrationError):
    """A backup create/restore/cleanup operation failed."""

    def __init__(self, message: str, operation: str):
        super().__init__(message, "BACKUP_ERROR", recoverable=False, status_code=500)
        self.operation = operation  # "create" | "restore" | "cleanup"


class TransactionError(MigrationError):
    """A backup transaction was used out of order."""

    def __init__(self, message: str):
        super().__init__(message, "TRANSACTION_ERROR", recoverable=False, status_code=500)


# ── Helpers ──────────────────────────────────────────────────────────


@dataclass
class ErrorDetails:
    """Transport-neutral description of a failure."""

    message: str
    code: str
    status_code: int
    recoverable: bool


def to_migration_error(error: BaseException) -> MigrationError:
    """Wrap arbitrary exceptions so recovery can dispatch on ``code``."""
    if isinstance(error, MigrationError):
        return error
    wrapped = MigrationError(str(error) or type(error).__name__, "UNKNOWN_ERROR")
    wrapped.__cause__ = error
    return wrapped


def handle_migration_error(error: BaseException) -> ErrorDetails:
    """Log an error and convert it into :class:`ErrorDetails`."""
    if isinstance(error, MigrationError):
        logger.error(f"Migration error [{error.code}]: {error.message}")
        return ErrorDetails(
            message=error.message,
            code=error.code,
            status_code=error.status_code,
            recoverable=error.recoverable,
        )
    logger.error(f"Unexpected migration error: {error}", exc_info=error)
    return ErrorDetails(
        message=str(error) or type(error).__name__,
        code="UNKNOWN_ERROR",
        status_code=500,
        recoverable=False,
    )


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: "[REDACTED]" if str(k).lower() in _REDACTED_KEYS else _redact(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact(v) for v in value]
    return value


def log_migration_event(event: str, data: Optional[Dict[str, Any]] = None, level: int = logging.INFO) -> None:
    """Emit a structured pipeline event as a single JSON log line."""
    payload = json.dumps(_redact(data or {}), default=str, sort_keys=True)
    logger.log(level, "%s %s", event, payload)
