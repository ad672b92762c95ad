"""
Structured error handling with stable error codes.

Errors raised inside background loops are logged with their code and
details; errors raised during startup or on-demand operations reach the
control surface, which reports them to the operator.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes used in logs and operator messages."""

    # General errors (1xxx)
    INTERNAL_ERROR = "E1000"
    CONFIGURATION_ERROR = "E1001"
    INVALID_INSTRUMENTATION_KEY = "E1002"

    # Instrument errors (2xxx)
    UNKNOWN_INSTRUMENT = "E2000"
    INSTRUMENT_KIND_MISMATCH = "E2001"

    # Export errors (3xxx)
    EXPORTER_ERROR = "E3000"
    EXPORTER_UNAVAILABLE = "E3001"
    EXPORTER_BAD_RESPONSE = "E3002"
    EXPORTER_AUTH_FAILED = "E3003"
    EXPORT_REJECTED = "E3004"
    RATE_LIMITED = "E3005"
    EXPORT_FAILED = "E3006"


@dataclass(frozen=True)
class ErrorReport:
    """Structured error payload used for logging and console output.

    Format: {error: {code, message, pass_id?, details?}}
    """

    code: ErrorCode
    message: str
    pass_id: str | None = None
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for structured log data."""
        error: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
        }
        if self.pass_id:
            error["pass_id"] = self.pass_id
        if self.details:
            error["details"] = self.details
        return {"error": error}


class AppError(Exception):
    """Base application error with structured error detail."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)

    def to_report(self, pass_id: str | None = None) -> ErrorReport:
        """Create an error report, optionally tagged with a pass ID."""
        return ErrorReport(
            code=self.code,
            message=self.message,
            pass_id=pass_id,
            details=self.details,
        )

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


# Convenience error classes
class ConfigurationError(AppError):
    """Invalid or missing configuration; fatal at startup."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.CONFIGURATION_ERROR, message, details)


class InvalidInstrumentationKeyError(ConfigurationError):
    """Export target identifier is missing, malformed or empty."""

    def __init__(
        self,
        message: str = (
            "You must set a non-empty Application Insights instrumentation key "
            "(INSTRUMENTATION_KEY or instrumentation_key in appsettings.json)."
        ),
        details: dict[str, Any] | None = None,
    ):
        AppError.__init__(self, ErrorCode.INVALID_INSTRUMENTATION_KEY, message, details)


class UnknownInstrumentError(AppError):
    """Instrument not present in the registry or store."""

    def __init__(self, message: str = "Unknown instrument"):
        super().__init__(ErrorCode.UNKNOWN_INSTRUMENT, message)


class InstrumentKindMismatchError(AppError):
    """Operation does not match the instrument's kind."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.INSTRUMENT_KIND_MISMATCH, message, details)


class ExporterError(AppError):
    """Export target returned an error."""

    def __init__(
        self, message: str = "Exporter error", details: dict[str, Any] | None = None
    ):
        super().__init__(ErrorCode.EXPORTER_ERROR, message, details)


class ExporterUnavailableError(AppError):
    """Export target could not be reached or returned 5xx."""

    def __init__(
        self, message: str = "Exporter unavailable", details: dict[str, Any] | None = None
    ):
        super().__init__(ErrorCode.EXPORTER_UNAVAILABLE, message, details)


class ExporterBadResponseError(AppError):
    """Export target returned a malformed response."""

    def __init__(
        self,
        message: str = "Exporter returned invalid response",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(ErrorCode.EXPORTER_BAD_RESPONSE, message, details)


class ExporterAuthError(AppError):
    """Export target rejected the credentials (401/403)."""

    def __init__(
        self,
        message: str = "Exporter authentication failed",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(ErrorCode.EXPORTER_AUTH_FAILED, message, details)


class ExportRejectedError(AppError):
    """Export target accepted the request but dropped some items."""

    def __init__(
        self, message: str = "Export partially rejected", details: dict[str, Any] | None = None
    ):
        super().__init__(ErrorCode.EXPORT_REJECTED, message, details)


class RateLimitError(AppError):
    """Export target throttled the request (429)."""

    def __init__(
        self, message: str = "Rate limit exceeded", details: dict[str, Any] | None = None
    ):
        super().__init__(ErrorCode.RATE_LIMITED, message, details)


class ExportFailedError(AppError):
    """One or more export targets failed during a pass."""

    def __init__(
        self,
        failures: dict[str, AppError],
        message: str = "Export pass failed",
        pass_id: str | None = None,
    ):
        self.failures = failures
        self.pass_id = pass_id
        details = {
            name: {"code": err.code.value, "message": err.message}
            for name, err in failures.items()
        }
        super().__init__(ErrorCode.EXPORT_FAILED, message, details)
