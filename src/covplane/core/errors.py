"""covplane error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Provider
- 7xxx: Coverage
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_MISSING_REQUIRED = 2003
    CONFIG_FILE_NOT_FOUND = 2004
    CONFIG_INVALID_GLOB = 2005
    CONFIG_UNKNOWN_PROVIDER = 2006

    # Provider (3xxx)
    PROVIDER_INIT_FAILED = 3001
    PROVIDER_NOT_FOUND = 3002
    PROVIDER_CAPABILITY_MISSING = 3003

    # Coverage (7xxx)
    COVERAGE_COLLECTION_FAILED = 7001
    COVERAGE_GENERATION_FAILED = 7002
    COVERAGE_RESULTS_UNREADABLE = 7003

    # Internal (9xxx)
    INTERNAL_ERROR = 9001
    INTERNAL_INVALID_STATE = 9002


@dataclass(frozen=True, slots=True)
class CovPlaneError(Exception):
    """Base error with structured context for CLI and log output."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'CONFIG_PARSE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(CovPlaneError):
    """Malformed options. Always raised before any test runs."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def missing_required(cls, field: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_MISSING_REQUIRED,
            message=f"Missing required config field: {field}",
            details={"field": field},
        )

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )

    @classmethod
    def invalid_glob(cls, pattern: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_GLOB,
            message=f"Invalid glob pattern {pattern!r}: {reason}",
            details={"glob": pattern, "reason": reason},
        )

    @classmethod
    def unknown_provider(cls, name: str, known: list[str]) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_UNKNOWN_PROVIDER,
            message=f"Unknown coverage provider {name!r}. Expected one of: {', '.join(known)}",
            details={"provider": name, "known": known},
        )


class ProviderInitError(CovPlaneError):
    """Provider could not be created or initialized. Aborts the run."""

    @classmethod
    def failed(cls, provider: str, reason: str) -> "ProviderInitError":
        return cls(
            code=ErrorCode.PROVIDER_INIT_FAILED,
            message=f"Coverage provider {provider!r} failed to initialize: {reason}",
            details={"provider": provider, "reason": reason},
        )

    @classmethod
    def not_found(cls, name: str, known: list[str]) -> "ProviderInitError":
        return cls(
            code=ErrorCode.PROVIDER_NOT_FOUND,
            message=f"No coverage provider module registered as {name!r}",
            details={"provider": name, "known": known},
        )


class CapabilityError(CovPlaneError):
    """Optional provider capability was requested but is not supported."""

    @classmethod
    def unsupported(cls, provider: str, capability: str) -> "CapabilityError":
        return cls(
            code=ErrorCode.PROVIDER_CAPABILITY_MISSING,
            message=f"Coverage provider {provider!r} does not support {capability}",
            details={"provider": provider, "capability": capability},
        )


class CollectionError(CovPlaneError):
    """A single worker payload is malformed or missing.

    Handled per file: the file's coverage is treated as absent.
    """

    @classmethod
    def malformed_payload(cls, file_path: str, reason: str) -> "CollectionError":
        return cls(
            code=ErrorCode.COVERAGE_COLLECTION_FAILED,
            message=f"Malformed coverage payload for {file_path}: {reason}",
            details={"file": file_path, "reason": reason},
        )


class GenerationError(CovPlaneError):
    """Coverage results could not be produced. Always fatal."""

    @classmethod
    def failed(cls, provider: str, reason: str) -> "GenerationError":
        return cls(
            code=ErrorCode.COVERAGE_GENERATION_FAILED,
            message=f"Coverage generation failed in provider {provider!r}: {reason}",
            details={"provider": provider, "reason": reason},
        )

    @classmethod
    def unreadable_results(cls, path: str, reason: str) -> "GenerationError":
        return cls(
            code=ErrorCode.COVERAGE_RESULTS_UNREADABLE,
            message=f"Cannot read coverage results at {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class InternalError(CovPlaneError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )

    @classmethod
    def invalid_state(cls, operation: str, state: str) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_INVALID_STATE,
            message=f"Cannot {operation} while provider is {state}",
            details={"operation": operation, "state": state},
        )
