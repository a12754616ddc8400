"""
Unified error handling for infragraph.

Declaration problems fail a run before any provider is called; provider
problems fail a single node and never the whole run. CLI commands map
both onto standardized exit codes.

Exit Codes:
- 0: Success
- 1: Run finished with failed or skipped resources
- 10: Configuration error
- 11: Provider error (external service failure)
- 12: Declaration error (duplicate resource, cycle, unknown reference)
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING, Any, Callable, TypeVar

import structlog

if TYPE_CHECKING:
    from infragraph.engine.descriptor import ResourceId

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    NOT_CONVERGED = 1
    CONFIG_ERROR = 10
    PROVIDER_ERROR = 11
    DECLARATION_ERROR = 12
    UNKNOWN_ERROR = 127


class InfraGraphError(Exception):
    """Base exception for infragraph errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(InfraGraphError):
    """Raised for configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR


# === Declaration-time errors ===


class DeclarationError(InfraGraphError):
    """Raised when the declared resource set cannot form a valid graph."""

    exit_code = ExitCode.DECLARATION_ERROR


class DuplicateResourceError(DeclarationError):
    """Two descriptors share the same kind and name."""

    def __init__(self, resource: ResourceId):
        super().__init__(
            f"Duplicate resource {resource}",
            details={"resource": str(resource)},
        )
        self.resource = resource


class UnknownDependencyError(DeclarationError):
    """A descriptor references a resource that was never declared."""

    def __init__(self, resource: ResourceId, missing: ResourceId):
        super().__init__(
            f"{resource} depends on undeclared resource {missing}",
            details={"resource": str(resource), "missing": str(missing)},
        )
        self.resource = resource
        self.missing = missing


class CycleError(DeclarationError):
    """The dependency graph contains a cycle; ``cycle`` holds the full path."""

    def __init__(self, cycle: list[ResourceId]):
        path = " → ".join(str(r) for r in cycle)
        super().__init__(f"Dependency cycle detected: {path}", details={"cycle": path})
        self.cycle = cycle


class MissingProviderError(DeclarationError):
    """No provider adapter is registered for a declared resource kind."""

    def __init__(self, kinds: list[str]):
        super().__init__(
            f"No provider registered for kind(s): {', '.join(kinds)}",
            details={"kinds": kinds},
        )
        self.kinds = kinds


# === Provider errors ===


class ProviderError(InfraGraphError):
    """Raised when an external provider/service fails."""

    exit_code = ExitCode.PROVIDER_ERROR
    kind: str = "provider"
    retryable: bool = False


class TransientProviderError(ProviderError):
    """Provider failure that may succeed on retry (network errors, throttling)."""

    kind = "transient"
    retryable = True


class PermanentProviderError(ProviderError):
    """Provider failure that must not be retried (validation, quota, auth)."""

    kind = "permanent"


class ProviderTimeoutError(ProviderError):
    """A provisioning call exceeded its deadline."""

    kind = "timeout"

    def __init__(self, resource: ResourceId, timeout: float):
        super().__init__(
            f"{resource} did not finish within {timeout:g}s",
            details={"resource": str(resource), "timeout": timeout},
        )
        self.timeout = timeout


class MissingOutputError(ProviderError):
    """A provider result lacks an output field that a consumer referenced."""

    kind = "missing_output"

    def __init__(self, resource: ResourceId, field: str):
        super().__init__(
            f"{resource} produced no output named '{field}'",
            details={"resource": str(resource), "field": field},
        )
        self.field = field


# === Run-time outcomes ===


class DependencyFailure(InfraGraphError):
    """Synthetic outcome for resources skipped because an ancestor failed."""

    exit_code = ExitCode.NOT_CONVERGED

    def __init__(self, cause: ResourceId | None, reason: str = "dependency_failed"):
        if cause is None:
            message = f"Not attempted: {reason}"
        else:
            message = f"Not attempted: dependency {cause} failed"
        super().__init__(message, details={"cause": str(cause) if cause else None})
        self.cause = cause
        self.reason = reason


class InputResolutionError(InfraGraphError):
    """A resource input could not be resolved to a literal value."""

    def __init__(self, resource: ResourceId, error: BaseException):
        super().__init__(
            f"Could not resolve inputs for {resource}: {error}",
            details={"resource": str(resource)},
        )
        self.error = error


class CellStateError(InfraGraphError):
    """A value cell was settled twice or read in the wrong state."""


class StateTransitionError(InfraGraphError):
    """An execution state transition is not allowed."""


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI main functions that provides unified error handling.

    Catches exceptions and converts them to appropriate exit codes with
    consistent error reporting.

    Args:
        show_traceback: If True, show full traceback for unexpected errors
        log_errors: If True, log errors to structlog

    Exit codes:
        - InfraGraphError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except InfraGraphError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=int(e.exit_code),
                        **e.details,
                    )
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130  # Standard exit code for SIGINT
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=int(ExitCode.UNKNOWN_ERROR),
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: InfraGraphError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items() if v is not None)
        if detail_str:
            msg = f"{msg} ({detail_str})"
    return msg
