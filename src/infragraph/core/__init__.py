"""Core modules for infragraph - centralized error definitions."""

from infragraph.core.errors import (
    CellStateError,
    ConfigurationError,
    CycleError,
    DeclarationError,
    DependencyFailure,
    DuplicateResourceError,
    ExitCode,
    InfraGraphError,
    InputResolutionError,
    MissingOutputError,
    MissingProviderError,
    PermanentProviderError,
    ProviderError,
    ProviderTimeoutError,
    StateTransitionError,
    TransientProviderError,
    UnknownDependencyError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "InfraGraphError",
    "ConfigurationError",
    # Declaration
    "DeclarationError",
    "DuplicateResourceError",
    "UnknownDependencyError",
    "CycleError",
    "MissingProviderError",
    # Provider
    "ProviderError",
    "TransientProviderError",
    "PermanentProviderError",
    "ProviderTimeoutError",
    "MissingOutputError",
    # Run-time
    "DependencyFailure",
    "InputResolutionError",
    "CellStateError",
    "StateTransitionError",
    "main_with_error_handling",
    "format_error_message",
]
