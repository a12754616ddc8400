"""
Loading infrastructure programs for the CLI.

A program reference is either a built-in name (``airtek``) or
``package.module:function``. The function is called as
``function(ctx, config)``. A module may also define
``create_registry() -> ProviderRegistry`` to supply real provider adapters.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Any, Callable

from infragraph.config.stack import StackConfig
from infragraph.core.errors import ConfigurationError
from infragraph.engine.context import RunContext
from infragraph.providers.memory import InMemoryProvider
from infragraph.providers.registry import ProviderRegistry

ProgramFn = Callable[[RunContext, StackConfig], Any]

BUILTIN_PROGRAMS = {
    "airtek": "infragraph.programs.airtek:declare",
}


@dataclass
class LoadedProgram:
    """A program function and the module it came from."""

    reference: str
    fn: ProgramFn
    module: Any

    def registry(self, simulate: bool = False) -> ProviderRegistry:
        """Provider registry for this program."""
        if simulate:
            simulated = getattr(self.module, "simulated_registry", None)
            if callable(simulated):
                return simulated()
            return ProviderRegistry(default=InMemoryProvider())

        factory = getattr(self.module, "create_registry", None)
        if not callable(factory):
            raise ConfigurationError(
                f"Program '{self.reference}' defines no create_registry(); "
                "pass --simulate to run against the in-memory provider",
                details={"program": self.reference},
            )
        return factory()


def load_program(reference: str) -> LoadedProgram:
    target = BUILTIN_PROGRAMS.get(reference, reference)
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(
            f"Program must be a built-in name or 'module:function', got '{reference}'",
            details={"program": reference},
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(
            f"Cannot import program module '{module_name}': {e}",
            details={"program": reference},
        ) from e

    fn = getattr(module, attr, None)
    if not callable(fn):
        raise ConfigurationError(
            f"'{attr}' in '{module_name}' is not callable", details={"program": reference}
        )
    return LoadedProgram(reference=reference, fn=fn, module=module)


def declare_program(
    program: LoadedProgram,
    stack: str,
    config_path: str | None = None,
) -> RunContext:
    """Run the program's declarations on a fresh RunContext."""
    config = StackConfig.load(config_path) if config_path else StackConfig()
    ctx = RunContext(stack=stack)
    program.fn(ctx, config)
    return ctx
