"""
Stack configuration values for infrastructure programs.

A stack file is YAML with a top-level ``config`` mapping. Keys may carry a
project prefix (``airtek:minClusterSize``); the prefix is stripped so
programs read plain names:

    config:
      airtek:minClusterSize: 2
      airtek:vpcNetworkCidr: 10.0.0.0/16
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import structlog
import yaml

from infragraph.core.errors import ConfigurationError

logger = structlog.get_logger()

_TRUE = {"true", "yes", "1", "on"}
_FALSE = {"false", "no", "0", "off"}


class StackConfig:
    """Read-only view over a program's configuration values."""

    def __init__(self, values: Mapping[str, Any] | None = None, project: str | None = None):
        self.project = project
        self._values: dict[str, Any] = {}
        for key, value in (values or {}).items():
            self._values[_strip_project(str(key), project)] = value

    @classmethod
    def load(cls, path: str | Path, project: str | None = None) -> StackConfig:
        """Load stack configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(
                f"Stack config file not found: {path}", details={"path": str(path)}
            )
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in stack config: {e}", details={"path": str(path)}
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                "Stack config must be a mapping", details={"path": str(path)}
            )
        values = data.get("config", {}) or {}
        if not isinstance(values, dict):
            raise ConfigurationError(
                "'config' section must be a mapping", details={"path": str(path)}
            )

        logger.debug("loaded_stack_config", path=str(path), keys=len(values))
        return cls(values, project=project)

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def require(self, key: str) -> Any:
        if key not in self._values:
            raise ConfigurationError(
                f"Missing required configuration value '{key}'", details={"key": key}
            )
        return self._values[key]

    def get_int(self, key: str, default: int | None = None) -> int | None:
        if key not in self._values:
            return default
        return self._as_int(key, self._values[key])

    def require_int(self, key: str) -> int:
        return self._as_int(key, self.require(key))

    def get_bool(self, key: str, default: bool | None = None) -> bool | None:
        if key not in self._values:
            return default
        value = self._values[key]
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigurationError(
            f"Configuration value '{key}' is not a boolean: {value!r}", details={"key": key}
        )

    def keys(self) -> list[str]:
        return list(self._values)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    @staticmethod
    def _as_int(key: str, value: Any) -> int:
        if isinstance(value, bool):
            raise ConfigurationError(
                f"Configuration value '{key}' is not an integer: {value!r}", details={"key": key}
            )
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Configuration value '{key}' is not an integer: {value!r}", details={"key": key}
            ) from e


def _strip_project(key: str, project: str | None) -> str:
    if ":" not in key:
        return key
    prefix, _, name = key.partition(":")
    if project is None or prefix == project:
        return name
    return key
