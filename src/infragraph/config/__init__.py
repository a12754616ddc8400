"""
infragraph configuration.

- Engine settings (environment variables, .env files)
- Stack configuration values consumed by infrastructure programs
"""

from infragraph.config.settings import Settings, get_settings
from infragraph.config.stack import StackConfig

__all__ = [
    "Settings",
    "get_settings",
    "StackConfig",
]
