"""
CLI commands for infragraph.
"""

from infragraph.cli.preview import preview_command
from infragraph.cli.up import up_command

__all__ = [
    "preview_command",
    "up_command",
]
