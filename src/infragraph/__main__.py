"""
infragraph CLI

Usage:
    infragraph preview <program> [--config stack.yaml] [--format text|plain|json|mermaid|dot]
    infragraph up <program> [--config stack.yaml] [--simulate] [--output text|json]

<program> is a built-in program name (airtek) or 'module:function'.
"""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from infragraph.config.settings import get_settings
from infragraph.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="infragraph", description="infragraph CLI")
    subparsers = parser.add_subparsers(dest="command")

    preview_parser = subparsers.add_parser(
        "preview",
        help="Show the dependency graph a program declares (no provisioning)",
    )
    preview_parser.add_argument("program", help="Built-in program name or module:function")
    preview_parser.add_argument("--config", help="Stack configuration YAML file")
    preview_parser.add_argument("--stack", default="dev", help="Stack name")
    preview_parser.add_argument(
        "--format",
        choices=["text", "plain", "json", "mermaid", "dot"],
        default="text",
        help="Output format",
    )
    preview_parser.add_argument("-o", "--output-file", help="Write output to file")

    up_parser = subparsers.add_parser("up", help="Provision every resource a program declares")
    up_parser.add_argument("program", help="Built-in program name or module:function")
    up_parser.add_argument("--config", help="Stack configuration YAML file")
    up_parser.add_argument("--stack", default="dev", help="Stack name")
    up_parser.add_argument(
        "--simulate",
        action="store_true",
        help="Run against the in-memory provider instead of real adapters",
    )
    up_parser.add_argument(
        "--output", choices=["text", "json"], default="text", help="Output format"
    )
    up_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show each resource as it changes state"
    )

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.log_level, json=settings.log_json)

    if args.command == "preview":
        from infragraph.cli.preview import preview_command

        sys.exit(
            preview_command(
                args.program,
                config_path=args.config,
                stack=args.stack,
                output_format=args.format,
                output_file=args.output_file,
            )
        )

    if args.command == "up":
        from infragraph.cli.up import up_command

        sys.exit(
            up_command(
                args.program,
                config_path=args.config,
                stack=args.stack,
                simulate=args.simulate,
                output_format=args.output,
                verbose=args.verbose,
            )
        )

    parser.print_help()
    sys.exit(2)


if __name__ == "__main__":
    main()
