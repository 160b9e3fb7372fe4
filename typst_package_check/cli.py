"""Command line entry point.

    typst-package-check check [PACKAGE]   check a directory or a registry package
    typst-package-check server            run the GitHub App webhook server
    typst-package-check action            check the commit of a CI run once
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from . import __version__
from .check.pipeline import CheckResult, check_directory, check_registry_package
from .config import ActionConfig, ServerConfig, load_environment
from .core.exceptions import ConfigurationError, InvalidPackageSpec
from .logging_config import configure_logging
from .package.loader import Registry
from .package.spec import PackageSpec

logger = logging.getLogger(__name__)

EXIT_PASS = 0
EXIT_FAIL = 1
EXIT_FATAL = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="typst-package-check",
        description="Check Typst packages for common mistakes",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", help="Logging level (default: LOG_LEVEL, then WARNING)")
    parser.add_argument("--env-file", help="Read environment variables from this file")

    subcommands = parser.add_subparsers(dest="command", required=True)

    check = subcommands.add_parser("check", help="Check a package and print the diagnostics")
    check.add_argument(
        "package",
        nargs="?",
        help="Package to check in PACKAGES_DIR, as @namespace/name:version. "
        "Defaults to the package in the current directory.",
    )
    check.add_argument("--json", action="store_true", help="Print the report as JSON")

    subcommands.add_parser("server", help="Run the webhook server")
    subcommands.add_parser("action", help="Check the commit of the current CI run")
    return parser


def run_check(package: str | None, json_output: bool = False) -> int:
    packages_dir = os.environ.get("PACKAGES_DIR")
    if package is None:
        registry = Registry(packages_dir) if packages_dir else None
        result = check_directory(Path.cwd(), registry=registry)
    else:
        spec = PackageSpec.parse(package)
        result = check_registry_package(Registry(packages_dir or Path.cwd()), spec)

    print(format_result(result, json_output))
    return EXIT_PASS if result.passed else EXIT_FAIL


def format_result(result: CheckResult, json_output: bool = False) -> str:
    if json_output:
        return result.report.to_json()
    return result.report.render(result.package.files)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        load_environment(args.env_file)
        configure_logging(args.log_level or os.environ.get("LOG_LEVEL") or "WARNING")
        if args.command == "check":
            return run_check(args.package, args.json)
        if args.command == "server":
            # Imported here so that `check` does not need the server stack.
            from .github.server import run_server

            config = ServerConfig.from_env()
            if args.log_level is None:
                configure_logging(config.log_level)
            run_server(config)
            return EXIT_PASS
        from .github.action import run_action

        config = ActionConfig.from_env()
        return run_action(config)
    except (ConfigurationError, InvalidPackageSpec, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FATAL
    except KeyboardInterrupt:
        print("\nShutting down...", file=sys.stderr)
        return EXIT_PASS


if __name__ == "__main__":
    sys.exit(main())
