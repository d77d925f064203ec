"""Command line interface for the nightly Flatpak build."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Iterable
import sys

from core.command_runner import RecordingCommandRunner, SubprocessCommandRunner

from .config import ConfigError, load_config
from .console import Console
from .runner import NightlyBuild, serialize_plan

EXIT_CONFIG_ERROR = 2
EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127
EXIT_INTERRUPTED = 130


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(
        prog="flatpak-nightly",
        description="Build, install and export a nightly Flatpak with flatpak-builder",
    )
    parser.add_argument("--config", "-c", type=Path, default=None, help="Path to a nightly.toml/json/yaml file")
    parser.add_argument("--branch", help="Default branch for the build (overrides $BRANCH)")
    parser.add_argument("--dry-run", "-n", action="store_true", help="Print commands without executing them")
    parser.add_argument("--show-plan", action="store_true", help="Print the resolved build plan as JSON and exit")
    parser.add_argument("--export-bundle", action="store_true", help="Export a single-file bundle after a successful build")
    parser.add_argument("--no-elevate", action="store_true", help="Run commands without the privilege-elevation prefix")
    parser.add_argument(
        "--log",
        "-l",
        choices=list(Console.LEVELS),
        default=None,
        help="Set log level (default: none)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output (maps to debug)")
    return parser.parse_args(list(argv))


def _resolve_log_level(args: Namespace, configured: str | None) -> str:
    # Explicit --log wins, then --verbose, then the configuration file
    if args.log:
        return args.log
    if args.verbose:
        return "debug"
    return configured or "none"


def _emit_dry_run_output(runner: RecordingCommandRunner, *, workspace: Path) -> None:
    for line in runner.iter_formatted(workspace=workspace):
        print(line)


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    return _handle_build(args, Path.cwd())


def _handle_build(args: Namespace, workspace: Path) -> int:
    try:
        loaded = load_config(workspace, config_path=args.config)
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        console = Console(level=_resolve_log_level(args, loaded.log_level), dry_run=args.dry_run)
    except ValueError as exc:
        print(f"error: global.log_level: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    if loaded.source is not None:
        console.info(f"Using configuration from {loaded.source}")

    config = loaded.app.with_branch(args.branch)
    settings = loaded.builder.without_elevation() if args.no_elevate else loaded.builder

    runner: SubprocessCommandRunner | RecordingCommandRunner
    if args.dry_run or args.show_plan:
        runner = RecordingCommandRunner()
    else:
        runner = SubprocessCommandRunner()

    build = NightlyBuild(
        config=config,
        settings=settings,
        command_runner=runner,
        console=console,
        workspace=workspace,
        export_bundle=args.export_bundle,
    )

    if args.show_plan:
        print(serialize_plan(build.plan()))
        return 0

    try:
        returncode = build.run()
    except FileNotFoundError as exc:
        name = exc.filename or "command"
        print(f"error: {name}: not found", file=sys.stderr)
        return EXIT_NOT_FOUND
    except PermissionError as exc:
        name = exc.filename or "command"
        print(f"error: {name}: permission denied", file=sys.stderr)
        return EXIT_NOT_EXECUTABLE
    except KeyboardInterrupt:
        console.error("Interrupted")
        return EXIT_INTERRUPTED

    if args.dry_run and isinstance(runner, RecordingCommandRunner):
        console.dry(f"{len(runner.commands)} command(s) recorded")
        _emit_dry_run_output(runner, workspace=workspace)
    return returncode


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
