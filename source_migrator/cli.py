"""Command line entry point for migrating source members to stream files."""

import argparse
import asyncio
import json
import os
import signal
import sys
import tempfile
from pathlib import Path

from .core.config_loader import MigratorConfig, load_config_async
from .core.exceptions import (
    CommandExecutionError,
    ConfigurationError,
    ContainerNotFoundError,
    InfrastructureError,
    NotFoundError,
    PreconditionError,
)
from .core.filesystem import resolve_output_root
from .core.logging_config import get_migration_logger, setup_logging
from .core.settings import MAX_CONCURRENCY, MIGRATION_DEADLINE
from .models.migration import MigrationScope, MigrationSummary, TransferOutcome
from .runtime import MigrationRuntime, create_runtime
from .services.migration import SourceMigrationOrchestrator

EXIT_OK = 0
EXIT_PRECONDITION = 1
EXIT_INFRASTRUCTURE = 3
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="source-migrator",
        description="Migrates IBM i source physical files to IFS stream files.",
    )
    parser.add_argument("-sl", "--source-lib", dest="library", required=True, help="Source library")
    parser.add_argument("--spf", dest="source_pf", default=None, help="Source physical file")
    parser.add_argument(
        "--mbrs", dest="members", nargs="+", default=[], help="Specific source members to migrate"
    )
    parser.add_argument(
        "-o", dest="output_dir", default=None, help="Sources destination (default: ~/sources)"
    )
    parser.add_argument("--host", default=None, help="Host id from the config file (default: local)")
    parser.add_argument("--config", default=None, help="Configuration file path")
    parser.add_argument(
        "--max-concurrency",
        type=int,
        default=None,
        help=f"Maximum concurrent member transfers, 0 for unbounded (default: {MAX_CONCURRENCY})",
    )
    parser.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Stop starting new transfers after this many seconds",
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Validate and list targets without copying"
    )
    parser.add_argument("--json", dest="json_output", action="store_true", help="Output as JSON")
    parser.add_argument("-v", dest="verbose", action="store_true", help="Verbose output")
    parser.add_argument("-x", dest="debug", action="store_true", help="Debug")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.members and not args.source_pf:
        parser.error("Members can only be specified when a specific source PF is provided.")
    if args.max_concurrency is not None and args.max_concurrency < 0:
        parser.error("--max-concurrency must be 0 or greater")
    if args.deadline is not None and args.deadline <= 0:
        parser.error("--deadline must be greater than 0")
    return args


def _resolve_log_level(args: argparse.Namespace) -> str:
    if args.debug:
        return "DEBUG"
    if args.verbose:
        return "INFO"
    return args.log_level or os.getenv("LOG_LEVEL", "WARNING")


def _setup_log_directory() -> str | None:
    """Setup log directory with fallback options."""
    log_dir_candidates = [
        os.getenv("LOG_DIR"),
        str(Path.home() / ".local" / "share" / "source-migrator" / "logs"),
        str(Path(tempfile.gettempdir()) / "source-migrator-logs"),
    ]

    for candidate in log_dir_candidates:
        if candidate:
            try:
                candidate_path = Path(candidate)
                candidate_path.mkdir(parents=True, exist_ok=True)
                if candidate_path.is_dir() and os.access(candidate_path, os.W_OK):
                    return str(candidate_path)
            except OSError:
                continue

    return None


def _print_outcome(outcome: TransferOutcome) -> None:
    target = outcome.target
    if outcome.success:
        print(f"Migrated SourcePf: {target.container} | member: {target.file_name}: OK")
    else:
        print(f"Could not migrate {target.label}: Failed ({outcome.reason})")


def _print_summary(summary: MigrationSummary, json_output: bool) -> None:
    if json_output:
        print(json.dumps(summary.model_dump(mode="json"), indent=2))
        return
    if summary.dry_run:
        for path in summary.planned_paths:
            print(f"Would migrate: {path}")
    for line in summary.report_lines():
        print(line)


async def _print_header(runtime: MigrationRuntime) -> None:
    print(f"User: {runtime.runner.user_name()}")
    print(f"System: {await runtime.catalog.system_name()}")
    print(f"System's CCSID: {await runtime.catalog.system_ccsid()}")


def _install_cancel_handlers(orchestrator: SourceMigrationOrchestrator) -> list[int]:
    """First SIGINT/SIGTERM stops dispatching; in-flight transfers still finish."""
    loop = asyncio.get_running_loop()
    installed = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, orchestrator.cancel)
        except (NotImplementedError, RuntimeError):
            # Signal handlers are unavailable on this platform/loop
            break
        installed.append(signum)
    return installed


async def run_migration(
    args: argparse.Namespace, config: MigratorConfig | None = None
) -> MigrationSummary:
    """Run one migration as described by parsed CLI arguments."""
    scope = MigrationScope(library=args.library, container=args.source_pf, members=args.members)

    if config is None:
        config = await load_config_async(args.config)

    runtime = create_runtime(config, host_id=args.host)
    installed_signals: list[int] = []
    try:
        home = await runtime.runner.home_directory()
        output_root = resolve_output_root(args.output_dir or config.migration.output_dir, home)

        max_concurrency = args.max_concurrency
        if max_concurrency is None:
            max_concurrency = config.migration.max_concurrency
        if max_concurrency is None:
            max_concurrency = MAX_CONCURRENCY

        orchestrator = SourceMigrationOrchestrator(
            catalog=runtime.catalog,
            transfer=runtime.transfer,
            filesystem=runtime.filesystem,
            max_concurrency=max_concurrency,
            deadline=args.deadline or config.migration.deadline or MIGRATION_DEADLINE,
            on_outcome=None if args.json_output else _print_outcome,
        )
        await orchestrator.validator.validate_scope(scope)

        if not args.json_output:
            await _print_header(runtime)

        if not args.dry_run:
            usable, message = await runtime.transfer.validate_requirements()
            if not usable:
                raise CommandExecutionError(message)

        installed_signals = _install_cancel_handlers(orchestrator)
        return await orchestrator.run(scope, output_root, dry_run=args.dry_run, validated=True)
    finally:
        loop = asyncio.get_running_loop()
        for signum in installed_signals:
            loop.remove_signal_handler(signum)
        await runtime.close()


def _report_error(error: Exception) -> None:
    print(f"Error: {error}", file=sys.stderr)
    if isinstance(error, ContainerNotFoundError) and error.available:
        print("Available source PFs:", file=sys.stderr)
        print(f"  {'Source PF':<10}  {'Members':>7}", file=sys.stderr)
        for name, count in sorted(error.available.items()):
            print(f"  {name:<10}  {count:>7}", file=sys.stderr)
    elif isinstance(error, NotFoundError) and error.suggestions:
        print("Did you mean: " + ", ".join(error.suggestions), file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    setup_logging(log_dir=_setup_log_directory(), log_level=_resolve_log_level(args))
    logger = get_migration_logger()

    try:
        summary = asyncio.run(run_migration(args))
    except PreconditionError as e:
        _report_error(e)
        return EXIT_PRECONDITION
    except (InfrastructureError, ConfigurationError) as e:
        logger.error("Migration could not run", error=str(e), error_type=type(e).__name__)
        _report_error(e)
        return EXIT_INFRASTRUCTURE
    except KeyboardInterrupt:
        logger.warning("Migration interrupted")
        return EXIT_INTERRUPTED

    _print_summary(summary, args.json_output)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
