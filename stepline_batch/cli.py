"""
Command-line entry point: run one job from a YAML definition file.

Usage:
    stepline-run --config JOB_FILE --job NAME [options]

Examples:
    # Fresh run (a new run id is minted)
    stepline-run --config scripts/people_job.yaml --job importUserJob

    # Restart run 3 after a failure; completed chunks are not repeated
    stepline-run --config scripts/people_job.yaml --job importUserJob --run-id 3

    # Mark run 3 (left STARTED by a killed process) as failed, then restart it
    stepline-run --config scripts/people_job.yaml --job importUserJob --run-id 3 --abandon

Exit codes:
    0  the job COMPLETED
    1  the job ended FAILED or STOPPED, or could not be launched
    2  the job definition or command line is invalid

Ctrl-C requests a cooperative stop: the running step finishes its current
chunk and the job ends STOPPED, restartable under the same run id.
"""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import Sequence

EXIT_COMPLETED = 0
EXIT_FAILED = 1
EXIT_CONFIG_ERROR = 2


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    from stepline_config import RuntimeSettings

    settings = RuntimeSettings.from_env()
    parser = argparse.ArgumentParser(
        prog="stepline-run",
        description="Run a chunk-oriented batch job from a YAML job definition file.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        required=True,
        type=Path,
        help="Path to the YAML job definition file.",
    )
    parser.add_argument(
        "--job",
        required=True,
        help="Name of the job to run.",
    )
    parser.add_argument(
        "--run-id",
        type=int,
        default=None,
        help="Run id to restart (or to use for a new run). Default: next run id.",
    )
    parser.add_argument(
        "--abandon",
        action="store_true",
        help="Mark the --run-id run FAILED before launching (after a crash).",
    )
    parser.add_argument(
        "--db-url",
        default=settings.database_url,
        help=f"Job repository / data database URL (default: {settings.database_url!r}).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: STEPLINE_LOG_LEVEL or INFO).",
    )
    args = parser.parse_args(argv)
    if args.abandon and args.run_id is None:
        parser.error("--abandon requires --run-id")
    args.default_log_level = settings.log_level
    return args


def _run_setup_sql(engine, statements: Sequence[str]) -> None:
    from sqlalchemy import text

    if not statements:
        return
    with engine.begin() as conn:
        for statement in statements:
            conn.execute(text(statement))


def _install_stop_handler(stop_event: threading.Event):
    if threading.current_thread() is not threading.main_thread():
        return None

    def _request_stop(signum, frame):
        print("Stop requested; finishing the current chunk...", file=sys.stderr)
        stop_event.set()

    return signal.signal(signal.SIGINT, _request_stop)


def main(argv: Sequence[str] | None = None) -> int:
    try:
        args = _parse_args(argv)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    # Lazy imports so we fail fast on args first
    import logging

    import yaml
    from sqlalchemy.exc import SQLAlchemyError

    from stepline_batch.domain.types import ExecutionStatus
    from stepline_batch.orchestrator import BatchOrchestrator
    from stepline_batch.registry import ComponentContext
    from stepline_batch.services.listeners import LoggingListener
    from stepline_config import assemble_job, assemble_listeners, load_job_definitions
    from stepline_io import default_component_registry
    from stepline_kernel.db.engine import (
        create_tables,
        get_session_factory,
        init_engine_from_url,
    )
    from stepline_kernel.exceptions import ConfigurationError, SteplineError
    from stepline_kernel.logging_config import configure_logging

    level = args.default_log_level
    if args.log_level:
        level = logging.getLevelName(args.log_level.upper())
        if not isinstance(level, int):
            print(f"ERROR: Unknown log level {args.log_level!r}", file=sys.stderr)
            return EXIT_CONFIG_ERROR
    configure_logging(level=level)

    # Load and validate the definition
    try:
        definitions = load_job_definitions(args.config)
        job_def = definitions.get(args.job)
    except (ConfigurationError, KeyError, ValueError, OSError, yaml.YAMLError) as e:
        print(f"ERROR: Invalid job definition: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    # Init DB and build the job
    try:
        engine = init_engine_from_url(args.db_url)
        create_tables(engine)
        context = ComponentContext(engine=engine, base_path=args.config.resolve().parent)
        registry = default_component_registry()
        job = assemble_job(job_def, registry, context)
        listeners = (LoggingListener(), *assemble_listeners(job_def, registry, context))
    except ConfigurationError as e:
        print(f"ERROR: Invalid job definition: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except SQLAlchemyError as e:
        print(f"ERROR: Database unavailable: {e}", file=sys.stderr)
        return EXIT_FAILED

    try:
        _run_setup_sql(engine, job_def.setup_sql)
    except SQLAlchemyError as e:
        print(f"ERROR: setup_sql failed: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    orchestrator = BatchOrchestrator.from_session_factory(get_session_factory())
    launcher = orchestrator.create_launcher()

    stop_event = threading.Event()
    previous_handler = _install_stop_handler(stop_event)
    try:
        if args.abandon:
            launcher.abandon(job.name, args.run_id)
        execution = launcher.launch(
            job, run_id=args.run_id, listeners=listeners, stop_event=stop_event,
        )
    except SteplineError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_FAILED
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)

    print(f"Job:      {execution.job_name}")
    print(f"Run id:   {execution.run_id}")
    print(f"Status:   {execution.status.value}")
    print(f"Attempt:  {execution.attempt}")
    for step in execution.latest_step_executions().values():
        print(
            f"  {step.step_name}: {step.status.value} "
            f"(read={step.read_count} written={step.write_count} "
            f"skipped={step.skip_count} filtered={step.filter_count} "
            f"commits={step.commit_count})"
        )

    if execution.status is not ExecutionStatus.COMPLETED:
        print(f"ERROR: {execution.exit_description}", file=sys.stderr)
        return EXIT_FAILED
    return EXIT_COMPLETED


if __name__ == "__main__":
    sys.exit(main())
