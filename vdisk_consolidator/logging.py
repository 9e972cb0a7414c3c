from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "VDISK_CONSOLIDATOR_LOG_DIR",
        Path.home() / ".local" / "state" / "vdisk-consolidator" / "logs",
    )
)

# Every line in every sink starts with a timestamp so a run can be
# reconstructed from the operations log alone.
_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
    "{level: <8} | "
    "{extra[source]: <10} | "
    "{extra[job_id]: <22} | "
    "{message}"
)


def _should_log_command_output(record) -> bool:
    """Keep raw subprocess chatter out of the console unless tracing."""
    tags = record["extra"].get("tags", [])
    if "command" in tags and record["level"].no < logger.level("INFO").no:
        return record["level"].no <= logger.level("TRACE").no
    return True


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
    console: bool = True,
) -> Logger:
    """
    Setup logging sinks for a consolidation run.

    Logging Tiers:
    - CRITICAL/ERROR: Run-fatal conditions, aborted groups, failed merges
    - WARNING: Unreadable disks, broken chains, disks left behind after merge
    - SUCCESS/INFO: Run/group start and end, one line per merge outcome
    - DEBUG: Lineage walks, plans, machine polling, command lines
    - TRACE: Raw command output

    Log Files:
    - operations.log: INFO+ events (14 day retention)
    - debug.log: DEBUG+ events when --debug is enabled (3 day retention)
    - structured.jsonl: Structured JSON logs for analysis (14 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (very verbose)
        log_dir: Custom log directory (defaults to ~/.local/state/vdisk-consolidator/logs)
        console: Also log to stderr
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "APP"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console (stderr)
    if console:
        logger.add(
            sys.stderr,
            level=console_level,
            backtrace=False,
            diagnose=False,
            filter=_should_log_command_output,
            colorize=True,
            format=(
                "<green>{time:HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{extra[source]: <10}</cyan> | "
                "{message}"
            ),
        )

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Operations Log
    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="14 days",
        compression="zip",
        backtrace=False,
        diagnose=False,
        format=_FILE_FORMAT,
    )

    # SINK 3: Debug Log
    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="TRACE" if trace else "DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            backtrace=True,
            diagnose=True,
            format=_FILE_FORMAT + " | {extra[tags]}",
        )

    # SINK 4: Structured JSON Log
    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="14 days",
        compression="zip",
        serialize=True,
        format="{message}",
    )

    return logger


@contextmanager
def operation_context(operation: str, **details):
    """
    Context manager for tracking long-running operations with automatic timing.

    Automatically logs operation start, completion, and failure with duration tracking.

    Args:
        operation: Operation name (e.g., "consolidate")
        **details: Operation-specific details to log

    Yields:
        Logger bound with job_id and operation context

    Example:
        with operation_context("consolidate", root_dir="/srv/vms") as log:
            log.debug("Building inventory")
    """
    job_id = f"{operation}-{uuid.uuid4().hex[:8]}"

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation[:10], job_id=job_id, tags=[operation])

        log.info(f"{operation.capitalize()} started", **details)

        try:
            yield log
            duration = time.time() - start_time
            log.success(
                f"{operation.capitalize()} completed", duration_seconds=round(duration, 2)
            )
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"{operation.capitalize()} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating component loggers with automatic context.

    Each component takes a ``log`` argument and falls back to the matching
    factory method, so tests can hand in their own bound logger.
    """

    @staticmethod
    def for_run(job_id: str | None = None) -> Logger:
        """Logger for the run orchestrator."""
        if job_id is None:
            job_id = f"run-{uuid.uuid4().hex[:8]}"
        return logger.bind(job_id=job_id, source="run", tags=["run"])

    @staticmethod
    def for_inventory() -> Logger:
        """Logger for disk discovery and metadata queries."""
        return logger.bind(source="inventory", tags=["inventory", "storage"])

    @staticmethod
    def for_lineage() -> Logger:
        """Logger for parent chain resolution and grouping."""
        return logger.bind(source="lineage", tags=["lineage"])

    @staticmethod
    def for_machine(machine_name: str | None = None) -> Logger:
        """Logger for hypervisor state and power control."""
        return logger.bind(
            source="machine", tags=["machine", "hypervisor"], machine=machine_name or "-"
        )

    @staticmethod
    def for_merge() -> Logger:
        """Logger for merge execution."""
        return logger.bind(source="merge", tags=["merge", "storage"])

    @staticmethod
    def for_command() -> Logger:
        """Logger for external command execution."""
        return logger.bind(source="command", tags=["command"])
