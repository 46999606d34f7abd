# =============================================================================
# ledger_core/logging/config.py
# Log Handlers, Named Loggers and Timed Operations
# =============================================================================

import logging
import sys
import time
from datetime import date
from pathlib import Path
from typing import List, Optional, Union

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_DIR = Path("logs")

# HTTP and client libraries log every request at INFO
QUIET_LOGGERS = ("urllib3", "httpx", "httpcore", "hpack", "supabase", "postgrest")


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_to_file: bool = True,
    log_filename: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> None:
    """
    Route ledger logs to stdout and, optionally, a daily file.

    Args:
        level: Level number or name such as "DEBUG"; unknown names mean INFO
        log_to_file: Also write to <log_dir>/<log_filename>
        log_filename: Defaults to ledger_<today>.log
        log_dir: Defaults to ./logs
    """
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_to_file:
        target_dir = Path(log_dir) if log_dir else LOG_DIR
        target_dir.mkdir(parents=True, exist_ok=True)
        name = log_filename or f"ledger_{date.today().isoformat()}.log"
        handlers.append(logging.FileHandler(target_dir / name))

    # force=True so a Streamlit rerun replaces the handlers instead of stacking them
    logging.basicConfig(
        level=_resolve_level(level),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    for noisy in QUIET_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger("ledger_core").info("Logging initialized")


def get_logger(name: str) -> logging.Logger:
    """Module-level logger; pass ``__name__``."""
    return logging.getLogger(name)


class LogContext:
    """
    Log the start, end and duration of a block.

        with LogContext(logger, "Sync cycle"):
            engine.push_local_changes()

    writes "Sync cycle... started" then "Sync cycle... completed (0.84s)",
    or "failed" with the traceback. The exception still propagates.
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self._started: Optional[float] = None

    @property
    def elapsed(self) -> float:
        return 0.0 if self._started is None else time.perf_counter() - self._started

    def __enter__(self):
        self._started = time.perf_counter()
        self.logger.info(f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.logger.info(f"{self.operation}... completed ({self.elapsed:.2f}s)")
        else:
            self.logger.error(
                f"{self.operation}... failed ({self.elapsed:.2f}s): {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb),
            )
        return False
