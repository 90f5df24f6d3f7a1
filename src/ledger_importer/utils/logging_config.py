"""Logging setup shared by the CLI and the import pipeline.

All loggers live under the ``ledger_importer`` namespace so a single call to
:func:`setup_logging` controls the file and stderr output of every module.
"""

import logging
import sys
import time
from pathlib import Path

PACKAGE_LOGGER = "ledger_importer"
DEFAULT_LOG_FILE = "ledger_importer.log"

# Values that never reach a log line in clear text
SENSITIVE_FIELDS = {"iban", "account_number", "closing_balance", "api_key", "token", "secret"}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def mask_sensitive(context: dict[str, object]) -> dict[str, object]:
    """Replace values of sensitive keys with ``***``."""
    return {key: "***" if key.lower() in SENSITIVE_FIELDS else value for key, value in context.items()}


def _add_handler(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    console_output: bool = True,
) -> logging.Logger:
    """Configure the package logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Log file path. ``None`` selects DEFAULT_LOG_FILE and an
            empty string disables file logging.
        console_output: Also log to stderr.

    Returns:
        The configured ``ledger_importer`` logger.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(numeric_level)
    logger.handlers.clear()

    target = DEFAULT_LOG_FILE if log_file is None else log_file
    if target:
        log_path = Path(target)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        _add_handler(logger, logging.FileHandler(log_path, encoding="utf-8"), numeric_level)

    if console_output:
        _add_handler(logger, logging.StreamHandler(sys.stderr), numeric_level)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a logger for ``name`` inside the package namespace."""
    if name == PACKAGE_LOGGER or name.startswith(f"{PACKAGE_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


class LogContext:
    """Log the start, duration and failure of one pipeline step.

    Example:
        with LogContext(logger, "reconcile", account="assets:bank:ubs:chf"):
            ...
    """

    def __init__(self, logger: logging.Logger, operation: str, **context: object):
        """Initialize log context.

        Args:
            logger: Logger to write to.
            operation: Step name used in every message.
            **context: Extra key/value pairs for the start message. Sensitive
                keys are masked.
        """
        self.logger = logger
        self.operation = operation
        self.context = context
        self.started_at = 0.0

    @property
    def elapsed(self) -> float:
        """Seconds since the step started."""
        return time.monotonic() - self.started_at

    def __enter__(self) -> "LogContext":
        self.started_at = time.monotonic()
        details = ", ".join(f"{key}={value}" for key, value in mask_sensitive(self.context).items())
        self.logger.debug(f"Starting {self.operation}" + (f": {details}" if details else ""))
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> bool:
        if exc_type is not None:
            self.logger.error(
                f"{self.operation} failed after {self.elapsed:.2f}s: {exc_type.__name__}: {exc_val}",
                exc_info=True,
            )
        else:
            self.logger.debug(f"Completed {self.operation} in {self.elapsed:.2f}s")
        return False
