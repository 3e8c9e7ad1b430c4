"""Structured JSON logging for the supervisor.

Every component takes a ScriptRunnerLogger so tests can inject a mock and the
CLI can share one configured instance.
"""

import json
import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from scriptrunner.core.exceptions import ScriptRunnerException, format_error_for_log

LOGGER_NAME = "scriptrunner"


class ScriptRunnerLogger:
    """Structured JSON logger with rotation.

    Outputs JSON lines to ~/.scriptrunner/logs/scriptrunner.log and to the console.
    Key-value pairs passed to each call are merged into the JSON record.
    """

    log_dir: Path | None
    log_file: Path | None

    def __init__(
        self,
        log_dir: str | None = None,
        max_bytes: int = 5 * 1024 * 1024,  # 5MB
        backup_count: int = 3,
        level: str | None = None,
        console: bool = True,
    ) -> None:
        """Initialize logger with rotation.

        Args:
            log_dir: Directory for log files (defaults to ~/.scriptrunner/logs/)
            max_bytes: Maximum size before rotation
            backup_count: Number of rotated files to keep
            level: Log level, falls back to SCRIPTRUNNER_LOG_LEVEL then WARNING
            console: Also emit records on stderr
        """
        disable_file_logging = os.environ.get("SCRIPTRUNNER_DISABLE_FILE_LOGGING", "").lower() in (
            "1",
            "true",
            "yes",
        )

        self._logger = logging.getLogger(LOGGER_NAME)
        self._logger.setLevel(logging.DEBUG)
        self._logger.propagate = False

        for handler in self._logger.handlers[:]:
            handler.close()
            self._logger.removeHandler(handler)

        if not disable_file_logging:
            if log_dir is None:
                self.log_dir = Path("~/.scriptrunner/logs").expanduser()
            else:
                self.log_dir = Path(log_dir)

            self.log_dir.mkdir(parents=True, exist_ok=True)
            self.log_file = self.log_dir / "scriptrunner.log"

            file_handler = RotatingFileHandler(
                self.log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
            file_handler.setFormatter(JSONFormatter())
            self._logger.addHandler(file_handler)
        else:
            self.log_dir = None
            self.log_file = None

        if console:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(JSONFormatter())
            self._logger.addHandler(console_handler)

        self.set_level(level or os.environ.get("SCRIPTRUNNER_LOG_LEVEL", "WARNING"))

    def set_level(self, level: str) -> None:
        """Set logging level.

        Args:
            level: One of DEBUG, INFO, WARN/WARNING, ERROR
        """
        level_upper = level.upper()
        if level_upper == "WARN":
            level_upper = "WARNING"

        self._logger.setLevel(getattr(logging, level_upper, logging.INFO))

    def debug(self, msg: str, **kv: Any) -> None:
        self._logger.debug(msg, extra={"kv": kv})

    def info(self, msg: str, **kv: Any) -> None:
        self._logger.info(msg, extra={"kv": kv})

    def warn(self, msg: str, **kv: Any) -> None:
        self._logger.warning(msg, extra={"kv": kv})

    def error(self, msg: str, **kv: Any) -> None:
        self._logger.error(msg, extra={"kv": kv})

    def exception(self, msg: str, exc: BaseException, **kv: Any) -> None:
        """Log an error record describing ``exc``.

        Script Runner exceptions contribute their structured fields
        (error code, metadata); anything else is logged by type and text.
        """
        if isinstance(exc, ScriptRunnerException):
            fields = format_error_for_log(exc)
            fields["error"] = fields.pop("message")
            kv.update(fields)
        else:
            kv.update({"error_type": type(exc).__name__, "error": str(exc)})
        self.error(msg, **kv)

    @contextmanager
    def operation(self, operation_name: str, **kv: Any) -> Iterator[None]:
        """Log ``<name>_start`` and ``<name>_end`` with the elapsed time.

        Example:
            with logger.operation("run_script", shell="bash"):
                ...
        """
        start_time = time.time()
        self.debug(f"{operation_name}_start", **kv)

        try:
            yield
        finally:
            duration_ms = (time.time() - start_time) * 1000
            self.debug(f"{operation_name}_end", duration_ms=duration_ms, **kv)


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created, tz=UTC)
        timestamp = dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

        log_data = {
            "timestamp": timestamp,
            "level": record.levelname,
            "message": record.getMessage(),
        }

        if hasattr(record, "kv") and record.kv:
            log_data.update(record.kv)

        return json.dumps(log_data, default=str)
