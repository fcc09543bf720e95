"""
Logging for voice buddy.

Every stage of a voice command logs through StructuredLogger so a single
command can be followed by its command_id in one JSON log stream.
Transcripts are user speech and only go through the *_pii helpers, which put
them under a separate "pii" key.
"""

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class Component(str, Enum):
    """Log source tags."""
    PIPELINE = "pipeline"
    PROMPT = "prompt"
    INTENT_CLIENT = "intent_client"
    VALIDATOR = "validator"
    DISPATCHER = "dispatcher"
    EXECUTOR = "executor"
    FEEDBACK = "feedback"
    CONFIG = "config"
    COMMAND_API = "command_api"


_RESERVED_FIELDS = frozenset([
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "component", "command_id", "message", "taskName",
])

_LATENCY_RE = re.compile(r'("latency_ms"\s*:\s*)(\d+)')


def _color_enabled() -> bool:
    return os.environ.get("NO_COLOR", "").lower() not in ("1", "true", "yes")


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record: timestamp, severity, component, command_id,
    message, then any keyword fields passed to the logger.

    latency_ms is highlighted for terminals unless NO_COLOR is set.
    """

    ORANGE = '\033[38;5;208m'
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": record.levelname.lower(),
            "component": getattr(record, "component", "unknown"),
            "message": record.getMessage(),
        }

        if hasattr(record, "command_id"):
            log_data["command_id"] = record.command_id

        for key, value in record.__dict__.items():
            if key not in _RESERVED_FIELDS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        output = json.dumps(log_data, ensure_ascii=False, default=str)
        if "latency_ms" in log_data and _color_enabled():
            output = _LATENCY_RE.sub(rf'\1{self.ORANGE}\2{self.RESET}', output)
        return output


class StructuredLogger:
    """
    Wrapper around Python's logging with structured JSON output.

    Usage:
        logger = StructuredLogger(Component.PIPELINE, command_id="cmd_123")
        logger.info("Intent received", action="open_file")
        logger.error("Executor failed", error="details")
        logger.info_pii("Transcript", transcript="open my resume")
    """

    def __init__(
        self,
        component: str | Component,
        command_id: Optional[str] = None,
        logger_name: Optional[str] = None
    ):
        self.component = component.value if isinstance(component, Component) else component
        self.command_id = command_id
        self.logger = logging.getLogger(logger_name or self.component)

    def _log(
        self,
        level: int,
        message: str,
        pii: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        exc_info = kwargs.pop("exc_info", None)
        stack_info = kwargs.pop("stack_info", None)
        stacklevel = kwargs.pop("stacklevel", 1)

        extra = {
            "component": self.component,
            **kwargs
        }

        if self.command_id:
            extra["command_id"] = self.command_id

        if pii:
            extra["pii"] = pii

        self.logger.log(
            level,
            message,
            exc_info=exc_info,
            stack_info=stack_info,
            stacklevel=stacklevel,
            extra=extra
        )

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, **kwargs)

    def exception(self, message: str, **kwargs):
        """Log an error message with exception info, mirroring logging.Logger.exception."""
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, message, **kwargs)

    def debug_pii(self, message: str, **pii_fields):
        """
        Log debug with PII fields explicitly marked.

        Example:
            logger.debug_pii("Heard", transcript="open my resume")
        """
        self._log(logging.DEBUG, message, pii=pii_fields)

    def info_pii(self, message: str, **pii_fields):
        """Log info with PII fields explicitly marked."""
        self._log(logging.INFO, message, pii=pii_fields)

    def with_command(self, command_id: str) -> "StructuredLogger":
        """Create a new logger instance bound to a command ID."""
        return StructuredLogger(
            self.component,
            command_id=command_id,
            logger_name=self.logger.name
        )


def setup_logging(
    level: str = "INFO",
    use_json: bool = True,
    include_timestamp: bool = True
) -> None:
    """
    Configure root logger for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Use JSON formatter (True) or simple text (False)
        include_timestamp: Include timestamps in text logs

    This should be called once at application startup.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)

    if use_json:
        formatter = JSONFormatter()
    else:
        format_str = "%(levelname)s - %(component)s - %(message)s"
        if include_timestamp:
            format_str = "%(asctime)s - " + format_str
        formatter = logging.Formatter(format_str, defaults={"component": "unknown"})

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)


def get_logger(
    component: str | Component,
    command_id: Optional[str] = None
) -> StructuredLogger:
    """
    Get a structured logger for a component.

    Example:
        logger = get_logger(Component.DISPATCHER, command_id="cmd_123")
        logger.info("Action dispatched")
    """
    return StructuredLogger(component, command_id=command_id)
