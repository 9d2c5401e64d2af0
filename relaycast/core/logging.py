"""
Centralized logging setup for relaycast processes.
"""
import datetime
import json
import logging
import os
import sys
import tempfile
from typing import Any, Optional


def _resolve_log_dir() -> Optional[str]:
    """Determine a writable log directory, or None when nothing is writable."""
    candidates = []

    env_dir = os.environ.get("RELAYCAST_LOG_DIR")
    if env_dir:
        candidates.append(env_dir)

    # Fallback to system temporary directory
    candidates.append(os.path.join(tempfile.gettempdir(), "relaycast-logs"))

    for directory in candidates:
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError:
            continue
        if os.access(directory, os.W_OK):
            return directory

    return None


def setup_logging(level: str = "INFO", log_file: str = "relaycast.log") -> logging.Logger:
    """Setup logging configuration with console and file output."""
    handlers = [logging.StreamHandler()]

    log_dir = _resolve_log_dir()
    log_path = os.path.join(log_dir, log_file) if log_dir else None
    if log_path:
        try:
            handlers.append(logging.FileHandler(log_path, mode='a', encoding='utf-8'))
        except OSError as e:
            print(f"WARNING: Cannot write to log file {log_path}: {e}", file=sys.stderr)
            log_path = None

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%H:%M:%S',
        handlers=handlers
    )

    logger = logging.getLogger("relaycast")
    logger.info(f"Logging initialized - output will be written to: {log_path or 'console only'}")

    return logger


def _format(message: str, data: Optional[Any]) -> str:
    timestamp = datetime.datetime.now().strftime("%H:%M:%S.%f")[:-3]
    if not data:
        return f"[{timestamp}] {message}"
    if isinstance(data, dict):
        return f"[{timestamp}] {message}\nData: {json.dumps(data, indent=2, default=str)}"
    return f"[{timestamp}] {message} - {data}"


def debug_log(message: str, data: Optional[Any] = None, level: str = "INFO",
              logger: Optional[logging.Logger] = None) -> None:
    """
    Structured logging helper.

    Args:
        message: The log message
        data: Optional data to log; dicts are pretty printed as JSON
        level: Log level (INFO, DEBUG, WARNING, ERROR)
        logger: Logger to write to, the package logger by default
    """
    logger = logger or logging.getLogger("relaycast")
    log_level = getattr(logging, level.upper())
    if logger.isEnabledFor(log_level):
        logger.log(log_level, _format(message, data))


class LoggerMixin:
    """Per-class logger plus the structured ``log_*`` helpers."""

    @property
    def logger(self) -> logging.Logger:
        return logging.getLogger(f"relaycast.{type(self).__name__}")

    def log_debug(self, message: str, data: Optional[Any] = None):
        debug_log(message, data, "DEBUG", self.logger)

    def log_info(self, message: str, data: Optional[Any] = None):
        debug_log(message, data, "INFO", self.logger)

    def log_warning(self, message: str, data: Optional[Any] = None):
        debug_log(message, data, "WARNING", self.logger)

    def log_error(self, message: str, data: Optional[Any] = None):
        debug_log(message, data, "ERROR", self.logger)
