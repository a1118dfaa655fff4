"""
Unified Logging System

This module configures logging for the dbpool library.
Library modules log through ``logging.getLogger('dbpool.<module>')``; the
manager here attaches handlers, formatters and a filter that keeps
credentials from connection strings out of the output.
"""

import logging
import logging.handlers
import sys
import re
import json
from typing import Optional, Dict, Any, List
from pathlib import Path
from datetime import datetime, timezone

from .config import LoggingConfig
from .errors import ConfigurationError

ROOT_LOGGER_NAME = "dbpool"

_RESERVED_RECORD_KEYS = frozenset([
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'exc_info', 'exc_text',
    'stack_info', 'taskName', 'message',
])


class SensitiveDataFilter(logging.Filter):
    """
    Logging filter that masks credentials in log messages

    Each pattern's first group is kept and the rest of the match is replaced,
    so ``password=hunter2`` becomes ``password=***FILTERED***``.
    """

    MASK = '***FILTERED***'

    def __init__(self, sensitive_patterns: List[str]):
        super().__init__()
        self.sensitive_patterns = [re.compile(pattern, re.IGNORECASE) for pattern in sensitive_patterns]

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._sanitize_message(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = self._sanitize_dict(record.args)
            else:
                record.args = tuple(
                    self._sanitize_message(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return True

    def _sanitize_message(self, message: Any) -> Any:
        if not isinstance(message, str):
            return message

        sanitized = message
        for pattern in self.sensitive_patterns:
            sanitized = pattern.sub(self._replacement, sanitized)
        return sanitized

    def _replacement(self, match: 're.Match') -> str:
        prefix = match.group(1) if match.re.groups else ''
        return f"{prefix}{self.MASK}"

    def _sanitize_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            key: self._sanitize_message(value) if isinstance(value, str) else value
            for key, value in data.items()
        }


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging
    """

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        if self.include_extra:
            for key, value in record.__dict__.items():
                if key not in _RESERVED_RECORD_KEYS:
                    log_data[key] = value

        try:
            return json.dumps(log_data, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            return str(log_data)


class LogManager:
    """
    Logging manager for the dbpool logger hierarchy
    """

    def __init__(self, config: Optional[LoggingConfig] = None):
        self.config = config or LoggingConfig()
        self.sensitive_filter: Optional[SensitiveDataFilter] = None
        self.handlers: List[logging.Handler] = []
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Attach handlers to the ``dbpool`` logger"""
        if self._initialized:
            return

        try:
            level = getattr(logging, self.config.level.upper())
        except AttributeError as e:
            raise ConfigurationError(
                "logging.level",
                f"Unknown log level: {self.config.level}",
                cause=e
            )

        self.sensitive_filter = SensitiveDataFilter(self.config.sensitive_data_patterns)

        logger = logging.getLogger(ROOT_LOGGER_NAME)
        logger.setLevel(level)

        try:
            if self.config.console_handler_enabled:
                console_handler = logging.StreamHandler(sys.stderr)
                self._add_handler(logger, console_handler)

            if self.config.file_handler_enabled:
                log_dir = Path(self.config.log_directory)
                log_dir.mkdir(parents=True, exist_ok=True)
                file_handler = logging.handlers.RotatingFileHandler(
                    log_dir / self.config.log_file,
                    maxBytes=self.config.max_file_size,
                    backupCount=self.config.backup_count,
                    encoding='utf-8'
                )
                self._add_handler(logger, file_handler)
        except OSError as e:
            self.shutdown()
            raise ConfigurationError(
                "logging_initialization",
                f"Failed to initialize logging system: {str(e)}",
                cause=e
            )

        self._initialized = True

    def _add_handler(self, logger: logging.Logger, handler: logging.Handler) -> None:
        if self.config.format_type == "json":
            handler.setFormatter(JSONFormatter())
        else:
            handler.setFormatter(logging.Formatter(self.config.format))
        handler.addFilter(self.sensitive_filter)
        logger.addHandler(handler)
        self.handlers.append(handler)

    def get_logger(self, name: str) -> logging.Logger:
        """Get a logger inside the ``dbpool`` hierarchy"""
        if not self._initialized:
            self.initialize()

        if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
            name = f"{ROOT_LOGGER_NAME}.{name}"
        return logging.getLogger(name)

    def shutdown(self) -> None:
        """Detach and close the handlers this manager installed"""
        logger = logging.getLogger(ROOT_LOGGER_NAME)
        for handler in self.handlers:
            logger.removeHandler(handler)
            handler.close()
        self.handlers.clear()
        logger.setLevel(logging.NOTSET)
        self._initialized = False


# Process-wide manager, only created when an application opts in
_log_manager: Optional[LogManager] = None


def initialize_logging(config: Optional[LoggingConfig] = None) -> LogManager:
    """Initialize logging for the dbpool hierarchy"""
    global _log_manager
    if _log_manager is not None:
        _log_manager.shutdown()
    _log_manager = LogManager(config)
    _log_manager.initialize()
    return _log_manager


def get_logger(name: str) -> logging.Logger:
    """Get a logger by name, initializing logging with defaults if needed"""
    global _log_manager
    if _log_manager is None:
        _log_manager = LogManager()
        _log_manager.initialize()
    return _log_manager.get_logger(name)


def shutdown_logging() -> None:
    """Shutdown the logging system"""
    global _log_manager
    if _log_manager:
        _log_manager.shutdown()
        _log_manager = None
