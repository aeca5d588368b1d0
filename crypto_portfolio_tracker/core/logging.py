"""
Structured logging with DEBUG sampling and optional Sentry integration.

Background refresh paths do not propagate their failures, so the log is the
only place those failures surface. This module wires the handlers that carry
them: a console handler (plain or JSON), a rotating JSON file handler and,
when ``sentry-sdk`` is installed and configured, Sentry error reporting.
"""

import json
import logging
import logging.handlers
import random
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import sentry_sdk
    from sentry_sdk.integrations.logging import LoggingIntegration
    SENTRY_AVAILABLE = True
except ImportError:
    SENTRY_AVAILABLE = False

PACKAGE_LOGGER = "crypto_portfolio_tracker"

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message', 'asctime'
}


class StructuredFormatter(logging.Formatter):
    """
    Formatter that renders log records as single-line JSON documents.

    Fields passed through ``extra=`` are included under ``"extra"``; values
    that cannot be serialized are stringified.
    """

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "process_id": record.process,
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info)
            }

        if self.include_extra:
            extra_fields = {}
            for key, value in record.__dict__.items():
                if key in _RESERVED_ATTRS:
                    continue
                try:
                    json.dumps(value)
                    extra_fields[key] = value
                except (TypeError, ValueError):
                    extra_fields[key] = str(value)

            if extra_fields:
                log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str)


class SamplingFilter(logging.Filter):
    """
    Logging filter that lets only a fraction of DEBUG records through.

    Rate-limiter skips are logged at DEBUG on every trigger; sampling keeps
    them visible without flooding the output.
    """

    def __init__(self, sample_rate: float = 0.01):
        super().__init__()
        self.sample_rate = sample_rate

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter log records based on sampling rate."""
        if record.levelno > logging.DEBUG:
            return True

        return random.random() < self.sample_rate


class ComponentFilter(logging.Filter):
    """Adds a ``component`` attribute naming the tracker subsystem that logged."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, 'component'):
            parts = record.name.split('.')
            record.component = parts[-1] if parts[0] == PACKAGE_LOGGER else parts[0]
        return True


class LoggingManager:
    """
    Sets up handlers for the tracker's loggers from the ``logging`` config section.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.handlers = []
        self.sentry_initialized = False

    def setup_logging(self, console_handler: Optional[logging.Handler] = None) -> None:
        """Set up the complete logging system.

        Args:
            console_handler: Handler to use instead of the default stdout
                stream handler (the CLI passes a rich handler here)
        """
        log_config = self.config.get('logging', {})

        level = getattr(logging, str(log_config.get('level', 'INFO')).upper())
        root_logger = logging.getLogger()
        root_logger.setLevel(level)

        for handler in self.handlers:
            root_logger.removeHandler(handler)
        self.handlers = []

        self._setup_console_handler(log_config, console_handler)
        self._setup_file_handler(log_config)
        self._setup_sentry(log_config)

        component_filter = ComponentFilter()
        for handler in self.handlers:
            handler.addFilter(component_filter)

        sampling_rate = float(log_config.get('sampling_rate', 1.0))
        if sampling_rate < 1.0:
            sampling_filter = SamplingFilter(sampling_rate)
            for handler in self.handlers:
                if handler.level <= logging.DEBUG:
                    handler.addFilter(sampling_filter)

        for handler in self.handlers:
            root_logger.addHandler(handler)

        logging.getLogger(PACKAGE_LOGGER).setLevel(level)
        logging.getLogger('aiohttp').setLevel(logging.WARNING)
        logging.getLogger('aiosqlite').setLevel(logging.WARNING)

    def _setup_console_handler(self, log_config: Dict[str, Any],
                               handler: Optional[logging.Handler]) -> None:
        """Set up console logging handler."""
        console_config = log_config.get('handlers', {}).get('console', {})

        if not console_config.get('enabled', True):
            return

        if handler is None:
            handler = logging.StreamHandler(sys.stdout)

            if log_config.get('structured', False):
                formatter = StructuredFormatter()
            else:
                formatter = logging.Formatter(log_config.get(
                    'format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
            handler.setFormatter(formatter)

        handler.setLevel(getattr(logging, str(console_config.get('level', 'INFO')).upper()))
        self.handlers.append(handler)

    def _setup_file_handler(self, log_config: Dict[str, Any]) -> None:
        """Set up file logging handler with rotation."""
        file_config = log_config.get('handlers', {}).get('file', {})

        if not file_config.get('enabled', False):
            return

        log_file = Path(file_config.get('filename', 'logs/crypto_tracker.log'))
        log_file.parent.mkdir(parents=True, exist_ok=True)

        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=file_config.get('max_bytes', 10 * 1024 * 1024),
            backupCount=file_config.get('backup_count', 5)
        )
        handler.setLevel(getattr(logging, str(file_config.get('level', 'DEBUG')).upper()))

        # File output is always structured
        handler.setFormatter(StructuredFormatter())

        self.handlers.append(handler)

    def _setup_sentry(self, log_config: Dict[str, Any]) -> None:
        """Set up Sentry error reporting."""
        if not SENTRY_AVAILABLE:
            return

        sentry_config = log_config.get('handlers', {}).get('sentry', {})

        if not sentry_config.get('enabled', False):
            return

        dsn = sentry_config.get('dsn')
        if not dsn:
            return

        sentry_logging = LoggingIntegration(
            level=getattr(logging, str(sentry_config.get('level', 'INFO')).upper()),
            event_level=logging.ERROR
        )

        sentry_sdk.init(
            dsn=dsn,
            environment=sentry_config.get('environment', 'development'),
            integrations=[sentry_logging],
            traces_sample_rate=sentry_config.get('traces_sample_rate', 0.0),
            attach_stacktrace=True,
            send_default_pii=False,
        )

        self.sentry_initialized = True
        logging.getLogger(__name__).info("Sentry error reporting initialized")

    def capture_exception(self, exception: Exception, extra: Optional[Dict[str, Any]] = None) -> None:
        """Report an exception to Sentry, if enabled."""
        if not self.sentry_initialized:
            return

        with sentry_sdk.new_scope() as scope:
            for key, value in (extra or {}).items():
                scope.set_extra(key, value)
            sentry_sdk.capture_exception(exception)


_logging_manager: Optional[LoggingManager] = None


def get_logging_manager() -> LoggingManager:
    """Get the global logging manager instance."""
    global _logging_manager
    if _logging_manager is None:
        _logging_manager = LoggingManager()
    return _logging_manager


def setup_logging(config: Optional[Dict[str, Any]] = None,
                  console_handler: Optional[logging.Handler] = None) -> LoggingManager:
    """Set up the global logging system."""
    manager = get_logging_manager()
    if config:
        manager.config = config
    manager.setup_logging(console_handler)
    return manager


def capture_exception(exception: Exception, extra: Optional[Dict[str, Any]] = None) -> None:
    """Capture an exception for error reporting."""
    get_logging_manager().capture_exception(exception, extra)
