#!/usr/bin/env python3
"""
ltcheck Configuration & Logging Module
======================================
Process settings, structured logging and the error taxonomy shared by every
ltcheck module.

Features:
- AppConfig read from LTCHECK_* environment variables
- Per-name loggers emitting plain text or one JSON object per line
- Correlation ids carried per thread (one per HTTP request)
- Bounded, credential-free log of recent failures
- LTCheckError hierarchy rendered as the API error envelope

Version: 1.0.0
"""

import os
import sys
import json
import logging
import uuid
import time
import threading
from collections import deque
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Optional, Dict, Any, List, Iterable
from pathlib import Path
from dataclasses import dataclass, field
from contextlib import contextmanager

# =============================================================================
# CONFIGURATION CONSTANTS
# =============================================================================
LOG_ROTATE_BYTES = 2 * 1024 * 1024  # per log file
LOG_ROTATE_KEEP = 3
RECENT_ERRORS_LIMIT = 10            # Failures kept for the "copy logs" button
TEXT_LOG_FORMAT = '%(asctime)s %(levelname)-7s %(name)s: %(message)s'

__version__ = "1.0.0"
VERSION = __version__
APP_NAME = "ltcheck"


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


# =============================================================================
# APPLICATION SETTINGS
# =============================================================================

@dataclass
class AppConfig:
    """Process-level settings: where the API listens and how it logs."""

    host: str = "127.0.0.1"  # Editor integrations talk to a local process
    port: int = 5060
    debug: bool = False

    log_level: str = "INFO"
    log_format: str = "text"  # 'text' or 'json'
    log_to_console: bool = True
    log_to_file: bool = False
    log_dir: Path = field(default_factory=lambda: Path.cwd() / 'logs')

    def __post_init__(self):
        if os.environ.get('LTCHECK_ENV', 'development').lower() == 'production':
            self.debug = False
            self.log_level = "WARNING"
        if self.log_to_file:
            self.log_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Settings from LTCHECK_HOST, LTCHECK_PORT, LTCHECK_DEBUG and LTCHECK_LOG_*."""
        kwargs: Dict[str, Any] = dict(
            host=os.environ.get('LTCHECK_HOST', '127.0.0.1'),
            port=int(os.environ.get('LTCHECK_PORT', '5060')),
            debug=_env_flag('LTCHECK_DEBUG'),
            log_level=os.environ.get('LTCHECK_LOG_LEVEL', 'INFO'),
            log_format=os.environ.get('LTCHECK_LOG_FORMAT', 'text'),
            log_to_file=_env_flag('LTCHECK_LOG_TO_FILE'),
        )
        if os.environ.get('LTCHECK_LOG_DIR'):
            kwargs['log_dir'] = Path(os.environ['LTCHECK_LOG_DIR'])
        return cls(**kwargs)

    def validate(self) -> tuple:
        """Return ``(ok, problems)``; problems are reported, never raised."""
        problems = []
        if self.log_format not in ('json', 'text'):
            problems.append(f"Unknown log format '{self.log_format}' (use 'json' or 'text')")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            problems.append(f"Unknown log level '{self.log_level}'")
        if not 0 < self.port < 65536:
            problems.append(f"Port {self.port} is out of range")
        return (not problems, problems)


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def reset_config():
    """Forget the cached settings so the next get_config() re-reads the environment."""
    global _config
    _config = None


# =============================================================================
# STRUCTURED LOGGING
# =============================================================================

class JsonFormatter(logging.Formatter):
    """One JSON object per line; records rendered by StructuredLogger pass through."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if message.startswith('{'):
            return message

        payload = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': message,
        }
        if record.exc_info:
            payload['traceback'] = self.formatException(record.exc_info)
        return json.dumps(payload)


def _build_handlers(name: str, config: AppConfig) -> List[logging.Handler]:
    formatter = JsonFormatter() if config.log_format == 'json' else logging.Formatter(TEXT_LOG_FORMAT)
    handlers: List[logging.Handler] = []
    if config.log_to_console:
        handlers.append(logging.StreamHandler(sys.stderr))
    if config.log_to_file:
        handlers.append(RotatingFileHandler(config.log_dir / f"{name.lower()}.log",
                                            maxBytes=LOG_ROTATE_BYTES,
                                            backupCount=LOG_ROTATE_KEEP,
                                            encoding='utf-8'))
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


class StructuredLogger:
    """
    Logger that accepts keyword context with every message.

    In text mode the context is appended as ``key=value`` pairs; in JSON mode
    it becomes fields of the record, next to the thread's correlation id.
    """

    _local = threading.local()

    def __init__(self, name: str, config: Optional[AppConfig] = None):
        self.name = name
        self.config = config or get_config()
        self.logger = logging.getLogger(name)
        level = logging.getLevelName(self.config.log_level.upper())
        self.logger.setLevel(level if isinstance(level, int) else logging.INFO)
        self.logger.propagate = False
        self.logger.handlers[:] = _build_handlers(name, self.config)

    @classmethod
    def new_correlation_id(cls) -> str:
        """Start a new correlation id for the current thread and return it."""
        cls._local.correlation_id = uuid.uuid4().hex[:12]
        return cls._local.correlation_id

    @classmethod
    def get_correlation_id(cls) -> Optional[str]:
        return getattr(cls._local, 'correlation_id', None)

    def _render(self, level: str, message: str, **context) -> str:
        if self.config.log_format == 'json':
            record = {
                'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
                'level': level,
                'logger': self.name,
                'correlation_id': self.get_correlation_id(),
                'message': message,
            }
            record.update(context)
            return json.dumps(record, default=str)
        if not context:
            return message
        pairs = ' '.join(f"{key}={value}" for key, value in context.items())
        return f"{message} [{pairs}]"

    def _log(self, level: int, message: str, exc_info: bool = False, **context):
        if self.logger.isEnabledFor(level):
            self.logger.log(level, self._render(logging.getLevelName(level), message, **context),
                            exc_info=exc_info)

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context):
        self._log(logging.WARNING, message, **context)

    def error(self, message: str, exc_info: bool = False, **context):
        self._log(logging.ERROR, message, exc_info=exc_info, **context)

    def exception(self, message: str, **context):
        """Error with the active traceback attached."""
        self._log(logging.ERROR, message, exc_info=True, **context)

    @contextmanager
    def log_operation(self, operation: str, **context):
        """
        Time a block of work.

        Success is logged at INFO with ``duration_ms``; a failure is logged at
        ERROR and re-raised unchanged.
        """
        started = time.perf_counter()
        self.debug(f"{operation} started", operation=operation, **context)
        try:
            yield
        except Exception as e:
            elapsed = round((time.perf_counter() - started) * 1000, 2)
            self.error(f"{operation} failed: {e}", operation=operation, status='failed',
                       duration_ms=elapsed, **context)
            raise
        elapsed = round((time.perf_counter() - started) * 1000, 2)
        self.info(f"{operation} completed", operation=operation, status='completed',
                  duration_ms=elapsed, **context)


_loggers: Dict[str, StructuredLogger] = {}
_loggers_lock = threading.Lock()


def get_logger(name: str) -> StructuredLogger:
    """Shared StructuredLogger for ``name``."""
    with _loggers_lock:
        if name not in _loggers:
            _loggers[name] = StructuredLogger(name, get_config())
        return _loggers[name]


# =============================================================================
# RECENT ERRORS
# =============================================================================

def redact_credentials(message: str, secrets: Iterable[Optional[str]]) -> str:
    """Replace every non-empty secret in ``message`` with a placeholder."""
    for secret in secrets:
        if secret:
            message = message.replace(secret, '<<redacted>>')
    return message


class RecentErrors:
    """Bounded, thread-safe log of the latest failures shown to the user."""

    def __init__(self, limit: int = RECENT_ERRORS_LIMIT):
        self._entries: deque = deque(maxlen=limit)
        self._lock = threading.Lock()

    def push(self, error: Exception, settings: Optional[Dict[str, Any]] = None,
             secrets: Iterable[Optional[str]] = ()):
        secrets = list(secrets)
        entry = f"{datetime.now().isoformat(timespec='seconds')}:\nError: '{error}'\n"
        if settings is not None:
            entry += f"Settings: {json.dumps(settings, default=str, sort_keys=True)}\n"
        with self._lock:
            self._entries.append(redact_credentials(entry, secrets))

    def entries(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# ERROR TAXONOMY
# =============================================================================

class LTCheckError(Exception):
    """Base exception for ltcheck."""

    def __init__(self, message: str, code: str = "UNKNOWN_ERROR",
                 status_code: int = 500, details: Optional[Dict] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API response dict."""
        return {
            'success': False,
            'error': {
                'code': self.code,
                'message': self.message,
                'details': self.details
            }
        }


class ValidationError(LTCheckError):
    """Input validation error."""
    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(message, code="VALIDATION_ERROR", status_code=400,
                         details={'field': field, **kwargs})


class ConfigurationError(LTCheckError):
    """Settings do not allow the requested operation."""
    def __init__(self, message: str, setting: Optional[str] = None, **kwargs):
        super().__init__(message, code="CONFIGURATION_ERROR", status_code=400,
                         details={'setting': setting, **kwargs})


class NotFoundError(LTCheckError):
    """Requested resource does not exist."""
    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=kwargs)


class ProcessingError(LTCheckError):
    """Document processing error."""
    def __init__(self, message: str, stage: Optional[str] = None, **kwargs):
        super().__init__(message, code="PROCESSING_ERROR", status_code=500,
                         details={'stage': stage, **kwargs})


class OffsetCorruptionError(ProcessingError):
    """Source and checker offsets no longer line up; the whole check is void."""
    def __init__(self, message: str, **kwargs):
        super().__init__(message, stage='annotation', **kwargs)
        self.code = "OFFSET_CORRUPTION"


class MarkdownAnnotationError(OffsetCorruptionError):
    """A markdown node does not fit the source span it claims."""
    def __init__(self, message: str, node_type: Optional[str] = None,
                 start: Optional[int] = None, end: Optional[int] = None,
                 raw: Optional[str] = None, **kwargs):
        super().__init__(message, node_type=node_type, start=start, end=end,
                         raw=raw, **kwargs)
        self.code = "MARKDOWN_ANNOTATION_ERROR"


class TransportError(LTCheckError):
    """Network, status or response-format failure talking to a remote service."""
    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        super().__init__(message, code="TRANSPORT_ERROR", status_code=502,
                         details={'url': url, **kwargs})


class CheckRequestError(TransportError):
    """The check request was refused before it was sent."""
    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.code = "CHECK_REQUEST_ERROR"
        self.status_code = 413


class SynonymError(TransportError):
    """Synonym lookup failed."""
    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.code = "SYNONYM_ERROR"


class DictionarySyncError(LTCheckError):
    """A remote word-list call failed during reconciliation."""
    def __init__(self, message: str, step: Optional[str] = None,
                 word: Optional[str] = None, **kwargs):
        super().__init__(message, code="DICTIONARY_SYNC_ERROR", status_code=502,
                         details={'step': step, 'word': word, **kwargs})


