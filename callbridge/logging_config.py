"""
Structured Logging Configuration

This module configures structured logging using the 'structlog' library.
It sets up processors for adding timestamps, log levels, the active call id,
and renders logs in JSON (default) or colorized console format based on env.
"""

import os
import logging
import sys
import contextvars
import time

import structlog
from structlog import dev as structlog_dev
from logging.handlers import RotatingFileHandler

SERVICE_NAME = "callbridge"

# Context variable for the call currently being handled
call_id_var = contextvars.ContextVar('call_id', default=None)

# Keys that are masked wherever they appear in an event (case/separator-insensitive)
SENSITIVE_KEYS = {
    'api_key', 'apikey', 'api_token',
    'token', 'access_token', 'refresh_token', 'auth_token', 'bearer',
    'password', 'passwd', 'pwd',
    'authorization', 'auth',
    'credential', 'credentials', 'secret', 'secrets',
    'private_key', 'privatekey', 'private_key_id',
    'client_secret',
}

_SENSITIVE_NORMALIZED = {k.replace('_', '').replace('-', '') for k in SENSITIVE_KEYS}


def get_call_id():
    """Get the call id bound to the current task context."""
    return call_id_var.get()


def bind_call_id(value):
    """Bind a call id to the current task context; returns a reset token."""
    return call_id_var.set(value)


def add_call_id(logger, method_name, event_dict):
    """Add the current call id to the log record unless one is given explicitly."""
    call_id = get_call_id()
    if call_id and 'call_id' not in event_dict:
        event_dict['call_id'] = call_id
    return event_dict


def add_service_context(logger, method_name, event_dict):
    """Add service context to the log record."""
    event_dict['service'] = SERVICE_NAME
    component = event_dict.get('logger')
    if not component:
        component = getattr(getattr(logger, 'logger', None), 'name', None) or getattr(logger, 'name', 'unknown')
    event_dict['component'] = component
    return event_dict


def _is_sensitive(key) -> bool:
    normalized = str(key).lower().replace('_', '').replace('-', '')
    return any(normalized == pattern or normalized.endswith(pattern) for pattern in _SENSITIVE_NORMALIZED)


def _redact_value(value):
    """Redact a sensitive value, keeping a short prefix of strings for debugging."""
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        if not value:
            return ''
        if len(value) > 4:
            return f"{value[:2]}***REDACTED***"
        return "***REDACTED***"
    if isinstance(value, (list, tuple)):
        return [_redact_value(v) for v in value]
    return "***REDACTED***"


def _sanitize(value):
    if isinstance(value, dict):
        return {
            k: _redact_value(v) if _is_sensitive(k) else _sanitize(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_sanitize(v) for v in value]
    return value


def sanitize_secrets(logger, method_name, event_dict):
    """
    Redact sensitive information from log events.

    Service account private keys, API tokens and similar values never reach a
    handler. Matching is exact or suffix based on the normalized key name, so
    both ``private_key`` and ``privateKey`` are masked while ``passthrough``
    is left alone. Nested dicts and lists are sanitized recursively.
    """
    return _sanitize(event_dict)


def configure_logging(log_level="INFO", log_to_file=False, log_file_path="callbridge.log"):
    """
    Set up structured logging.

    Environment overrides (optional):
      - LOG_LEVEL: debug|info|warning|error|critical (default: INFO)
      - LOG_FORMAT: json|console (default: json)
      - LOG_COLOR:  0|1 (console only; default: 1)
      - LOG_TO_FILE: 0|1 (default: 0)
      - LOG_FILE_PATH: path (default: callbridge.log)
      - LOG_SHOW_TRACEBACKS: auto|always|never (default: auto, i.e. debug only)
    """
    env_level = os.getenv("LOG_LEVEL")
    if env_level:
        log_level = env_level.upper()
    if os.getenv("LOG_TO_FILE") is not None:
        log_to_file = os.getenv("LOG_TO_FILE", "0").strip() in ("1", "true", "True")
    log_file_path = os.getenv("LOG_FILE_PATH", log_file_path)
    log_format = os.getenv("LOG_FORMAT", "json").strip().lower()
    log_color = os.getenv("LOG_COLOR", "1").strip() not in ("0", "false", "False")

    log_level_upper = log_level.upper() if isinstance(log_level, str) else logging.getLevelName(log_level)
    tb_mode = os.getenv("LOG_SHOW_TRACEBACKS", "auto").strip().lower()
    if tb_mode == "always":
        show_tracebacks = True
    elif tb_mode == "never":
        show_tracebacks = False
    else:
        show_tracebacks = (log_level_upper == "DEBUG")

    def suppress_exc_info_if_disabled(logger, method_name, event_dict):
        """Remove exc_info from event when tracebacks are disabled by policy."""
        if not show_tracebacks and event_dict.get("exc_info"):
            event_dict.pop("exc_info", None)
        return event_dict

    if isinstance(log_level, int):
        level_value = log_level
    else:
        level_value = getattr(logging, log_level_upper, logging.INFO)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_service_context,
            add_call_id,
            sanitize_secrets,
            suppress_exc_info_if_disabled,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = structlog_dev.ConsoleRenderer(colors=log_color) if log_format == "console" else structlog.processors.JSONRenderer()

    processor_formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=[
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
        ],
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level_value)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(processor_formatter)
    root_logger.addHandler(console_handler)

    if log_to_file:
        path = log_file_path
        if "{ts}" in path:
            path = path.replace("{ts}", time.strftime("%Y%m%d-%H%M%S"))
        try:
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            file_handler = RotatingFileHandler(path, maxBytes=10*1024*1024, backupCount=5)
            file_handler.setFormatter(processor_formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            # Fall back to console-only if file logging fails
            get_logger(__name__).warning(
                "File logging disabled due to error; continuing with console only",
                error=str(e),
                configured_path=log_file_path,
            )

    # Reduce noisy third-party loggers
    for noisy in ('websockets', 'websockets.server', 'aiohttp', 'aiohttp.access', 'asyncio', 'grpc', 'google'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str):
    """Get a structlog logger."""
    return structlog.get_logger(name)
