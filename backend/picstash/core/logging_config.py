"""
Structured logging for Picstash

setup_logging() installs one console handler (JSON or a readable line format)
and, when enabled, a size-rotated JSON file. Every handler carries the same
filters, so each record is stamped with:

    request_id   bound by RequestLoggingMiddleware for one HTTP request
    job_id       bound by JobWorker while a job handler runs

Records emitted outside a request or job get "-" for the missing id.
"""
import contextvars
import logging
import logging.handlers
import os
from datetime import datetime, timezone
from typing import Optional

from pythonjsonlogger import jsonlogger

from picstash.core.config import settings

request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'request_id', default=None
)
job_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'job_id', default=None
)

APP_VERSION = "0.1.0"

# <backend>/data/logs unless LOG_DIR is set
DEFAULT_LOG_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))), 'data', 'logs'
)
LOG_FILE_NAME = 'picstash.log'

MAX_LOG_VALUE_LENGTH = 10000

JSON_FORMAT = '%(timestamp)s %(level)s %(name)s %(message)s'
PRETTY_FORMAT = '%(asctime)s %(levelname)-8s %(name)s [%(request_id)s|%(job_id)s] %(message)s'


def sanitize_log_value(value) -> str:
    """
    Flatten line breaks and cap the length of a value before it is logged.

    Job errors and archive entry names come from outside; a newline in them
    must not start a forged log line.
    """
    text = value if isinstance(value, str) else str(value)
    text = text.replace('\r\n', ' ').replace('\r', ' ').replace('\n', ' ')
    if len(text) > MAX_LOG_VALUE_LENGTH:
        text = text[:MAX_LOG_VALUE_LENGTH] + '...[truncated]'
    return text


class RequestIdFilter(logging.Filter):
    """Stamps record.request_id from the request context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True


class JobIdFilter(logging.Filter):
    """Stamps record.job_id from the job context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.job_id = job_id_var.get() or "-"
        return True


class SanitizingFilter(logging.Filter):
    """Runs the message and its string arguments through sanitize_log_value."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = sanitize_log_value(record.msg)
        if isinstance(record.args, tuple) and record.args:
            record.args = tuple(
                sanitize_log_value(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON line per record.

    Example:
        {"timestamp": "2024-01-01T12:00:00+00:00", "level": "INFO",
         "name": "picstash.services.job_worker", "message": "Job abc completed",
         "logger": "picstash.services.job_worker", "module": "job_worker",
         "function": "_process_job", "request_id": "-", "job_id": "abc",
         "event_type": "job_completed"}
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get('timestamp'):
            log_record['timestamp'] = datetime.now(timezone.utc).isoformat()
        log_record.setdefault('message', record.getMessage())
        log_record.update(
            level=record.levelname,
            logger=record.name,
            module=record.module,
            request_id=getattr(record, 'request_id', '-'),
            job_id=getattr(record, 'job_id', '-'),
        )
        if record.funcName:
            log_record['function'] = record.funcName


def _with_context_filters(handler: logging.Handler, formatter: logging.Formatter, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    for context_filter in (RequestIdFilter(), JobIdFilter(), SanitizingFilter()):
        handler.addFilter(context_filter)
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_dir: Optional[str] = None,
    file_enabled: Optional[bool] = None,
    app_version: Optional[str] = None
) -> logging.Logger:
    """
    Configure the root logger. Arguments left as None come from settings.

    Args:
        log_level: Level name, e.g. "DEBUG"
        log_format: "json" or "pretty" for the console handler
        log_dir: Directory of the rotating log file
        file_enabled: Whether to write the rotating JSON log file
        app_version: Version reported in the startup record

    Returns:
        The configured root logger
    """
    global APP_VERSION
    if app_version:
        APP_VERSION = app_version

    level_name = (log_level or settings.LOG_LEVEL).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO
    console_format = log_format or settings.LOG_FORMAT
    write_file = settings.LOG_FILE_ENABLED if file_enabled is None else file_enabled

    json_formatter = CustomJsonFormatter(JSON_FORMAT)
    if console_format == "json":
        console_formatter = json_formatter
    else:
        console_formatter = logging.Formatter(
            PRETTY_FORMAT, defaults={'request_id': '-', 'job_id': '-'}
        )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)
    root_logger.addHandler(
        _with_context_filters(logging.StreamHandler(), console_formatter, level)
    )

    if write_file:
        directory = log_dir or settings.LOG_DIR or DEFAULT_LOG_DIR
        os.makedirs(directory, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(directory, LOG_FILE_NAME),
            maxBytes=settings.LOG_MAX_BYTES,
            backupCount=settings.LOG_BACKUP_COUNT,
            encoding='utf-8'
        )
        root_logger.addHandler(_with_context_filters(file_handler, json_formatter, level))

    for noisy in ("sqlalchemy.engine", "sentence_transformers", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root_logger.info(
        "Logging configured",
        extra={
            "event_type": "logging_configured",
            "level": logging.getLevelName(level),
            "format": console_format,
            "file_enabled": write_file,
            "version": APP_VERSION,
        }
    )
    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_request_id(request_id: Optional[str]) -> contextvars.Token:
    """Bind a request ID to the current context; returns the reset token."""
    return request_id_var.set(request_id)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def clear_request_id(token: contextvars.Token) -> None:
    request_id_var.reset(token)


def set_job_id(job_id: Optional[str]) -> contextvars.Token:
    """Bind a job ID to the current context; returns the reset token."""
    return job_id_var.set(job_id)


def get_job_id() -> Optional[str]:
    return job_id_var.get()


def clear_job_id(token: contextvars.Token) -> None:
    job_id_var.reset(token)
