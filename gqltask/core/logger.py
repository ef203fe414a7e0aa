from datetime import datetime
import re
import sys
import json
import logging
import contextvars
import traceback
from contextlib import contextmanager


SUCCESS_LEVEL = 25
LOG_SEVERITY = {
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "SUCCESS": "SUCCESS",
    "WARNING": "WARNING",
    "ERROR": "ERROR",
    "CRITICAL": "CRITICAL"
}

# LogRecord attributes that are never echoed as extra fields
RESERVED_RECORD_KEYS = {
    "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "process", "processName", "scope", "name", "taskName"
}

logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")

_log_context: contextvars.ContextVar = contextvars.ContextVar("gqltask_log_context", default={})


class CustomLogger(logging.Logger):
    def success(self, message, *args, **kwargs):
        if self.isEnabledFor(SUCCESS_LEVEL):
            self.log(SUCCESS_LEVEL, message, *args, **kwargs, stacklevel=2)


class ContextFilter(logging.Filter):
    """Copy the fields bound by LoggingContext onto each record."""

    def filter(self, record):
        for key, value in _log_context.get().items():
            if key not in RESERVED_RECORD_KEYS:
                setattr(record, key, value)
        return True


@contextmanager
def LoggingContext(**fields):
    """
    Bind extra fields to every record logged inside the block.

        with LoggingContext(task_id=task_id, uri=uri):
            logger.info("GRAPHQL: sending request")
    """
    merged = {**_log_context.get(), **fields}
    token = _log_context.set(merged)
    try:
        yield merged
    finally:
        _log_context.reset(token)


def stringify_extra(value):
    if isinstance(value, (list, dict)):
        return str(value)
    return value


class CustomFormatter(logging.Formatter):

    def __init__(self, fmt="%(message)s", include_location=False):
        super().__init__(fmt)
        self.include_location = include_location

    def format(self, record):
        level_name = LOG_SEVERITY.get(record.levelname, record.levelname)
        scope = getattr(record, "scope", "")
        location = ""
        if self.include_location:
            location = f"{record.pathname}:{record.lineno}\n({record.module}:{record.funcName}:{record.lineno})"
        metadata_line = f"{datetime.now().isoformat()} [{level_name}] {scope} {location}".strip()

        message = record.getMessage()
        lines = message.splitlines() or [""]
        message_line = f"     Message: {lines[0]}"
        for line in lines[1:]:
            message_line += f"\n             {line}"

        extra_items = [
            f"{key}: {stringify_extra(value)}"
            for key, value in record.__dict__.items()
            if key not in RESERVED_RECORD_KEYS
        ]
        formatted_log = f"{metadata_line}\n{message_line}"
        if extra_items:
            formatted_log += f"\n     {' '.join(extra_items)}"
        if record.exc_info:
            # File "path", line N  ->  File "path:N" so editors can jump to it
            frames = traceback.format_exception(*record.exc_info)
            frames = [re.sub(r'File "([^"]+)", line (\d+),', r'File "\1:\2"', f) for f in frames]
            formatted_log += "\n" + "".join(frames)
        return formatted_log


class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_dict = {
            "level": record.levelname,
            "message": record.getMessage(),
            "time": self.formatTime(record, self.datefmt),
            "logger": record.name,
        }
        if hasattr(record, "scope"):
            log_dict["scope"] = record.scope
        log_dict["location"] = {
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        for key, value in record.__dict__.items():
            if key not in RESERVED_RECORD_KEYS and key not in log_dict:
                log_dict[key] = stringify_extra(value)
        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_dict, ensure_ascii=False, default=str)


def setup_logger(name: str, include_location=False, use_json=None):
    """
    Return a stdout logger configured from settings.

    Level comes from GQLTASK_LOG_LEVEL; JSON output is used when use_json is
    True or, when it is left as None, when GQLTASK_LOG_JSON is on.
    """
    from gqltask.core.config import get_settings

    settings = get_settings()
    if use_json is None:
        use_json = settings.log_json

    logging.setLoggerClass(CustomLogger)
    logger = logging.getLogger(name)
    if not any(isinstance(f, ContextFilter) for f in logger.filters):
        logger.addFilter(ContextFilter())

    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        stream_handler = logging.StreamHandler(sys.stdout)
        if use_json:
            stream_handler.setFormatter(JSONFormatter())
        else:
            stream_handler.setFormatter(CustomFormatter(include_location=include_location))
        logger.addHandler(stream_handler)
    logger.setLevel(settings.log_level)
    logger.propagate = False
    return logger
