"""
JSON logging for the dispatch engine.

Every record carries the id of the dispatch that emitted it, so the
lines of one delivery attempt can be pulled out of interleaved output
from concurrent dispatches.
"""
import contextvars
import logging
import logging.handlers
import re
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from pythonjsonlogger import jsonlogger

from groundcontrol.core.config import Settings

_dispatch_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "dispatch_id", default=None
)

_LINE_BREAKS = re.compile(r"[\r\n]+")

# Libraries that log every request at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "h2", "google.auth")

LOG_FILE_NAME = "groundcontrol.log"
LOG_FILE_MAX_BYTES = 50 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def get_dispatch_id() -> Optional[str]:
    """Id of the dispatch running in the current context, if any."""
    return _dispatch_id.get()


@contextmanager
def dispatch_scope(dispatch_id: Optional[str] = None) -> Iterator[str]:
    """
    Tag all log records emitted inside the block with a dispatch id.

    Each asyncio task runs in a copy of the context, so concurrent
    dispatches never see each other's id.
    """
    dispatch_id = dispatch_id or uuid.uuid4().hex[:12]
    token = _dispatch_id.set(dispatch_id)
    try:
        yield dispatch_id
    finally:
        _dispatch_id.reset(token)


class DispatchIdFilter(logging.Filter):
    """Copy the current dispatch id onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.dispatch_id = _dispatch_id.get() or "-"
        return True


class SanitizingFilter(logging.Filter):
    """
    Collapse line breaks in the message and its string arguments.

    Gateway bodies and user-supplied memos end up in log lines; a CR/LF
    in them must not start a forged entry in plain-text sinks.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = _LINE_BREAKS.sub(" ", record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(
                _LINE_BREAKS.sub(" ", arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


class DispatchJsonFormatter(jsonlogger.JsonFormatter):
    """
    One JSON object per line: timestamp, level, logger, dispatch_id and
    message, followed by whatever was passed through ``extra=``.
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record.setdefault(
            "timestamp",
            datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        )
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["dispatch_id"] = getattr(record, "dispatch_id", "-")
        log_record.setdefault("message", record.getMessage())


def setup_logging(settings: Settings) -> logging.Logger:
    """
    Install JSON handlers on the root logger.

    Output goes to stderr, and additionally to a rotating file in
    ``settings.LOG_DIR`` when one is configured.

    Returns:
        The configured root logger
    """
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if settings.LOG_DIR:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        ))

    formatter = DispatchJsonFormatter("%(message)s")
    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(DispatchIdFilter())
        handler.addFilter(SanitizingFilter())
        root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


def mask_token(token: Optional[str], visible: int = 20) -> str:
    """
    Shorten a device token for log output.

    Logs keep only a prefix, enough to correlate with the audit table.
    """
    if not token:
        return "-"
    if len(token) <= visible:
        return token
    return token[:visible] + "..."
