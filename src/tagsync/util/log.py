# src/tagsync/util/log.py: Structured logging with secret redaction.
# This module provides a centralized logging setup that outputs either plain
# text or JSON lines. It uses contextvars to inject the tag currently being
# synced into each record, and a filter that scrubs registered secrets (such as
# the access token embedded in remote URLs) from every message.

import contextvars
import json
import logging
import sys
from typing import Set

tag_context = contextvars.ContextVar('tag_context', default=None)

_secrets: Set[str] = set()

REDACTED = "[REDACTED]"


def register_secret(value: str) -> None:
    """Mark a value so it never appears verbatim in log output."""
    if value:
        _secrets.add(value)


def redact(text: str) -> str:
    """Replace every registered secret in `text`."""
    for secret in _secrets:
        text = text.replace(secret, REDACTED)
    return text


class RedactingFilter(logging.Filter):
    """A logging filter that redacts registered secrets and tags records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if _secrets:
            record.msg = redact(record.getMessage())
            record.args = None
        record.tag = tag_context.get()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record):
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "tag": getattr(record, "tag", None),
        }
        if record.exc_info:
            log_record["exc_info"] = redact(self.formatException(record.exc_info))
        return json.dumps(log_record)


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure the 'tagsync' logger hierarchy."""
    logger = logging.getLogger("tagsync")
    logger.setLevel(level.upper())
    logger.propagate = False

    handler = logging.StreamHandler(sys.stderr)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    handler.addFilter(RedactingFilter())

    for old in list(logger.handlers):
        logger.removeHandler(old)
    logger.addHandler(handler)


def get_logger(name):
    return logging.getLogger(name)
