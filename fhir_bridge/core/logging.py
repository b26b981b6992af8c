"""
Logging utilities: JSON structured logging with contextual fields.

- Configures a root logger emitting JSON using python-json-logger.
- Provides helpers to bind contextual fields for request_id, job_id, resource_type.
- Provides privacy-aware hashing for identifiers (e.g., patient NIK) with a salt.
"""
from __future__ import annotations

import hashlib
import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

from pythonjsonlogger import jsonlogger

CONTEXT_FIELDS = ("request_id", "job_id", "resource_type", "idempotency_key")


class ContextJsonFormatter(jsonlogger.JsonFormatter):
    def process_log_record(self, log_record: dict[str, Any]) -> dict[str, Any]:
        # Drop empty context fields so every line stays compact
        for key in CONTEXT_FIELDS:
            if key in log_record and log_record[key] in (None, ""):
                del log_record[key]
        return super().process_log_record(log_record)


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)
    formatter = ContextJsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # httpx logs every request at INFO; keep it for debugging only
    logging.getLogger("httpx").setLevel(logging.WARNING)


class ContextAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges bound fields with per-call extra instead of replacing it."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs


@contextmanager
def bind_context(logger: logging.Logger, **kwargs: Any) -> Iterator[ContextAdapter]:
    """Temporarily add contextual fields to a logger's extra dict.

    Usage:
        with bind_context(logger, request_id=..., job_id=...) as log:
            log.info("message")
    """
    yield ContextAdapter(logger, extra=kwargs)


def hash_identifier(value: str, salt: str) -> str:
    """Hash an identifier with a salt to avoid logging PII directly.

    Returns hex digest string.
    """
    h = hashlib.sha256()
    h.update(salt.encode("utf-8"))
    h.update(b"::")
    h.update(value.encode("utf-8"))
    return h.hexdigest()
