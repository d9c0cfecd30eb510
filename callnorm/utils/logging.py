"""
JSON log lines tagged with the webhook being processed.

normalize_webhook binds the provider's conversation id as the correlation id
while it runs, so every stage's lines for one call can be grouped. Stages
attach call facts (payload_version, call_source, counts) through `extra=`.
"""
import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import IO, Iterator, Optional

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Record attributes copied into the line when a caller passed them via extra=
_EXTRA_FIELDS = (
    "conversation_id",
    "agent_id",
    "payload_version",
    "call_source",
    "error_count",
    "warning_count",
    "position",
    "strategy",
)


def get_correlation_id() -> Optional[str]:
    return correlation_id_ctx.get()


def generate_correlation_id() -> str:
    """Random 32-char hex id for webhooks that arrive without a conversation id."""
    return uuid.uuid4().hex


@contextmanager
def correlation_scope(cid: Optional[str]) -> Iterator[str]:
    """Bind cid (or a fresh id) for the enclosed block; the previous id is restored on exit."""
    token = correlation_id_ctx.set(cid or generate_correlation_id())
    try:
        yield correlation_id_ctx.get()
    finally:
        correlation_id_ctx.reset(token)


class StructuredJsonFormatter(logging.Formatter):
    """
    One JSON object per record:

    {"timestamp": "2025-01-15T10:30:00.000000Z", "level": "INFO",
     "correlation_id": "conv_...", "module": "callnorm.services...",
     "message": "...", "payload_version": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "correlation_id": get_correlation_id(),
            "module": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key))
            for key in _EXTRA_FIELDS
            if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_structured_logging(log_level: str = "INFO", stream: Optional[IO[str]] = None) -> None:
    """
    Route all logging through StructuredJsonFormatter.

    Existing root handlers are dropped. Output goes to stderr unless a stream
    is given, so the CLI can keep stdout for the normalized JSON.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredJsonFormatter())

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
