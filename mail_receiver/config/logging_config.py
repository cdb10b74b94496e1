"""Logging setup with per-message correlation."""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

current_message_id: ContextVar[Optional[str]] = ContextVar("current_message_id", default=None)


class MessageIdFilter(logging.Filter):
    """Stamp each record with the message id currently being processed."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.message_id = current_message_id.get() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """Format log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message_id": getattr(record, "message_id", "-"),
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["error"] = str(record.exc_info[1])
            log_data["traceback"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


def configure_logging(level: str = "INFO", json_format: bool = False) -> None:
    """
    Configure the root logger for the receiver.

    Args:
        level: Log level name
        json_format: Emit JSON lines instead of plain text
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(MessageIdFilter())

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(levelname)s - [%(message_id)s] %(name)s - %(message)s")
        )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())
