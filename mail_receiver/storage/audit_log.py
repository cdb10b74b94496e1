"""Audit logging for processing outcomes."""

import json
from datetime import datetime
from pathlib import Path
from typing import Optional


class AuditLog:
    """Append-only JSON-lines log of processing outcomes."""

    def __init__(self, log_path: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_path: Path to audit log file (default: ~/.mailreceiver/logs/audit.log)
        """
        if log_path is None:
            log_path = Path("~/.mailreceiver/logs/audit.log").expanduser()

        self.log_path = log_path
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log_outcome(
        self,
        message_id: Optional[str],
        outcome: str,
        from_address: Optional[str] = None,
        error: Optional[str] = None,
        **metadata,
    ) -> None:
        """
        Log the terminal outcome of one ingestion attempt.

        Args:
            message_id: Derived Message-ID
            outcome: Outcome kind
            from_address: Sender address, if one was detected
            error: Error kind for failed attempts
            metadata: Additional event fields (post_id, topic_id, ...)
        """
        event = {
            "timestamp": datetime.now().isoformat(),
            "event_type": "message_processed",
            "message_id": message_id,
            "outcome": outcome,
            "from_address": from_address,
            "error": error,
            **metadata,
        }

        self._write_event(event)

    def read_events(self) -> list[dict]:
        """Read every event, skipping corrupt lines."""
        events = []

        if self.log_path.exists():
            with open(self.log_path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line:
                        try:
                            events.append(json.loads(line))
                        except json.JSONDecodeError:
                            continue

        return events

    def export(self, output_path: Path) -> int:
        """
        Export all events to a JSON file.

        Args:
            output_path: Path to output JSON file

        Returns:
            Number of exported events
        """
        events = self.read_events()

        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(events, f, indent=2, ensure_ascii=False)

        return len(events)

    def _write_event(self, event: dict) -> None:
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event, ensure_ascii=False, default=str) + "\n")
