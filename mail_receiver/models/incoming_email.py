"""Audit record kept for every ingested message."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class IncomingEmailRecord:
    """
    Represents one ingestion attempt, keyed by its derived Message-ID.

    Attributes:
        message_id: Derived deduplication key (header or content hash)
        raw: Raw message text after encoding recovery
        subject: Subject line (or the default subject)
        from_address: Lower-cased sender address
        to_addresses: ';'-joined lower-cased To addresses
        cc_addresses: ';'-joined lower-cased Cc addresses
        user_id: Identity the message was attributed to
        topic_id: Topic created or replied to
        post_id: Post created
        is_bounce: Whether the message was a bounce
        is_auto_generated: Whether the message looked machine generated
        outcome: Terminal outcome kind
        error: Error kind when processing failed
        created_at: When the record was created
    """

    message_id: str
    raw: str
    subject: str
    from_address: Optional[str]
    to_addresses: Optional[str] = None
    cc_addresses: Optional[str] = None
    user_id: Optional[int] = None
    topic_id: Optional[int] = None
    post_id: Optional[int] = None
    is_bounce: bool = False
    is_auto_generated: bool = False
    outcome: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        """Validate fields after initialization."""
        if not self.message_id:
            raise ValueError("message_id is required")

    def addresses(self) -> list[str]:
        """All recorded To and Cc addresses."""
        addresses = []
        for joined in (self.to_addresses, self.cc_addresses):
            if joined:
                addresses.extend(joined.split(";"))
        return addresses
