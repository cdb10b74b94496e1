"""Processing states and terminal outcomes."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ProcessingState(Enum):
    """State of one ingestion attempt."""

    RECEIVED = "received"
    LOCKED = "locked"
    PARSED = "parsed"
    VALIDATED = "validated"
    ROUTED = "routed"
    PERSISTED = "persisted"
    FAILED = "failed"


class OutcomeKind(Enum):
    """Type of terminal outcome."""

    CREATED = "created"
    BOUNCED = "bounced"
    SUBSCRIPTION_HANDLED = "subscription_handled"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass(frozen=True)
class ProcessingOutcome:
    """
    Terminal result of one ingestion attempt.

    Attributes:
        kind: Outcome type
        message_id: Derived Message-ID of the processed message
        post_id: Created post (created outcomes only)
        topic_id: Topic of the created post
        error: Error kind (failed outcomes only)
    """

    kind: OutcomeKind
    message_id: Optional[str] = None
    post_id: Optional[int] = None
    topic_id: Optional[int] = None
    error: Optional[str] = None

    def __post_init__(self):
        """Validate fields after initialization."""
        if self.kind == OutcomeKind.FAILED and not self.error:
            raise ValueError("failed outcomes require an error kind")

    @classmethod
    def created(cls, message_id: str, post_id: Optional[int], topic_id: Optional[int]) -> "ProcessingOutcome":
        return cls(OutcomeKind.CREATED, message_id, post_id=post_id, topic_id=topic_id)
