"""Bounce record data model."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class BounceRecord:
    """
    Accumulated bounce score for one address.

    Attributes:
        email: Lower-cased address
        score: Accumulated score
        reset_after: When the score falls back to zero
    """

    email: str
    score: int = 0
    reset_after: Optional[datetime] = None

    def __post_init__(self):
        """Validate fields after initialization."""
        if not self.email:
            raise ValueError("email is required")
        self.email = self.email.lower()

    def effective_score(self, now: datetime) -> int:
        """Score as of ``now``, honouring the reset time."""
        if self.reset_after is not None and now >= self.reset_after:
            return 0
        return self.score
