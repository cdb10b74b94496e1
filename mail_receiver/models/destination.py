"""Destination data model."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .directory import Category, EmailLog, Group


class DestinationKind(Enum):
    """Type of resolved destination."""

    GROUP = "group"
    CATEGORY = "category"
    REPLY = "reply"


@dataclass(frozen=True)
class Destination:
    """
    A recipient address resolved to something a post can be created in.

    Attributes:
        kind: Destination type
        address: Recipient address that resolved
        obj: Group, category, or email log the address points at
        reply_key: 32-character reply key (reply destinations only)
    """

    kind: DestinationKind
    address: str
    obj: Union[Group, Category, EmailLog]
    reply_key: Optional[str] = None

    def __post_init__(self):
        """Validate fields after initialization."""
        if self.kind == DestinationKind.REPLY and not self.reply_key:
            raise ValueError("reply destinations require a reply_key")

    @property
    def is_mailinglist_mirror(self) -> bool:
        return self.kind == DestinationKind.CATEGORY and bool(getattr(self.obj, "mailinglist_mirror", False))
