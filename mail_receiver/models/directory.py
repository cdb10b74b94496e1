"""Entities owned by external collaborators.

The receiver only reads these; the identity directory, conversation directory,
content creator and upload store are the systems of record.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class Identity:
    """A user account, possibly staged for an unknown sender."""

    id: int
    email: str
    username: str
    name: Optional[str] = None
    staged: bool = False
    active: bool = True
    silenced: bool = False
    trust_level: int = 0

    def has_trust_level(self, level: int) -> bool:
        return self.trust_level >= level


@dataclass
class Group:
    """A group that owns one or more incoming addresses."""

    id: int
    name: str
    incoming_email: str = ""
    usernames: frozenset[str] = field(default_factory=frozenset)


@dataclass
class Category:
    """A category that accepts new topics by email."""

    id: int
    name: str
    email_in: str = ""
    email_in_allow_strangers: bool = False
    mailinglist_mirror: bool = False


@dataclass
class Topic:
    """A conversation."""

    id: int
    title: str
    private_message: bool = False
    closed: bool = False
    trashed: bool = False
    allowed_group_ids: frozenset[int] = field(default_factory=frozenset)


@dataclass
class Post:
    """A post inside a topic."""

    id: int
    topic: Optional[Topic]
    post_number: int = 1
    user_id: Optional[int] = None

    @property
    def topic_id(self) -> Optional[int]:
        return self.topic.id if self.topic else None


@dataclass
class EmailLog:
    """Record of a notification email that carried a reply key."""

    id: int
    user_id: int
    reply_key: Optional[str] = None
    bounce_key: Optional[str] = None
    post: Optional[Post] = None
    user_email: Optional[str] = None
    bounced: bool = False

    @property
    def topic_id(self) -> Optional[int]:
        return self.post.topic_id if self.post else None


@dataclass(frozen=True)
class Upload:
    """A stored attachment."""

    url: str
    original_filename: str
    filesize: int
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass
class PostResult:
    """Result of asking the content creator for a topic or reply."""

    post: Optional[Post] = None
    errors: list[str] = field(default_factory=list)


@dataclass
class PostOptions:
    """Everything the content creator needs to create a topic or reply."""

    author: Identity
    raw: str
    title: Optional[str] = None
    elided: str = ""
    archetype: str = "regular"
    category_id: Optional[int] = None
    target_group_names: list[str] = field(default_factory=list)
    target_usernames: list[str] = field(default_factory=list)
    is_group_message: bool = False
    topic_id: Optional[int] = None
    reply_to_post_number: Optional[int] = None
    post_type: str = "regular"
    created_at: Optional[datetime] = None
    skip_validations: bool = False
    skip_guardian: bool = False
    via_email: bool = True
    raw_email: Optional[str] = None

    @property
    def is_private_message(self) -> bool:
        return self.archetype == "private_message"
