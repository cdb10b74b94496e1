"""Abstract interfaces for the systems the receiver hands work to."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

from mail_receiver.models.directory import (
    Category,
    EmailLog,
    Group,
    Identity,
    Post,
    PostOptions,
    PostResult,
    Topic,
    Upload,
)


class CollaboratorError(Exception):
    """Base exception for collaborator errors."""

    pass


class IdentityConflictError(CollaboratorError):
    """Raised when a concurrent attempt created the same identity first."""

    pass


class ReactionAlreadyRecordedError(CollaboratorError):
    """Raised when the user already reacted this way to the post."""

    pass


class ReactionNotAllowedError(CollaboratorError):
    """Raised when the user may not react this way to the post."""

    pass


class IdentityDirectory(ABC):
    """Lookup, staging and lifecycle of identities."""

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[Identity]:
        pass

    @abstractmethod
    def is_screened(self, email: str) -> bool:
        """True if mail from this address must be rejected."""
        pass

    @abstractmethod
    def is_email_allowed(self, email: str) -> bool:
        """True if an identity may be created for this address."""
        pass

    @abstractmethod
    def find_or_create_staged(self, email: str, display_name: Optional[str]) -> tuple[Identity, bool]:
        """
        Find the identity for ``email`` or create a staged one, atomically.

        Returns:
            Tuple of (identity, created)

        Raises:
            IdentityConflictError: If a concurrent attempt created it first;
                the caller should look it up again
        """
        pass

    @abstractmethod
    def post_count(self, identity: Identity) -> int:
        pass

    @abstractmethod
    def destroy_staged(self, identity: Identity) -> None:
        pass

    @abstractmethod
    def deactivate(self, identity: Identity, reason: str) -> None:
        pass


class ConversationDirectory(ABC):
    """Lookup of groups, categories and conversations by address or header."""

    @abstractmethod
    def find_group_by_email(self, address: str) -> Optional[Group]:
        pass

    @abstractmethod
    def find_category_by_email(self, address: str) -> Optional[Category]:
        pass

    @abstractmethod
    def find_email_log_by_reply_key(self, reply_key: str) -> Optional[EmailLog]:
        pass

    @abstractmethod
    def find_email_log_by_bounce_key(self, bounce_key: str) -> Optional[EmailLog]:
        pass

    @abstractmethod
    def mark_bounced(self, email_log: EmailLog) -> None:
        pass

    @abstractmethod
    def find_post_by_thread_headers(
        self, message_ids: Sequence[str], known_post_ids: Sequence[int]
    ) -> Optional[Post]:
        """
        Most recent post related to the given In-Reply-To/References ids.

        Args:
            message_ids: Bare message ids from the thread headers
            known_post_ids: Posts previously created from those message ids
        """
        pass

    @abstractmethod
    def incoming_addresses(self) -> list[str]:
        """Every address owned by a group or category."""
        pass

    @abstractmethod
    def invite(self, topic: Topic, identity: Identity, invited_by: Identity) -> bool:
        """
        Allow ``identity`` into a private topic.

        Returns:
            False if the identity already had access
        """
        pass


class ContentCreator(ABC):
    """Creates topics and replies."""

    @abstractmethod
    def create_topic(self, options: PostOptions) -> PostResult:
        pass

    @abstractmethod
    def create_reply(self, options: PostOptions) -> PostResult:
        pass

    @abstractmethod
    def add_moderator_notice(self, topic: Topic, author: Identity, text: str) -> None:
        pass


class ReactionRecorder(ABC):
    """Records reactions such as likes."""

    @abstractmethod
    def record(self, user: Identity, post: Post, reaction_type: str) -> None:
        """
        Raises:
            ReactionAlreadyRecordedError: If the reaction already exists
            ReactionNotAllowedError: If the user may not react this way
        """
        pass


class UploadStore(ABC):
    """Stores attachment bytes."""

    @abstractmethod
    def store(self, content: bytes, filename: str, owner_id: int, for_group_message: bool = False) -> Optional[Upload]:
        """
        Returns:
            The stored upload, or None if it could not be stored
        """
        pass


class OutboundMailer(ABC):
    """Sends system messages."""

    @abstractmethod
    def send_system_message(self, name: str, identity: Identity) -> None:
        pass


@dataclass
class Collaborators:
    """Bundle of the collaborators one receiver talks to."""

    identities: IdentityDirectory
    conversations: ConversationDirectory
    content: ContentCreator
    reactions: ReactionRecorder
    uploads: UploadStore
    mailer: OutboundMailer
