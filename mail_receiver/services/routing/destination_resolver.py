"""Resolution of recipient addresses to groups, categories and conversations."""

import logging
from email.utils import getaddresses
from typing import Iterator, Optional

from mail_receiver.config.receiver_config import ReceiverConfig
from mail_receiver.models.destination import Destination, DestinationKind
from mail_receiver.models.directory import Post
from mail_receiver.models.incoming_message import IncomingMessage
from mail_receiver.services.collaborators.base import ConversationDirectory
from mail_receiver.storage.database import IncomingEmailRepository
from .reply_key_pattern import ReplyKeyPattern

logger = logging.getLogger(__name__)

MAX_RELATED_MESSAGE_IDS = 5


class DestinationResolver:
    """
    Match recipient addresses against group, category and reply addresses.

    For each candidate address, in order: a group address, then a category
    address (when incoming email lookup is enabled), then the reply-key
    pattern. At most one destination is produced per address.
    """

    def __init__(self, config: ReceiverConfig, conversations: ConversationDirectory):
        self.config = config
        self.conversations = conversations
        self.reply_key_pattern = ReplyKeyPattern(config.reply_addresses())

    def all_destinations(self, message: IncomingMessage) -> Iterator[str]:
        """
        Candidate recipient addresses, de-duplicated and lazily produced.

        Order: To, Cc, Bcc, X-Forwarded-To, Delivered-To.
        """
        seen = set()
        headers = (message.to, message.cc, message.bcc, message.x_forwarded_to, message.delivered_to)

        for values in headers:
            for _, address in getaddresses(list(values)):
                address = address.strip().lower()
                if not address or address in seen:
                    continue
                seen.add(address)
                yield address

    def check_address(self, address: str) -> Optional[Destination]:
        """Resolve one address, or None if it belongs to nothing."""
        if self.config.email_in:
            group = self.conversations.find_group_by_email(address)
            if group is not None:
                return Destination(DestinationKind.GROUP, address, group)

            category = self.conversations.find_category_by_email(address)
            if category is not None:
                return Destination(DestinationKind.CATEGORY, address, category)

        for reply_key in self.reply_key_pattern.extract_keys(address):
            email_log = self.conversations.find_email_log_by_reply_key(reply_key)
            if email_log is not None:
                return Destination(DestinationKind.REPLY, address, email_log, reply_key=reply_key)

        return None

    def resolve(self, message: IncomingMessage) -> Iterator[Destination]:
        """Destinations of ``message`` in address order, computed lazily."""
        for address in self.all_destinations(message):
            destination = self.check_address(address)
            if destination is not None:
                yield destination

    def sent_to_mailinglist_mirror(self, message: IncomingMessage) -> bool:
        return any(destination.is_mailinglist_mirror for destination in self.resolve(message))

    def is_reply_address(self, address: str) -> bool:
        return bool(self.reply_key_pattern.extract_keys(address))


class RelatedPostFinder:
    """Find the conversation a message continues from its thread headers."""

    def __init__(
        self,
        config: ReceiverConfig,
        conversations: ConversationDirectory,
        repository: IncomingEmailRepository,
    ):
        self.config = config
        self.conversations = conversations
        self.repository = repository

    def find(self, message: IncomingMessage, mailinglist_mirror: bool = False) -> Optional[Post]:
        """
        Most recent post related to the message's In-Reply-To/References.

        Header-based threading is skipped when replies are expected to carry
        a reply key, unless the message goes to a mailing-list mirror.
        """
        if self.config.find_related_post_with_key and not mailinglist_mirror:
            return None

        message_ids = []
        for message_id in (message.in_reply_to, *message.references):
            if message_id and message_id not in message_ids:
                message_ids.append(message_id)

        if not message_ids:
            return None

        message_ids = message_ids[:MAX_RELATED_MESSAGE_IDS]
        known_post_ids = self.repository.post_ids_for_message_ids(message_ids)

        post = self.conversations.find_post_by_thread_headers(message_ids, known_post_ids)
        if post is not None:
            logger.debug(f"Found related post {post.id} from thread headers")
        return post
