"""Processing orchestrator: one raw message in, one terminal outcome out."""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import getaddresses
from typing import Callable, Optional

from mail_receiver.config.logging_config import current_message_id
from mail_receiver.config.receiver_config import AppConfig, ReceiverConfig
from mail_receiver.models.destination import Destination, DestinationKind
from mail_receiver.models.directory import Identity, Post, PostOptions, Topic
from mail_receiver.models.extracted_body import ExtractedBody
from mail_receiver.models.incoming_email import IncomingEmailRecord
from mail_receiver.models.incoming_message import Attachment, IncomingMessage
from mail_receiver.models.processing_outcome import OutcomeKind, ProcessingOutcome, ProcessingState
from mail_receiver.services.attachments.attachment_inliner import AttachmentInliner
from mail_receiver.services.body.body_extractor import BodyExtractor
from mail_receiver.services.bounce.bounce_updater import BounceScoreUpdater
from mail_receiver.services.collaborators.base import (
    CollaboratorError,
    Collaborators,
    IdentityConflictError,
    ReactionAlreadyRecordedError,
    ReactionNotAllowedError,
)
from mail_receiver.services.email_parser.address_parser import parse_from_field
from mail_receiver.services.email_parser.inspection import (
    delivery_status,
    extract_bounce_key,
    find_verp_address,
    is_auto_generated,
)
from mail_receiver.services.email_parser.message_parser import MessageParser
from mail_receiver.services.forwarding.forwarded_unwrapper import ForwardedMessage, ForwardedMessageUnwrapper
from mail_receiver.services.routing.destination_resolver import DestinationResolver, RelatedPostFinder
from mail_receiver.storage.audit_log import AuditLog
from mail_receiver.storage.database import BounceRecordRepository, DatabaseConnection, IncomingEmailRepository
from mail_receiver.storage.once_keys import MessageLock, OnceKeyStore, open_once_key_store
from .errors import (
    AutoGeneratedEmailError,
    BadDestinationAddress,
    BouncedEmailError,
    EmailNotAllowed,
    InactiveUserError,
    InsufficientTrustLevelError,
    InvalidPost,
    InvalidPostAction,
    NoSenderDetectedError,
    ReplyUserNotMatchingError,
    ScreenedEmailError,
    SilencedUserError,
    StrangersNotAllowedError,
    TopicClosedError,
    TopicNotFoundError,
    UnsubscribeNotAllowed,
    UserNotFoundError,
)

logger = logging.getLogger(__name__)

MAXIMUM_STAGED_USERS_NOTICE = (
    "The maximum number of staged users created per email has been reached. "
    "Other recipients were not invited."
)


def elided_html(elided: str) -> str:
    """Collapsible block holding the trimmed part of a message."""
    return (
        "\n\n<details class='elided'>\n"
        "<summary title='Show trimmed content'>&#183;&#183;&#183;</summary>\n\n"
        f"{elided}\n\n"
        "</details>\n"
    )


@dataclass
class ProcessingAttempt:
    """Everything scoped to one ingestion attempt."""

    message: IncomingMessage
    state: ProcessingState = ProcessingState.RECEIVED
    from_email: Optional[str] = None
    from_display_name: Optional[str] = None
    subject: str = ""
    recorded: bool = False
    user_id: Optional[int] = None
    staged_users: list[Identity] = field(default_factory=list)
    attachments: list[Attachment] = field(default_factory=list)
    post: Optional[Post] = None
    topic_id: Optional[int] = None
    mailinglist_mirror: Optional[bool] = None
    forwarded: Optional[ForwardedMessage] = None
    forwarded_checked: bool = False
    incoming_addresses: Optional[set[str]] = None


class Receiver:
    """
    Turn raw messages into topics, replies, reactions, subscription actions
    or bounce records.

    Each message is processed under a lock keyed by its Message-ID, at most
    once. Identities staged during a failed attempt that own no content are
    removed before the error is re-raised.
    """

    def __init__(
        self,
        config: ReceiverConfig,
        collaborators: Collaborators,
        repository: IncomingEmailRepository,
        bounce_repository: BounceRecordRepository,
        once_keys: OnceKeyStore,
        audit_log: Optional[AuditLog] = None,
        parser: Optional[MessageParser] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.config = config
        self.collaborators = collaborators
        self.repository = repository
        self.audit_log = audit_log
        self.parser = parser or MessageParser()
        self.clock = clock

        self.lock = MessageLock(
            once_keys,
            ttl_seconds=config.lock_ttl_seconds,
            timeout_seconds=config.lock_timeout_seconds,
        )
        self.body_extractor = BodyExtractor(config)
        self.resolver = DestinationResolver(config, collaborators.conversations)
        self.related_posts = RelatedPostFinder(config, collaborators.conversations, repository)
        self.unwrapper = ForwardedMessageUnwrapper(self.parser)
        self.inliner = AttachmentInliner(config, collaborators.uploads)
        self.bounce_updater = BounceScoreUpdater(
            config, bounce_repository, once_keys, collaborators.identities, clock=lambda: self.clock()
        )
        self._ignore_by_title = re.compile(config.ignore_by_title, re.IGNORECASE) if config.ignore_by_title else None

    def process(self, raw: bytes) -> ProcessingOutcome:
        """
        Process one raw message.

        Args:
            raw: Bytes delivered by the mail transport

        Returns:
            ProcessingOutcome (created, bounced, subscription_handled,
            duplicate or ignored)

        Raises:
            EmptyEmailError: If ``raw`` is empty
            ProcessingError: If the message cannot be turned into content;
                the error is also recorded on the audit record
            LockTimeoutError: If a concurrent attempt holds the message
        """
        message = self.parser.parse(raw)
        token = current_message_id.set(message.message_id)

        try:
            if self._is_ignored(message):
                logger.info("Subject matches ignore_by_title, ignoring")
                return self._finish(ProcessingAttempt(message), ProcessingOutcome(OutcomeKind.IGNORED, message.message_id))

            with self.lock.synchronize(message.message_id):
                return self._process_locked(message)
        finally:
            current_message_id.reset(token)

    def _is_ignored(self, message: IncomingMessage) -> bool:
        return bool(self._ignore_by_title and message.subject and self._ignore_by_title.search(message.subject))

    def _process_locked(self, message: IncomingMessage) -> ProcessingOutcome:
        attempt = ProcessingAttempt(message)
        self._transition(attempt, ProcessingState.LOCKED)

        if self.repository.exists(message.message_id):
            logger.info("Message already processed, skipping")
            return self._finish(attempt, ProcessingOutcome(OutcomeKind.DUPLICATE, message.message_id))

        try:
            attempt.from_email, attempt.from_display_name = parse_from_field(message.from_header)
            attempt.subject = message.subject or self.config.default_subject.format(email=attempt.from_email or "")
            self._create_incoming_email(attempt)
            self._transition(attempt, ProcessingState.PARSED)

            outcome = self._process_internal(attempt)
        except BouncedEmailError:
            self._transition(attempt, ProcessingState.PERSISTED)
            return self._finish(attempt, ProcessingOutcome(OutcomeKind.BOUNCED, message.message_id))
        except Exception as e:
            self._fail(attempt, e)
            raise

        self._transition(attempt, ProcessingState.PERSISTED)
        return self._finish(attempt, outcome)

    def _transition(self, attempt: ProcessingAttempt, state: ProcessingState) -> None:
        logger.debug(f"{attempt.state.value} -> {state.value}")
        attempt.state = state

    def _create_incoming_email(self, attempt: ProcessingAttempt) -> None:
        message = attempt.message
        self.repository.create(
            IncomingEmailRecord(
                message_id=message.message_id,
                raw=message.raw_text,
                subject=attempt.subject,
                from_address=attempt.from_email,
                to_addresses=";".join(message.to) or None,
                cc_addresses=";".join(message.cc) or None,
            )
        )
        attempt.recorded = True

    def _update(self, attempt: ProcessingAttempt, **columns) -> None:
        if attempt.recorded:
            self.repository.update_columns(attempt.message.message_id, **columns)

    def _finish(self, attempt: ProcessingAttempt, outcome: ProcessingOutcome) -> ProcessingOutcome:
        if outcome.kind not in (OutcomeKind.DUPLICATE, OutcomeKind.IGNORED):
            self._update(attempt, outcome=outcome.kind.value)

        logger.info(f"Processed with outcome {outcome.kind.value}")
        if self.audit_log is not None:
            self.audit_log.log_outcome(
                outcome.message_id,
                outcome.kind.value,
                from_address=attempt.from_email,
                error=outcome.error,
                post_id=outcome.post_id,
                topic_id=outcome.topic_id,
            )
        return outcome

    def _fail(self, attempt: ProcessingAttempt, error: Exception) -> None:
        kind = getattr(error, "kind", type(error).__name__)
        logger.warning(f"Processing failed with {kind}: {error}")

        self._update(attempt, outcome=OutcomeKind.FAILED.value, error=kind)
        self._delete_staged_users(attempt)
        self._transition(attempt, ProcessingState.FAILED)

        if self.audit_log is not None:
            self.audit_log.log_outcome(
                attempt.message.message_id,
                OutcomeKind.FAILED.value,
                from_address=attempt.from_email,
                error=kind,
                detail=str(error),
            )

    def _process_internal(self, attempt: ProcessingAttempt) -> ProcessingOutcome:
        message = attempt.message
        identities = self.collaborators.identities

        if self._is_bounce(attempt):
            raise BouncedEmailError()
        if not attempt.from_email:
            raise NoSenderDetectedError()
        if identities.is_screened(attempt.from_email):
            raise ScreenedEmailError()

        user = identities.find_by_email(attempt.from_email)
        if user is not None:
            self._log_and_validate_user(attempt, user)
        elif not self.config.enable_staged_users:
            raise UserNotFoundError()

        attempt.attachments = self.inliner.filter(message.attachments)
        mirror = self._sent_to_mailinglist_mirror(attempt)
        body = self.body_extractor.extract(message, bool(attempt.attachments), mirror)

        if not mirror and is_auto_generated(message, attempt.from_email, self.config.auto_generated_whitelist):
            self._update(attempt, is_auto_generated=True)
            if self.config.block_auto_generated_emails:
                raise AutoGeneratedEmailError()

        self._transition(attempt, ProcessingState.VALIDATED)

        if self._is_unsubscribe(body.content, message.subject):
            if user is None or user.staged:
                raise UnsubscribeNotAllowed()
            self.collaborators.mailer.send_system_message("confirm_unsubscribe", user)
            return ProcessingOutcome(OutcomeKind.SUBSCRIPTION_HANDLED, message.message_id)

        if user is None:
            user = self._find_or_create_user(attempt, attempt.from_email, attempt.from_display_name)
            if user is None:
                raise UserNotFoundError()
            self._log_and_validate_user(attempt, user)

        related = self.related_posts.find(message, mirror)
        self._transition(attempt, ProcessingState.ROUTED)

        if related is not None:
            self._create_reply(
                attempt,
                PostOptions(author=user, raw=body.content, elided=body.elided, skip_validations=user.staged),
                related,
                related.topic,
            )
        else:
            self._process_destinations(attempt, user, body)

        return ProcessingOutcome.created(
            message.message_id,
            attempt.post.id if attempt.post else None,
            attempt.post.topic_id if attempt.post else attempt.topic_id,
        )

    def _process_destinations(self, attempt: ProcessingAttempt, user: Identity, body: ExtractedBody) -> None:
        first_error: Optional[Exception] = None

        for destination in self.resolver.resolve(attempt.message):
            logger.debug(f"Trying {destination.kind.value} destination {destination.address}")
            try:
                self._process_destination(attempt, destination, user, body)
            except Exception as e:
                logger.debug(f"Destination {destination.address} failed: {e!r}")
                if first_error is None:
                    first_error = e
            else:
                return

        raise first_error or BadDestinationAddress()

    def _process_destination(
        self,
        attempt: ProcessingAttempt,
        destination: Destination,
        user: Identity,
        body: ExtractedBody,
    ) -> None:
        if self.config.enable_forwarded_emails and self._process_forwarded_email(attempt, destination, user):
            return

        if destination.kind == DestinationKind.GROUP:
            group = destination.obj
            self._create_post_with_attachments(
                attempt,
                PostOptions(
                    author=user,
                    raw=body.content,
                    elided=body.elided,
                    title=attempt.subject,
                    archetype="private_message",
                    target_group_names=[group.name],
                    is_group_message=True,
                    skip_validations=True,
                ),
            )

        elif destination.kind == DestinationKind.CATEGORY:
            category = destination.obj

            if user.staged and not category.email_in_allow_strangers:
                raise StrangersNotAllowedError()
            if not user.has_trust_level(self.config.email_in_min_trust) and not self._sent_to_mailinglist_mirror(attempt):
                raise InsufficientTrustLevelError()

            self._create_post_with_attachments(
                attempt,
                PostOptions(
                    author=user,
                    raw=body.content,
                    elided=body.elided,
                    title=attempt.subject,
                    category_id=category.id,
                    skip_validations=user.staged,
                ),
            )

        elif destination.kind == DestinationKind.REPLY:
            email_log = destination.obj

            if email_log.user_id != user.id and not self._forwarded_reply_key(email_log, user):
                raise ReplyUserNotMatchingError(f"email_log.user_id => {email_log.user_id}, user.id => {user.id}")

            post = email_log.post
            self._create_reply(
                attempt,
                PostOptions(author=user, raw=body.content, elided=body.elided, skip_validations=user.staged),
                post,
                post.topic if post else None,
            )

    def _forwarded_reply_key(self, email_log, user: Identity) -> bool:
        """True if the sender received the reply key on a message of the same topic."""
        if email_log.topic_id is None or not email_log.reply_key:
            return False

        reply_key = email_log.reply_key.lower()
        for record in self.repository.find_by_topic(email_log.topic_id):
            addresses = record.addresses()
            if user.email.lower() not in addresses:
                continue
            if any(reply_key in self.resolver.reply_key_pattern.extract_keys(a) for a in addresses):
                return True

        return False

    def _forwarded_message(self, attempt: ProcessingAttempt) -> Optional[ForwardedMessage]:
        if not attempt.forwarded_checked:
            attempt.forwarded = self.unwrapper.unwrap(attempt.message)
            attempt.forwarded_checked = True
        return attempt.forwarded

    def _process_forwarded_email(self, attempt: ProcessingAttempt, destination: Destination, user: Identity) -> bool:
        forwarded = self._forwarded_message(attempt)
        if forwarded is None or not forwarded.from_email or "@" not in forwarded.from_email:
            return False

        embedded_user = self._find_or_create_user(attempt, forwarded.from_email, forwarded.from_display_name)
        if embedded_user is None:
            return False

        title = forwarded.title or attempt.subject
        group = None

        if destination.kind == DestinationKind.GROUP:
            group = destination.obj
            options = PostOptions(
                author=embedded_user,
                raw=forwarded.body,
                title=title,
                archetype="private_message",
                target_usernames=[user.username],
                target_group_names=[group.name],
                is_group_message=True,
                skip_validations=True,
                created_at=forwarded.date,
            )
        elif destination.kind == DestinationKind.CATEGORY:
            category = destination.obj
            if user.staged and not category.email_in_allow_strangers:
                return False
            if not user.has_trust_level(self.config.email_in_min_trust):
                return False

            options = PostOptions(
                author=embedded_user,
                raw=forwarded.body,
                title=title,
                category_id=category.id,
                skip_validations=embedded_user.staged,
                created_at=forwarded.date,
            )
        else:
            return False

        post = self._create_post_with_attachments(attempt, options)

        if post is not None and post.topic is not None and forwarded.before.strip():
            post_type = "regular"
            if group is not None and post.topic.private_message and user.username in group.usernames:
                post_type = "whisper"

            self._create_reply(
                attempt,
                PostOptions(author=user, raw=forwarded.before, post_type=post_type, skip_validations=user.staged),
                post,
                post.topic,
            )

        return True

    def _create_reply(
        self,
        attempt: ProcessingAttempt,
        options: PostOptions,
        post: Optional[Post],
        topic: Optional[Topic],
    ) -> Optional[Post]:
        if post is None or topic is None or topic.trashed:
            raise TopicNotFoundError()

        if self._is_like(options.raw):
            self._create_post_action(options.author, post)
            attempt.topic_id = topic.id
            return None

        if topic.closed:
            raise TopicClosedError()

        options.topic_id = post.topic_id
        options.reply_to_post_number = post.post_number
        options.is_group_message = topic.private_message and bool(topic.allowed_group_ids)
        return self._create_post_with_attachments(attempt, options, topic)

    def _create_post_action(self, user: Identity, post: Post) -> None:
        try:
            self.collaborators.reactions.record(user, post, "like")
        except ReactionAlreadyRecordedError:
            logger.debug(f"User {user.id} already liked post {post.id}")
        except ReactionNotAllowedError as e:
            raise InvalidPostAction(str(e)) from e

    def _create_post_with_attachments(
        self,
        attempt: ProcessingAttempt,
        options: PostOptions,
        topic: Optional[Topic] = None,
    ) -> Optional[Post]:
        options.raw = self.inliner.inline(options.raw, attempt.attachments, options.author, options.is_group_message)
        return self._create_post(attempt, options, topic)

    def _create_post(self, attempt: ProcessingAttempt, options: PostOptions, topic: Optional[Topic]) -> Optional[Post]:
        options.via_email = True
        options.raw_email = attempt.message.raw_text

        created_at = options.created_at or attempt.message.date
        if created_at is None:
            raise InvalidPost("No post creation date found. Is the e-mail missing a Date: header?")
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        options.created_at = min(created_at, self.clock())

        is_private_message = options.is_private_message or (topic is not None and topic.private_message)
        if options.elided.strip() and (self.config.always_show_trimmed_content or is_private_message):
            options.raw += elided_html(options.elided)

        if self._sent_to_mailinglist_mirror(attempt):
            options.skip_validations = True
            options.skip_guardian = True

        content = self.collaborators.content
        result = content.create_reply(options) if options.topic_id is not None else content.create_topic(options)

        if result.errors:
            raise InvalidPost("\n".join(result.errors))

        post = result.post
        if post is not None:
            attempt.post = post
            self._update(attempt, topic_id=post.topic_id, post_id=post.id)
            if post.topic is not None and post.topic.private_message:
                self._add_other_addresses(attempt, post, options.author)

        return post

    def _add_other_addresses(self, attempt: ProcessingAttempt, post: Post, sender: Identity) -> None:
        """Invite the other To/Cc/Bcc recipients to a private conversation."""
        mail = attempt.message.mail
        for header in ("To", "Cc", "Bcc"):
            values = [str(value) for value in mail.get_all(header) or []]
            for display_name, address in getaddresses(values):
                email = address.strip().lower()
                if "@" not in email or not self._should_invite(attempt, email):
                    continue

                try:
                    identity = self._find_or_create_user(attempt, email, display_name or None)
                    if identity is not None and self.collaborators.conversations.invite(post.topic, identity, sender):
                        logger.info(f"Invited {email} to topic {post.topic_id}")
                except (EmailNotAllowed, CollaboratorError) as e:
                    logger.debug(f"Could not invite {email}: {e!r}")

                if len(attempt.staged_users) > self.config.maximum_staged_users_per_email:
                    self.collaborators.content.add_moderator_notice(post.topic, sender, MAXIMUM_STAGED_USERS_NOTICE)
                    return

    def _should_invite(self, attempt: ProcessingAttempt, email: str) -> bool:
        if attempt.incoming_addresses is None:
            attempt.incoming_addresses = {
                a.strip().lower() for a in self.collaborators.conversations.incoming_addresses()
            }
        return not self.resolver.is_reply_address(email) and email not in attempt.incoming_addresses

    def _find_or_create_user(
        self,
        attempt: ProcessingAttempt,
        email: str,
        display_name: Optional[str],
    ) -> Optional[Identity]:
        """
        Find the identity for ``email``, staging one when allowed.

        Raises:
            EmailNotAllowed: If an identity may not be created for ``email``
        """
        identities = self.collaborators.identities
        identity = identities.find_by_email(email)

        if identity is None and self.config.enable_staged_users:
            if not identities.is_email_allowed(email):
                raise EmailNotAllowed()

            try:
                identity, created = identities.find_or_create_staged(email, display_name)
            except IdentityConflictError:
                identity, created = identities.find_by_email(email), False

            if created:
                attempt.staged_users.append(identity)
                logger.info(f"Staged identity {identity.id} for {email}")

        return identity

    def _log_and_validate_user(self, attempt: ProcessingAttempt, user: Identity) -> None:
        attempt.user_id = user.id
        self._update(attempt, user_id=user.id)

        if not user.active and not user.staged:
            raise InactiveUserError()
        if user.silenced:
            raise SilencedUserError()

    def _delete_staged_users(self, attempt: ProcessingAttempt) -> None:
        identities = self.collaborators.identities

        for identity in attempt.staged_users:
            if attempt.user_id == identity.id:
                self._update(attempt, user_id=None)
                attempt.user_id = None

            if identities.post_count(identity) == 0:
                identities.destroy_staged(identity)
                logger.info(f"Removed staged identity {identity.id}")

    def _is_bounce(self, attempt: ProcessingAttempt) -> bool:
        message = attempt.message
        status = delivery_status(message)
        verp = find_verp_address(self.resolver.all_destinations(message))

        if not (status is not None and status.bounced) and not verp:
            return False

        self._update(attempt, is_bounce=True)

        email = None
        bounce_key = extract_bounce_key(verp)
        if bounce_key:
            email_log = self.collaborators.conversations.find_email_log_by_bounce_key(bounce_key)
            if email_log is not None:
                self.collaborators.conversations.mark_bounced(email_log)
                email = email_log.user_email

        email = email or attempt.from_email
        is_soft = status is not None and status.is_soft
        self.bounce_updater.update(email, self.bounce_updater.score_for(is_soft))
        return True

    def _sent_to_mailinglist_mirror(self, attempt: ProcessingAttempt) -> bool:
        if attempt.mailinglist_mirror is None:
            attempt.mailinglist_mirror = self.resolver.sent_to_mailinglist_mirror(attempt.message)
        return attempt.mailinglist_mirror

    def _is_unsubscribe(self, body: str, subject: Optional[str]) -> bool:
        if not self.config.unsubscribe_via_email:
            return False
        return any(value.strip().lower() == "unsubscribe" for value in (subject, body) if value)

    def _is_like(self, raw: str) -> bool:
        return raw.strip().lower() in {token.lower() for token in self.config.like_tokens}


def create_receiver(app_config: AppConfig, collaborators: Collaborators) -> Receiver:
    """
    Build a Receiver wired to the configured storage.

    The database schema is created if missing. Locks and daily bounce
    markers go to Redis when ``storage.redis_url`` is set, else to the
    same SQLite database as the audit records.
    """
    storage = app_config.storage
    db = DatabaseConnection(storage.get_database_path())
    db.execute_schema()

    return Receiver(
        app_config.receiver,
        collaborators,
        IncomingEmailRepository(db),
        BounceRecordRepository(db),
        open_once_key_store(db, storage.redis_url),
        audit_log=AuditLog(storage.get_audit_log_path()),
    )
