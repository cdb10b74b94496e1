"""End-to-end tests for the processing orchestrator."""

import pytest
import redis

from mail_receiver.config.receiver_config import AppConfig, ReceiverConfig, StorageConfig
from mail_receiver.models.directory import Category, EmailLog, Group, Post, Topic
from mail_receiver.models.incoming_email import IncomingEmailRecord
from mail_receiver.models.processing_outcome import OutcomeKind
from mail_receiver.services.receiver.errors import (
    AutoGeneratedEmailError,
    BadDestinationAddress,
    InsufficientTrustLevelError,
    InvalidPost,
    InvalidPostAction,
    NoBodyDetectedError,
    ReplyUserNotMatchingError,
    ScreenedEmailError,
    StrangersNotAllowedError,
    TopicClosedError,
    UnsubscribeNotAllowed,
    UserNotFoundError,
)
from mail_receiver.services.receiver.orchestrator import MAXIMUM_STAGED_USERS_NOTICE, Receiver, create_receiver
from mail_receiver.storage.audit_log import AuditLog
from mail_receiver.storage.database import BounceRecordRepository
from mail_receiver.storage.once_keys import LockTimeoutError, RedisOnceKeyStore, SqliteOnceKeyStore

from .fakes import NOW, REPLY_KEY, build_email

REPLY_ADDRESS = f"reply+{REPLY_KEY}@example.com"

FORWARDED_BODY = (
    "Can you help this customer?\r\n\r\n"
    "---------- Forwarded message ---------\r\n"
    "From: Carol Jones <carol@example.com>\r\n"
    "Date: Thu, 29 Feb 2024 09:00:00 +0000\r\n"
    "Subject: Broken widget\r\n"
    "To: alice@example.com\r\n\r\n"
    "My widget stopped working."
)


@pytest.fixture
def build_receiver(collaborators, db, repository, tmp_path):
    def build(**settings):
        settings.setdefault("reply_by_email_address", "reply+%{reply_key}@example.com")
        return Receiver(
            ReceiverConfig(**settings),
            collaborators,
            repository,
            BounceRecordRepository(db),
            SqliteOnceKeyStore(db),
            audit_log=AuditLog(tmp_path / "audit.log"),
            clock=lambda: NOW,
        )

    return build


@pytest.fixture
def identities(collaborators):
    return collaborators.identities


@pytest.fixture
def conversations(collaborators):
    return collaborators.conversations


@pytest.fixture
def content(collaborators):
    return collaborators.content


@pytest.fixture
def support(conversations):
    category = Category(id=2, name="support", email_in="support@example.com", email_in_allow_strangers=True)
    conversations.categories["support@example.com"] = category
    return category


@pytest.fixture
def team(conversations):
    group = Group(id=1, name="team", incoming_email="team@example.com", usernames=frozenset({"alice"}))
    conversations.groups["team@example.com"] = group
    return group


@pytest.fixture
def existing_post(conversations):
    post = Post(id=50, topic=Topic(id=5, title="Existing"), post_number=3)
    conversations.posts.append(post)
    return post


@pytest.fixture
def alice(identities):
    return identities.add("alice@example.com", trust_level=1)


@pytest.fixture
def reply_log(conversations, existing_post, alice):
    email_log = EmailLog(id=1, user_id=alice.id, reply_key=REPLY_KEY, post=existing_post)
    conversations.email_logs.append(email_log)
    return email_log


class TestNewTopics:
    """Test topics created in categories."""

    def test_staged_stranger_creates_topic(self, build_receiver, support, identities, content, repository, tmp_path):
        receiver = build_receiver(email_in_min_trust=0)

        outcome = receiver.process(build_email())

        assert outcome.kind == OutcomeKind.CREATED
        assert (outcome.post_id, outcome.topic_id) == (100, 10)

        topic, options = content.topics[0]
        staged = identities.find_by_email("alice@example.com")
        assert staged.staged
        assert options.author is staged
        assert options.category_id == support.id
        assert options.title == "Hello"
        assert options.raw == "Hello there, this is a new topic."
        assert options.via_email
        assert options.skip_validations
        assert options.created_at.hour == 10

        record = repository.find_by_message_id("msg-1@example.com")
        assert record.outcome == "created"
        assert (record.user_id, record.topic_id, record.post_id) == (staged.id, 10, 100)
        assert record.from_address == "alice@example.com"

        events = AuditLog(tmp_path / "audit.log").read_events()
        assert events[-1]["outcome"] == "created"
        assert events[-1]["post_id"] == 100

    def test_processing_twice_creates_one_topic(self, build_receiver, support, content):
        receiver = build_receiver(email_in_min_trust=0)
        raw = build_email()

        assert receiver.process(raw).kind == OutcomeKind.CREATED
        assert receiver.process(raw).kind == OutcomeKind.DUPLICATE
        assert len(content.topics) == 1

    def test_default_subject(self, build_receiver, support, content):
        receiver = build_receiver(email_in_min_trust=0)
        receiver.process(build_email(subject=""))

        assert content.topics[0][1].title == "This topic needs a title (alice@example.com)"

    def test_future_date_is_clamped(self, build_receiver, support, content):
        receiver = build_receiver(email_in_min_trust=0)
        receiver.process(build_email(date="Fri, 01 Mar 2024 18:00:00 +0000"))

        assert content.topics[0][1].created_at == NOW

    def test_strangers_not_allowed_removes_staged_identity(self, receiver, support, identities, repository):
        support.email_in_allow_strangers = False

        with pytest.raises(StrangersNotAllowedError):
            receiver.process(build_email())

        assert identities.find_by_email("alice@example.com") is None
        assert [i.email for i in identities.destroyed] == ["alice@example.com"]

        record = repository.find_by_message_id("msg-1@example.com")
        assert record.outcome == "failed"
        assert record.error == "strangers_not_allowed"
        assert record.user_id is None

    def test_insufficient_trust_level(self, receiver, support, identities):
        identities.add("alice@example.com", trust_level=0)

        with pytest.raises(InsufficientTrustLevelError):
            receiver.process(build_email())

    def test_known_user_with_trust(self, receiver, support, alice, content):
        outcome = receiver.process(build_email())

        assert outcome.kind == OutcomeKind.CREATED
        assert content.topics[0][1].author is alice
        assert not content.topics[0][1].skip_validations

    def test_missing_date_is_invalid_post(self, build_receiver, support, identities, repository):
        receiver = build_receiver(email_in_min_trust=0)

        with pytest.raises(InvalidPost):
            receiver.process(build_email(date=None))

        assert identities.find_by_email("alice@example.com") is None
        assert repository.find_by_message_id("msg-1@example.com").error == "invalid_post"

    def test_content_creator_errors(self, receiver, support, alice, content):
        content.errors.append("Title is too short")

        with pytest.raises(InvalidPost, match="Title is too short"):
            receiver.process(build_email())

    def test_mailinglist_mirror(self, receiver, conversations, content):
        conversations.categories["list@example.com"] = Category(
            id=3, name="list", email_in="list@example.com", email_in_allow_strangers=True, mailinglist_mirror=True
        )

        outcome = receiver.process(build_email(to="list@example.com", extra_headers="Precedence: list"))

        assert outcome.kind == OutcomeKind.CREATED
        options = content.topics[0][1]
        assert options.skip_validations
        assert options.skip_guardian


class TestRejections:
    """Test messages rejected before routing."""

    def test_unknown_destination(self, receiver, identities, repository):
        with pytest.raises(BadDestinationAddress):
            receiver.process(build_email(to="nobody@example.com"))

        assert identities.destroyed[0].email == "alice@example.com"
        assert repository.find_by_message_id("msg-1@example.com").error == "bad_destination_address"

    def test_reply_key_without_email_log(self, receiver):
        with pytest.raises(BadDestinationAddress):
            receiver.process(build_email(to=REPLY_ADDRESS))

    def test_screened_sender(self, receiver, support, identities):
        identities.screened.add("alice@example.com")
        with pytest.raises(ScreenedEmailError):
            receiver.process(build_email())

    def test_unknown_sender_without_staging(self, build_receiver, support):
        receiver = build_receiver(enable_staged_users=False)
        with pytest.raises(UserNotFoundError):
            receiver.process(build_email())

    def test_auto_generated(self, receiver, support, alice, repository):
        with pytest.raises(AutoGeneratedEmailError):
            receiver.process(build_email(extra_headers="Precedence: bulk"))

        assert repository.find_by_message_id("msg-1@example.com").is_auto_generated

    def test_no_body(self, receiver, support, alice):
        with pytest.raises(NoBodyDetectedError):
            receiver.process(build_email(body="  "))

    def test_ignore_by_title(self, build_receiver, support, repository, content):
        receiver = build_receiver(ignore_by_title=r"^\[spam\]")

        outcome = receiver.process(build_email(subject="[SPAM] cheap pills"))

        assert outcome.kind == OutcomeKind.IGNORED
        assert not repository.exists("msg-1@example.com")
        assert content.topics == []

    def test_lock_held_elsewhere(self, build_receiver, support, db):
        SqliteOnceKeyStore(db).set_once("mutex:msg-1@example.com", 60)
        receiver = build_receiver(lock_timeout_seconds=0)

        with pytest.raises(LockTimeoutError):
            receiver.process(build_email())


class TestReplies:
    """Test replies through reply keys and thread headers."""

    def test_reply_by_key(self, receiver, reply_log, alice, content):
        body = "Thanks for the answer.\n\nOn Mon, Bob wrote:\n> old"
        outcome = receiver.process(build_email(body=body, to=REPLY_ADDRESS))

        assert outcome.topic_id == 5
        post, options = content.replies[0]
        assert options.topic_id == 5
        assert options.reply_to_post_number == 3
        assert options.raw == "Thanks for the answer."
        assert options.elided == "On Mon, Bob wrote:\n> old"

    def test_reply_key_for_someone_else(self, receiver, reply_log, identities):
        identities.add("bob@example.com")

        with pytest.raises(ReplyUserNotMatchingError):
            receiver.process(build_email(sender="bob@example.com", to=REPLY_ADDRESS))

    def test_forwarded_reply_key(self, receiver, reply_log, repository, content):
        repository.create(
            IncomingEmailRecord(
                message_id="earlier@example.com",
                raw="",
                subject="Existing",
                from_address="alice@example.com",
                to_addresses=f"bob@example.com;{REPLY_ADDRESS}",
                topic_id=5,
                post_id=51,
            )
        )

        outcome = receiver.process(build_email(sender="bob@example.com", to=REPLY_ADDRESS))

        assert outcome.kind == OutcomeKind.CREATED
        assert content.replies[0][1].author.email == "bob@example.com"

    def test_like(self, receiver, reply_log, alice, existing_post, collaborators, content):
        outcome = receiver.process(build_email(body="+1", to=REPLY_ADDRESS))

        assert outcome.kind == OutcomeKind.CREATED
        assert outcome.post_id is None
        assert outcome.topic_id == 5
        assert collaborators.reactions.reactions == [(alice.id, existing_post.id, "like")]
        assert content.replies == []

    def test_like_not_allowed(self, receiver, reply_log, alice, collaborators):
        collaborators.reactions.denied_user_ids.add(alice.id)

        with pytest.raises(InvalidPostAction):
            receiver.process(build_email(body="+1", to=REPLY_ADDRESS))

    def test_closed_topic(self, receiver, reply_log, existing_post):
        existing_post.topic.closed = True

        with pytest.raises(TopicClosedError):
            receiver.process(build_email(to=REPLY_ADDRESS))

    def test_reply_by_thread_headers(self, build_receiver, existing_post, alice, repository, content):
        repository.create(
            IncomingEmailRecord(
                message_id="parent@example.com",
                raw="",
                subject="Existing",
                from_address="bob@example.com",
                topic_id=5,
                post_id=existing_post.id,
            )
        )
        receiver = build_receiver(find_related_post_with_key=False)

        outcome = receiver.process(
            build_email(to="somewhere@example.com", extra_headers="In-Reply-To: <parent@example.com>")
        )

        assert outcome.topic_id == 5
        assert content.replies[0][1].reply_to_post_number == 3


class TestGroupMessages:
    """Test private messages to groups."""

    def test_group_message_shows_elided_content(self, receiver, team, alice, content):
        body = "Hi team\n\nOn Mon, Bob wrote:\n> old"
        receiver.process(build_email(body=body, to="team@example.com"))

        options = content.topics[0][1]
        assert options.is_private_message
        assert options.target_group_names == ["team"]
        assert options.is_group_message
        assert options.raw.startswith("Hi team")
        assert "<details class='elided'>" in options.raw

    def test_other_recipients_are_invited(self, receiver, team, alice, conversations):
        receiver.process(
            build_email(to="team@example.com, carol@example.com", extra_headers=f"Cc: {REPLY_ADDRESS}")
        )

        assert conversations.invited == [(10, "carol@example.com")]

    def test_staged_user_limit(self, build_receiver, team, alice, conversations, content):
        receiver = build_receiver(maximum_staged_users_per_email=1)

        receiver.process(build_email(to="team@example.com, c1@example.com, c2@example.com, c3@example.com"))

        assert [email for _, email in conversations.invited] == ["c1@example.com", "c2@example.com"]
        assert content.notices == [(10, MAXIMUM_STAGED_USERS_NOTICE)]

    def test_first_successful_destination_wins(self, receiver, team, support, identities, content):
        identities.add("alice@example.com", trust_level=0)

        outcome = receiver.process(build_email(to="support@example.com, team@example.com"))

        assert outcome.kind == OutcomeKind.CREATED
        assert content.topics[0][1].target_group_names == ["team"]


class TestForwardedEmails:
    """Test forwarded messages posted on behalf of the original sender."""

    def test_forward_to_group(self, build_receiver, team, alice, identities, content):
        receiver = build_receiver(enable_forwarded_emails=True)

        outcome = receiver.process(
            build_email(body=FORWARDED_BODY, subject="Fwd: Broken widget", to="team@example.com")
        )

        assert outcome.kind == OutcomeKind.CREATED
        assert outcome.topic_id == 10

        topic, options = content.topics[0]
        carol = identities.find_by_email("carol@example.com")
        assert carol.staged
        assert options.author is carol
        assert options.title == "Broken widget"
        assert options.raw == "My widget stopped working."
        assert options.target_usernames == ["alice"]
        assert options.target_group_names == ["team"]
        assert options.created_at.day == 29

        reply, reply_options = content.replies[0]
        assert reply_options.author is alice
        assert reply_options.raw == "Can you help this customer?"
        assert reply_options.post_type == "whisper"

    def test_failed_forward_removes_staged_original_sender(self, build_receiver, team, alice, identities, content):
        receiver = build_receiver(enable_forwarded_emails=True)
        content.errors.append("Body is too short")

        with pytest.raises(InvalidPost):
            receiver.process(build_email(body=FORWARDED_BODY, subject="Fwd: Broken widget", to="team@example.com"))

        assert identities.find_by_email("carol@example.com") is None
        assert [identity.email for identity in identities.destroyed] == ["carol@example.com"]
        assert identities.find_by_email("alice@example.com") is alice

    def test_forward_to_category(self, build_receiver, support, alice, identities, content):
        receiver = build_receiver(enable_forwarded_emails=True, email_in_min_trust=1)

        outcome = receiver.process(
            build_email(body=FORWARDED_BODY, subject="Fwd: Broken widget", to="support@example.com")
        )

        assert outcome.kind == OutcomeKind.CREATED

        topic, options = content.topics[0]
        carol = identities.find_by_email("carol@example.com")
        assert options.author is carol
        assert options.category_id == 2
        assert options.title == "Broken widget"
        assert options.skip_validations

        reply, reply_options = content.replies[0]
        assert reply.topic_id == topic.id
        assert reply_options.author is alice
        assert reply_options.raw == "Can you help this customer?"
        assert reply_options.post_type == "regular"

    def test_forward_to_category_from_stranger(self, build_receiver, support, identities, content):
        support.email_in_allow_strangers = False
        receiver = build_receiver(enable_forwarded_emails=True, email_in_min_trust=1)

        with pytest.raises(StrangersNotAllowedError):
            receiver.process(
                build_email(
                    body=FORWARDED_BODY,
                    subject="Fwd: Broken widget",
                    sender="Dave <dave@example.com>",
                    to="support@example.com",
                )
            )

        assert content.topics == []
        assert sorted(identity.email for identity in identities.destroyed) == [
            "carol@example.com",
            "dave@example.com",
        ]

    def test_forward_to_category_below_trust_level(self, build_receiver, support, alice, identities, content):
        alice.trust_level = 0
        receiver = build_receiver(enable_forwarded_emails=True, email_in_min_trust=1)

        with pytest.raises(InsufficientTrustLevelError):
            receiver.process(
                build_email(body=FORWARDED_BODY, subject="Fwd: Broken widget", to="support@example.com")
            )

        assert content.topics == []
        assert [identity.email for identity in identities.destroyed] == ["carol@example.com"]

    def test_forwarding_disabled_posts_as_forwarder(self, receiver, team, alice, content):
        receiver.process(build_email(body=FORWARDED_BODY, subject="Fwd: Broken widget", to="team@example.com"))

        assert content.topics[0][1].author is alice
        assert content.replies == []


class TestBouncesAndSubscriptions:
    """Test bounce reports and unsubscribe requests."""

    def test_bounce_report(self, receiver, conversations, db, repository, tmp_path):
        email_log = EmailLog(id=2, user_id=9, bounce_key=REPLY_KEY, user_email="bob@example.com")
        conversations.email_logs.append(email_log)
        raw = (
            "From: MAILER-DAEMON@example.com\r\n"
            f"To: reply+verp-{REPLY_KEY}@example.com\r\n"
            "Subject: Delivery Status Notification\r\n"
            "Message-ID: <bounce-1@example.com>\r\n"
            "Date: Fri, 01 Mar 2024 11:00:00 +0000\r\n"
            "MIME-Version: 1.0\r\n"
            'Content-Type: multipart/report; report-type=delivery-status; boundary="B"\r\n\r\n'
            "--B\r\nContent-Type: text/plain\r\n\r\nDelivery failed\r\n"
            "--B\r\nContent-Type: message/delivery-status\r\n\r\n"
            "Reporting-MTA: dns; mx.example.com\r\n\r\n"
            "Final-Recipient: rfc822; bob@example.com\r\nAction: failed\r\nStatus: 4.2.2\r\n\r\n"
            "--B--\r\n"
        ).encode("ascii")

        outcome = receiver.process(raw)

        assert outcome.kind == OutcomeKind.BOUNCED
        assert email_log.bounced
        assert BounceRecordRepository(db).find("bob@example.com").score == 1

        record = repository.find_by_message_id("bounce-1@example.com")
        assert record.is_bounce
        assert record.outcome == "bounced"

    def test_unsubscribe(self, receiver, alice, collaborators):
        outcome = receiver.process(build_email(subject="Unsubscribe", body="please", to="anything@example.com"))

        assert outcome.kind == OutcomeKind.SUBSCRIPTION_HANDLED
        assert collaborators.mailer.sent == [("confirm_unsubscribe", "alice@example.com")]

    def test_unsubscribe_from_unknown_sender(self, receiver):
        with pytest.raises(UnsubscribeNotAllowed):
            receiver.process(build_email(body="unsubscribe"))

    def test_unsubscribe_from_staged_identity(self, receiver, identities, collaborators):
        identities.add("alice@example.com", staged=True)

        with pytest.raises(UnsubscribeNotAllowed):
            receiver.process(build_email(subject="unsubscribe", to="anything@example.com"))

        assert collaborators.mailer.sent == []
        assert identities.destroyed == []


class TestCreateReceiver:
    """Test building a receiver from application settings."""

    @pytest.fixture
    def app_config(self, tmp_path):
        return AppConfig(
            storage=StorageConfig(
                database_path=str(tmp_path / "data" / "receiver.db"),
                audit_log_path=str(tmp_path / "logs" / "audit.log"),
            ),
            receiver=ReceiverConfig(lock_ttl_seconds=90, email_in_min_trust=1),
        )

    def test_sqlite_storage(self, app_config, collaborators, support, alice, tmp_path):
        receiver = create_receiver(app_config, collaborators)

        assert isinstance(receiver.lock.store, SqliteOnceKeyStore)
        assert receiver.lock.ttl_seconds == 90
        assert receiver.audit_log.log_path == tmp_path / "logs" / "audit.log"

        outcome = receiver.process(build_email())

        assert outcome.kind == OutcomeKind.CREATED
        assert receiver.repository.find_by_message_id("msg-1@example.com").outcome == "created"
        assert (tmp_path / "data" / "receiver.db").exists()
        assert "msg-1@example.com" in receiver.audit_log.log_path.read_text(encoding="utf-8")

    def test_redis_url_selects_redis_store(self, app_config, collaborators, monkeypatch):
        client = object()
        monkeypatch.setattr(redis.Redis, "from_url", classmethod(lambda cls, url: client))
        app_config.storage.redis_url = "redis://localhost:6379/0"

        receiver = create_receiver(app_config, collaborators)

        assert isinstance(receiver.lock.store, RedisOnceKeyStore)
        assert receiver.lock.store.client is client
        assert receiver.bounce_updater.once_keys is receiver.lock.store
