"""Shared fixtures."""

import pytest

from mail_receiver.config.receiver_config import ReceiverConfig
from mail_receiver.services.email_parser.message_parser import MessageParser
from mail_receiver.services.receiver.orchestrator import Receiver
from mail_receiver.storage.audit_log import AuditLog
from mail_receiver.storage.database import BounceRecordRepository, DatabaseConnection, IncomingEmailRepository
from mail_receiver.storage.once_keys import SqliteOnceKeyStore

from .fakes import NOW, make_collaborators


@pytest.fixture
def parser():
    return MessageParser()


@pytest.fixture
def config():
    return ReceiverConfig(
        reply_by_email_address="reply+%{reply_key}@example.com",
        alternative_reply_by_email_addresses=["alt+%{reply_key}@example.org"],
        email_in_min_trust=1,
    )


@pytest.fixture
def db(tmp_path):
    db = DatabaseConnection(tmp_path / "receiver.db")
    db.execute_schema()
    yield db
    db.close()


@pytest.fixture
def repository(db):
    return IncomingEmailRepository(db)


@pytest.fixture
def collaborators():
    return make_collaborators()


@pytest.fixture
def receiver(config, collaborators, db, repository, tmp_path):
    return Receiver(
        config,
        collaborators,
        repository,
        BounceRecordRepository(db),
        SqliteOnceKeyStore(db),
        audit_log=AuditLog(tmp_path / "audit.log"),
        clock=lambda: NOW,
    )
