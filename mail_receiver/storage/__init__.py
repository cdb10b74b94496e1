"""Data persistence layer"""

from .audit_log import AuditLog
from .database import BounceRecordRepository, DatabaseConnection, IncomingEmailRepository
from .once_keys import (
    LockTimeoutError,
    MessageLock,
    OnceKeyStore,
    RedisOnceKeyStore,
    SqliteOnceKeyStore,
    open_once_key_store,
)

__all__ = [
    "AuditLog",
    "BounceRecordRepository",
    "DatabaseConnection",
    "IncomingEmailRepository",
    "LockTimeoutError",
    "MessageLock",
    "OnceKeyStore",
    "RedisOnceKeyStore",
    "SqliteOnceKeyStore",
    "open_once_key_store",
]
