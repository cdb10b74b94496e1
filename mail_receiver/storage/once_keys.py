"""Exactly-once-per-key primitive and the message lock built on it."""

import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

import redis

from .database import DatabaseConnection

logger = logging.getLogger(__name__)


class LockTimeoutError(Exception):
    """Raised when a message lock cannot be acquired in time."""

    pass


class OnceKeyStore(ABC):
    """
    Atomic check-and-set with expiry.

    ``set_once`` succeeds for exactly one caller per key until the key
    expires or is deleted.
    """

    @abstractmethod
    def set_once(self, key: str, ttl_seconds: int) -> bool:
        """
        Set ``key`` if it is absent or expired.

        Args:
            key: Key to set
            ttl_seconds: Lifetime of the key

        Returns:
            True if this call set the key, False if it was already held
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Release ``key`` so the next ``set_once`` succeeds."""
        pass


class SqliteOnceKeyStore(OnceKeyStore):
    """Once-key store on the receiver's SQLite database."""

    def __init__(self, db: DatabaseConnection, clock: Callable[[], float] = time.time):
        self.db = db
        self.clock = clock

    def set_once(self, key: str, ttl_seconds: int) -> bool:
        now = self.clock()
        conn = self.db.connect()

        with conn:
            conn.execute("DELETE FROM once_keys WHERE key = ? AND expires_at <= ?", (key, now))
            cursor = conn.execute(
                "INSERT OR IGNORE INTO once_keys (key, expires_at) VALUES (?, ?)",
                (key, now + ttl_seconds),
            )

        return cursor.rowcount == 1

    def delete(self, key: str) -> None:
        conn = self.db.connect()
        with conn:
            conn.execute("DELETE FROM once_keys WHERE key = ?", (key,))

    def purge_expired(self) -> int:
        """Delete expired keys and return how many were removed."""
        conn = self.db.connect()
        with conn:
            cursor = conn.execute("DELETE FROM once_keys WHERE expires_at <= ?", (self.clock(),))
        return cursor.rowcount


class RedisOnceKeyStore(OnceKeyStore):
    """Once-key store shared by every worker through Redis."""

    def __init__(self, client: "redis.Redis", prefix: str = "mail_receiver:"):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisOnceKeyStore":
        return cls(redis.Redis.from_url(url))

    def set_once(self, key: str, ttl_seconds: int) -> bool:
        return bool(self.client.set(self.prefix + key, "1", nx=True, ex=ttl_seconds))

    def delete(self, key: str) -> None:
        self.client.delete(self.prefix + key)


class MessageLock:
    """Mutex scoped to one key, shared by every worker using the same store."""

    def __init__(
        self,
        store: OnceKeyStore,
        ttl_seconds: int = 60,
        timeout_seconds: float = 30.0,
        poll_interval: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the lock.

        Args:
            store: Once-key store backing the lock
            ttl_seconds: Expiry of a held lock, so a crashed holder cannot block forever
            timeout_seconds: How long to wait for a competing holder
            poll_interval: Delay between acquisition attempts
        """
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.timeout_seconds = timeout_seconds
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    @contextmanager
    def synchronize(self, key: str) -> Iterator[None]:
        """
        Hold the lock for ``key`` for the duration of the block.

        Raises:
            LockTimeoutError: If the lock is still held after the timeout
        """
        lock_key = f"mutex:{key}"
        deadline = self._clock() + self.timeout_seconds

        while not self.store.set_once(lock_key, self.ttl_seconds):
            if self._clock() >= deadline:
                raise LockTimeoutError(f"Timed out waiting for lock {lock_key}")
            self._sleep(self.poll_interval)

        logger.debug(f"Acquired {lock_key}")
        try:
            yield
        finally:
            self.store.delete(lock_key)


def open_once_key_store(db: DatabaseConnection, redis_url: Optional[str] = None) -> OnceKeyStore:
    """Redis-backed store when a URL is configured, else the SQLite one."""
    if redis_url:
        logger.info(f"Using Redis once-key store at {redis_url}")
        return RedisOnceKeyStore.from_url(redis_url)
    return SqliteOnceKeyStore(db)
