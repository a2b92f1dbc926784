"""Persistent SQLite cache of fetched record ciphertext, with TTL eviction."""

import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator, Optional

from common.constants import CACHE_SCHEMA_VERSION, CACHE_TABLE_NAME
from common.logging_config import get_logger
from retrieval import config
from retrieval.exceptions import CacheFailure
from retrieval.types import CacheEntry

logger = get_logger(__name__)


class CiphertextCache:
    """
    Cache of encrypted archives keyed by content identifier.

    Entries hold ciphertext only, never plaintext or unwrapped keys. Every
    operation fails open: a storage error is logged as a CacheFailure and
    treated as a miss or a no-op, so callers never depend on the cache.
    """

    def __init__(
        self,
        db_path: Optional[str] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize cache (no I/O until init()).

        Args:
            db_path: SQLite file path (default: MEDLINK_CACHE_PATH)
            ttl_seconds: Entry lifetime (default: MEDLINK_CACHE_TTL_DAYS, 7 days)
            clock: Time source returning epoch seconds
        """
        self.db_path = Path(db_path or config.CACHE_PATH)
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else config.CACHE_TTL_DAYS * 86400
        self._clock = clock
        self._enabled = False

    @property
    def enabled(self) -> bool:
        """True once init() has opened the store."""
        return self._enabled

    @contextmanager
    def _connect(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _log_failure(self, operation: str, error: Exception) -> None:
        failure = CacheFailure(f"Cache {operation} failed: {error}")
        logger.warning(f"[{failure.code}] {failure}")

    def init(self) -> bool:
        """
        Open the store and create the cache table if absent. Idempotent.

        Returns:
            True if the cache is usable, False if it runs disabled
        """
        if self._enabled:
            return True

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(f"""
                    CREATE TABLE IF NOT EXISTS {CACHE_TABLE_NAME} (
                        content_id TEXT PRIMARY KEY,
                        ciphertext BLOB NOT NULL,
                        wrapped_key_snapshot TEXT NOT NULL,
                        cached_at REAL NOT NULL
                    )
                """)
                cursor.execute("PRAGMA user_version")
                if cursor.fetchone()[0] == 0:
                    cursor.execute(f"PRAGMA user_version = {CACHE_SCHEMA_VERSION}")
                conn.commit()
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"Persistent storage unavailable at {self.db_path}, cache disabled: {e}")
            self._enabled = False
            return False

        self._enabled = True
        logger.info(f"Ciphertext cache ready [path={self.db_path}]")
        return True

    def _is_expired(self, cached_at: float) -> bool:
        return self._clock() - cached_at > self.ttl_seconds

    def get(self, content_id: str) -> Optional[CacheEntry]:
        """
        Look up cached ciphertext.

        An entry older than the TTL is deleted by this read and reported absent.

        Args:
            content_id: Content identifier

        Returns:
            CacheEntry, or None on miss, expiry, disabled cache or storage error
        """
        if not self._enabled:
            return None

        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    f"SELECT content_id, ciphertext, wrapped_key_snapshot, cached_at "
                    f"FROM {CACHE_TABLE_NAME} WHERE content_id = ?",
                    (content_id,)
                )
                row = cursor.fetchone()
                if row is None:
                    logger.debug(f"Cache miss for {content_id}")
                    return None

                if self._is_expired(row["cached_at"]):
                    cursor.execute(f"DELETE FROM {CACHE_TABLE_NAME} WHERE content_id = ?", (content_id,))
                    conn.commit()
                    logger.info(f"Evicted expired cache entry for {content_id}")
                    return None

                logger.debug(f"Cache hit for {content_id}")
                return CacheEntry(
                    content_id=row["content_id"],
                    ciphertext=bytes(row["ciphertext"]),
                    wrapped_key_snapshot=row["wrapped_key_snapshot"],
                    cached_at=row["cached_at"],
                )
        except sqlite3.Error as e:
            self._log_failure("get", e)
            return None

    def put(self, content_id: str, ciphertext: bytes, wrapped_key_snapshot: str) -> bool:
        """
        Insert or wholly replace the entry for a content identifier.

        Args:
            content_id: Content identifier
            ciphertext: Raw fetched bytes
            wrapped_key_snapshot: Wrapped key JSON used with this ciphertext

        Returns:
            True if stored, False if the cache is disabled or the write failed
        """
        if not self._enabled:
            return False

        try:
            with self._connect() as conn:
                conn.execute(
                    f"INSERT OR REPLACE INTO {CACHE_TABLE_NAME} "
                    f"(content_id, ciphertext, wrapped_key_snapshot, cached_at) VALUES (?, ?, ?, ?)",
                    (content_id, sqlite3.Binary(bytes(ciphertext)), wrapped_key_snapshot, self._clock())
                )
                conn.commit()
        except sqlite3.Error as e:
            self._log_failure("put", e)
            return False

        logger.debug(f"Cached {len(ciphertext)} bytes for {content_id}")
        return True

    def clear(self) -> bool:
        """
        Remove all entries.

        Returns:
            True if cleared, False if the cache is disabled or the delete failed
        """
        if not self._enabled:
            return False

        try:
            with self._connect() as conn:
                conn.execute(f"DELETE FROM {CACHE_TABLE_NAME}")
                conn.commit()
        except sqlite3.Error as e:
            self._log_failure("clear", e)
            return False

        logger.info("Ciphertext cache cleared")
        return True

    def purge_expired(self) -> int:
        """
        Remove every entry older than the TTL.

        Returns:
            Number of entries removed
        """
        if not self._enabled:
            return 0

        cutoff = self._clock() - self.ttl_seconds
        try:
            with self._connect() as conn:
                cursor = conn.execute(f"DELETE FROM {CACHE_TABLE_NAME} WHERE cached_at < ?", (cutoff,))
                conn.commit()
                removed = cursor.rowcount
        except sqlite3.Error as e:
            self._log_failure("purge", e)
            return 0

        if removed:
            logger.info(f"Purged {removed} expired cache entr{'y' if removed == 1 else 'ies'}")
        return removed

    def count(self) -> int:
        """Number of stored entries, including any not yet evicted."""
        if not self._enabled:
            return 0

        try:
            with self._connect() as conn:
                return conn.execute(f"SELECT COUNT(*) FROM {CACHE_TABLE_NAME}").fetchone()[0]
        except sqlite3.Error as e:
            self._log_failure("count", e)
            return 0
