"""Tests for the SQLite ciphertext cache."""

import sqlite3

from common.constants import CACHE_SCHEMA_VERSION, CACHE_TABLE_NAME, CACHE_TTL_SECONDS
from retrieval.ciphertext_cache import CiphertextCache


class TestCacheLifecycle:
    """Opening and disabling the store."""

    def test_init_creates_schema(self, tmp_path, clock):
        db_path = tmp_path / 'nested' / 'cache.db'
        cache = CiphertextCache(db_path=str(db_path), clock=clock)

        assert cache.init() is True
        assert cache.enabled

        conn = sqlite3.connect(str(db_path))
        try:
            tables = [row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")]
            version = conn.execute("PRAGMA user_version").fetchone()[0]
        finally:
            conn.close()
        assert CACHE_TABLE_NAME in tables
        assert version == CACHE_SCHEMA_VERSION

    def test_init_is_idempotent(self, cache):
        assert cache.init() is True

    def test_unusable_path_disables_cache(self, tmp_path, clock):
        blocker = tmp_path / 'not-a-dir'
        blocker.write_text('file')
        cache = CiphertextCache(db_path=str(blocker / 'cache.db'), clock=clock)

        assert cache.init() is False
        assert not cache.enabled
        assert cache.get('cid') is None
        assert cache.put('cid', b'bytes', '{}') is False
        assert cache.clear() is False
        assert cache.purge_expired() == 0

    def test_uninitialized_cache_is_a_miss(self, tmp_path, clock):
        cache = CiphertextCache(db_path=str(tmp_path / 'cache.db'), clock=clock)
        assert cache.get('cid') is None

    def test_default_ttl_is_seven_days(self, tmp_path):
        cache = CiphertextCache(db_path=str(tmp_path / 'cache.db'))
        assert cache.ttl_seconds == CACHE_TTL_SECONDS == 7 * 24 * 60 * 60


class TestCacheEntries:
    """Reading, writing and expiry."""

    def test_put_then_get(self, cache, clock):
        assert cache.put('cid-1', b'\x00\x01cipher', '{"iv": "00"}') is True

        entry = cache.get('cid-1')
        assert entry.content_id == 'cid-1'
        assert entry.ciphertext == b'\x00\x01cipher'
        assert entry.wrapped_key_snapshot == '{"iv": "00"}'
        assert entry.cached_at == clock.now

    def test_miss(self, cache):
        assert cache.get('unknown') is None

    def test_put_replaces_whole_entry(self, cache, clock):
        cache.put('cid-1', b'old', 'old-key')
        clock.advance(60)
        cache.put('cid-1', b'new', 'new-key')

        entry = cache.get('cid-1')
        assert (entry.ciphertext, entry.wrapped_key_snapshot, entry.cached_at) == (b'new', 'new-key', clock.now)
        assert cache.count() == 1

    def test_entry_at_ttl_boundary_is_fresh(self, cache, clock):
        cache.put('cid-1', b'bytes', '{}')
        clock.advance(cache.ttl_seconds)
        assert cache.get('cid-1') is not None

    def test_stale_read_deletes_entry(self, cache, clock):
        cache.put('cid-1', b'bytes', '{}')
        clock.advance(cache.ttl_seconds + 1)

        assert cache.get('cid-1') is None
        assert cache.count() == 0

    def test_purge_expired(self, cache, clock):
        cache.put('old', b'1', '{}')
        clock.advance(cache.ttl_seconds + 10)
        cache.put('fresh', b'2', '{}')

        assert cache.purge_expired() == 1
        assert cache.get('old') is None
        assert cache.get('fresh').ciphertext == b'2'

    def test_clear(self, cache):
        cache.put('a', b'1', '{}')
        cache.put('b', b'2', '{}')

        assert cache.clear() is True
        assert cache.count() == 0

    def test_persists_across_instances(self, cache, clock):
        cache.put('cid-1', b'bytes', '{}')

        reopened = CiphertextCache(db_path=str(cache.db_path), clock=clock)
        reopened.init()
        assert reopened.get('cid-1').ciphertext == b'bytes'

    def test_storage_error_is_a_miss(self, cache, monkeypatch):
        cache.put('cid-1', b'bytes', '{}')

        def broken_connect(*args, **kwargs):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr('retrieval.ciphertext_cache.sqlite3.connect', broken_connect)
        assert cache.get('cid-1') is None
        assert cache.put('cid-2', b'bytes', '{}') is False
