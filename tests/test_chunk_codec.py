"""Tests for the length-prefixed chunk cipher format."""

import base64
import hashlib
import struct

import pytest

from conftest import SYMMETRIC_KEY
from retrieval.chunk_codec import (
    SALTED_MAGIC,
    decrypt_all,
    encode_chunks,
    evp_bytes_to_key,
    iter_frames,
    passphrase_decrypt,
    passphrase_encrypt,
)
from retrieval.exceptions import ChunkDecryptionError, ChunkFramingError


def frame(payload: bytes) -> bytes:
    return struct.pack('>I', len(payload)) + payload


def encrypted_chunk(plaintext: bytes, key: str = SYMMETRIC_KEY) -> bytes:
    return base64.b64decode(passphrase_encrypt(plaintext, key))


class TestEvpBytesToKey:
    """OpenSSL key derivation."""

    def test_matches_md5_chain(self):
        passphrase, salt = b'secret', b'saltsalt'
        d1 = hashlib.md5(passphrase + salt).digest()
        d2 = hashlib.md5(d1 + passphrase + salt).digest()
        d3 = hashlib.md5(d2 + passphrase + salt).digest()

        key, iv = evp_bytes_to_key(passphrase, salt)

        assert key == d1 + d2
        assert iv == d3


class TestPassphraseCipher:
    """Single-chunk OpenSSL salted format."""

    def test_output_has_salted_header(self):
        payload = base64.b64decode(passphrase_encrypt(b'data', 'pw', salt=b'12345678'))
        assert payload.startswith(SALTED_MAGIC + b'12345678')
        assert (len(payload) - 16) % 16 == 0

    def test_fixed_salt_is_deterministic(self):
        first = passphrase_encrypt(b'data', 'pw', salt=b'12345678')
        second = passphrase_encrypt(b'data', 'pw', salt=b'12345678')
        assert first == second

    def test_decrypt_recovers_plaintext(self):
        assert passphrase_decrypt(passphrase_encrypt(b'hello chunk', 'pw'), 'pw') == b'hello chunk'

    def test_missing_header_rejected(self):
        bogus = base64.b64encode(b'NotSalt_' + b'\x00' * 24).decode()
        with pytest.raises(ValueError, match="Salted__"):
            passphrase_decrypt(bogus, 'pw')

    def test_unaligned_body_rejected(self):
        bogus = base64.b64encode(SALTED_MAGIC + b'\x00' * 8 + b'\x00' * 15).decode()
        with pytest.raises(ValueError):
            passphrase_decrypt(bogus, 'pw')


class TestIterFrames:
    """Frame walking over a ciphertext stream."""

    def test_yields_offsets_and_payloads(self):
        buffer = frame(b'abc') + frame(b'') + frame(b'defgh')
        assert list(iter_frames(buffer)) == [(0, b'abc'), (7, b''), (11, b'defgh')]

    def test_empty_buffer_has_no_frames(self):
        assert list(iter_frames(b'')) == []

    def test_truncated_header(self):
        with pytest.raises(ChunkFramingError, match="length header"):
            list(iter_frames(frame(b'abc') + b'\x00\x00'))

    def test_length_overruns_buffer(self):
        buffer = struct.pack('>I', 100) + b'x' * 10
        with pytest.raises(ChunkFramingError, match="declares 100 bytes"):
            list(iter_frames(buffer))


class TestDecryptAll:
    """Whole-stream decryption."""

    def test_concatenates_chunks_in_order(self):
        buffer = frame(encrypted_chunk(b'first-')) + frame(encrypted_chunk(b'second-')) + frame(encrypted_chunk(b'third'))
        assert decrypt_all(buffer, SYMMETRIC_KEY) == b'first-second-third'

    def test_empty_stream_is_empty_plaintext(self):
        assert decrypt_all(b'', SYMMETRIC_KEY) == b''

    def test_encode_chunks_splits_by_size(self):
        plaintext = bytes(range(256)) * 10
        buffer = encode_chunks(plaintext, SYMMETRIC_KEY, chunk_size=1000)

        assert len(list(iter_frames(buffer))) == 3
        assert decrypt_all(buffer, SYMMETRIC_KEY) == plaintext

    def test_wrong_key_fails(self):
        buffer = encode_chunks(b'x' * 4000, SYMMETRIC_KEY, chunk_size=500)
        with pytest.raises(ChunkDecryptionError):
            decrypt_all(buffer, 'b4' * 32)

    def test_error_names_failing_chunk(self):
        good = frame(encrypted_chunk(b'ok'))
        bad = frame(b'Salted__' + b'\x00' * 8 + b'\x01' * 15)
        with pytest.raises(ChunkDecryptionError, match="Chunk 1 at offset"):
            decrypt_all(good + bad, SYMMETRIC_KEY)

    def test_empty_frame_is_decryption_error(self):
        with pytest.raises(ChunkDecryptionError):
            decrypt_all(frame(encrypted_chunk(b'ok')) + frame(b''), SYMMETRIC_KEY)

    def test_trailing_bytes_are_framing_error(self):
        buffer = frame(encrypted_chunk(b'ok')) + b'\x00'
        with pytest.raises(ChunkFramingError):
            decrypt_all(buffer, SYMMETRIC_KEY)

    def test_encode_rejects_non_positive_chunk_size(self):
        with pytest.raises(ValueError):
            encode_chunks(b'data', SYMMETRIC_KEY, chunk_size=0)
