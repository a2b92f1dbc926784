"""
Length-prefixed chunk cipher wire format.

A ciphertext stream is a sequence of frames::

    [4-byte big-endian length][length bytes of chunk ciphertext]

repeated until the buffer is consumed exactly. Each chunk is an
OpenSSL-salted passphrase ciphertext (``Salted__`` + 8-byte salt + AES-256-CBC
body, key and IV from EVP_BytesToKey/MD5), the format CryptoJS produces for
``AES.encrypt(data, passphrase)``. The passphrase is the hex symmetric key.
"""

import base64
import binascii
import hashlib
import logging
import os
import struct
from typing import Iterator, List, Tuple

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from common.constants import CHUNK_LENGTH_PREFIX_BYTES, DEFAULT_ENCODE_CHUNK_SIZE_BYTES
from retrieval.exceptions import ChunkDecryptionError, ChunkFramingError

logger = logging.getLogger(__name__)

SALTED_MAGIC = b"Salted__"
SALT_LENGTH = 8
KEY_LENGTH = 32
IV_LENGTH = 16
BLOCK_SIZE_BITS = 128

_LENGTH_PREFIX = struct.Struct(">I")


def evp_bytes_to_key(passphrase: bytes, salt: bytes, key_length: int = KEY_LENGTH,
                     iv_length: int = IV_LENGTH) -> Tuple[bytes, bytes]:
    """
    OpenSSL EVP_BytesToKey with MD5 and a single iteration.

    Args:
        passphrase: Passphrase bytes
        salt: 8-byte salt
        key_length: Key length in bytes
        iv_length: IV length in bytes

    Returns:
        Tuple of (key, iv)
    """
    derived = b""
    block = b""
    while len(derived) < key_length + iv_length:
        block = hashlib.md5(block + passphrase + salt).digest()
        derived += block
    return derived[:key_length], derived[key_length:key_length + iv_length]


def passphrase_encrypt(plaintext: bytes, passphrase: str, salt: bytes = None) -> str:
    """
    Encrypt bytes under a passphrase, returning the base64 OpenSSL form.

    Args:
        plaintext: Bytes to encrypt
        passphrase: Passphrase string (UTF-8 encoded for key derivation)
        salt: Optional 8-byte salt; random if omitted

    Returns:
        Base64 string of ``Salted__`` + salt + ciphertext
    """
    if salt is None:
        salt = os.urandom(SALT_LENGTH)
    key, iv = evp_bytes_to_key(passphrase.encode("utf-8"), salt)

    padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    return base64.b64encode(SALTED_MAGIC + salt + ciphertext).decode("ascii")


def passphrase_decrypt(ciphertext_b64: str, passphrase: str) -> bytes:
    """
    Decrypt a base64 OpenSSL-salted ciphertext under a passphrase.

    Args:
        ciphertext_b64: Base64 string of ``Salted__`` + salt + ciphertext
        passphrase: Passphrase string

    Returns:
        Decrypted bytes

    Raises:
        ValueError: If the payload is malformed or padding is invalid
            (almost always a wrong passphrase)
    """
    try:
        payload = base64.b64decode(ciphertext_b64, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e

    if not payload.startswith(SALTED_MAGIC):
        raise ValueError("Missing Salted__ header")
    salt = payload[len(SALTED_MAGIC):len(SALTED_MAGIC) + SALT_LENGTH]
    body = payload[len(SALTED_MAGIC) + SALT_LENGTH:]
    if len(salt) != SALT_LENGTH or not body or len(body) % (BLOCK_SIZE_BITS // 8):
        raise ValueError("Ciphertext body is empty or not block aligned")

    key, iv = evp_bytes_to_key(passphrase.encode("utf-8"), salt)
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(body) + decryptor.finalize()

    unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
    return unpadder.update(padded) + unpadder.finalize()


def iter_frames(buffer: bytes) -> Iterator[Tuple[int, bytes]]:
    """
    Walk the length-prefixed frames of a ciphertext stream.

    Args:
        buffer: Complete ciphertext stream

    Yields:
        (offset, chunk_ciphertext) for each frame, in order

    Raises:
        ChunkFramingError: If a header is truncated or a length overruns the buffer
    """
    view = memoryview(buffer)
    total = len(buffer)
    offset = 0

    while offset < total:
        if offset + CHUNK_LENGTH_PREFIX_BYTES > total:
            raise ChunkFramingError(
                f"Trailing {total - offset} byte(s) at offset {offset} do not form a length header"
            )
        (length,) = _LENGTH_PREFIX.unpack_from(view, offset)
        start = offset + CHUNK_LENGTH_PREFIX_BYTES
        end = start + length
        if end > total:
            raise ChunkFramingError(
                f"Frame at offset {offset} declares {length} bytes but only {total - start} remain"
            )
        yield offset, bytes(view[start:end])
        offset = end


def decrypt_all(buffer: bytes, key: str) -> bytes:
    """
    Decrypt a complete chunk stream.

    Args:
        buffer: Ciphertext stream in the length-prefixed wire format
        key: Hex symmetric key, used verbatim as the passphrase

    Returns:
        Concatenated plaintext of every frame, in frame order

    Raises:
        ChunkFramingError: If the stream is not exactly a sequence of frames
        ChunkDecryptionError: If any chunk fails to decrypt or is empty
    """
    decrypted: List[bytes] = []

    for index, (offset, chunk) in enumerate(iter_frames(buffer)):
        # The cipher takes text, so each chunk crosses as base64.
        encoded = base64.b64encode(chunk).decode("ascii")
        try:
            plaintext = passphrase_decrypt(encoded, key)
        except ValueError as e:
            raise ChunkDecryptionError(f"Chunk {index} at offset {offset} failed to decrypt: {e}") from e
        if not plaintext:
            raise ChunkDecryptionError(f"Chunk {index} at offset {offset} decrypted to zero bytes")
        decrypted.append(plaintext)

    logger.debug(f"Decrypted {len(decrypted)} chunk(s), {sum(len(c) for c in decrypted)} bytes")
    return b"".join(decrypted)


def encode_chunks(plaintext: bytes, key: str, chunk_size: int = DEFAULT_ENCODE_CHUNK_SIZE_BYTES) -> bytes:
    """
    Encrypt plaintext into the length-prefixed chunk wire format.

    Args:
        plaintext: Bytes to encrypt
        key: Hex symmetric key used as the passphrase
        chunk_size: Plaintext bytes per frame

    Returns:
        Ciphertext stream accepted by decrypt_all
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    frames = []
    for start in range(0, len(plaintext), chunk_size):
        chunk = base64.b64decode(passphrase_encrypt(plaintext[start:start + chunk_size], key))
        frames.append(_LENGTH_PREFIX.pack(len(chunk)) + chunk)
    return b"".join(frames)
