"""Provides SHA-256 checksum helpers and content identifier verification."""

import base64
import hashlib
import re
from typing import Optional, Tuple


CID_VERSION_1 = 0x01
RAW_CODEC = 0x55
SHA2_256_CODE = 0x12
SHA2_256_LENGTH = 32

_HEX_SHA256 = re.compile(r'^(?:0x)?[0-9a-fA-F]{64}$')


def compute_checksum(data: bytes) -> str:
    """
    Compute SHA-256 checksum for given data.

    Args:
        data: Bytes to compute checksum for

    Returns:
        Hexadecimal string representation of SHA-256 hash
    """
    return hashlib.sha256(data).hexdigest()


def verify_checksum(data: bytes, expected: str) -> bool:
    """
    Verify that data matches expected checksum.

    Args:
        data: Bytes to verify
        expected: Expected SHA-256 checksum (hex string)

    Returns:
        True if checksum matches, False otherwise
    """
    return compute_checksum(data) == expected.lower()


def _read_varint(buf: bytes, offset: int) -> Tuple[int, int]:
    """Decode an unsigned LEB128 varint, returning (value, new_offset)."""
    value = 0
    shift = 0
    while True:
        if offset >= len(buf):
            raise ValueError("Truncated varint")
        byte = buf[offset]
        offset += 1
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, offset
        shift += 7
        if shift > 63:
            raise ValueError("Varint too long")


def expected_digest(content_id: str) -> Optional[str]:
    """
    Extract the SHA-256 digest a content identifier commits to over raw bytes.

    Only two forms address the raw bytes directly: a bare SHA-256 hex string,
    and a base32 CIDv1 ("b..." multibase) with the raw codec and a sha2-256
    multihash. Every other form (CIDv0, dag-pb, other hashes) hashes an
    encoded DAG node and cannot be checked against the fetched bytes.

    Args:
        content_id: Content identifier

    Returns:
        Lowercase hex digest, or None if the identifier is not verifiable
    """
    if _HEX_SHA256.match(content_id):
        return content_id[2:].lower() if content_id.startswith('0x') else content_id.lower()

    if not content_id.startswith('b') or len(content_id) < 2:
        return None

    body = content_id[1:].upper()
    body += '=' * (-len(body) % 8)
    try:
        raw = base64.b32decode(body)
        version, offset = _read_varint(raw, 0)
        codec, offset = _read_varint(raw, offset)
        hash_code, offset = _read_varint(raw, offset)
        digest_length, offset = _read_varint(raw, offset)
    except ValueError:
        return None

    if version != CID_VERSION_1 or codec != RAW_CODEC:
        return None
    if hash_code != SHA2_256_CODE or digest_length != SHA2_256_LENGTH:
        return None

    digest = raw[offset:]
    if len(digest) != SHA2_256_LENGTH:
        return None
    return digest.hex()


def verify_content_id(content_id: str, data: bytes) -> Optional[bool]:
    """
    Verify fetched bytes against their content identifier.

    Args:
        content_id: Content identifier the bytes were fetched under
        data: Fetched bytes

    Returns:
        True or False for verifiable identifiers, None when the identifier
        does not commit to a raw-bytes digest
    """
    digest = expected_digest(content_id)
    if digest is None:
        return None
    return verify_checksum(data, digest)


def raw_content_id(data: bytes) -> str:
    """
    Build the base32 CIDv1 (raw codec, sha2-256) for the given bytes.

    Args:
        data: Content bytes

    Returns:
        CID string with the 'b' multibase prefix
    """
    multihash = bytes([SHA2_256_CODE, SHA2_256_LENGTH]) + hashlib.sha256(data).digest()
    encoded = base64.b32encode(bytes([CID_VERSION_1, RAW_CODEC]) + multihash)
    return 'b' + encoded.decode('ascii').lower().rstrip('=')
