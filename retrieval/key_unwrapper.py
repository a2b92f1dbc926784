"""
ECIES key unwrapping for per-recipient archive keys.

The envelope layout matches eccrypto on secp256k1:

* shared secret = x coordinate of ``private_key * ephemeral_public_key``
* ``SHA-512(shared)`` split into a 32-byte AES key and a 32-byte MAC key
* ``mac = HMAC-SHA256(mac_key, iv || ephemeral_public_key || ciphertext)``
* ciphertext = AES-256-CBC with PKCS#7 padding
"""

import hashlib
import logging
import os
from typing import Optional, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from retrieval.exceptions import KeyUnwrapFailure, MissingKeyMaterial
from retrieval.types import WrappedKey

logger = logging.getLogger(__name__)

CURVE = ec.SECP256K1()
CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
PRIVATE_KEY_LENGTH = 32
IV_LENGTH = 16
MAC_LENGTH = 32


def _normalize_hex(value: str) -> str:
    value = value.strip()
    if value.startswith("0x") or value.startswith("0X"):
        value = value[2:]
    return value


def load_private_key(private_key: Union[bytes, str]) -> ec.EllipticCurvePrivateKey:
    """
    Load a raw secp256k1 scalar.

    Args:
        private_key: 32 raw bytes, or a hex string with optional 0x prefix

    Returns:
        Private key object

    Raises:
        KeyUnwrapFailure: If the scalar is malformed or out of range
    """
    if isinstance(private_key, str):
        try:
            raw = bytes.fromhex(_normalize_hex(private_key))
        except ValueError as e:
            raise KeyUnwrapFailure("Private key is not valid hex") from e
    else:
        raw = bytes(private_key)

    if len(raw) != PRIVATE_KEY_LENGTH:
        raise KeyUnwrapFailure(f"Private key must be {PRIVATE_KEY_LENGTH} bytes, got {len(raw)}")

    scalar = int.from_bytes(raw, "big")
    if not 0 < scalar < CURVE_ORDER:
        raise KeyUnwrapFailure("Private key is outside the curve order")

    return ec.derive_private_key(scalar, CURVE)


def load_public_key(public_key: Union[bytes, str]) -> ec.EllipticCurvePublicKey:
    """
    Load a SEC1-encoded secp256k1 point (compressed or uncompressed).

    Raises:
        KeyUnwrapFailure: If the encoding is malformed or not on the curve
    """
    if isinstance(public_key, str):
        try:
            public_key = bytes.fromhex(_normalize_hex(public_key))
        except ValueError as e:
            raise KeyUnwrapFailure("Public key is not valid hex") from e
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, bytes(public_key))
    except ValueError as e:
        raise KeyUnwrapFailure(f"Invalid curve point: {e}") from e


def public_key_bytes(private_key: Union[bytes, str]) -> bytes:
    """Uncompressed 65-byte public key for a raw private key."""
    key = load_private_key(private_key)
    return key.public_key().public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)


def _derive_keys(shared: bytes):
    digest = hashlib.sha512(shared).digest()
    return digest[:32], digest[32:]


def _mac(mac_key: bytes, payload: bytes) -> bytes:
    h = hmac.HMAC(mac_key, hashes.SHA256())
    h.update(payload)
    return h.finalize()


def _mac_matches(mac_key: bytes, payload: bytes, expected: bytes) -> bool:
    h = hmac.HMAC(mac_key, hashes.SHA256())
    h.update(payload)
    try:
        h.verify(expected)
        return True
    except InvalidSignature:
        return False


def _candidate_secrets(shared: bytes):
    yield shared
    # Older eccrypto releases dropped leading zero bytes of the x coordinate.
    stripped = shared.lstrip(b"\x00")
    if stripped != shared:
        yield stripped


def _validate_fields(wrapped: WrappedKey) -> None:
    if len(wrapped.iv) != IV_LENGTH:
        raise KeyUnwrapFailure(f"IV must be {IV_LENGTH} bytes, got {len(wrapped.iv)}")
    if len(wrapped.mac) != MAC_LENGTH:
        raise KeyUnwrapFailure(f"MAC must be {MAC_LENGTH} bytes, got {len(wrapped.mac)}")
    if not wrapped.ciphertext or len(wrapped.ciphertext) % 16:
        raise KeyUnwrapFailure("Ciphertext length is not a positive multiple of the AES block size")


def unwrap(wrapped: Optional[Union[WrappedKey, str]], private_key: Optional[Union[bytes, str]]) -> str:
    """
    Recover the hex-encoded symmetric key from a wrapped key.

    Args:
        wrapped: WrappedKey, or its hex JSON form as stored by the record service
        private_key: Recipient's raw private key (bytes or hex, 0x optional)

    Returns:
        Symmetric key as a lowercase hex string

    Raises:
        MissingKeyMaterial: If either argument is absent or empty
        KeyUnwrapFailure: If the envelope is malformed, the point is invalid,
            or the MAC does not verify
    """
    if not wrapped:
        raise MissingKeyMaterial("No wrapped key available for this record")
    if not private_key:
        raise MissingKeyMaterial("No private key available for the current user")

    if isinstance(wrapped, str):
        try:
            wrapped = WrappedKey.from_json(wrapped)
        except ValueError as e:
            raise KeyUnwrapFailure(str(e)) from e

    _validate_fields(wrapped)
    recipient = load_private_key(private_key)
    ephemeral = load_public_key(wrapped.ephemeral_public_key)

    shared = recipient.exchange(ec.ECDH(), ephemeral)
    mac_payload = wrapped.iv + wrapped.ephemeral_public_key + wrapped.ciphertext

    for secret in _candidate_secrets(shared):
        enc_key, mac_key = _derive_keys(secret)
        if _mac_matches(mac_key, mac_payload, wrapped.mac):
            break
    else:
        raise KeyUnwrapFailure("Bad MAC: wrapped key was not issued for this private key")

    decryptor = Cipher(algorithms.AES(enc_key), modes.CBC(wrapped.iv)).decryptor()
    padded = decryptor.update(wrapped.ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(128).unpadder()
    try:
        plaintext = unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise KeyUnwrapFailure("Bad padding in wrapped key") from e

    logger.debug(f"Unwrapped symmetric key ({len(plaintext)} bytes)")
    return plaintext.hex()


def wrap(symmetric_key: Union[bytes, str], public_key: Union[bytes, str]) -> WrappedKey:
    """
    Wrap a symmetric key for a recipient public key.

    Args:
        symmetric_key: Raw key bytes, or the hex string returned by unwrap
        public_key: Recipient's SEC1 public key (bytes or hex, 0x optional)

    Returns:
        WrappedKey with a fresh ephemeral key and IV

    Raises:
        MissingKeyMaterial: If either argument is absent or empty
        KeyUnwrapFailure: If the public key is not a valid curve point
    """
    if not symmetric_key:
        raise MissingKeyMaterial("No symmetric key to wrap")
    if not public_key:
        raise MissingKeyMaterial("No recipient public key")

    if isinstance(symmetric_key, str):
        symmetric_key = bytes.fromhex(_normalize_hex(symmetric_key))

    recipient = load_public_key(public_key)
    ephemeral_private = os.urandom(PRIVATE_KEY_LENGTH)
    while not 0 < int.from_bytes(ephemeral_private, "big") < CURVE_ORDER:
        ephemeral_private = os.urandom(PRIVATE_KEY_LENGTH)
    ephemeral = load_private_key(ephemeral_private)
    ephemeral_public = public_key_bytes(ephemeral_private)

    shared = ephemeral.exchange(ec.ECDH(), recipient)
    enc_key, mac_key = _derive_keys(shared)
    iv = os.urandom(IV_LENGTH)

    padder = padding.PKCS7(128).padder()
    padded = padder.update(symmetric_key) + padder.finalize()
    encryptor = Cipher(algorithms.AES(enc_key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    mac = _mac(mac_key, iv + ephemeral_public + ciphertext)
    return WrappedKey(iv=iv, ephemeral_public_key=ephemeral_public, ciphertext=ciphertext, mac=mac)
