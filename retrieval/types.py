"""Retrieval data type definitions (wrapped keys, cache entries, file sets)."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List


class RecipientRole(str, Enum):
    """Which of the two wrapped keys on a record belongs to the caller."""
    SENDER = "sender"
    RECEIVER = "receiver"


class PipelineState(str, Enum):
    """Stages a retrieval passes through."""
    IDLE = "idle"
    CACHE_LOOKUP = "cache_lookup"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    FETCHING = "fetching"
    CACHE_STORE = "cache_store"
    KEY_UNWRAPPING = "key_unwrapping"
    CHUNK_DECRYPTING = "chunk_decrypting"
    EXTRACTING = "extracting"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class WrappedKey:
    """
    ECIES envelope around a symmetric key.

    On the wire it is a JSON object of hex strings:
    ``{"iv": ..., "ephemPublicKey": ..., "ciphertext": ..., "mac": ...}``.
    """
    iv: bytes
    ephemeral_public_key: bytes
    ciphertext: bytes
    mac: bytes

    def to_json(self) -> str:
        """Serialize to the hex JSON form stored by the record service."""
        return json.dumps({
            'iv': self.iv.hex(),
            'ephemPublicKey': self.ephemeral_public_key.hex(),
            'ciphertext': self.ciphertext.hex(),
            'mac': self.mac.hex(),
        })

    @classmethod
    def from_json(cls, data: str) -> 'WrappedKey':
        """
        Deserialize from the hex JSON form.

        Raises:
            ValueError: If the JSON is malformed, a field is missing or not hex
        """
        try:
            obj = json.loads(data)
            return cls(
                iv=bytes.fromhex(obj['iv']),
                ephemeral_public_key=bytes.fromhex(obj['ephemPublicKey']),
                ciphertext=bytes.fromhex(obj['ciphertext']),
                mac=bytes.fromhex(obj['mac']),
            )
        except (KeyError, TypeError, AttributeError, json.JSONDecodeError) as e:
            raise ValueError(f"Malformed wrapped key: {e}") from e


@dataclass(frozen=True)
class CacheEntry:
    """
    Cached ciphertext for one content identifier.
    """
    content_id: str
    ciphertext: bytes
    wrapped_key_snapshot: str
    cached_at: float


@dataclass
class ClassifiedFileSet:
    """
    Extracted archive entries grouped by recognised type.

    Bucket lists hold the entry bytes in archive order; ``entry_names`` keeps
    the matching entry names per bucket.
    """
    dicom: List[bytes] = field(default_factory=list)
    images: List[bytes] = field(default_factory=list)
    pdf: List[bytes] = field(default_factory=list)
    other: List[bytes] = field(default_factory=list)
    entry_names: Dict[str, List[str]] = field(default_factory=lambda: {
        'dicom': [], 'images': [], 'pdf': [], 'other': [],
    })

    BUCKETS = ('dicom', 'images', 'pdf', 'other')

    def add(self, bucket: str, name: str, data: bytes) -> None:
        """Append an entry to the named bucket."""
        getattr(self, bucket).append(data)
        self.entry_names[bucket].append(name)

    def count(self) -> int:
        """Total number of entries across all buckets."""
        return sum(len(getattr(self, bucket)) for bucket in self.BUCKETS)

    def summary(self) -> Dict[str, int]:
        """Entry count per bucket."""
        return {bucket: len(getattr(self, bucket)) for bucket in self.BUCKETS}
