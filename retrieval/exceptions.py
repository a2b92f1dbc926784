"""Custom exception classes for the retrieval pipeline."""


class RetrievalError(Exception):
    """
    Base exception class for all retrieval errors.

    Each subclass carries a stable ``code`` so callers can classify a failure
    without matching on message text.
    """
    code = "RETRIEVAL_ERROR"


class MissingKeyMaterial(RetrievalError):
    """
    Raised when the wrapped key or the private key is absent.
    """
    code = "MISSING_KEY_MATERIAL"


class KeyUnwrapFailure(RetrievalError):
    """
    Raised when a wrapped key cannot be opened (bad MAC, invalid curve point,
    malformed field).
    """
    code = "KEY_UNWRAP_FAILURE"


class NetworkFailure(RetrievalError):
    """
    Raised when the content store fetch fails.
    """
    code = "NETWORK_FAILURE"


class CacheFailure(RetrievalError):
    """
    Storage error inside the ciphertext cache. Logged, never surfaced.
    """
    code = "CACHE_FAILURE"


class ChunkFramingError(RetrievalError):
    """
    Raised when a length prefix overruns the buffer or trailing bytes remain.
    """
    code = "CHUNK_FRAMING_ERROR"


class ChunkDecryptionError(RetrievalError):
    """
    Raised when a chunk fails to decrypt or decrypts to nothing.
    """
    code = "CHUNK_DECRYPTION_ERROR"


class ArchiveError(RetrievalError):
    """
    Raised when decrypted bytes are not a readable zip archive.
    """
    code = "ARCHIVE_ERROR"


class ContentIntegrityError(RetrievalError):
    """
    Raised when fetched bytes do not hash to their content identifier.
    """
    code = "CONTENT_INTEGRITY_ERROR"


class RecordServiceError(RetrievalError):
    """
    Raised when the record service rejects a call or is unreachable.
    """
    code = "RECORD_SERVICE_ERROR"
