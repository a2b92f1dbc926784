"""Project-wide constants (wire format sizes, cache retention, file classes)."""

CHUNK_LENGTH_PREFIX_BYTES: int = 4
DEFAULT_ENCODE_CHUNK_SIZE_BYTES: int = 1024 * 1024  # 1 MiB plaintext per frame

CACHE_TTL_SECONDS: int = 7 * 24 * 60 * 60  # 7 days
CACHE_TABLE_NAME: str = "medical_data_cache"
CACHE_SCHEMA_VERSION: int = 1
DEFAULT_CACHE_PATH: str = "~/.medlink/medical_data_cache.db"

DEFAULT_CONTENT_STORE_URL: str = "https://ipfs.io"
DEFAULT_RECORD_SERVICE_URL: str = "http://localhost:8000"
DEFAULT_HTTP_TIMEOUT_SECONDS: float = 30.0

MACOS_METADATA_PREFIX: str = "__MACOSX/"
APPLEDOUBLE_MARKER: str = "._"

DICOM_EXTENSIONS: frozenset = frozenset({"dcm"})
IMAGE_EXTENSIONS: frozenset = frozenset({"jpg", "jpeg", "png", "gif"})
PDF_EXTENSIONS: frozenset = frozenset({"pdf"})

REFERRAL_POLL_INTERVAL_SECONDS: float = 5.0
