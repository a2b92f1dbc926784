"""Configuration settings for the retrieval pipeline."""

import os

from common.constants import (
    CACHE_TTL_SECONDS,
    DEFAULT_CACHE_PATH,
    DEFAULT_CONTENT_STORE_URL,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_RECORD_SERVICE_URL,
)


CACHE_PATH = os.path.expanduser(os.environ.get("MEDLINK_CACHE_PATH", DEFAULT_CACHE_PATH))

CACHE_TTL_DAYS = float(os.environ.get("MEDLINK_CACHE_TTL_DAYS", CACHE_TTL_SECONDS / 86400))

CONTENT_STORE_URL = os.environ.get("MEDLINK_CONTENT_STORE_URL", DEFAULT_CONTENT_STORE_URL)

CONTENT_STORE_MODE = os.environ.get("MEDLINK_CONTENT_STORE_MODE", "gateway")

CONTENT_STORE_TIMEOUT = float(os.environ.get("MEDLINK_CONTENT_STORE_TIMEOUT", DEFAULT_HTTP_TIMEOUT_SECONDS))

RECORD_SERVICE_URL = os.environ.get("MEDLINK_RECORD_SERVICE_URL", DEFAULT_RECORD_SERVICE_URL)

VERIFY_CONTENT_ID = os.environ.get("MEDLINK_VERIFY_CONTENT_ID", "true").lower() in ("1", "true", "yes")
