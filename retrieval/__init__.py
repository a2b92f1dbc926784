"""Retrieval of shared medical-record archives: fetch, unwrap, decrypt, extract."""

from retrieval.ciphertext_cache import CiphertextCache
from retrieval.content_store import ContentStoreClient
from retrieval.pipeline import RetrievalPipeline
from retrieval.record_service import RecordServiceClient
from retrieval.types import ClassifiedFileSet, RecipientRole, WrappedKey

__all__ = [
    "CiphertextCache",
    "ClassifiedFileSet",
    "ContentStoreClient",
    "RecipientRole",
    "RecordServiceClient",
    "RetrievalPipeline",
    "WrappedKey",
]
