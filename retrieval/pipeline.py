"""Retrieval pipeline: cache or fetch, unwrap, decrypt, extract."""

import asyncio
from typing import Dict, List, Optional, Tuple, Union

from common.checksum import verify_content_id
from common.logging_config import get_logger
from retrieval import config
from retrieval.archive_extractor import extract
from retrieval.chunk_codec import decrypt_all
from retrieval.ciphertext_cache import CiphertextCache
from retrieval.content_store import ContentStoreClient
from retrieval.exceptions import ContentIntegrityError, MissingKeyMaterial, RetrievalError
from retrieval.key_unwrapper import unwrap
from retrieval.schemas import MedicalRecord
from retrieval.types import ClassifiedFileSet, PipelineState, WrappedKey

logger = get_logger(__name__)

PrivateKey = Union[bytes, str]


class RetrievalPipeline:
    """
    Turns a content identifier, a wrapped key and a private key into a
    ClassifiedFileSet.

    Stages run in order and each either advances or raises; no partial file
    set is ever returned. Concurrent fetches of the same content identifier
    share one cache lookup and network download.
    """

    def __init__(
        self,
        content_store: Optional[ContentStoreClient] = None,
        cache: Optional[CiphertextCache] = None,
        verify_content_ids: Optional[bool] = None,
    ):
        """
        Initialize pipeline.

        Args:
            content_store: Blob store client (default: configured ContentStoreClient)
            cache: Ciphertext cache (default: CiphertextCache at MEDLINK_CACHE_PATH)
            verify_content_ids: Check fetched bytes against verifiable content ids
                (default: MEDLINK_VERIFY_CONTENT_ID)
        """
        self.content_store = content_store or ContentStoreClient()
        self.cache = cache if cache is not None else CiphertextCache()
        self.verify_content_ids = config.VERIFY_CONTENT_ID if verify_content_ids is None else verify_content_ids
        self.last_states: List[PipelineState] = []
        self._inflight: Dict[str, asyncio.Future] = {}
        self._waiters: Dict[asyncio.Future, int] = {}
        self._cache_initialized = False

    async def init(self) -> None:
        """Open the cache. Safe to call more than once."""
        if not self._cache_initialized:
            await asyncio.to_thread(self.cache.init)
            self._cache_initialized = True

    async def close(self) -> None:
        """Release the content store session."""
        await self.content_store.close()

    async def __aenter__(self) -> 'RetrievalPipeline':
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def fetch(
        self,
        content_id: str,
        wrapped_key: Optional[Union[WrappedKey, str]],
        private_key: Optional[PrivateKey],
    ) -> ClassifiedFileSet:
        """
        Retrieve and open a record archive.

        Args:
            content_id: Content identifier of the encrypted archive
            wrapped_key: Wrapped key for the caller's role (object or JSON)
            private_key: Caller's raw private key

        Returns:
            ClassifiedFileSet of the archive entries

        Raises:
            MissingKeyMaterial: Before any cache or network work if a key is absent
            NetworkFailure: If the archive is not cached and cannot be fetched
            ContentIntegrityError: If fetched bytes do not match a verifiable id
            KeyUnwrapFailure, ChunkFramingError, ChunkDecryptionError, ArchiveError:
                Propagated unchanged from the failing stage
        """
        states = [PipelineState.IDLE]
        self.last_states = states

        try:
            if not wrapped_key:
                raise MissingKeyMaterial("No wrapped key available for this record")
            if not private_key:
                raise MissingKeyMaterial("No private key available for the current user")

            snapshot = wrapped_key.to_json() if isinstance(wrapped_key, WrappedKey) else wrapped_key
            ciphertext, acquire_states = await self._acquire(content_id, snapshot)
            states.extend(acquire_states)

            states.append(PipelineState.KEY_UNWRAPPING)
            symmetric_key = await asyncio.to_thread(unwrap, wrapped_key, private_key)

            states.append(PipelineState.CHUNK_DECRYPTING)
            plaintext = await asyncio.to_thread(decrypt_all, ciphertext, symmetric_key)

            states.append(PipelineState.EXTRACTING)
            files = await asyncio.to_thread(extract, plaintext)
        except RetrievalError as e:
            states.append(PipelineState.ERROR)
            logger.error(f"Retrieval of {content_id} failed: [{e.code}] {e}")
            raise

        states.append(PipelineState.DONE)
        return files

    async def fetch_record(
        self,
        record: MedicalRecord,
        doctor_name: str,
        private_key: Optional[PrivateKey],
    ) -> ClassifiedFileSet:
        """
        Retrieve a record's archive using the wrapped key for the caller's role.

        Args:
            record: Record metadata from the record service
            doctor_name: Caller's name; matching record.from_doctor selects the sender key
            private_key: Caller's raw private key

        Returns:
            ClassifiedFileSet of the archive entries
        """
        role = record.role_for(doctor_name)
        logger.info(f"Opening record {record.id} as {role.value}")
        return await self.fetch(record.cid, record.wrapped_key_for(role), private_key)

    async def _acquire(self, content_id: str, snapshot: str) -> Tuple[bytes, List[PipelineState]]:
        """
        Get ciphertext, joining an in-flight acquisition for the same id.

        The shared acquisition outlives a cancelled caller while other callers
        still wait on it, and is cancelled when its last caller goes away.
        A caller that joined reports the shared result as a cache hit.
        """
        task = self._inflight.get(content_id)
        joined = task is not None
        if joined:
            logger.debug(f"Joining in-flight fetch for {content_id}")
        else:
            task = asyncio.ensure_future(self._load_ciphertext(content_id, snapshot))
            self._inflight[content_id] = task
            task.add_done_callback(lambda t: self._forget(content_id, t))

        self._waiters[task] = self._waiters.get(task, 0) + 1
        try:
            ciphertext, states = await asyncio.shield(task)
        finally:
            self._release(content_id, task)

        if joined:
            return ciphertext, [PipelineState.CACHE_LOOKUP, PipelineState.CACHE_HIT]
        return ciphertext, list(states)

    def _release(self, content_id: str, task: asyncio.Future) -> None:
        self._waiters[task] -= 1
        if self._waiters[task]:
            return
        del self._waiters[task]
        if not task.done():
            logger.info(f"No callers left, cancelling fetch of {content_id}")
            if self._inflight.get(content_id) is task:
                del self._inflight[content_id]
            task.cancel()

    def _forget(self, content_id: str, task: asyncio.Future) -> None:
        if self._inflight.get(content_id) is task:
            del self._inflight[content_id]
        if not task.cancelled():
            task.exception()

    async def _load_ciphertext(self, content_id: str, snapshot: str) -> Tuple[bytes, List[PipelineState]]:
        await self.init()
        states = [PipelineState.CACHE_LOOKUP]

        entry = await asyncio.to_thread(self.cache.get, content_id)
        if entry is not None:
            states.append(PipelineState.CACHE_HIT)
            logger.info(f"Using cached ciphertext for {content_id}")
            return entry.ciphertext, states

        states.extend([PipelineState.CACHE_MISS, PipelineState.FETCHING])
        ciphertext = await self.content_store.fetch(content_id)

        if self.verify_content_ids:
            verified = verify_content_id(content_id, ciphertext)
            if verified is False:
                raise ContentIntegrityError(f"Fetched bytes do not match content id {content_id}")
            if verified is None:
                logger.debug(f"Content id {content_id} does not commit to a raw digest, not verified")

        states.append(PipelineState.CACHE_STORE)
        if not await asyncio.to_thread(self.cache.put, content_id, ciphertext, snapshot):
            logger.debug(f"Ciphertext for {content_id} not cached")

        return ciphertext, states
