"""HTTP client for the content-addressed blob store (IPFS gateway or HTTP API)."""

from typing import Optional, Tuple

import httpx

from common.logging_config import get_logger
from retrieval import config
from retrieval.exceptions import NetworkFailure

logger = get_logger(__name__)

GATEWAY_MODE = "gateway"
API_MODE = "api"


class ContentStoreClient:
    """
    Fetches immutable blobs by content identifier.

    In gateway mode a blob is ``GET {base_url}/ipfs/{cid}``; in API mode it is
    ``POST {base_url}/api/v0/cat?arg={cid}``, optionally with basic auth. A
    fetch is attempted once: retrying is left to the caller.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        mode: Optional[str] = None,
        timeout: Optional[float] = None,
        auth: Optional[Tuple[str, str]] = None,
    ):
        """
        Initialize content store client.

        Args:
            base_url: Gateway or API root (default: MEDLINK_CONTENT_STORE_URL)
            mode: 'gateway' or 'api' (default: MEDLINK_CONTENT_STORE_MODE)
            timeout: Request timeout in seconds
            auth: Optional (username, password) for API mode
        """
        self.base_url = (base_url or config.CONTENT_STORE_URL).rstrip('/')
        self.mode = mode or config.CONTENT_STORE_MODE
        if self.mode not in (GATEWAY_MODE, API_MODE):
            raise ValueError(f"Unknown content store mode: {self.mode}")

        self.session = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else config.CONTENT_STORE_TIMEOUT,
            auth=auth,
            follow_redirects=True,
        )
        logger.info(f"Initialized ContentStoreClient [base_url={self.base_url}, mode={self.mode}]")

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.session.aclose()

    async def __aenter__(self) -> 'ContentStoreClient':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _build_request(self, content_id: str) -> httpx.Request:
        if self.mode == API_MODE:
            return self.session.build_request("POST", "/api/v0/cat", params={"arg": content_id})
        return self.session.build_request("GET", f"/ipfs/{content_id}")

    async def fetch(self, content_id: str) -> bytes:
        """
        Download the raw bytes stored under a content identifier.

        Args:
            content_id: Content identifier

        Returns:
            Response body

        Raises:
            NetworkFailure: On a transport error or any non-2xx status
        """
        if not content_id:
            raise NetworkFailure("No content identifier to fetch")

        request = self._build_request(content_id)
        logger.debug(f"Fetching {request.method} {request.url}")

        try:
            response = await self.session.send(request)
        except httpx.TimeoutException as e:
            raise NetworkFailure(f"Timed out fetching {content_id}") from e
        except httpx.HTTPError as e:
            raise NetworkFailure(f"Cannot reach content store for {content_id}: {type(e).__name__}") from e

        if not response.is_success:
            raise NetworkFailure(
                f"Content store returned {response.status_code} {response.reason_phrase} for {content_id}"
            )

        logger.info(f"Fetched {len(response.content)} bytes for {content_id}")
        return response.content
