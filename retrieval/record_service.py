"""Typed HTTP client for the record service (record metadata and wrapped keys)."""

import asyncio
import uuid
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from common.logging_config import get_logger
from retrieval import config
from retrieval.exceptions import RecordServiceError
from retrieval.schemas import DoctorPage, MedicalRecord, RecordPage, TransferResult
from retrieval.types import RecipientRole

logger = get_logger(__name__)


class RecordServiceClient:
    """
    Async client for the record service with retry on 5xx and network errors.

    Every method the retrieval and transfer flows call on the backend is
    declared here, so the boundary is checked by the response schemas.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_backoff_multiplier: float = 2,
    ):
        """
        Initialize record service client.

        Args:
            base_url: Service root (default: MEDLINK_RECORD_SERVICE_URL)
            timeout: Request timeout in seconds
            max_retries: Retry attempts after the first try
            retry_backoff_multiplier: Base of the exponential backoff delay
        """
        self.base_url = (base_url or config.RECORD_SERVICE_URL).rstrip('/')
        self.max_retries = max_retries
        self.retry_backoff_multiplier = retry_backoff_multiplier
        self.session = httpx.AsyncClient(base_url=self.base_url, timeout=timeout)
        self.request_id: Optional[str] = None
        logger.info(f"Initialized RecordServiceClient [base_url={self.base_url}]")

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.session.aclose()

    async def __aenter__(self) -> 'RecordServiceClient':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request_with_retry(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        """
        Make HTTP request with retry logic on 5xx errors and network failures.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            **kwargs: Additional arguments to pass to httpx request

        Returns:
            HTTP response with a status below 500, or the last 5xx response

        Raises:
            RecordServiceError: If every attempt failed at the network level
        """
        last_exception: Optional[Exception] = None

        self.request_id = str(uuid.uuid4())
        kwargs.setdefault('headers', {})['X-Request-ID'] = self.request_id

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.session.request(method, endpoint, **kwargs)
                logger.debug(
                    f"Response received: {method} {endpoint} status={response.status_code} [request_id={self.request_id}]"
                )

                if response.status_code >= 500 and attempt < self.max_retries:
                    delay = self.retry_backoff_multiplier ** attempt
                    logger.warning(
                        f"Server error (attempt {attempt + 1}/{self.max_retries + 1}): "
                        f"{method} {endpoint} status={response.status_code}, retrying in {delay}s [request_id={self.request_id}]"
                    )
                    await asyncio.sleep(delay)
                    continue

                return response

            except (httpx.ConnectError, httpx.TimeoutException) as e:
                last_exception = e
                if attempt < self.max_retries:
                    delay = self.retry_backoff_multiplier ** attempt
                    logger.warning(
                        f"Network error (attempt {attempt + 1}/{self.max_retries + 1}): "
                        f"{method} {endpoint} error={type(e).__name__}, retrying in {delay}s [request_id={self.request_id}]"
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error(
                    f"Network error (max retries exceeded): {method} {endpoint} error={e} [request_id={self.request_id}]"
                )

            except httpx.HTTPError as e:
                logger.error(
                    f"Transport error: {method} {endpoint} error={type(e).__name__} [request_id={self.request_id}]"
                )
                raise RecordServiceError(f"Record service connection failed: {type(e).__name__}") from e

        if isinstance(last_exception, httpx.TimeoutException):
            raise RecordServiceError("Record service request timed out") from last_exception
        raise RecordServiceError("Cannot connect to record service. Is it running?") from last_exception

    def _format_error(self, response: httpx.Response) -> str:
        """Map an error response to a readable message."""
        try:
            error_data = response.json()
        except ValueError:
            error_data = None

        if isinstance(error_data, dict):
            detail = error_data.get('detail', 'Unknown error')
            code = error_data.get('code')
        else:
            detail = response.text or 'Unknown error'
            code = None

        message = f"Record service error {response.status_code}: {detail}"
        return f"{message} (Code: {code})" if code else message

    async def _call(self, method: str, endpoint: str, **kwargs) -> Any:
        response = await self._request_with_retry(method, endpoint, **kwargs)
        if not response.is_success:
            raise RecordServiceError(self._format_error(response))
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RecordServiceError(f"Record service returned invalid JSON for {endpoint}") from e

    @staticmethod
    def _parse(model, payload: Any, endpoint: str):
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise RecordServiceError(f"Unexpected response shape from {endpoint}: {e.error_count()} error(s)") from e

    async def get_medical_records_by_doctor(
        self,
        doctor_name: str,
        role: RecipientRole,
        offset: int = 0,
        limit: int = 10,
    ) -> RecordPage:
        """
        List records a doctor sent or received.

        Args:
            doctor_name: Doctor display name
            role: Whether to list records where the doctor is sender or receiver
            offset: Page offset
            limit: Page size

        Returns:
            RecordPage
        """
        params: Dict[str, Any] = {
            'doctor': doctor_name,
            'role': RecipientRole(role).value,
            'offset': offset,
            'limit': limit,
        }
        payload = await self._call('GET', '/records', params=params)
        return self._parse(RecordPage, payload, '/records')

    async def get_medical_record(self, record_id: int) -> MedicalRecord:
        """Fetch a single record by id."""
        endpoint = f'/records/{record_id}'
        payload = await self._call('GET', endpoint)
        return self._parse(MedicalRecord, payload, endpoint)

    async def get_approvals_by_doctor(self, doctor_name: str, offset: int = 0, limit: int = 10) -> RecordPage:
        """List records awaiting the doctor's approval."""
        params = {'doctor': doctor_name, 'offset': offset, 'limit': limit}
        payload = await self._call('GET', '/approvals', params=params)
        return self._parse(RecordPage, payload, '/approvals')

    async def get_transfer_history(self, record_id: int) -> List[MedicalRecord]:
        """List every record in the transfer chain of a record."""
        endpoint = f'/records/{record_id}/history'
        payload = await self._call('GET', endpoint)
        if not isinstance(payload, list):
            raise RecordServiceError(f"Unexpected response shape from {endpoint}: expected a list")
        return [self._parse(MedicalRecord, item, endpoint) for item in payload]

    async def transfer_medical_record(
        self,
        record_id: int,
        from_email: str,
        to_email: str,
        wrapped_for_sender: str,
        wrapped_for_receiver: str,
    ) -> int:
        """
        Create a transferred copy of a record for another doctor.

        Args:
            record_id: Record being transferred
            from_email: Email of the transferring doctor
            to_email: Email of the receiving doctor
            wrapped_for_sender: Wrapped key JSON for the new sender
            wrapped_for_receiver: Wrapped key JSON for the new receiver

        Returns:
            Id of the new record
        """
        endpoint = f'/records/{record_id}/transfer'
        body = {
            'fromEmail': from_email,
            'toEmail': to_email,
            'encryptedAesKeyForSender': wrapped_for_sender,
            'encryptedAesKeyForReceiver': wrapped_for_receiver,
        }
        payload = await self._call('POST', endpoint, json=body)
        return self._parse(TransferResult, payload, endpoint).id

    async def get_paged_doctors(self, offset: int = 0, limit: int = 10) -> DoctorPage:
        """List registered doctors."""
        payload = await self._call('GET', '/doctors', params={'offset': offset, 'limit': limit})
        return self._parse(DoctorPage, payload, '/doctors')

    async def update_doctor_public_key(self, email: str, public_key: str) -> None:
        """Register the public key wrapped keys should be issued for."""
        await self._call('PUT', f'/doctors/{email}/public-key', json={'publicKey': public_key})
        logger.info(f"Updated public key for {email}")
