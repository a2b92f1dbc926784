"""
Referral status notifications.

A ReferralEventSource polls a ReferralFeed and turns referral snapshots into
StatusChangeEvents for one recipient. What has already been seen lives in an
explicit SubscriptionState owned by the caller's session.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Set

import httpx
from pydantic import ValidationError

from common.constants import REFERRAL_POLL_INTERVAL_SECONDS
from common.logging_config import get_logger
from retrieval.exceptions import RecordServiceError
from retrieval.schemas import RecordStatus, ReferralNotification

logger = get_logger(__name__)


@dataclass(frozen=True)
class StatusChangeEvent:
    """A referral left PENDING."""
    referral_id: str
    status: RecordStatus
    previous_status: Optional[RecordStatus]
    referral: ReferralNotification


@dataclass(frozen=True)
class ReferralFilter:
    """Selects the referrals addressed to one recipient."""
    to_email: str

    def matches(self, referral: ReferralNotification) -> bool:
        return referral.to_email == self.to_email


@dataclass
class SubscriptionState:
    """
    Per-session notification bookkeeping.

    Attributes:
        previous_statuses: Last seen status per referral id
        notified: Referral ids already reported to the user
    """
    previous_statuses: Dict[str, RecordStatus] = field(default_factory=dict)
    notified: Set[str] = field(default_factory=set)

    def is_notified(self, referral_id: str) -> bool:
        return referral_id in self.notified

    def mark_notified(self, referral_id: str) -> None:
        self.notified.add(referral_id)


class ReferralFeed(Protocol):
    """Source of full referral snapshots keyed by referral id."""

    async def snapshot(self) -> Dict[str, ReferralNotification]:
        ...


class HttpReferralFeed:
    """
    Reads referral snapshots from a realtime-database REST endpoint
    (``GET {base_url}/referrals.json``).
    """

    def __init__(self, base_url: str, timeout: float = 10.0, auth_token: Optional[str] = None):
        self.base_url = base_url.rstrip('/')
        params = {'auth': auth_token} if auth_token else None
        self.session = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, params=params)

    async def close(self) -> None:
        await self.session.aclose()

    async def snapshot(self) -> Dict[str, ReferralNotification]:
        """
        Fetch every referral.

        Entries that do not match the referral schema are skipped.

        Raises:
            RecordServiceError: If the feed is unreachable, answers non-2xx or
                returns something other than a JSON object
        """
        try:
            response = await self.session.get('/referrals.json')
        except httpx.HTTPError as e:
            raise RecordServiceError(f"Referral feed unreachable: {type(e).__name__}") from e
        if not response.is_success:
            raise RecordServiceError(f"Referral feed returned {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise RecordServiceError("Referral feed returned invalid JSON") from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise RecordServiceError(f"Referral feed returned a {type(data).__name__}, expected an object")

        referrals: Dict[str, ReferralNotification] = {}
        for referral_id, raw in data.items():
            if not isinstance(raw, dict):
                continue
            try:
                referrals[referral_id] = ReferralNotification.model_validate({'referralId': referral_id, **raw})
            except ValidationError:
                logger.debug(f"Skipping malformed referral {referral_id}")
        return referrals


_END = object()


class Subscription:
    """
    Async stream of StatusChangeEvents; cancel() ends it.

    If polling stops on an unexpected error, the stream ends and the next
    read raises that error.
    """

    def __init__(self, state: SubscriptionState):
        self._state = state
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._closed = False
        self._error: Optional[BaseException] = None
        self.cancelled = False

    def _attach(self, task: asyncio.Task) -> None:
        self._task = task

    def _publish(self, event: StatusChangeEvent) -> None:
        self._queue.put_nowait(event)

    def _close(self, error: Optional[BaseException] = None) -> None:
        if self._closed:
            return
        self._closed = True
        self._error = error
        self._queue.put_nowait(_END)

    def cancel(self) -> None:
        """Stop polling, forget previous statuses, and end the stream."""
        if self.cancelled:
            return
        self.cancelled = True
        if self._task is not None:
            self._task.cancel()
        self._state.previous_statuses.clear()
        self._close()
        logger.info("Referral subscription cancelled")

    def __aiter__(self) -> 'Subscription':
        return self

    async def __anext__(self) -> StatusChangeEvent:
        item = await self._queue.get()
        if item is _END:
            self._queue.put_nowait(_END)
            error, self._error = self._error, None
            if error is not None:
                raise error
            raise StopAsyncIteration
        return item


class ReferralEventSource:
    """Polls a referral feed and publishes status changes to subscribers."""

    def __init__(
        self,
        feed: ReferralFeed,
        state: SubscriptionState,
        poll_interval: float = REFERRAL_POLL_INTERVAL_SECONDS,
    ):
        self.feed = feed
        self.state = state
        self.poll_interval = poll_interval

    def process_snapshot(
        self,
        snapshot: Dict[str, ReferralNotification],
        referral_filter: ReferralFilter,
        initial: bool,
    ) -> List[StatusChangeEvent]:
        """
        Compare a snapshot with the subscription state.

        On the initial snapshot a referral is reported if it already left
        PENDING after creation (updated_at differs from created_at). Later a
        referral is reported when it moves from PENDING to any other status.
        Each referral is reported at most once.

        Args:
            snapshot: Referrals keyed by id
            referral_filter: Recipient filter
            initial: True for the first snapshot of a subscription

        Returns:
            Events to publish, in snapshot order
        """
        events = []
        for referral_id, referral in snapshot.items():
            if not referral_filter.matches(referral):
                continue

            previous = self.state.previous_statuses.get(referral_id)
            current = referral.status

            if initial:
                changed = current != RecordStatus.PENDING and referral.created_at != referral.updated_at
            else:
                changed = previous == RecordStatus.PENDING and current != RecordStatus.PENDING

            if changed and not self.state.is_notified(referral_id):
                logger.info(f"Referral {referral_id} changed to {current.value}")
                events.append(StatusChangeEvent(referral_id, current, previous, referral))
                self.state.mark_notified(referral_id)

            self.state.previous_statuses[referral_id] = current
        return events

    def subscribe(self, referral_filter: ReferralFilter) -> Subscription:
        """
        Start polling for one recipient. Must be called from a running event loop.

        Args:
            referral_filter: Which referrals to watch

        Returns:
            Subscription to iterate; call cancel() to stop
        """
        subscription = Subscription(self.state)
        task = asyncio.get_running_loop().create_task(self._poll(subscription, referral_filter))
        subscription._attach(task)
        logger.info(f"Referral subscription started for {referral_filter.to_email}")
        return subscription

    async def _poll(self, subscription: Subscription, referral_filter: ReferralFilter) -> None:
        initial = True
        try:
            while not subscription.cancelled:
                try:
                    snapshot = await self.feed.snapshot()
                except RecordServiceError as e:
                    logger.warning(f"Referral feed poll failed: {e}")
                else:
                    for event in self.process_snapshot(snapshot, referral_filter, initial):
                        subscription._publish(event)
                    initial = False
                await asyncio.sleep(self.poll_interval)
        except Exception as e:
            logger.error(f"Referral polling stopped: {type(e).__name__}: {e}")
            subscription._close(e)
        finally:
            subscription._close()
