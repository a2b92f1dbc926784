"""Command handler functions for CLI operations."""

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

from common.logging_config import get_logger
from cli.config import Config
from cli.constants import DEFAULT_OUTPUT_DIR, RECORDS_PAGE_SIZE
from cli.models import (
    ApprovalsCommand,
    ClearCacheCommand,
    HistoryCommand,
    IdentityCommand,
    OpenCommand,
    PurgeCacheCommand,
    RecordsCommand,
    RegisterKeyCommand,
    TransferCommand,
    WatchCommand,
)
from cli.utils import format_file_size, format_record_row, save_file_set
from retrieval.ciphertext_cache import CiphertextCache
from retrieval.content_store import ContentStoreClient
from retrieval.exceptions import RecordServiceError, RetrievalError
from retrieval.key_unwrapper import public_key_bytes
from retrieval.notifications import (
    HttpReferralFeed,
    ReferralEventSource,
    ReferralFeed,
    ReferralFilter,
    StatusChangeEvent,
    SubscriptionState,
)
from retrieval.pipeline import RetrievalPipeline
from retrieval.record_service import RecordServiceClient
from retrieval.schemas import Doctor, RecordPage
from retrieval.transfer import transfer_record
from retrieval.types import RecipientRole

logger = get_logger(__name__)

T = TypeVar('T')

DOCTOR_LOOKUP_PAGE_SIZE = 50

_config: Optional[Config] = None

# Notification bookkeeping lives for the whole REPL session.
_subscription_state = SubscriptionState()


def get_config() -> Config:
    """
    Get or create global Config instance.

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        logger.debug("Loading CLI config")
        _config = Config(Path.home() / '.medlink' / 'config.json')
    return _config


def _make_record_client(config: Config) -> RecordServiceClient:
    return RecordServiceClient(
        base_url=config.get_record_service_url(),
        timeout=config.get_timeout(),
        **config.get_retry_config(),
    )


def _make_pipeline(config: Config) -> RetrievalPipeline:
    store = config.get_content_store()
    return RetrievalPipeline(
        content_store=ContentStoreClient(base_url=store['base_url'], mode=store['mode'], timeout=config.get_timeout()),
    )


async def _with_client(
    config: Config,
    client: Optional[RecordServiceClient],
    action: Callable[[RecordServiceClient], Awaitable[T]],
) -> T:
    """Run action with the injected client, or with a fresh one that is closed afterwards."""
    if client is not None:
        return await action(client)
    async with _make_record_client(config) as owned:
        return await action(owned)


def _format_error(error: RetrievalError) -> str:
    return f"Error [{error.code}]: {error}"


def _require_identity(config: Config) -> tuple[Optional[str], Optional[str], Optional[str]]:
    name, email = config.get_identity()
    if not name or not email:
        return None, None, "Error: no doctor identity set. Use: identity <name> <email>"
    return name, email, None


def handle_identity(cmd: IdentityCommand, config: Optional[Config] = None) -> str:
    """
    Handle 'identity' command.

    Args:
        cmd: IdentityCommand with name and email
        config: Optional Config for dependency injection (testing)

    Returns:
        Confirmation message
    """
    config = config or get_config()
    config.set_identity(cmd.name, cmd.email)
    logger.info(f"Identity set to {cmd.name} <{cmd.email}>")
    return f"Identity set: {cmd.name} <{cmd.email}>"


def handle_register_key(
    cmd: RegisterKeyCommand,
    config: Optional[Config] = None,
    client: Optional[RecordServiceClient] = None,
) -> str:
    """
    Handle 'register-key' command.

    Derives the public key from MEDLINK_PRIVATE_KEY and publishes it for the
    configured doctor, so new records are wrapped for this key.
    """
    config = config or get_config()
    _, email, error = _require_identity(config)
    if error:
        return error

    private_key = config.get_private_key()
    if not private_key:
        return "Error: MEDLINK_PRIVATE_KEY is not set"

    try:
        public_key = '0x' + public_key_bytes(private_key).hex()
        asyncio.run(_with_client(config, client, lambda c: c.update_doctor_public_key(email, public_key)))
    except RetrievalError as e:
        return _format_error(e)
    return f"Public key registered for {email}"


def _format_page(title: str, page: RecordPage, page_number: int) -> str:
    if not page.items:
        return f"No {title.lower()} found."
    lines = [f"{title} (page {page_number}, {page.total} total):"]
    lines.extend(format_record_row(record) for record in page.items)
    return "\n".join(lines)


def handle_records(
    cmd: RecordsCommand,
    config: Optional[Config] = None,
    client: Optional[RecordServiceClient] = None,
) -> str:
    """
    Handle 'records' command.

    Args:
        cmd: RecordsCommand with box ('sent' or 'received') and page
        config: Optional Config for dependency injection (testing)
        client: Optional RecordServiceClient for dependency injection (testing)

    Returns:
        Formatted record listing or error message
    """
    config = config or get_config()
    name, _, error = _require_identity(config)
    if error:
        return error

    role = RecipientRole.SENDER if cmd.box == "sent" else RecipientRole.RECEIVER
    offset = (cmd.page - 1) * RECORDS_PAGE_SIZE
    logger.info(f"Executing records command: box={cmd.box} page={cmd.page}")

    try:
        page = asyncio.run(_with_client(
            config, client,
            lambda c: c.get_medical_records_by_doctor(name, role, offset, RECORDS_PAGE_SIZE),
        ))
    except RetrievalError as e:
        return _format_error(e)
    return _format_page(f"{cmd.box.capitalize()} records", page, cmd.page)


def handle_approvals(
    cmd: ApprovalsCommand,
    config: Optional[Config] = None,
    client: Optional[RecordServiceClient] = None,
) -> str:
    """Handle 'approvals' command."""
    config = config or get_config()
    name, _, error = _require_identity(config)
    if error:
        return error

    offset = (cmd.page - 1) * RECORDS_PAGE_SIZE
    try:
        page = asyncio.run(_with_client(
            config, client, lambda c: c.get_approvals_by_doctor(name, offset, RECORDS_PAGE_SIZE),
        ))
    except RetrievalError as e:
        return _format_error(e)
    return _format_page("Pending approvals", page, cmd.page)


def handle_open(
    cmd: OpenCommand,
    config: Optional[Config] = None,
    client: Optional[RecordServiceClient] = None,
    pipeline: Optional[RetrievalPipeline] = None,
) -> str:
    """
    Handle 'open' command.

    Looks the record up, runs the retrieval pipeline with the wrapped key
    for this doctor's role, and writes the extracted files into
    ``output_dir/<bucket>/``.

    Args:
        cmd: OpenCommand with record_id and optional output_dir
        config: Optional Config for dependency injection (testing)
        client: Optional RecordServiceClient for dependency injection (testing)
        pipeline: Optional RetrievalPipeline for dependency injection (testing)

    Returns:
        Per-bucket summary or error message
    """
    config = config or get_config()
    name, _, error = _require_identity(config)
    if error:
        return error

    private_key = config.get_private_key()
    output_dir = Path(cmd.output_dir) if cmd.output_dir else Path(DEFAULT_OUTPUT_DIR) / f"record_{cmd.record_id}"
    logger.info(f"Executing open command: record_id={cmd.record_id} output_dir={output_dir}")

    async def _open(record_client: RecordServiceClient):
        record = await record_client.get_medical_record(cmd.record_id)
        if pipeline is not None:
            return record, await pipeline.fetch_record(record, name, private_key)
        async with _make_pipeline(config) as owned:
            return record, await owned.fetch_record(record, name, private_key)

    try:
        record, files = asyncio.run(_with_client(config, client, _open))
    except RetrievalError as e:
        return _format_error(e)

    try:
        written = save_file_set(files, output_dir)
    except OSError as e:
        logger.error(f"Could not write files to {output_dir}: {e}")
        return f"Error: could not write files to {output_dir}: {e}"

    lines = [f"Opened record #{record.id} '{record.title or '(untitled)'}': {files.count()} file(s)"]
    for bucket, count in files.summary().items():
        if not count:
            continue
        size = sum(len(data) for data in getattr(files, bucket))
        lines.append(f"  {bucket:<7} {count} file(s), {format_file_size(size)} -> {output_dir / bucket}")
    if not written:
        lines.append("  (archive contained no files)")
    return "\n".join(lines)


def handle_history(
    cmd: HistoryCommand,
    config: Optional[Config] = None,
    client: Optional[RecordServiceClient] = None,
) -> str:
    """Handle 'history' command."""
    config = config or get_config()
    try:
        chain = asyncio.run(_with_client(config, client, lambda c: c.get_transfer_history(cmd.record_id)))
    except RetrievalError as e:
        return _format_error(e)

    if not chain:
        return f"No transfer history for record #{cmd.record_id}."
    lines = [f"Transfer history of record #{cmd.record_id}:"]
    lines.extend(format_record_row(record) for record in chain)
    return "\n".join(lines)


async def _find_doctor(client: RecordServiceClient, email: str) -> Optional[Doctor]:
    offset = 0
    while True:
        page = await client.get_paged_doctors(offset, DOCTOR_LOOKUP_PAGE_SIZE)
        for doctor in page.items:
            if doctor.email == email:
                return doctor
        offset += len(page.items)
        if not page.items or offset >= page.total:
            return None


def handle_transfer(
    cmd: TransferCommand,
    config: Optional[Config] = None,
    client: Optional[RecordServiceClient] = None,
) -> str:
    """
    Handle 'transfer' command.

    The record key is unwrapped with MEDLINK_PRIVATE_KEY and re-wrapped for
    this doctor (as new sender) and the receiving doctor's registered key.
    """
    config = config or get_config()
    name, email, error = _require_identity(config)
    if error:
        return error
    if cmd.to_email == email:
        return "Error: cannot transfer a record to yourself"

    private_key = config.get_private_key()
    if not private_key:
        return "Error: MEDLINK_PRIVATE_KEY is not set"

    async def _transfer(record_client: RecordServiceClient) -> int:
        receiver = await _find_doctor(record_client, cmd.to_email)
        if receiver is None:
            raise RecordServiceError(f"No registered doctor with email {cmd.to_email}")
        record = await record_client.get_medical_record(cmd.record_id)
        sender_public_key = public_key_bytes(private_key).hex()
        return await transfer_record(
            record, name, email, private_key, sender_public_key,
            receiver.email, receiver.public_key, record_client,
        )

    logger.info(f"Executing transfer command: record_id={cmd.record_id} to={cmd.to_email}")
    try:
        new_record_id = asyncio.run(_with_client(config, client, _transfer))
    except RetrievalError as e:
        return _format_error(e)
    return f"Transferred record #{cmd.record_id} to {cmd.to_email} (new record #{new_record_id})"


def format_event(event: StatusChangeEvent) -> str:
    """One-line description of a referral status change."""
    referral = event.referral
    previous = event.previous_status.value if event.previous_status else "new"
    return (
        f"Referral {event.referral_id}: {previous} -> {event.status.value} | "
        f"patient {referral.patient_name} ({referral.patient_phone}) | "
        f"{referral.doctor_name}, {referral.department}, {referral.hospital_name}"
    )


def handle_watch(
    cmd: WatchCommand,
    config: Optional[Config] = None,
    feed: Optional[ReferralFeed] = None,
    state: Optional[SubscriptionState] = None,
    poll_interval: Optional[float] = None,
) -> str:
    """
    Handle 'watch' command.

    Prints referral status changes addressed to this doctor as they arrive,
    for cmd.seconds seconds. Referrals already reported earlier in the
    session are not reported again.

    Args:
        cmd: WatchCommand with duration
        config: Optional Config for dependency injection (testing)
        feed: Optional ReferralFeed for dependency injection (testing)
        state: Optional SubscriptionState (default: the session state)
        poll_interval: Optional poll interval override in seconds

    Returns:
        Count of reported changes or error message
    """
    config = config or get_config()
    _, email, error = _require_identity(config)
    if error:
        return error

    if feed is None and not config.get_referral_feed_url():
        return "Error: no referral feed configured (set referral_feed_url or MEDLINK_REFERRAL_FEED_URL)"

    state = state if state is not None else _subscription_state

    async def _watch() -> int:
        owned_feed = None
        source_feed = feed
        if source_feed is None:
            owned_feed = HttpReferralFeed(config.get_referral_feed_url(), timeout=config.get_timeout())
            source_feed = owned_feed

        kwargs = {} if poll_interval is None else {'poll_interval': poll_interval}
        source = ReferralEventSource(source_feed, state, **kwargs)
        subscription = source.subscribe(ReferralFilter(to_email=email))
        reported = 0

        async def _collect() -> None:
            nonlocal reported
            async for event in subscription:
                print(format_event(event))
                reported += 1

        try:
            await asyncio.wait_for(_collect(), timeout=cmd.seconds)
        except asyncio.TimeoutError:
            pass
        finally:
            subscription.cancel()
            if owned_feed is not None:
                await owned_feed.close()
        return reported

    reported = asyncio.run(_watch())
    return f"Watched referrals for {cmd.seconds:g}s: {reported} update(s)"


def handle_clear_cache(cmd: ClearCacheCommand, cache: Optional[CiphertextCache] = None) -> str:
    """Handle 'clear-cache' command."""
    cache = cache or CiphertextCache()
    if not cache.init() or not cache.clear():
        return "Error: ciphertext cache unavailable"
    return "Ciphertext cache cleared"


def handle_purge_cache(cmd: PurgeCacheCommand, cache: Optional[CiphertextCache] = None) -> str:
    """Handle 'purge-cache' command."""
    cache = cache or CiphertextCache()
    if not cache.init():
        return "Error: ciphertext cache unavailable"
    removed = cache.purge_expired()
    return f"Purged {removed} expired entr{'y' if removed == 1 else 'ies'}, {cache.count()} remaining"
