"""Command request data types for CLI."""

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class IdentityCommand:
    """Set the doctor identity."""

    name: str
    email: str
    command: Literal["identity"] = "identity"


@dataclass(frozen=True)
class RegisterKeyCommand:
    """Publish the current public key."""

    command: Literal["register-key"] = "register-key"


@dataclass(frozen=True)
class RecordsCommand:
    """List sent or received records."""

    box: Literal["sent", "received"]
    page: int = 1
    command: Literal["records"] = "records"


@dataclass(frozen=True)
class ApprovalsCommand:
    """List records awaiting approval."""

    page: int = 1
    command: Literal["approvals"] = "approvals"


@dataclass(frozen=True)
class OpenCommand:
    """Retrieve and extract a record archive."""

    record_id: int
    output_dir: str | None = None
    command: Literal["open"] = "open"


@dataclass(frozen=True)
class HistoryCommand:
    """Show transfer history of a record."""

    record_id: int
    command: Literal["history"] = "history"


@dataclass(frozen=True)
class TransferCommand:
    """Transfer a record to another doctor."""

    record_id: int
    to_email: str
    command: Literal["transfer"] = "transfer"


@dataclass(frozen=True)
class WatchCommand:
    """Watch referral status changes."""

    seconds: float = 30.0
    command: Literal["watch"] = "watch"


@dataclass(frozen=True)
class ClearCacheCommand:
    """Remove every cached ciphertext."""

    command: Literal["clear-cache"] = "clear-cache"


@dataclass(frozen=True)
class PurgeCacheCommand:
    """Remove expired cached ciphertexts."""

    command: Literal["purge-cache"] = "purge-cache"


CommandRequest = (
    IdentityCommand
    | RegisterKeyCommand
    | RecordsCommand
    | ApprovalsCommand
    | OpenCommand
    | HistoryCommand
    | TransferCommand
    | WatchCommand
    | ClearCacheCommand
    | PurgeCacheCommand
)
