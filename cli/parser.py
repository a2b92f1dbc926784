"""Command parser for CLI input."""

import shlex

from cli.models import (
    ApprovalsCommand,
    ClearCacheCommand,
    CommandRequest,
    HistoryCommand,
    IdentityCommand,
    OpenCommand,
    PurgeCacheCommand,
    RecordsCommand,
    RegisterKeyCommand,
    TransferCommand,
    WatchCommand,
)


class ParseError(Exception):
    """Raised when command parsing fails."""

    pass


def parse_command(input_line: str) -> CommandRequest:
    """Parse user input into a CommandRequest object.

    Args:
        input_line: Raw user input from REPL

    Returns:
        CommandRequest object

    Raises:
        ParseError: If command syntax is invalid
    """
    if not input_line.strip():
        raise ParseError("Empty command")

    try:
        tokens = shlex.split(input_line)
    except ValueError as e:
        raise ParseError(f"Invalid syntax: {e}")

    if not tokens:
        raise ParseError("Empty command")

    command_name = tokens[0]

    if command_name == "identity":
        return _parse_identity(tokens[1:])
    elif command_name == "register-key":
        return _parse_no_args(tokens[1:], "register-key", RegisterKeyCommand)
    elif command_name == "records":
        return _parse_records(tokens[1:])
    elif command_name == "approvals":
        return _parse_approvals(tokens[1:])
    elif command_name == "open":
        return _parse_open(tokens[1:])
    elif command_name == "history":
        return _parse_history(tokens[1:])
    elif command_name == "transfer":
        return _parse_transfer(tokens[1:])
    elif command_name == "watch":
        return _parse_watch(tokens[1:])
    elif command_name == "clear-cache":
        return _parse_no_args(tokens[1:], "clear-cache", ClearCacheCommand)
    elif command_name == "purge-cache":
        return _parse_no_args(tokens[1:], "purge-cache", PurgeCacheCommand)
    else:
        raise ParseError(f"Unknown command: {command_name}")


def _parse_record_id(value: str) -> int:
    try:
        record_id = int(value)
    except ValueError:
        raise ParseError(f"Invalid record id: {value}")
    if record_id < 0:
        raise ParseError(f"Invalid record id: {value}")
    return record_id


def _parse_page(value: str) -> int:
    try:
        page = int(value)
    except ValueError:
        raise ParseError(f"Invalid page number: {value}")
    if page < 1:
        raise ParseError("Page numbers start at 1")
    return page


def _parse_no_args(args: list[str], name: str, command_cls):
    if args:
        raise ParseError(f"{name} takes no arguments")
    return command_cls()


def _parse_identity(args: list[str]) -> IdentityCommand:
    """Parse 'identity <name> <email>' command."""
    if len(args) != 2:
        raise ParseError("identity requires exactly 2 arguments: <name> <email>")

    name, email = args
    if "@" not in email:
        raise ParseError(f"Invalid email: {email}")
    return IdentityCommand(name=name, email=email)


def _parse_records(args: list[str]) -> RecordsCommand:
    """Parse 'records sent|received [page]' command."""
    if not args or len(args) > 2:
        raise ParseError("records requires 'sent' or 'received' and an optional page")

    box = args[0]
    if box not in ("sent", "received"):
        raise ParseError(f"records expects 'sent' or 'received', got '{box}'")

    page = _parse_page(args[1]) if len(args) > 1 else 1
    return RecordsCommand(box=box, page=page)


def _parse_approvals(args: list[str]) -> ApprovalsCommand:
    """Parse 'approvals [page]' command."""
    if len(args) > 1:
        raise ParseError("approvals takes at most 1 argument: [page]")

    page = _parse_page(args[0]) if args else 1
    return ApprovalsCommand(page=page)


def _parse_open(args: list[str]) -> OpenCommand:
    """Parse 'open <record_id> [output_dir]' command."""
    if len(args) < 1 or len(args) > 2:
        raise ParseError("open requires 1 or 2 arguments: <record_id> [output_dir]")

    record_id = _parse_record_id(args[0])
    output_dir = args[1] if len(args) > 1 else None
    return OpenCommand(record_id=record_id, output_dir=output_dir)


def _parse_history(args: list[str]) -> HistoryCommand:
    """Parse 'history <record_id>' command."""
    if len(args) != 1:
        raise ParseError("history requires exactly 1 argument: <record_id>")

    return HistoryCommand(record_id=_parse_record_id(args[0]))


def _parse_transfer(args: list[str]) -> TransferCommand:
    """Parse 'transfer <record_id> <doctor_email>' command."""
    if len(args) != 2:
        raise ParseError("transfer requires exactly 2 arguments: <record_id> <doctor_email>")

    record_id = _parse_record_id(args[0])
    to_email = args[1]
    if "@" not in to_email:
        raise ParseError(f"Invalid email: {to_email}")
    return TransferCommand(record_id=record_id, to_email=to_email)


def _parse_watch(args: list[str]) -> WatchCommand:
    """Parse 'watch [seconds]' command."""
    if len(args) > 1:
        raise ParseError("watch takes at most 1 argument: [seconds]")
    if not args:
        return WatchCommand()

    try:
        seconds = float(args[0])
    except ValueError:
        raise ParseError(f"Invalid duration: {args[0]}")
    if seconds <= 0:
        raise ParseError("watch duration must be positive")
    return WatchCommand(seconds=seconds)
