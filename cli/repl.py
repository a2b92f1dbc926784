"""REPL with prompt_toolkit for user interaction."""

import os
import sys
from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import InMemoryHistory

from cli.commands import (
    handle_approvals,
    handle_clear_cache,
    handle_history,
    handle_identity,
    handle_open,
    handle_purge_cache,
    handle_records,
    handle_register_key,
    handle_transfer,
    handle_watch,
)
from cli.constants import (
    COMMANDS,
    HELP_TEXT,
    LOGO,
    PROMPT_TEXT,
    STYLE,
    WELCOME_HELP,
    WELCOME_TITLE,
)
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
from cli.parser import ParseError, parse_command


def clear_screen() -> None:
    """Clear the terminal screen (cross-platform)."""
    if sys.platform == "win32":
        os.system("cls")
    else:
        os.system("clear")


def show_welcome() -> None:
    """Display MedLink logo and welcome text."""
    print(LOGO)
    print(WELCOME_TITLE)
    print(WELCOME_HELP)


def dispatch_command(cmd_obj) -> str:
    """Dispatch parsed command to appropriate handler."""
    if isinstance(cmd_obj, IdentityCommand):
        return handle_identity(cmd_obj)
    elif isinstance(cmd_obj, RegisterKeyCommand):
        return handle_register_key(cmd_obj)
    elif isinstance(cmd_obj, RecordsCommand):
        return handle_records(cmd_obj)
    elif isinstance(cmd_obj, ApprovalsCommand):
        return handle_approvals(cmd_obj)
    elif isinstance(cmd_obj, OpenCommand):
        return handle_open(cmd_obj)
    elif isinstance(cmd_obj, HistoryCommand):
        return handle_history(cmd_obj)
    elif isinstance(cmd_obj, TransferCommand):
        return handle_transfer(cmd_obj)
    elif isinstance(cmd_obj, WatchCommand):
        return handle_watch(cmd_obj)
    elif isinstance(cmd_obj, ClearCacheCommand):
        return handle_clear_cache(cmd_obj)
    elif isinstance(cmd_obj, PurgeCacheCommand):
        return handle_purge_cache(cmd_obj)
    else:
        return f"Unknown command type: {type(cmd_obj)}"


def repl_loop() -> None:
    """Start interactive REPL with prompt_toolkit."""
    completer = WordCompleter(COMMANDS, ignore_case=True)
    history = InMemoryHistory()
    session: PromptSession = PromptSession(
        completer=completer, history=history, style=STYLE
    )

    clear_screen()
    show_welcome()

    while True:
        try:
            user_input = session.prompt([("class:prompt", PROMPT_TEXT)])

            if not user_input.strip():
                continue

            if user_input.strip() == "exit":
                print("Goodbye!")
                break

            if user_input.strip() == "help":
                print(HELP_TEXT)
                continue

            if user_input.strip() == "clear":
                clear_screen()
                show_welcome()
                continue

            cmd_obj = parse_command(user_input)
            result = dispatch_command(cmd_obj)
            print(result)

        except ParseError as e:
            print(f"Error: {e}")
        except KeyboardInterrupt:
            continue
        except EOFError:
            print("\nGoodbye!")
            break
