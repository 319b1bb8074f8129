"""Minimal CLI entry point for manual testing of Gmail Mirror."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from collections.abc import Callable, Iterable
from pathlib import Path

from gmail_mirror.config.settings import GmailMirrorSettings
from gmail_mirror.core.models import INBOX, ListEntry
from gmail_mirror.session import MailboxSession
from gmail_mirror.state.events import Command, CommandEvent, Event
from gmail_mirror.state.mailbox import MailboxState

KEYS = {
    "j": Command.NAVIGATE_DOWN,
    "k": Command.NAVIGATE_UP,
    "x": Command.MARK,
    "o": Command.OPEN,
    "b": Command.CLOSE,
    "c": Command.COMPOSE,
    "e": Command.ARCHIVE,
    "d": Command.DELETE,
    "r": Command.RELOAD,
    "t": Command.TOGGLE_DETAILS,
    "\t": Command.TOGGLE_DETAILS,
    "q": Command.QUIT,
}

ARGUMENT_KEYS = {
    "l": Command.LABEL,
    "L": Command.UNLABEL,
    "g": Command.GOTO_LABEL,
    "s": Command.SEARCH,
}

WATCH_HELP = (
    "j/k move, x mark, o open, b close, t details, c compose, e archive, d delete, "
    "r reload, q quit, l NAME label, L NAME unlabel, g NAME go to label, s QUERY search"
)


def setup_logging(level: str, log_file: Path | None = None) -> None:
    """Configure logging with timestamp and module info."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        filename=str(log_file) if log_file else None,
    )


def parse_command(line: str) -> CommandEvent | None:
    """Map one line of watch-mode input to a command, or None if unrecognized."""
    if line.strip() == "" and "\t" in line:
        return CommandEvent(Command.TOGGLE_DETAILS)
    text = line.strip()
    if not text:
        return None
    key, _, argument = text.partition(" ")
    if key in ARGUMENT_KEYS:
        argument = argument.strip()
        if not argument:
            return None
        return CommandEvent(ARGUMENT_KEYS[key], argument)
    if key in KEYS and not argument:
        return CommandEvent(KEYS[key])
    return None


def format_entry(entry: ListEntry, *, selected: bool = False, marked: bool = False) -> str:
    """One list row: cursor, mark, time, sender, subject."""
    cursor = ">" if selected else " "
    mark = "*" if marked else " "
    return (
        f"{cursor}{mark} {entry.display_time():>6.6s}  "
        f"{entry.sender[:20]:20s}  {entry.subject}"
    )


def render(state: MailboxState, out: Callable[[str], None] = print) -> None:
    """Print the whole list, the opened entry and the status line."""
    out(f"--- {state.filter.describe()} ---")
    for n, entry in enumerate(state.items):
        out(format_entry(entry, selected=n == state.selection, marked=entry.entry_id in state.marked))
        if state.show_details and n == state.selection:
            out(f"      {entry.snippet}")
    if state.opened_id is not None:
        index = state.find(state.opened_id)
        if index is not None:
            opened = state.items[index]
            out(f"=== {opened.subject} ({opened.sender}) ===")
            out(opened.snippet)
    if state.status:
        out(f"[{state.status}]")


def _read_commands(post: Callable[[Event], None], stream: Iterable[str] | None = None) -> None:
    for line in stream if stream is not None else sys.stdin:
        event = parse_command(line.rstrip("\n"))
        if event is None:
            print(WATCH_HELP, file=sys.stderr)
            continue
        post(event)
        if event.command is Command.QUIT:
            return
    post(CommandEvent(Command.QUIT))


def _add_filter_args(subparser: argparse.ArgumentParser) -> None:
    """Add --label, --query, --page-size and --threads flags to a subparser."""
    group = subparser.add_mutually_exclusive_group()
    group.add_argument("--label", "-l", help="Label name or ID (default: from settings)")
    group.add_argument("--query", "-q", help="Gmail search query")
    subparser.add_argument(
        "--page-size",
        type=int,
        default=None,
        dest="page_size",
        help="Override the number of entries listed per sync",
    )
    subparser.add_argument(
        "--threads",
        action="store_true",
        help="List whole threads instead of messages",
    )


def _validate_filter_args(args: argparse.Namespace) -> None:
    """Reject non-positive page sizes."""
    if getattr(args, "page_size", None) is not None and args.page_size <= 0:
        print("Error: --page-size must be positive", file=sys.stderr)
        sys.exit(1)


def _run_sync(session: MailboxSession, args: argparse.Namespace) -> None:
    mailbox_filter = session.resolve_filter(args.label, args.query)
    result = session.sync_once(mailbox_filter, args.page_size)
    print(f"\n{result.status}\n")
    for entry in result.stubs:
        print(f"  {entry.entry_id}")
    loaded = 0
    for entry in result.iter_updates():
        loaded += 1
        print(format_entry(entry))
    abandoned = result.updates.abandoned
    print(f"\nHydrated {loaded} of {len(result.stubs)} entries, checkpoint {result.checkpoint}")
    if abandoned:
        print(f"Gave up on: {', '.join(abandoned)}")


def _run_watch(session: MailboxSession, args: argparse.Namespace) -> None:
    mailbox_filter = session.resolve_filter(args.label, args.query)
    # Fail before entering the loop if the account is unreachable.
    profile = session.profile()
    print(f"Watching {profile.email_address}. {WATCH_HELP}")

    reducer = session.reducer(mailbox_filter, page_size=args.page_size)
    scheduler = session.scheduler(reducer)
    last: list[MailboxState] = []

    def on_render(state: MailboxState) -> None:
        if last and last[0] == state:
            return
        last[:] = [state]
        render(state)

    threading.Thread(
        target=_read_commands, args=(reducer.post,), name="input", daemon=True
    ).start()
    scheduler.start()
    try:
        reducer.run(on_render=on_render)
    finally:
        scheduler.stop(timeout=1.0)


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Gmail Mirror - Browse and sync a Gmail mailbox"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # list-labels command
    subparsers.add_parser("list-labels", help="List all Gmail labels")

    # sync command
    sync_parser = subparsers.add_parser("sync", help="Run one sync cycle and print it")
    _add_filter_args(sync_parser)

    # watch command
    watch_parser = subparsers.add_parser(
        "watch", help="Keep the mailbox in sync and accept line commands"
    )
    _add_filter_args(watch_parser)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command in ("sync", "watch"):
        _validate_filter_args(args)

    settings = GmailMirrorSettings()
    if getattr(args, "threads", False):
        settings = settings.model_copy(update={"thread_view": True})
    settings.ensure_directories()
    setup_logging(settings.log_level, settings.log_file)

    session = MailboxSession(settings=settings)

    try:
        if args.command == "list-labels":
            labels = session.list_labels()
            print(f"\nFound {len(labels)} labels:\n")
            for label in sorted(labels, key=lambda x: (x.label_id != INBOX, x.name.lower())):
                print(f"  {label.label_id:40s} {label.name}")

        elif args.command == "sync":
            _run_sync(session, args)

        elif args.command == "watch":
            _run_watch(session, args)

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
