"""CLI to delete, rewrite or regenerate a span of a message in a JSON chat file."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

from ..chat.store import JsonChatStore
from ..core.errors import EditError
from ..editor.applicator import AppliedEdit
from ..editor.selection import Selection
from ..services.notifications import LoggingNotifier
from ..services.settings import SettingsStore
from ..session import EditSession
from ..utils.logging import level_for, setup_logging

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_EDIT_FAILED = 1
EXIT_USAGE = 2


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.match is None and (args.start is None or args.end is None):
        parser.error("either --match or both --start and --end are required")

    overrides = {"generation_backend": args.backend, "model": args.model, "stream": args.stream}
    settings = SettingsStore(args.settings).load(overrides=overrides)
    setup_logging(
        level_for(debug=settings.debug_logging, verbose=args.verbose),
        log_dir=args.log_dir,
        stream=sys.stderr,
        force=True,
    )

    if not args.chat.exists():
        print(f"Chat file not found: {args.chat}", file=sys.stderr)
        return EXIT_USAGE
    store = JsonChatStore(args.chat)
    message = store.get_message(args.message)
    if message is None:
        print(f"Message {args.message} not found in {args.chat}", file=sys.stderr)
        return EXIT_USAGE

    session = EditSession(store, settings=settings, notifier=LoggingNotifier(LOGGER))
    selection = _select(session, args)
    if selection is None:
        print("Selection is empty or could not be found in the rendered message", file=sys.stderr)
        return EXIT_EDIT_FAILED

    try:
        applied = asyncio.run(_run(session, selection, args))
    except EditError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_EDIT_FAILED
    if applied is None:
        print("The selection could not be applied to the raw message", file=sys.stderr)
        return EXIT_EDIT_FAILED

    if applied.no_op:
        print("Edit left the message unchanged", file=sys.stderr)
    print(applied.new_text)
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Edit a span of a chat message selected in its rendered text.")
    parser.add_argument("--settings", type=Path, help="Settings file to load (defaults to ~/.spanedit/settings.json).")
    parser.add_argument("--log-dir", type=Path, help="Directory for spanedit.log.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log applied edits to stderr.")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("chat", type=Path, help="JSON chat file to edit in place.")
    common.add_argument("--message", required=True, help="Id (index) of the message to edit.")
    common.add_argument("--start", type=int, help="Start offset in the rendered message text.")
    common.add_argument("--end", type=int, help="End offset in the rendered message text.")
    common.add_argument("--match", help="Select the first occurrence of this rendered text instead of offsets.")
    common.set_defaults(backend=None, model=None, stream=None)

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("delete", parents=[common], help="Remove the selected text.")

    rewrite = subparsers.add_parser("rewrite", parents=[common], help="Replace the selection with literal text.")
    rewrite.add_argument("--text", required=True, help="Replacement text (raw markdown).")

    generate = subparsers.add_parser("generate", parents=[common], help="Replace the selection with generated text.")
    generate.add_argument("--instructions", help="Extra guidance for the rewrite.")
    generate.add_argument("--preset", help="Generation preset to use instead of the configured one.")
    generate.add_argument("--backend", choices=("chat", "text", "responses"), help="Generation backend override.")
    generate.add_argument("--model", help="Model override.")
    generate.add_argument(
        "--stream",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Stream the generated text.",
    )
    return parser


def _select(session: EditSession, args: argparse.Namespace) -> Selection | None:
    container = session.render_container(args.message)
    text = container.text_content
    if not text.strip():
        return None
    if args.match is not None:
        start = text.find(args.match)
        if start < 0:
            return None
        end = start + len(args.match)
    else:
        start, end = args.start, args.end
    message = session.store.get_message(args.message)
    swipe_id = message.swipe_id if message is not None else None
    return session.capture_selection(args.message, container, container.range_for(start, end), swipe_id=swipe_id)


async def _run(session: EditSession, selection: Selection, args: argparse.Namespace) -> AppliedEdit | None:
    try:
        if args.command == "delete":
            return await session.delete_selection(selection)
        if args.command == "rewrite":
            return await session.rewrite_selection(selection, args.text)
        return await session.generate_rewrite(
            selection,
            instructions=args.instructions,
            stream=args.stream,
            preset=args.preset,
        )
    finally:
        await session.close()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
