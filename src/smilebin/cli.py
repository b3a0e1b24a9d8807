"""CLI entry point for smilebin."""

import argparse
import asyncio
import os
import sys

from dotenv import load_dotenv

# Load .env file before other imports that may need env vars
load_dotenv()

from .config import load_config
from .errors import IncompleteAnnotation, RangeDeclined, SmilebinError
from .logging_utils import configure_logging
from .models import FileAnnotations
from .session import Session, open_session

# Commands that exit as soon as they are done, taking an in-memory store with them
ONE_SHOT_COMMANDS = ("list", "add", "delete", "toggle")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smilebin",
        description="Leave smiles on lines of code and keep them in place as the file changes.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (can be specified multiple times)",
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help=(
            "Keep annotations in memory instead of talking to the backend. "
            "They last as long as the process, so this is mainly for view and serve"
        ),
    )
    commands = parser.add_subparsers(dest="command", required=True)

    list_cmd = commands.add_parser("list", help="Show the smiles on a file")
    list_cmd.add_argument("file")

    add_cmd = commands.add_parser("add", help="Smile at a committed line range")
    add_cmd.add_argument("file")
    add_cmd.add_argument("start", type=int)
    add_cmd.add_argument("end", type=int, nargs="?")
    add_cmd.add_argument("-m", "--message", default="", help="Text of the annotation")
    add_cmd.add_argument("-e", "--emoticon", default="smile", help="Emoticon (default: smile)")

    delete_cmd = commands.add_parser("delete", help="Remove an annotation by id")
    delete_cmd.add_argument("id")

    toggle_cmd = commands.add_parser("toggle", help="Add or remove the smile on a line")
    toggle_cmd.add_argument("file")
    toggle_cmd.add_argument("line", type=int)
    toggle_cmd.add_argument("-e", "--emoticon", default="smile")

    view_cmd = commands.add_parser("view", help="Browse a file and its smiles in a TUI")
    view_cmd.add_argument("file")

    serve_cmd = commands.add_parser("serve", help="Start the web API")
    serve_cmd.add_argument(
        "--port", type=int, default=8000, help="Port for web server (default: 8000)"
    )

    return parser


def print_annotations(result: FileAnnotations) -> None:
    if result.error:
        print(f"Warning: could not fetch smiles: {result.error}", file=sys.stderr)
    if not result.annotations:
        print(f"No smiles on {result.path}")
        return

    print(f"Smiles on {result.path}:")
    for resolved in sorted(
        result.annotations, key=lambda a: (a.start_line is None, a.start_line or 0)
    ):
        annotation = resolved.annotation
        if resolved.is_placed:
            where = f"{resolved.start_line}-{resolved.end_line}"
        else:
            where = f"(gone: {resolved.error})"
        text = f" {annotation.text}" if annotation.text else ""
        print(f"  [{annotation.id}] {where} :{annotation.emoticon}:{text}")


async def run_command(args: argparse.Namespace, session: Session) -> int:
    resolver = session.resolver
    try:
        if args.command == "list":
            print_annotations(await session.fetch(args.file))
        elif args.command == "add":
            end = args.end if args.end is not None else args.start
            annotation_id = await resolver.create_annotation(
                args.file, args.message, args.emoticon, args.start, end
            )
            print(f"Created annotation {annotation_id}")
        elif args.command == "delete":
            if await resolver.delete_annotation(args.id):
                print(f"Deleted annotation {args.id}")
            else:
                print(f"Annotation {args.id} does not exist; nothing to delete")
        elif args.command == "toggle":
            outcome = await resolver.toggle_smile(args.file, args.line, emoticon=args.emoticon)
            print(f"Smile {outcome.action}: {', '.join(outcome.annotation_ids)}")
    except RangeDeclined as exc:
        print(f"Declined: {exc}", file=sys.stderr)
        return 2
    except IncompleteAnnotation as exc:
        print(f"Error: {exc}", file=sys.stderr)
        print(
            f"Delete annotation {exc.annotation_id} and try again", file=sys.stderr
        )
        return 1
    except (SmilebinError, ValueError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        await session.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the smilebin CLI."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(offline=args.offline)
        configure_logging(args.verbose, level=config.log_level)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.command == "serve":
        if args.offline:
            os.environ["SMILEBIN_OFFLINE"] = "1"
        from .web.app import run_server

        print(f"Starting web server on http://127.0.0.1:{args.port}")
        print("Press Ctrl+C to stop the server.")
        run_server(port=args.port)
        return 0

    session = open_session(config)
    if config.offline and args.command in ONE_SHOT_COMMANDS:
        print(
            "Note: --offline keeps smiles in memory; they are gone when this command exits",
            file=sys.stderr,
        )

    if args.command == "view":
        from .tui import run_tui

        run_tui(session, args.file)
        return 0

    try:
        return asyncio.run(run_command(args, session))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
