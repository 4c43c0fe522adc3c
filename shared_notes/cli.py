"""
CLI entry point for the shared-notes journal.

Usage:
  shared-notes run              # One pass: file every waiting note
  shared-notes watch            # Run a pass every period until Ctrl+C
  shared-notes version          # Print the package version
"""

import argparse
import sys
from pathlib import Path

from shared_notes import config, version


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="shared-notes",
        description="File shared notes from a synced folder into a datetree journal.",
    )
    parser.add_argument(
        "--notes-dir",
        type=Path,
        default=None,
        help="Folder to collect notes from (overrides SHARED_NOTES_DIR).",
    )
    parser.add_argument(
        "--target",
        type=Path,
        default=None,
        help="Journal document to file notes into (overrides SHARED_NOTES_TARGET).",
    )
    parser.add_argument(
        "--period",
        type=int,
        default=None,
        help="Seconds between passes for 'watch' (overrides SHARED_NOTES_PERIOD).",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="Run a single ingestion pass.")
    sub.add_parser("watch", help="Run ingestion passes periodically.")
    sub.add_parser("version", help="Print the version and exit.")

    args = parser.parse_args(argv)

    if args.command == "version":
        print(version())
        return

    from shared_notes.orchestrator import SharedNotesAgent

    agent = SharedNotesAgent(
        note_dir=args.notes_dir, target=args.target, period=args.period
    )

    if args.command == "run":
        count = agent.ingest()
        if count:
            print(f"Processed {count} note(s).")

    elif args.command == "watch":
        if not config.SHARED_NOTES_ENABLED:
            print("Periodic ingestion is disabled (SHARED_NOTES_ENABLED).", file=sys.stderr)
            sys.exit(1)
        print(f"Watching {agent.runner.note_dir} (Ctrl+C to stop)…")
        try:
            agent.watch()
        except KeyboardInterrupt:
            print("\nStopped.")


if __name__ == "__main__":
    main()
