"""Scratch directory maintenance for chunked uploads.

Usage (from the repository root):
    python -m tools.scratch_cleanup status
    python -m tools.scratch_cleanup clean-old --max-age 300
    python -m tools.scratch_cleanup clean-sid <SID>
    python -m tools.scratch_cleanup clean-all

Operates on disk only. Do not run clean-all against a live server: it
removes scratch for uploads still in flight.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional
from core.config import settings
from core.logging import log, setup_logging
from core.utils import is_valid_sid
from ingestion.chunk_store import ChunkStore


def clean_all(store: ChunkStore) -> int:
    """Remove every session scratch directory.

    Returns:
        int: Number of directories removed
    """
    removed = 0
    for sid, _ in store.list_sessions():
        if store.remove_session(sid):
            removed += 1
    log.info(f"Removed {removed} scratch directories")
    return removed


def clean_old(store: ChunkStore, max_age: float) -> int:
    """Remove session scratch directories not modified for max_age seconds.

    Returns:
        int: Number of directories removed
    """
    removed = 0
    for sid, age in store.list_sessions():
        if age > max_age and store.remove_session(sid):
            log.info(f"Removed stale scratch directory {sid} ({age:.0f}s old)")
            removed += 1
    log.info(f"Removed {removed} stale scratch directories")
    return removed


def clean_sid(store: ChunkStore, sid: str) -> bool:
    """Remove the scratch directory of one session.

    Returns:
        bool: True if a directory existed and was removed
    """
    if not is_valid_sid(sid):
        raise ValueError(f"Invalid session id: {sid}")
    if not store.session_dir(sid).exists():
        log.info(f"No scratch directory for {sid}")
        return False
    return store.remove_session(sid)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect and clean chunk upload scratch storage")
    parser.add_argument(
        '--root',
        type=str,
        default=settings.STORAGE_SCRATCH,
        help='Scratch root directory (default: STORAGE_SCRATCH)'
    )

    commands = parser.add_subparsers(dest='command', required=True)
    commands.add_parser('status', help='Print a JSON report of scratch usage')
    commands.add_parser('clean-all', help='Remove every scratch directory')

    old = commands.add_parser('clean-old', help='Remove scratch directories older than --max-age')
    old.add_argument(
        '--max-age',
        type=float,
        default=settings.SESSION_IDLE_TIMEOUT_SECONDS,
        help='Age threshold in seconds (default: SESSION_IDLE_TIMEOUT_SECONDS)'
    )

    one = commands.add_parser('clean-sid', help='Remove the scratch directory of one session')
    one.add_argument('sid', type=str, help='Session id')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(to_file=False)
    store = ChunkStore(Path(args.root))

    if args.command == 'status':
        print(json.dumps(store.status(), indent=2))
    elif args.command == 'clean-all':
        print(json.dumps({"deleted": clean_all(store)}))
    elif args.command == 'clean-old':
        print(json.dumps({"deleted": clean_old(store, args.max_age)}))
    elif args.command == 'clean-sid':
        try:
            removed = clean_sid(store, args.sid)
        except ValueError as e:
            print(str(e), file=sys.stderr)
            return 2
        print(json.dumps({"sid": args.sid, "deleted": removed}))

    return 0


if __name__ == "__main__":
    sys.exit(main())
