"""Scratch storage for uploaded chunks, keyed by (session id, chunk index).

Layout: {root}/{sid}/{index}.tmp
"""

import time
from pathlib import Path
from typing import Any, Dict, List, Tuple
from core.errors import ResourceError
from core.logging import log
from core.utils import remove_tree


class ChunkStore:
    """Filesystem-backed chunk storage.

    Pure storage primitive: it knows nothing about session completeness,
    only how to place, locate and remove chunk files.
    """

    def __init__(self, root: Path):
        """Initialize chunk store.

        Args:
            root: Scratch root directory (created if missing)
        """
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def session_dir(self, sid: str) -> Path:
        """Get the scratch directory for a session."""
        return self.root / sid

    def chunk_path(self, sid: str, index: int) -> Path:
        """Get the scratch file path for one chunk."""
        return self.session_dir(sid) / f"{index}.tmp"

    def prepare_session(self, sid: str) -> Path:
        """Allocate an empty scratch directory for a session.

        Any leftover directory for the same SID (e.g. from a crashed process)
        is wiped first.

        Args:
            sid: Session identifier

        Returns:
            Path: The fresh session directory

        Raises:
            ResourceError: If the directory cannot be (re)created
        """
        directory = self.session_dir(sid)
        try:
            if directory.exists():
                log.info(f"Wiping stale scratch directory for session {sid}")
                remove_tree(directory)
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log.error(f"Failed to prepare scratch directory {directory}: {str(e)}")
            raise ResourceError(f"Cannot allocate scratch storage for session {sid}") from e
        return directory

    def write_chunk(self, sid: str, index: int, data: bytes) -> Path:
        """Persist one chunk.

        Args:
            sid: Session identifier
            index: Chunk index
            data: Raw chunk bytes

        Returns:
            Path: Location of the stored chunk

        Raises:
            ResourceError: If the chunk cannot be written
        """
        path = self.chunk_path(sid, index)
        try:
            path.write_bytes(data)
        except OSError as e:
            log.error(f"Failed to store chunk {index} for session {sid}: {str(e)}")
            raise ResourceError(f"Cannot store chunk {index} for session {sid}") from e
        return path

    def remove_session(self, sid: str) -> bool:
        """Delete a session's scratch directory and every chunk in it.

        Returns:
            bool: True if nothing is left on disk
        """
        return remove_tree(self.session_dir(sid))

    def list_sessions(self) -> List[Tuple[str, float]]:
        """List scratch directories with their age in seconds (by mtime)."""
        now = time.time()
        sessions = []
        for entry in self.root.iterdir():
            try:
                if entry.is_dir():
                    sessions.append((entry.name, now - entry.stat().st_mtime))
            except OSError as e:
                log.warning(f"Cannot stat scratch directory {entry}: {str(e)}")
        return sessions

    def status(self) -> Dict[str, Any]:
        """Summarize scratch usage per session directory.

        Returns:
            dict: count, total_size and per-session details
        """
        details = []
        for sid, age in self.list_sessions():
            directory = self.session_dir(sid)
            try:
                files = [f for f in directory.iterdir() if f.is_file()]
                size = sum(f.stat().st_size for f in files)
            except OSError as e:
                # Directory removed between listing and inspection
                log.debug(f"Skipping scratch directory {directory}: {str(e)}")
                continue
            details.append({
                "sid": sid,
                "path": str(directory),
                "age_seconds": round(age, 1),
                "file_count": len(files),
                "size": size,
            })
        return {
            "count": len(details),
            "total_size": sum(d["size"] for d in details),
            "details": details,
        }
