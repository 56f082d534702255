"""Upload session tracking for chunked image uploads.

One session exists per client upload attempt (SID). Chunks may arrive in any
order and in parallel; the manager is the single writer of session state and
serializes work per SID, while different SIDs proceed independently.
"""

import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional
from core.config import settings
from core.errors import ClientInputError, ResourceError, SessionClosedError
from core.logging import log
from core.utils import is_valid_sid, safe_unlink
from ingestion.chunk_store import ChunkStore
from ingestion.reassembler import Reassembler
from ingestion.session_store import InMemorySessionStore, SessionStore

STATUS_PENDING = "pending"
STATUS_COMPLETE = "complete"


@dataclass
class UploadSession:
    """State of one in-flight chunked upload."""
    sid: str
    total_chunks: int
    scratch_dir: Path
    created_at: float
    slots: List[Optional[Path]] = field(default_factory=list)
    received: int = 0

    def __post_init__(self):
        if not self.slots:
            self.slots = [None] * self.total_chunks

    @property
    def is_complete(self) -> bool:
        return self.received == self.total_chunks


@dataclass
class ChunkResult:
    """Outcome of submitting one chunk."""
    status: str
    sid: str
    index: int
    total: int
    received: int
    artifact_path: Optional[Path] = None
    duplicate: bool = False


class UploadSessionManager:
    """Owns upload sessions: chunk bookkeeping, completion, reassembly, expiry."""

    def __init__(self,
                 chunk_store: ChunkStore,
                 reassembler: Reassembler,
                 store: Optional[SessionStore] = None,
                 idle_timeout: Optional[float] = None,
                 max_chunk_count: Optional[int] = None,
                 max_chunk_bytes: Optional[int] = None,
                 clock: Callable[[], float] = time.monotonic):
        """Initialize session manager.

        Args:
            chunk_store: Scratch storage for chunks
            reassembler: Builds the artifact once every chunk is stored
            store: Session store (in-memory store if None)
            idle_timeout: Seconds before a session is reaped. If None, uses settings
            max_chunk_count: Upper bound on declared chunk totals. If None, uses settings
            max_chunk_bytes: Upper bound on a single chunk. If None, uses settings
            clock: Monotonic time source (injectable for tests)
        """
        self.chunk_store = chunk_store
        self.reassembler = reassembler
        self.store = store if store is not None else InMemorySessionStore()
        self.idle_timeout = idle_timeout if idle_timeout is not None else settings.SESSION_IDLE_TIMEOUT_SECONDS
        self.max_chunk_count = max_chunk_count or settings.MAX_CHUNK_COUNT
        self.max_chunk_bytes = max_chunk_bytes or settings.MAX_CHUNK_SIZE_MB * 1024 * 1024
        self.clock = clock

        # SIDs that completed recently; stray chunks for them are rejected
        self._closed: Dict[str, float] = {}
        # Reassembled artifacts not yet reaped, by completion time
        self._artifacts: Dict[Path, float] = {}
        self._closed_lock = threading.Lock()

    def submit_chunk(self,
                     sid: str,
                     index: int,
                     total_count: int,
                     data: bytes,
                     filename: str) -> ChunkResult:
        """Store one chunk and reassemble the upload once it is complete.

        Args:
            sid: Client-supplied session id
            index: Zero-based chunk index
            total_count: Declared number of chunks for this upload
            data: Raw chunk bytes
            filename: Original file name of the upload

        Returns:
            ChunkResult: pending (with progress counters) or complete (with
                the artifact path)

        Raises:
            ClientInputError: Invalid parameters or a stray chunk for a
                completed session
            IntegrityError: A chunk went missing before reassembly
            ResourceError: Scratch or artifact storage failed
        """
        self._validate(sid, index, total_count, data, filename)

        with self.store.lock(sid):
            session = self.store.get(sid)

            if session is None:
                if self._recently_closed(sid):
                    log.warning(f"Rejecting chunk {index} for already completed session {sid}")
                    raise SessionClosedError(f"Upload session {sid} is already complete")
                log.info(f"Creating upload session {sid} ({total_count} chunks)")
                session = self._open_session(sid, total_count)
            elif session.total_chunks != total_count:
                log.info(f"Chunk total changed for session {sid} "
                         f"({session.total_chunks} -> {total_count}), restarting session")
                self._discard(session)
                session = self._open_session(sid, total_count)

            if session.slots[index] is not None:
                log.info(f"Duplicate chunk {index} for session {sid} ignored")
                return ChunkResult(
                    status=STATUS_PENDING,
                    sid=sid,
                    index=index,
                    total=session.total_chunks,
                    received=session.received,
                    duplicate=True,
                )

            try:
                chunk_path = self.chunk_store.write_chunk(sid, index, data)
            except ResourceError:
                self._discard(session)
                raise

            session.slots[index] = chunk_path
            session.received += 1
            log.info(f"Chunk {index} stored for session {sid}. Progress: {session.received}/{session.total_chunks}")

            if not session.is_complete:
                return ChunkResult(
                    status=STATUS_PENDING,
                    sid=sid,
                    index=index,
                    total=session.total_chunks,
                    received=session.received,
                )

            log.info(f"All chunks received for session {sid}, reassembling")
            try:
                artifact_path = self.reassembler.reassemble(sid, session.slots, filename)
            finally:
                # Scratch is released whether or not reassembly succeeded
                self._discard(session)

            with self._closed_lock:
                self._closed[sid] = self.clock()
                self._artifacts[artifact_path] = self.clock()

            return ChunkResult(
                status=STATUS_COMPLETE,
                sid=sid,
                index=index,
                total=session.total_chunks,
                received=session.received,
                artifact_path=artifact_path,
            )

    def reap(self) -> List[str]:
        """Remove sessions older than the idle timeout, complete or not.

        Also clears completion markers past the timeout, deletes reassembled
        artifacts that were never picked up for recognition, and sweeps scratch
        directories and uploads that no live session owns (left behind by a
        previous process).

        Returns:
            list: SIDs and artifact names that were removed
        """
        now = self.clock()
        reaped = []

        for sid, age in self.store.list_with_age(now):
            if age <= self.idle_timeout:
                continue
            with self.store.lock(sid):
                session = self.store.get(sid)
                # Re-check under the lock: the session may have completed or been replaced
                if session is not None and now - session.created_at > self.idle_timeout:
                    log.info(f"Reaping idle upload session {sid} "
                             f"({session.received}/{session.total_chunks} chunks, {now - session.created_at:.0f}s old)")
                    self._discard(session)
                    reaped.append(sid)

        with self._closed_lock:
            for sid, closed_at in list(self._closed.items()):
                if now - closed_at > self.idle_timeout:
                    del self._closed[sid]
            expired = [path for path, completed_at in self._artifacts.items()
                       if now - completed_at > self.idle_timeout]
            for path in expired:
                del self._artifacts[path]
            tracked = set(self._artifacts)

        for path in expired:
            if path.exists():
                log.info(f"Removing unclaimed upload {path.name}")
                safe_unlink(path)
                reaped.append(path.name)

        for path, age in self.reassembler.list_artifacts():
            if path in tracked or path in expired or age <= self.idle_timeout:
                continue
            log.info(f"Removing orphan upload {path.name} ({age:.0f}s old)")
            safe_unlink(path)
            reaped.append(path.name)

        for sid, age in self.chunk_store.list_sessions():
            if age <= self.idle_timeout:
                continue
            with self.store.lock(sid):
                if self.store.get(sid) is None:
                    log.info(f"Removing orphan scratch directory for {sid} ({age:.0f}s old)")
                    self.chunk_store.remove_session(sid)
                    reaped.append(sid)

        return reaped

    def active_sessions(self) -> int:
        """Number of sessions currently tracked."""
        return len(self.store)

    def get_session(self, sid: str) -> Optional[UploadSession]:
        """Return the live session for sid, if any."""
        return self.store.get(sid)

    def _validate(self, sid: str, index: int, total_count: int, data: bytes, filename: str) -> None:
        if not is_valid_sid(sid):
            raise ClientInputError("Session id is missing or malformed")
        if not isinstance(total_count, int) or total_count <= 0:
            raise ClientInputError("Chunk total must be a positive integer")
        if total_count > self.max_chunk_count:
            raise ClientInputError(f"Chunk total exceeds the limit of {self.max_chunk_count}")
        if not isinstance(index, int) or index < 0 or index >= total_count:
            raise ClientInputError(f"Chunk index must be within 0..{total_count - 1}")
        if not data:
            raise ClientInputError("Chunk data is empty")
        if len(data) > self.max_chunk_bytes:
            raise ClientInputError("Chunk exceeds the maximum chunk size")
        if not filename or not filename.strip():
            raise ClientInputError("File name is missing")

    def _recently_closed(self, sid: str) -> bool:
        with self._closed_lock:
            closed_at = self._closed.get(sid)
            return closed_at is not None and self.clock() - closed_at <= self.idle_timeout

    def _open_session(self, sid: str, total_count: int) -> UploadSession:
        scratch_dir = self.chunk_store.prepare_session(sid)
        with self._closed_lock:
            self._closed.pop(sid, None)
        session = UploadSession(
            sid=sid,
            total_chunks=total_count,
            scratch_dir=scratch_dir,
            created_at=self.clock(),
        )
        self.store.put(sid, session)
        return session

    def _discard(self, session: UploadSession) -> None:
        self.chunk_store.remove_session(session.sid)
        current = self.store.get(session.sid)
        if current is session:
            self.store.delete(session.sid)
