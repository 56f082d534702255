"""Reassembly of completed chunk sets into a single artifact."""

import shutil
import time
from pathlib import Path
from typing import List, Optional, Tuple
from core.errors import IntegrityError, ResourceError
from core.logging import log
from core.utils import generate_artifact_name, safe_unlink


class Reassembler:
    """Concatenates stored chunks in index order into one artifact file."""

    def __init__(self, output_dir: Path):
        """Initialize reassembler.

        Args:
            output_dir: Directory receiving reassembled artifacts
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def reassemble(self, sid: str, slots: List[Optional[Path]], filename: str) -> Path:
        """Write chunks 0..N-1 into a fresh artifact.

        Every slot is checked before any byte is written so a hole in the
        slot table never produces a truncated artifact.

        Args:
            sid: Session identifier (for logging and errors)
            slots: Chunk file per index, in index order
            filename: Client's original file name (artifact naming only)

        Returns:
            Path: Path of the reassembled artifact

        Raises:
            IntegrityError: If any slot is empty or its chunk file is missing
                or unreadable
            ResourceError: If the artifact cannot be written
        """
        for index, chunk_path in enumerate(slots):
            if chunk_path is None or not chunk_path.is_file():
                log.error(f"Session {sid}: chunk {index} missing at reassembly")
                raise IntegrityError(f"Chunk {index} is missing", sid=sid, index=index)

        final_path = self.output_dir / generate_artifact_name(filename)
        partial_path = final_path.with_name(final_path.name + ".part")
        total_size = 0

        try:
            with open(partial_path, "wb") as out:
                for index, chunk_path in enumerate(slots):
                    try:
                        with open(chunk_path, "rb") as chunk:
                            shutil.copyfileobj(chunk, out)
                    except OSError as e:
                        log.error(f"Session {sid}: chunk {index} unreadable: {str(e)}")
                        raise IntegrityError(f"Chunk {index} is unreadable", sid=sid, index=index) from e
                total_size = out.tell()
            partial_path.replace(final_path)
        except IntegrityError:
            safe_unlink(partial_path)
            raise
        except OSError as e:
            safe_unlink(partial_path)
            log.error(f"Session {sid}: failed to write artifact {final_path}: {str(e)}")
            raise ResourceError(f"Cannot write reassembled artifact for session {sid}") from e

        log.info(f"Session {sid}: merged {len(slots)} chunks into {final_path} ({total_size} bytes)")
        return final_path

    def list_artifacts(self) -> List[Tuple[Path, float]]:
        """List files in the output directory with their age in seconds (by mtime)."""
        now = time.time()
        artifacts = []
        for entry in self.output_dir.iterdir():
            try:
                if entry.is_file():
                    artifacts.append((entry, now - entry.stat().st_mtime))
            except OSError as e:
                log.warning(f"Cannot stat artifact {entry}: {str(e)}")
        return artifacts
