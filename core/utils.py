"""Utility functions for the TUID recognition backend."""

import re
import secrets
import shutil
import time
from datetime import datetime
from pathlib import Path
from typing import Optional, Union
from core.logging import log

SID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def generate_trace_id() -> str:
    """Generate a correlation ID for outgoing collaborator requests.

    Format: {timestamp}{random}

    Returns:
        str: Unique trace identifier
    """
    timestamp = datetime.now().strftime("%Y%m%d%H%M%S%f")
    random_str = secrets.token_hex(4)
    return f"{timestamp}{random_str}"


def generate_artifact_name(filename: str) -> str:
    """Build a collision-free artifact file name from the client's original name.

    Format: {stem}_{epoch_ms}_{random}{suffix}

    Args:
        filename: Original file name supplied by the client (may contain a path)

    Returns:
        str: File name safe to create inside the uploads directory
    """
    original = Path(filename.replace("\\", "/")).name
    suffix = Path(original).suffix.lower()
    stem = re.sub(r"[^A-Za-z0-9_-]", "_", Path(original).stem)[:64] or "upload"
    if not re.fullmatch(r"\.[a-z0-9]{1,5}", suffix):
        suffix = ""
    return f"{stem}_{int(time.time() * 1000)}_{secrets.token_hex(4)}{suffix}"


def derivative_path(source: Path, tag: str, extension: str = "png") -> Path:
    """Get the path for an image derivative stored next to its source.

    Args:
        source: Source image path
        tag: Derivative tag (e.g., 'fast', 'rotated')
        extension: Output extension without dot

    Returns:
        Path: {source_dir}/{source_stem}_{tag}.{extension}
    """
    return source.with_name(f"{source.stem}_{tag}.{extension}")


def is_valid_sid(sid: Optional[str]) -> bool:
    """Validate a client-supplied session id.

    The SID becomes a scratch directory name, so only a conservative
    character set is accepted.

    Args:
        sid: Session identifier

    Returns:
        bool: True if the SID is usable
    """
    return bool(sid) and SID_PATTERN.match(sid) is not None


def is_within(path: Path, root: Path) -> bool:
    """Check whether path resolves to a location inside root."""
    try:
        path.resolve().relative_to(root.resolve())
        return True
    except ValueError:
        return False


def safe_unlink(path: Optional[Union[str, Path]]) -> bool:
    """Delete a file, logging instead of raising on failure.

    Args:
        path: File to delete (None is ignored)

    Returns:
        bool: True if a file was removed
    """
    if not path:
        return False
    target = Path(path)
    try:
        if target.exists():
            target.unlink()
            log.debug(f"Removed file: {target}")
            return True
    except OSError as e:
        log.warning(f"Failed to remove file {target}: {str(e)}")
    return False


def remove_tree(path: Optional[Union[str, Path]]) -> bool:
    """Recursively delete a directory, logging instead of raising on failure.

    Args:
        path: Directory to delete (None is ignored)

    Returns:
        bool: True if the directory no longer exists
    """
    if not path:
        return True
    target = Path(path)
    if not target.exists():
        return True
    try:
        shutil.rmtree(target)
        log.debug(f"Removed directory: {target}")
        return True
    except OSError as e:
        log.warning(f"Failed to remove directory {target}: {str(e)}")
        return False

