"""Shared fixtures for the TUID backend tests."""

from pathlib import Path
import pytest

from ingestion.chunk_store import ChunkStore
from ingestion.reassembler import Reassembler
from ingestion.session_manager import UploadSessionManager
from helpers import FakeClock, draw_receipt


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scratch_dir(tmp_path):
    return tmp_path / "scratch"


@pytest.fixture
def uploads_dir(tmp_path):
    directory = tmp_path / "uploads"
    directory.mkdir()
    return directory


@pytest.fixture
def chunk_store(scratch_dir):
    return ChunkStore(scratch_dir)


@pytest.fixture
def manager(chunk_store, uploads_dir, clock):
    return UploadSessionManager(
        chunk_store=chunk_store,
        reassembler=Reassembler(uploads_dir),
        idle_timeout=300.0,
        clock=clock,
    )


@pytest.fixture
def receipt_path(uploads_dir) -> Path:
    """A portrait receipt PNG inside the uploads directory."""
    path = uploads_dir / "receipt.png"
    draw_receipt().save(path)
    return path


@pytest.fixture
def image_bytes(tmp_path) -> bytes:
    """Encoded PNG bytes of a synthetic receipt."""
    path = tmp_path / "source.png"
    draw_receipt().save(path)
    return path.read_bytes()
