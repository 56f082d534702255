"""API tests for the upload, recognition and health endpoints."""

import json

import pytest
from fastapi.testclient import TestClient

from api.dependencies import (
    get_local_engine,
    get_pipeline,
    get_session_manager,
    get_uploads_dir,
    get_vision_engine,
)
from core.errors import FailureReason
from ocr.pipeline import PipelineResult
from helpers import split_bytes
from main import app

UPLOAD_URL = "/api/apply/verification/img"
OCR_URL = "/api/apply/verification/ocr"


class StubPipeline:
    """Returns a fixed result and records the paths it was given."""

    def __init__(self, result=None, error=None):
        self.result = result or PipelineResult(success=True, tuid="A123456789012345678", message="TUID extracted")
        self.error = error
        self.paths = []

    def run(self, artifact_path, sid=None):
        self.paths.append(artifact_path)
        if self.error:
            raise self.error
        return self.result


class StubEngine:
    def __init__(self, available=True):
        self.available = available

    def is_available(self):
        return self.available


@pytest.fixture
def pipeline():
    return StubPipeline()


@pytest.fixture
def client(manager, uploads_dir, pipeline):
    """TestClient with service dependencies replaced (lifespan not started)."""
    app.dependency_overrides[get_session_manager] = lambda: manager
    app.dependency_overrides[get_uploads_dir] = lambda: uploads_dir
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_local_engine] = lambda: StubEngine(available=True)
    app.dependency_overrides[get_vision_engine] = lambda: StubEngine(available=False)
    yield TestClient(app)
    app.dependency_overrides.clear()


def upload(client, sid, index, total, data, filename="receipt.png"):
    return client.post(
        UPLOAD_URL,
        data={
            "CHUNK_IDX": str(index),
            "CHUNK_TOTAL": str(total),
            "FILENAME": filename,
            "PAYLOAD": json.dumps({"TUID": sid}),
        },
        files={"CHUNK": ("blob", data, "application/octet-stream")},
    )


class TestUploadEndpoint:
    """Test chunked upload over HTTP."""

    def test_progress_then_complete(self, client, image_bytes, uploads_dir):
        pieces = split_bytes(image_bytes, 3)

        first = upload(client, "sid-1", 2, 3, pieces[2])
        assert first.status_code == 200
        body = first.json()
        assert body["validity"] == "progress"
        assert body["status"] == "pending"
        assert body["data"]["message"] == "Chunk processed"
        assert body["data"]["DATA"] == {"chunk": 3, "total": 3, "sid": "sid-1", "received": 1}

        upload(client, "sid-1", 0, 3, pieces[0])
        last = upload(client, "sid-1", 1, 3, pieces[1])
        body = last.json()
        assert body["validity"] == "true"
        assert body["status"] == "complete"

        artifact = body["data"]["DATA"]
        assert artifact.startswith(str(uploads_dir))
        with open(artifact, "rb") as f:
            assert f.read() == image_bytes

    def test_missing_fields(self, client):
        response = client.post(UPLOAD_URL, data={"CHUNK_IDX": "0"})
        assert response.status_code == 400
        body = response.json()
        assert body["validity"] == "false"
        assert body["reason"] == "client_error"

    def test_payload_without_session_id(self, client):
        response = client.post(
            UPLOAD_URL,
            data={"CHUNK_IDX": "0", "CHUNK_TOTAL": "1", "FILENAME": "a.png", "PAYLOAD": "{}"},
            files={"CHUNK": ("blob", b"abc", "application/octet-stream")},
        )
        assert response.status_code == 400

    def test_non_integer_index(self, client):
        response = client.post(
            UPLOAD_URL,
            data={"CHUNK_IDX": "first", "CHUNK_TOTAL": "1", "FILENAME": "a.png",
                  "PAYLOAD": json.dumps({"TUID": "s"})},
            files={"CHUNK": ("blob", b"abc", "application/octet-stream")},
        )
        assert response.status_code == 400
        assert "CHUNK_IDX" in response.json()["data"]["message"]

    def test_index_out_of_range(self, client):
        assert upload(client, "sid-2", 5, 3, b"abc").status_code == 400

    def test_stray_chunk_after_completion(self, client, image_bytes):
        assert upload(client, "sid-3", 0, 1, image_bytes).json()["validity"] == "true"
        assert upload(client, "sid-3", 0, 1, image_bytes).status_code == 400

    def test_lost_chunk_is_conflict(self, client, chunk_store, image_bytes):
        pieces = split_bytes(image_bytes, 2)
        upload(client, "sid-4", 0, 2, pieces[0])
        chunk_store.chunk_path("sid-4", 0).unlink()

        response = upload(client, "sid-4", 1, 2, pieces[1])
        assert response.status_code == 409
        assert response.json()["reason"] == "integrity_error"

    def test_oversized_chunk(self, client, manager):
        """A chunk one byte over the limit is refused before a session opens."""
        manager.max_chunk_bytes = 4
        response = upload(client, "sid-5", 0, 2, b"12345")
        assert response.status_code == 400
        assert response.json()["data"]["message"] == "Chunk exceeds the maximum chunk size"
        assert manager.get_session("sid-5") is None

    def test_chunk_at_limit(self, client, manager):
        manager.max_chunk_bytes = 4
        response = upload(client, "sid-6", 0, 2, b"1234")
        assert response.status_code == 200
        assert response.json()["status"] == "pending"


class TestRecognizeEndpoint:
    """Test the OCR endpoint envelope."""

    def test_success(self, client, pipeline, receipt_path):
        response = client.post(OCR_URL, json={"IMG_PATH": str(receipt_path)})
        body = response.json()
        assert response.status_code == 200
        assert body["validity"] == "true"
        assert body["data"]["DATA"] == "A123456789012345678"
        assert pipeline.paths == [receipt_path]

    def test_failure_carries_reason(self, client, pipeline, receipt_path):
        pipeline.result = PipelineResult(
            success=False,
            reason=FailureReason.QUOTA_EXCEEDED,
            message="Cloud OCR usage limit exceeded",
        )
        body = client.post(OCR_URL, json={"IMG_PATH": str(receipt_path)}).json()
        assert body["validity"] == "false"
        assert body["reason"] == "quota_exceeded"
        assert body["data"]["message"] == "Cloud OCR usage limit exceeded"

    def test_blank_path(self, client, pipeline):
        body = client.post(OCR_URL, json={"IMG_PATH": "  "}).json()
        assert body["reason"] == "missing_input"
        assert pipeline.paths == []

    def test_missing_path(self, client, pipeline):
        body = client.post(OCR_URL, json={}).json()
        assert body["reason"] == "missing_input"

    def test_path_outside_uploads_is_refused(self, client, pipeline, tmp_path):
        outside = tmp_path / "secret.png"
        outside.write_bytes(b"keep me")

        body = client.post(OCR_URL, json={"IMG_PATH": str(outside)}).json()
        assert body["reason"] == "missing_input"
        assert pipeline.paths == []
        assert outside.exists()

    def test_traversal_is_refused(self, client, pipeline, uploads_dir):
        body = client.post(OCR_URL, json={"IMG_PATH": str(uploads_dir / ".." / "x.png")}).json()
        assert body["reason"] == "missing_input"
        assert pipeline.paths == []

    def test_unexpected_error(self, client, pipeline, receipt_path):
        pipeline.error = RuntimeError("boom")
        response = client.post(OCR_URL, json={"IMG_PATH": str(receipt_path)})
        assert response.status_code == 500
        assert response.json()["data"]["message"] == "OCR failed"

    def test_unexpected_error_with_braces(self, client, pipeline, receipt_path):
        """Exception text containing format braces still yields the error envelope."""
        pipeline.error = RuntimeError("bad {'k': 1}")
        response = client.post(OCR_URL, json={"IMG_PATH": str(receipt_path)})
        assert response.status_code == 500
        body = response.json()
        assert body["validity"] == "false"
        assert body["reason"] == "internal_error"
        assert body["data"]["message"] == "OCR failed"


class TestHealthEndpoint:
    """Test health reporting."""

    def test_health(self, client, manager):
        manager.submit_chunk("open-session", 0, 2, b"abc", "a.png")
        body = client.get("/api/health").json()

        assert body["status"] == "healthy"
        assert body["dependencies"]["tesseract"] == "available"
        assert body["dependencies"]["google_vision_credentials"] == "unavailable"
        assert body["active_sessions"] == 1
