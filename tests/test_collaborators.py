"""Unit tests for the remote collaborators: HTTP client, usage ledger, quota and verifier."""

import json
from datetime import date, datetime

import httpx
import pytest

from core.errors import CollaboratorFailure, QuotaExceeded
from core.remote import RemoteClient
from ocr.quota import (
    InMemoryUsageLedger,
    QuotaGuard,
    RemoteUsageLedger,
    create_usage_ledger,
    month_window,
)
from ocr.verification import TuidVerifier

URL = "https://proxy.test/api"


def mock_client(handler, name="test"):
    return RemoteClient(name, transport=httpx.MockTransport(handler))


def json_handler(body, status_code=200, requests=None):
    """Handler answering every request with the same JSON body."""
    def handler(request):
        if requests is not None:
            requests.append(request)
        return httpx.Response(status_code, json=body)
    return handler


class TestRemoteClient:
    """Test JSON transport and error mapping."""

    def test_post_json(self):
        requests = []
        client = mock_client(json_handler({"validity": "true"}, requests=requests))
        body = client.post_json(URL, {"A": 1})

        assert body == {"validity": "true"}
        assert json.loads(requests[0].content) == {"A": 1}
        assert requests[0].headers["TUID"]

    def test_trace_id_changes_per_request(self):
        requests = []
        client = mock_client(json_handler({}, requests=requests))
        client.post_json(URL, {})
        client.post_json(URL, {})
        assert requests[0].headers["TUID"] != requests[1].headers["TUID"]

    def test_missing_url(self):
        with pytest.raises(CollaboratorFailure) as info:
            mock_client(json_handler({})).post_json("", {})
        assert info.value.reason == "not_configured"

    def test_http_error_status(self):
        with pytest.raises(CollaboratorFailure) as info:
            mock_client(json_handler({}, status_code=503)).post_json(URL, {})
        assert info.value.reason == "http_error"

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(CollaboratorFailure) as info:
            mock_client(handler).post_json(URL, {})
        assert info.value.reason == "timeout"

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(CollaboratorFailure) as info:
            mock_client(handler).post_json(URL, {})
        assert info.value.reason == "transport_error"

    def test_non_json_body(self):
        client = mock_client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(CollaboratorFailure) as info:
            client.post_json(URL, {})
        assert info.value.reason == "bad_response"

    def test_non_object_body(self):
        with pytest.raises(CollaboratorFailure) as info:
            mock_client(json_handler([1, 2])).post_json(URL, {})
        assert info.value.reason == "bad_response"


class TestMonthWindow:
    """Test calendar month boundaries."""

    def test_mid_year(self):
        assert month_window(datetime(2024, 5, 17, 12, 0)) == (date(2024, 5, 1), date(2024, 6, 1))

    def test_december_rolls_over(self):
        assert month_window(datetime(2024, 12, 31, 23, 59)) == (date(2024, 12, 1), date(2025, 1, 1))


class TestRemoteUsageLedger:
    """Test the DB-proxy backed ledger."""

    def make_ledger(self, body, requests):
        client = mock_client(json_handler(body, requests=requests), name="usage_ledger")
        return RemoteUsageLedger(url=URL, db_key="main", table="OCR_LOG", client=client)

    def test_count_usage(self):
        requests = []
        ledger = self.make_ledger({"validity": "true", "data": {"DATA": [{"TUID": "42"}]}}, requests)

        assert ledger.count_usage(date(2024, 5, 1), date(2024, 6, 1)) == 42

        payload = json.loads(requests[0].content)
        assert payload["DB"] == "main"
        assert payload["RUN"] == "Y"
        assert "FROM OCR_LOG" in payload["QRY"]
        assert "DT_IN >= '2024-05-01'" in payload["QRY"]
        assert "DT_IN < '2024-06-01'" in payload["QRY"]

    def test_count_rejected(self):
        ledger = self.make_ledger({"validity": "false", "data": "syntax error"}, [])
        with pytest.raises(CollaboratorFailure) as info:
            ledger.count_usage(date(2024, 5, 1), date(2024, 6, 1))
        assert info.value.reason == "rejected"

    def test_count_malformed(self):
        ledger = self.make_ledger({"validity": "true", "data": {"DATA": []}}, [])
        with pytest.raises(CollaboratorFailure) as info:
            ledger.count_usage(date(2024, 5, 1), date(2024, 6, 1))
        assert info.value.reason == "bad_response"

    def test_record_usage_escapes_values(self):
        requests = []
        ledger = self.make_ledger({"validity": "true", "data": {}}, requests)
        ledger.record_usage("sid'1", "A123")

        query = json.loads(requests[0].content)["QRY"]
        assert query.startswith("INSERT INTO OCR_LOG")
        assert "'sid''1'" in query
        assert "'A123'" in query


class TestInMemoryUsageLedger:
    """Test the process-local ledger."""

    def test_counts_within_window(self):
        now = {"value": datetime(2024, 4, 30, 23, 0)}
        ledger = InMemoryUsageLedger(clock=lambda: now["value"])
        ledger.record_usage("s1")
        now["value"] = datetime(2024, 5, 2, 9, 0)
        ledger.record_usage("s2", "A1")
        ledger.record_usage("s3")

        assert ledger.count_usage(date(2024, 5, 1), date(2024, 6, 1)) == 2
        assert ledger.count_usage(date(2024, 4, 1), date(2024, 5, 1)) == 1

    def test_factory(self):
        assert isinstance(create_usage_ledger("memory"), InMemoryUsageLedger)
        assert isinstance(create_usage_ledger("remote"), RemoteUsageLedger)
        with pytest.raises(ValueError):
            create_usage_ledger("sqlite")


class TestQuotaGuard:
    """Test the monthly ceiling."""

    def make_guard(self, recorded, ceiling=3):
        ledger = InMemoryUsageLedger(clock=lambda: datetime(2024, 5, 10))
        for i in range(recorded):
            ledger.record_usage(f"s{i}")
        return QuotaGuard(ledger, ceiling=ceiling, clock=lambda: datetime(2024, 5, 20))

    def test_below_ceiling(self):
        status = self.make_guard(2).check()
        assert status.count == 2
        assert status.remaining == 1

    def test_at_ceiling_is_exceeded(self):
        with pytest.raises(QuotaExceeded) as info:
            self.make_guard(3).check()
        assert info.value.count == 3
        assert info.value.ceiling == 3

    def test_record_counts_toward_ceiling(self):
        guard = self.make_guard(2)
        guard.check()
        guard.record("s-new", "A1")
        with pytest.raises(QuotaExceeded):
            guard.check()

    def test_ledger_failure_propagates(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        ledger = RemoteUsageLedger(url=URL, db_key="main", table="OCR_LOG", client=mock_client(handler))
        guard = QuotaGuard(ledger, ceiling=10)
        with pytest.raises(CollaboratorFailure):
            guard.check()


class TestTuidVerifier:
    """Test the remote TUID verifier."""

    def test_confirmed(self):
        requests = []
        client = mock_client(json_handler({"validity": "true", "data": [{"TUID": "A1"}]}, requests=requests))
        result = TuidVerifier(url=URL, client=client).verify("A1")

        assert result.confirmed
        assert json.loads(requests[0].content) == {"DEBUG": "Y", "PAYLOAD": {"TUID": "A1"}}

    def test_no_match(self):
        client = mock_client(json_handler({"validity": "true", "data": []}))
        result = TuidVerifier(url=URL, client=client).verify("A1")
        assert result.ok
        assert not result.matched
        assert not result.confirmed

    def test_rejected(self):
        client = mock_client(json_handler({"validity": "false", "data": None}))
        result = TuidVerifier(url=URL, client=client).verify("A1")
        assert not result.ok
        assert not result.confirmed
        assert result.message == "TUID verification failed"

    def test_unreachable_raises(self):
        with pytest.raises(CollaboratorFailure):
            TuidVerifier(url=URL, client=mock_client(json_handler({}, status_code=500))).verify("A1")
