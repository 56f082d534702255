"""Monthly quota for cloud OCR calls.

The usage ledger is an external collaborator: the remote implementation
counts and records calls through the DB-proxy API, and an in-memory ledger
is available for local development and tests (``QUOTA_BACKEND=memory``).
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, List, Optional, Tuple
from core.config import settings
from core.errors import CollaboratorFailure, QuotaExceeded
from core.logging import log
from core.remote import RemoteClient
from core.utils import generate_trace_id

LEDGER_NAME = "usage_ledger"


def month_window(now: Optional[datetime] = None) -> Tuple[date, date]:
    """Return [first day of this month, first day of next month)."""
    now = now or datetime.now()
    start = date(now.year, now.month, 1)
    if now.month == 12:
        end = date(now.year + 1, 1, 1)
    else:
        end = date(now.year, now.month + 1, 1)
    return start, end


class UsageLedger(ABC):
    """Persistent record of cloud OCR invocations."""

    @abstractmethod
    def count_usage(self, start: date, end: date) -> int:
        """Count invocations recorded in [start, end).

        Raises:
            CollaboratorFailure: If the ledger cannot be queried
        """

    @abstractmethod
    def record_usage(self, sid: str, tuid: Optional[str] = None) -> None:
        """Record one invocation.

        Raises:
            CollaboratorFailure: If the entry cannot be written
        """


def _sql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class RemoteUsageLedger(UsageLedger):
    """Usage ledger stored in a database table reached through the DB-proxy API."""

    def __init__(self,
                 url: Optional[str] = None,
                 db_key: Optional[str] = None,
                 table: Optional[str] = None,
                 client: Optional[RemoteClient] = None):
        """Initialize remote ledger.

        Args:
            url: DB-proxy endpoint. If None, uses settings
            db_key: Database key understood by the proxy
            table: Log table name
            client: HTTP client (created from settings if None)
        """
        self.url = url if url is not None else settings.DB_PROXY_URL
        self.db_key = db_key if db_key is not None else settings.DB_PROXY_DB_KEY
        self.table = table or settings.GOOGLE_VISION_LOG_TABLE
        self.client = client or RemoteClient(LEDGER_NAME, timeout=settings.REMOTE_TIMEOUT_SECONDS)

    def _run_query(self, query: str) -> dict:
        payload = {
            "METHOD": "POST",
            "RUN": "Y",
            "DIRECT": "Y",
            "VIEW": "N",
            "LANG": "KR",
            "DB": self.db_key,
            "QRY": query,
            "TUID": generate_trace_id(),
        }
        body = self.client.post_json(self.url, payload)
        if body.get("validity") != "true":
            log.error(f"DB proxy rejected query: {body.get('data')}")
            raise CollaboratorFailure(LEDGER_NAME, "query was rejected", reason="rejected")
        return body

    def count_usage(self, start: date, end: date) -> int:
        query = (f"SELECT COUNT(*) as TUID FROM {self.table} "
                 f"WHERE DT_IN >= '{start.isoformat()}' AND DT_IN < '{end.isoformat()}'")
        body = self._run_query(query)
        try:
            return int(body["data"]["DATA"][0]["TUID"])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            log.error(f"Unexpected usage count response: {body}")
            raise CollaboratorFailure(LEDGER_NAME, "usage count missing from response", reason="bad_response") from e

    def record_usage(self, sid: str, tuid: Optional[str] = None) -> None:
        query = (f"INSERT INTO {self.table} (SID, TUID, DT_IN) "
                 f"VALUES ({_sql_literal(sid)}, {_sql_literal(tuid or '')}, CURRENT_TIMESTAMP)")
        self._run_query(query)


class InMemoryUsageLedger(UsageLedger):
    """Process-local ledger."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self.clock = clock
        self._entries: List[Tuple[datetime, str, Optional[str]]] = []
        self._lock = threading.Lock()

    def count_usage(self, start: date, end: date) -> int:
        with self._lock:
            return sum(1 for at, _, _ in self._entries if start <= at.date() < end)

    def record_usage(self, sid: str, tuid: Optional[str] = None) -> None:
        with self._lock:
            self._entries.append((self.clock(), sid, tuid))


@dataclass
class QuotaStatus:
    count: int
    ceiling: int

    @property
    def remaining(self) -> int:
        return max(0, self.ceiling - self.count)


class QuotaGuard:
    """Gates cloud OCR calls on the monthly usage count."""

    def __init__(self,
                 ledger: UsageLedger,
                 ceiling: Optional[int] = None,
                 clock: Callable[[], datetime] = datetime.now):
        """Initialize quota guard.

        Args:
            ledger: Usage ledger to query and append to
            ceiling: Maximum cloud calls per calendar month. If None, uses settings
            clock: Wall-clock source for the month window
        """
        self.ledger = ledger
        self.ceiling = ceiling if ceiling is not None else settings.OCR_MONTHLY_QUOTA
        self.clock = clock

    def check(self) -> QuotaStatus:
        """Confirm a cloud call is allowed this month.

        Returns:
            QuotaStatus: Current count and ceiling

        Raises:
            QuotaExceeded: If the count is at or above the ceiling
            CollaboratorFailure: If the ledger cannot be queried
        """
        start, end = month_window(self.clock())
        count = self.ledger.count_usage(start, end)
        log.info(f"Cloud OCR usage this month: {count}/{self.ceiling}")
        if count >= self.ceiling:
            raise QuotaExceeded(count, self.ceiling)
        return QuotaStatus(count=count, ceiling=self.ceiling)

    def record(self, sid: str, tuid: Optional[str] = None) -> None:
        """Append one cloud call to the ledger.

        Raises:
            CollaboratorFailure: If the entry cannot be written
        """
        self.ledger.record_usage(sid, tuid)
        log.info(f"Cloud OCR usage recorded ({sid})")


def create_usage_ledger(backend: Optional[str] = None) -> UsageLedger:
    """Build the ledger selected by QUOTA_BACKEND."""
    backend = (backend or settings.QUOTA_BACKEND).lower()
    if backend == "memory":
        log.info("Using in-memory cloud OCR usage ledger")
        return InMemoryUsageLedger()
    if backend == "remote":
        return RemoteUsageLedger()
    raise ValueError(f"Unknown quota backend: {backend}")
