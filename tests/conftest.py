"""Shared fixtures: an in-memory database, a fake ledger server and a fake clock."""

from collections import deque
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import requests

from bbms.core import Settings, create_session_factory, init_db
from bbms.schemas import DeviceSnapshot, SensorKind
from bbms.services import (
    AlertLedger,
    AuditLedgerClient,
    InMemoryNotificationCenter,
    MonitoringCoordinator,
    NotificationDispatcher,
    ThresholdStore,
)

LEDGER_URL = "http://ledger.test/api"


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeLedgerSession:
    """Stands in for requests.Session against the audit ledger.

    Queued responses (or exceptions) are served first; otherwise POSTs store the
    document and GETs return everything stored so far.
    """

    def __init__(self) -> None:
        self.posts: list[dict[str, Any]] = []
        self.gets: list[dict[str, Any]] = []
        self.post_queue: deque = deque()
        self.get_queue: deque = deque()
        self.documents: list[dict[str, Any]] = []

    def add_document(self, core_id: str, data: str, minute: int | None = None, doc_id: str | None = None) -> dict:
        minute = len(self.documents) if minute is None else minute
        stamp = f"2025-01-31 10:{minute:02d}:00Z"
        document = {
            "id": doc_id or f"doc-{len(self.documents) + 1}",
            "owner": "ledger",
            "collection_id": "temperature",
            "fields": {"coreid": core_id, "data": data, "name": "temperature", "published_at": stamp},
            "creation_date": stamp,
            "update_date": stamp,
        }
        self.documents.append(document)
        return document

    def post(self, url: str, json: Any = None, headers: Any = None, timeout: Any = None) -> FakeResponse:
        self.posts.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.post_queue:
            item = self.post_queue.popleft()
            if isinstance(item, Exception):
                raise item
            return item

        fields = json["fields"]
        document = self.add_document(fields["coreid"], fields["data"])
        return FakeResponse(200, {"result": {"id": document["id"]}})

    def get(self, url: str, headers: Any = None, timeout: Any = None) -> FakeResponse:
        self.gets.append({"url": url, "headers": headers, "timeout": timeout})
        if self.get_queue:
            item = self.get_queue.popleft()
            if isinstance(item, Exception):
                raise item
            return item
        return FakeResponse(200, {"result": list(self.documents)})


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 1, 31, 10, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def settings() -> Settings:
    return replace(
        Settings(),
        database_url="sqlite://",
        poll_interval=3600,
        ledger_backoff_base=0.0,
        ledger_max_attempts=3,
        notification_cooldown=300,
        history_reload_window=2.0,
        notification_webhook_url="",
        device_feed_url="",
        log_file="",
    )


@pytest.fixture
def session_factory(settings):
    factory = create_session_factory(settings.database_url)
    init_db(factory)
    return factory


@pytest.fixture
def store(session_factory, settings) -> ThresholdStore:
    return ThresholdStore(session_factory, settings)


@pytest.fixture
def alert_ledger(session_factory) -> AlertLedger:
    ledger = AlertLedger(session_factory)
    ledger.load()
    return ledger


@pytest.fixture
def ledger_session() -> FakeLedgerSession:
    return FakeLedgerSession()


@pytest.fixture
def ledger_client(ledger_session) -> AuditLedgerClient:
    return AuditLedgerClient(LEDGER_URL, timeout=5, session=ledger_session, max_attempts=3, backoff_base=0.0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notification_center() -> InMemoryNotificationCenter:
    return InMemoryNotificationCenter()


@pytest.fixture
def dispatcher(notification_center, clock) -> NotificationDispatcher:
    return NotificationDispatcher(notification_center, cooldown_seconds=300, clock=clock)


@pytest.fixture
def coordinator(store, alert_ledger, dispatcher, ledger_client, settings) -> MonitoringCoordinator:
    return MonitoringCoordinator(store, alert_ledger, dispatcher, ledger_client, settings=settings)


@pytest.fixture
def device() -> DeviceSnapshot:
    return DeviceSnapshot(
        id="dev-1",
        name="Server Room",
        kind=SensorKind.TEMPERATURE,
        location="Floor 2",
        value=22.0,
        unit="°C",
    )


@pytest.fixture
def make_response():
    return FakeResponse
