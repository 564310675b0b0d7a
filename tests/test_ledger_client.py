"""Tests for the audit ledger client: retried writes and stale-while-revalidate reads."""

import asyncio
import json
import threading

import pytest
import requests

from bbms.core.exceptions import LedgerErrorKind, LedgerReadError, LedgerWriteError
from bbms.schemas import AuditDocument, AuditRecord
from bbms.services import AuditCycle, AuditLedgerClient, LedgerState, extract_temperature, is_audit_event

LEDGER_URL = "http://ledger.test/api"


def _record(core_id="dev-1", payload='{"temp": "45.0°C"}'):
    return AuditRecord(core_id=core_id, name="temperature", payload=payload)


class TestAppend:
    def test_append_returns_document_id(self, ledger_client, ledger_session):
        document_id = asyncio.run(ledger_client.append(_record()))

        assert document_id == "doc-1"
        post = ledger_session.posts[0]
        assert post["url"] == f"{LEDGER_URL}/documents"
        assert post["json"]["fields"]["coreid"] == "dev-1"
        assert post["json"]["fields"]["data"] == '{"temp": "45.0°C"}'
        assert "Authorization" not in post["headers"]

    def test_bearer_token_is_sent(self, ledger_session):
        client = AuditLedgerClient(LEDGER_URL, token="secret", session=ledger_session, backoff_base=0.0)
        asyncio.run(client.append(_record()))

        assert ledger_session.posts[0]["headers"]["Authorization"] == "Bearer secret"

    def test_transient_failure_is_retried(self, ledger_client, ledger_session, make_response):
        ledger_session.post_queue.extend(
            [make_response(503), requests.ConnectionError("reset"), make_response(200, {"id": "abc"})]
        )

        assert asyncio.run(ledger_client.append(_record())) == "abc"
        assert len(ledger_session.posts) == 3

    def test_retries_are_bounded(self, ledger_client, ledger_session):
        ledger_session.post_queue.extend([requests.Timeout("slow")] * 5)

        with pytest.raises(LedgerWriteError) as excinfo:
            asyncio.run(ledger_client.append(_record()))

        assert excinfo.value.kind is LedgerErrorKind.WRITE_FAILURE
        assert len(ledger_session.posts) == 3
        assert "after 3 attempts" in ledger_client.error_message

    def test_client_error_is_not_retried(self, ledger_client, ledger_session, make_response):
        ledger_session.post_queue.append(make_response(400, {"error": "bad document"}))

        with pytest.raises(LedgerWriteError):
            asyncio.run(ledger_client.append(_record()))
        assert len(ledger_session.posts) == 1

    def test_response_without_id_is_a_write_failure(self, ledger_client, ledger_session, make_response):
        ledger_session.post_queue.append(make_response(200, {"result": {}}))

        with pytest.raises(LedgerWriteError):
            asyncio.run(ledger_client.append(_record()))


class TestRefresh:
    def test_refresh_caches_documents(self, ledger_client, ledger_session):
        ledger_session.add_document("dev-1", '{"temp": "25.0°C"}')
        ledger_session.add_document("dev-1", '{"temp": "26.0°C"}')

        documents = asyncio.run(ledger_client.refresh())

        assert len(documents) == 2
        assert ledger_client.is_stale is False
        assert ledger_client.error_message is None
        assert ledger_session.gets[0]["url"] == f"{LEDGER_URL}/documents/all"

    def test_latest_is_chosen_by_update_time(self, ledger_client, ledger_session):
        ledger_session.add_document("dev-1", "30°C", minute=20, doc_id="newest")
        ledger_session.add_document("dev-1", "20°C", minute=5, doc_id="older")

        asyncio.run(ledger_client.refresh())

        assert ledger_client.latest_document.id == "newest"
        assert [doc.id for doc in ledger_client.documents] == ["newest", "older"]

    def test_failed_refresh_keeps_cache(self, ledger_client, ledger_session, make_response):
        ledger_session.add_document("dev-1", "25°C", doc_id="kept")
        asyncio.run(ledger_client.refresh())

        ledger_session.get_queue.append(make_response(500))
        with pytest.raises(LedgerReadError):
            asyncio.run(ledger_client.refresh())

        assert [doc.id for doc in ledger_client.documents] == ["kept"]
        assert ledger_client.latest_document.id == "kept"
        assert ledger_client.is_stale is True
        assert ledger_client.error_message == "Ledger error: 500"

        asyncio.run(ledger_client.refresh())
        assert ledger_client.is_stale is False
        assert ledger_client.error_message is None

    def test_network_error_is_a_read_failure(self, ledger_client, ledger_session):
        ledger_session.get_queue.append(requests.ConnectionError("refused"))

        with pytest.raises(LedgerReadError) as excinfo:
            asyncio.run(ledger_client.refresh())
        assert excinfo.value.kind is LedgerErrorKind.READ_FAILURE
        assert ledger_client.error_message.startswith("Network error")

    def test_confirmed_empty_clears_latest(self, ledger_client, ledger_session):
        ledger_session.add_document("dev-1", "25°C")
        asyncio.run(ledger_client.refresh())

        ledger_session.documents.clear()
        asyncio.run(ledger_client.refresh())

        assert ledger_client.documents == []
        assert ledger_client.latest_document is None

    def test_partial_decode_keeps_good_documents(self, ledger_client, ledger_session):
        ledger_session.add_document("dev-1", "25°C", doc_id="good")
        ledger_session.documents.append({"id": "broken"})

        asyncio.run(ledger_client.refresh())

        assert [doc.id for doc in ledger_client.documents] == ["good"]
        assert ledger_client.error_message == "Loaded 1/2 documents (some had data issues)"
        assert ledger_client.is_stale is False

    def test_nothing_decodable_is_a_read_failure(self, ledger_client, ledger_session):
        ledger_session.documents.extend([{"id": "a"}, "not a document"])

        with pytest.raises(LedgerReadError):
            asyncio.run(ledger_client.refresh())
        assert ledger_client.is_stale is True

    def test_concurrent_refreshes_share_one_request(self, ledger_client, ledger_session):
        ledger_session.add_document("dev-1", "25°C")

        async def scenario():
            return await asyncio.gather(ledger_client.refresh(), ledger_client.refresh())

        first, second = asyncio.run(scenario())

        assert len(ledger_session.gets) == 1
        assert [doc.id for doc in first] == [doc.id for doc in second]


class TestAuditCycle:
    def test_successful_cycle(self, ledger_client, ledger_session):
        cycle = asyncio.run(ledger_client.append_and_refresh(_record()))

        assert cycle.succeeded
        assert cycle.history == [
            LedgerState.IDLE,
            LedgerState.WRITING,
            LedgerState.WRITTEN,
            LedgerState.REFRESHING,
            LedgerState.IDLE,
        ]
        assert ledger_client.latest_document.id == cycle.document_id
        assert ledger_client.last_cycle is cycle

    def test_failed_write_skips_refresh(self, ledger_client, ledger_session):
        ledger_session.post_queue.extend([requests.ConnectionError("down")] * 3)

        cycle = asyncio.run(ledger_client.append_and_refresh(_record()))

        assert not cycle.succeeded
        assert cycle.history == [
            LedgerState.IDLE,
            LedgerState.WRITING,
            LedgerState.WRITE_FAILED,
            LedgerState.IDLE,
        ]
        assert isinstance(cycle.error, LedgerWriteError)
        assert ledger_session.gets == []

    def test_failed_refresh_still_returns_to_idle(self, ledger_client, ledger_session, make_response):
        ledger_session.get_queue.append(make_response(404))

        cycle = asyncio.run(ledger_client.append_and_refresh(_record()))

        assert cycle.succeeded
        assert cycle.state is LedgerState.IDLE
        assert isinstance(cycle.error, LedgerReadError)
        assert ledger_client.is_stale is True

    def test_append_during_refresh_ends_with_its_own_document(self, ledger_client, ledger_session):
        ledger_session.add_document("dev-1", "25°C", minute=0, doc_id="old")
        asyncio.run(ledger_client.refresh())

        snapshot_taken = threading.Event()
        release = threading.Event()
        serve = ledger_session.get

        def slow_get(url, headers=None, timeout=None):
            response = serve(url, headers=headers, timeout=timeout)
            if not snapshot_taken.is_set():
                snapshot_taken.set()
                release.wait(5)
            return response

        ledger_session.get = slow_get

        async def scenario():
            poll = asyncio.create_task(ledger_client.refresh())
            await asyncio.to_thread(snapshot_taken.wait, 5)

            append = asyncio.create_task(ledger_client.append_and_refresh(_record()))
            while ledger_client.last_cycle is None or ledger_client.last_cycle.state is not LedgerState.REFRESHING:
                await asyncio.sleep(0.01)

            # the write landed but the earlier read is still out
            mid_flight = (ledger_client.latest_document.id, [doc.id for doc in ledger_client.documents])
            release.set()
            await poll
            return mid_flight, await append

        mid_flight, cycle = asyncio.run(scenario())

        assert mid_flight == ("old", ["old"])
        assert cycle.state is LedgerState.IDLE
        assert cycle.error is None
        assert ledger_client.latest_document.id == cycle.document_id == "doc-2"
        assert [doc.id for doc in ledger_client.documents] == ["doc-2", "old"]
        assert len(ledger_session.gets) == 3

    def test_illegal_transition_raises(self):
        cycle = AuditCycle()
        with pytest.raises(RuntimeError):
            cycle.advance(LedgerState.REFRESHING)


class TestRecords:
    def test_temperature_alert_payload(self, ledger_client, ledger_session):
        asyncio.run(
            ledger_client.append_temperature_alert("dev-1", "Server Room", 45.0, 40.0, "Floor 2", "warning")
        )

        payload = ledger_session.posts[0]["json"]["fields"]["data"]
        data = json.loads(payload)
        assert data["deviceId"] == "dev-1"
        assert data["severity"] == "warning"
        assert data["limit"] == 40.0
        assert is_audit_event(payload)
        assert extract_temperature(payload) is None
        assert ledger_client.latest_document.core_id == "dev-1"

    def test_readings_leave_out_audit_records(self, ledger_client, ledger_session):
        ledger_session.add_document("dev-1", '{"temp": "21.0°C"}', doc_id="reading")
        asyncio.run(
            ledger_client.append_temperature_alert("dev-1", "Server Room", 45.0, 40.0, "Floor 2", "warning")
        )

        assert ledger_client.latest_for("dev-1").id != "reading"
        assert [doc.id for doc in ledger_client.readings_for("dev-1")] == ["reading"]

    def test_resolution_payload(self, ledger_client, ledger_session):
        asyncio.run(ledger_client.append_alert_resolution("dev-1", "Server Room", "alert-1"))

        data = json.loads(ledger_session.posts[0]["json"]["fields"]["data"])
        assert data["event"] == "temperature_alert_resolved"
        assert data["alertId"] == "alert-1"

    def test_document_round_trips(self):
        raw = {
            "id": "doc-9",
            "owner": "ledger",
            "collection_id": "temperature",
            "path_reference": "/temperature/doc-9",
            "doc_type": "reading",
            "clearance": 1,
            "fields": {
                "coreid": "core-1",
                "data": '{"temp": "25.5°C", "battery": "3.7V"}',
                "name": "temperature",
                "published_at": "2025-01-31T10:15:00Z",
                "ttl": 60,
            },
            "creation_date": "2025-01-31 10:15:00Z",
            "update_date": "2025-01-31 10:16:00Z",
        }

        document = AuditDocument.from_wire(raw)

        assert document.to_wire() == raw
        assert document.updated > document.created

    def test_string_ttl_is_coerced(self):
        document = AuditDocument.from_wire({"id": "d", "fields": {"data": "25°C", "ttl": "60"}})
        assert document.ttl == 60


class TestConnection:
    def test_connection_report(self, ledger_client, ledger_session, make_response):
        ledger_session.get_queue.append(make_response(200, {"ok": True}, text="pong"))

        report = asyncio.run(ledger_client.test_connection())

        assert report.startswith("OK")
        assert "pong" in report
        assert ledger_session.gets[0]["url"] == f"{LEDGER_URL}/documents/test"
