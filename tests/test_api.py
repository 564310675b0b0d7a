"""HTTP API tests against an app wired to in-memory fakes."""

import pytest
from fastapi.testclient import TestClient

from bbms.main import create_app

DEVICE = {"id": "dev-1", "name": "Server Room", "type": "temperature", "location": "Floor 2", "value": 22.0}


@pytest.fixture
def client(settings, session_factory, ledger_client, notification_center):
    app = create_app(
        settings=settings,
        session_factory=session_factory,
        ledger_client=ledger_client,
        notification_center=notification_center,
        start_monitoring=False,
    )
    with TestClient(app) as test_client:
        yield test_client


def _subscribe(client):
    response = client.post("/api/devices", json=DEVICE)
    assert response.status_code == 200
    return response.json()


def _violate(client, value=45.0):
    response = client.post("/api/devices/dev-1/readings", json={"value": value})
    assert response.status_code == 200
    return response.json()


class TestHealth:
    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok"}

    def test_root(self, client):
        assert client.get("/").status_code == 200

    def test_status(self, client):
        body = client.get("/api/status").json()

        assert body["monitoring"] is False
        assert body["notifications_enabled"] is True
        assert "Global Temperature Monitoring Status:" in body["report"]


class TestLimits:
    def test_default_limit(self, client):
        body = client.get("/api/limits/dev-1").json()
        assert body == {"device_id": "dev-1", "value": 40.0, "critical_value": 50.0}

    def test_update_limit(self, client):
        response = client.put("/api/limits/dev-1", json={"value": 55})

        assert response.status_code == 200
        assert response.json()["critical_value"] == 65.0
        assert client.get("/api/limits/dev-1").json()["value"] == 55.0

    @pytest.mark.parametrize("value", [0, 101])
    def test_out_of_range_limit(self, client, value):
        response = client.put("/api/limits/dev-1", json={"value": value})

        assert response.status_code == 400
        assert "between 1 and 100" in response.json()["detail"]


class TestDevices:
    def test_subscribe_and_list(self, client):
        body = _subscribe(client)
        assert body["type"] == "temperature"

        devices = client.get("/api/devices").json()
        assert [device["id"] for device in devices] == ["dev-1"]

    def test_unsubscribe(self, client):
        _subscribe(client)

        assert client.delete("/api/devices/dev-1").json() == {"id": "dev-1", "removed": True}
        assert client.get("/api/devices").json() == []

    def test_reading_for_unknown_device(self, client):
        response = client.post("/api/devices/ghost/readings", json={"value": 45.0})
        assert response.status_code == 404

    def test_reading_with_inline_device(self, client):
        response = client.post("/api/devices/dev-1/readings", json={"value": 55.0, "device": DEVICE})

        assert response.status_code == 200
        assert response.json()["severity"] == "critical"

    def test_mismatched_inline_device(self, client):
        response = client.post("/api/devices/dev-2/readings", json={"value": 55.0, "device": DEVICE})
        assert response.status_code == 400

    def test_violation_creates_alert(self, client, ledger_session):
        _subscribe(client)

        body = _violate(client)

        assert body["severity"] == "warning"
        assert body["notified"] is True
        assert body["alert"]["device_id"] == "dev-1"

        alerts = client.get("/api/alerts").json()
        assert alerts["count"] == 1
        assert alerts["unread_count"] == 1

    def test_test_alert(self, client):
        _subscribe(client)

        body = client.post("/api/devices/dev-1/test-alert").json()

        assert body["alert"]["title"] == "Manual Alert Test"
        assert client.post("/api/devices/ghost/test-alert").status_code == 404

    def test_history(self, client, ledger_session):
        _subscribe(client)
        ledger_session.add_document("dev-1", '{"temp": "30°C", "battery": "3.6V"}')
        ledger_session.add_document("dev-1", "45°C")
        client.post("/api/ledger/refresh")

        body = client.get("/api/devices/dev-1/history").json()

        assert [item["value"] for item in body["items"]] == [30.0, 45.0]
        assert [item["battery_voltage"] for item in body["items"]] == [3.6, None]
        assert body["violations"] == 1
        assert body["throttled"] is False


class TestAlerts:
    def test_alert_lifecycle(self, client):
        _subscribe(client)
        alert_id = _violate(client, 55.0)["alert"]["id"]
        assert client.get("/api/alerts").json()["critical_count"] == 1

        read = client.post(f"/api/alerts/{alert_id}/read").json()
        assert read["applied"] is True
        assert read["alert"]["is_read"] is True

        resolved = client.post(f"/api/alerts/{alert_id}/resolve").json()
        assert resolved["alert"]["is_resolved"] is True
        assert client.get("/api/alerts").json()["critical_count"] == 0
        assert client.get("/api/alerts", params={"unresolved_only": True}).json()["count"] == 0

        deleted = client.delete(f"/api/alerts/{alert_id}").json()
        assert deleted == {"id": alert_id, "applied": True, "alert": None}

    def test_actions_on_missing_alert_are_no_ops(self, client):
        for path in ("/api/alerts/missing/read", "/api/alerts/missing/resolve"):
            response = client.post(path)
            assert response.status_code == 200
            assert response.json()["applied"] is False
        assert client.delete("/api/alerts/missing").json()["applied"] is False

    def test_create_and_filter(self, client):
        payload = {"title": "Door forced", "message": "Side door", "severity": "critical", "category": "security"}
        created = client.post("/api/alerts", json=payload).json()

        assert created["is_read"] is False
        filtered = client.get("/api/alerts", params={"category": "security"}).json()
        assert [item["id"] for item in filtered["items"]] == [created["id"]]
        assert client.get("/api/alerts", params={"category": "hvac"}).json()["count"] == 0

    def test_mark_all_read(self, client):
        _subscribe(client)
        _violate(client)
        _violate(client, 46.0)

        assert client.post("/api/alerts/read-all").json() == {"updated": 2}
        assert client.get("/api/alerts").json()["unread_count"] == 0


class TestLedger:
    def test_latest_when_empty(self, client):
        assert client.get("/api/ledger/latest").status_code == 404

    def test_refresh(self, client, ledger_session):
        ledger_session.add_document("dev-1", "25°C", doc_id="doc-a")

        body = client.post("/api/ledger/refresh").json()

        assert body["count"] == 1
        assert body["is_loading"] is False
        assert body["latest"]["id"] == "doc-a"
        assert client.get("/api/ledger/latest").json()["id"] == "doc-a"

    def test_failed_refresh_reports_stale_cache(self, client, ledger_session, make_response):
        ledger_session.add_document("dev-1", "25°C", doc_id="doc-a")
        client.post("/api/ledger/refresh")

        ledger_session.get_queue.append(make_response(503))
        response = client.post("/api/ledger/refresh")
        assert response.status_code == 502

        body = client.get("/api/ledger/documents").json()
        assert body["is_stale"] is True
        assert body["error_message"] == "Ledger error: 503"
        assert [item["id"] for item in body["items"]] == ["doc-a"]


class TestNotificationsAndMonitoring:
    def test_permission_toggle(self, client):
        denied = client.post("/api/notifications/permission", json={"granted": False}).json()
        assert denied["enabled"] is False

        _subscribe(client)
        assert _violate(client)["notified"] is False

        granted = client.post("/api/notifications/permission", json={"granted": True}).json()
        assert granted["enabled"] is True
        assert client.get("/api/notifications").json()["tracked_devices"] == 0

    def test_start_and_stop(self, client):
        assert client.post("/api/monitoring/start").json() == {"monitoring": True, "changed": True}
        assert client.post("/api/monitoring/start").json()["changed"] is False
        assert client.post("/api/monitoring/stop").json() == {"monitoring": False, "changed": True}

    def test_poll_now(self, client, ledger_session):
        _subscribe(client)
        ledger_session.add_document("dev-1", '{"temp": "47.0°C"}')

        results = client.post("/api/monitoring/poll").json()

        assert results[0]["reading"] == 47.0
        assert results[0]["severity"] == "warning"
