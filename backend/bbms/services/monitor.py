"""Periodic threshold monitoring.

The coordinator owns the polling task. Each tick refreshes the audit ledger and
the device feed, then evaluates every subscribed device. A violation commits an
alert first; the notification and the audit append then run concurrently.
Audit appends are tracked tasks that outlive ``stop()`` and are awaited by
``drain()``.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Tuple

import requests

from bbms.core.config import Settings, settings as default_settings
from bbms.core.exceptions import LedgerReadError
from bbms.schemas.alert import AlertCategory, AlertOut, AlertSeverity
from bbms.schemas.device import DeviceSnapshot, DeviceStatus
from bbms.services.alert_engine import Severity, build_threshold_alert, classify, supports_threshold
from bbms.services.alert_ledger import AlertLedger
from bbms.services.device_feed import DeviceFeedClient
from bbms.services.history import HistoryPoint, ReloadThrottle, build_history
from bbms.services.ledger_client import AuditLedgerClient
from bbms.services.notifications import NotificationDispatcher
from bbms.services.readings import extract_temperature
from bbms.services.threshold_store import ThresholdStore
from bbms.utils.locks import AsyncKeyedLock

logger = logging.getLogger(__name__)

_STATUS_FOR_SEVERITY = {
    Severity.NOMINAL: DeviceStatus.ONLINE,
    Severity.WARNING: DeviceStatus.WARNING,
    Severity.CRITICAL: DeviceStatus.CRITICAL,
}


@dataclass
class Evaluation:
    device_id: str
    reading: float
    limit: float
    severity: Severity
    evaluated: bool
    alert: Optional[AlertOut] = None
    notified: bool = False


class MonitoringCoordinator:
    def __init__(
        self,
        store: ThresholdStore,
        alerts: AlertLedger,
        dispatcher: NotificationDispatcher,
        ledger: AuditLedgerClient,
        device_source: Optional[DeviceFeedClient] = None,
        settings: Settings = default_settings,
    ) -> None:
        self.store = store
        self.alerts = alerts
        self.dispatcher = dispatcher
        self.ledger = ledger
        self.device_source = device_source
        self.poll_interval = settings.poll_interval
        self.critical_offset = settings.critical_offset
        self.history_window = settings.history_reload_window

        self._devices: Dict[str, DeviceSnapshot] = {}
        self._device_locks = AsyncKeyedLock()
        self._audit_tasks: Set[asyncio.Task] = set()
        self._poll_task: Optional[asyncio.Task] = None
        self._history: Dict[str, List[HistoryPoint]] = {}
        self._history_throttles: Dict[str, ReloadThrottle] = {}
        self.last_poll_at: Optional[datetime] = None

    # lifecycle

    @property
    def is_monitoring(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def start(self) -> bool:
        if self.is_monitoring:
            logger.info("Monitoring already running")
            return False
        self._poll_task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Started temperature monitoring for %d devices", len(self._devices))
        return True

    async def stop(self) -> bool:
        task, self._poll_task = self._poll_task, None
        if task is None or task.done():
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Stopped temperature monitoring")
        return True

    async def drain(self) -> None:
        while self._audit_tasks:
            await asyncio.gather(*list(self._audit_tasks), return_exceptions=True)

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Monitoring tick failed")
            await asyncio.sleep(self.poll_interval)

    # devices

    def subscribe(self, device: DeviceSnapshot) -> DeviceSnapshot:
        self._devices[device.id] = device
        logger.info("Monitoring device %s (%s)", device.id, device.kind.value)
        return device

    def unsubscribe(self, device_id: str) -> bool:
        removed = self._devices.pop(device_id, None) is not None
        if removed:
            self._history.pop(device_id, None)
            self._history_throttles.pop(device_id, None)
            logger.info("Stopped monitoring device %s", device_id)
        return removed

    def device(self, device_id: str) -> Optional[DeviceSnapshot]:
        return self._devices.get(device_id)

    def devices(self) -> List[DeviceSnapshot]:
        return list(self._devices.values())

    # evaluation

    async def poll_once(self) -> List[Evaluation]:
        await asyncio.gather(self._refresh_ledger(), self._refresh_devices())
        self.last_poll_at = datetime.now(timezone.utc)

        results = []
        for device in self.devices():
            if not supports_threshold(device.kind):
                continue
            try:
                results.append(await self.ingest(device, self.current_reading(device)))
            except Exception:
                logger.exception("Evaluation failed for device %s", device.id)
        return results

    def current_reading(self, device: DeviceSnapshot) -> float:
        for document in self.ledger.readings_for(device.core_id or device.id):
            value = extract_temperature(document.payload)
            if value is not None:
                return value
        return device.value

    async def ingest(self, device: DeviceSnapshot, reading: float) -> Evaluation:
        async with self._device_locks(device.id):
            if not supports_threshold(device.kind):
                return Evaluation(device.id, reading, 0.0, Severity.NOMINAL, evaluated=False)

            limit = (await asyncio.to_thread(self.store.reconcile, device.id)).value
            severity = classify(reading, limit, self.critical_offset)
            self._record_reading(device, reading, severity)

            if severity is Severity.NOMINAL:
                return Evaluation(device.id, reading, limit, severity, evaluated=True)

            alert = await asyncio.to_thread(
                self.alerts.add, build_threshold_alert(device, reading, limit, severity, self.critical_offset)
            )
            self._track(
                self.ledger.append_temperature_alert(
                    device.id, device.name, reading, limit, device.location, severity.value
                )
            )
            notified = await self.dispatcher.notify_if_due(
                device.id, severity, reading, limit, device.location, device.name
            )

        logger.warning(
            "Device %s at %.1f°C exceeds limit %.1f°C (%s)", device.id, reading, limit, severity.value
        )
        return Evaluation(device.id, reading, limit, severity, evaluated=True, alert=alert, notified=notified)

    async def send_test_alert(self, device_id: str) -> Tuple[AlertOut, bool]:
        device = self._devices.get(device_id)
        if device is None:
            raise KeyError(device_id)

        limit = await asyncio.to_thread(self.store.get, device_id)
        reading = device.value
        alert = await asyncio.to_thread(
            self.alerts.add,
            {
                "title": "Manual Alert Test",
                "message": (
                    f"Test alert for '{device.name}' in {device.location}. "
                    f"Current: {reading:.1f}°C, Limit: {limit:.1f}°C"
                ),
                "severity": AlertSeverity.WARNING,
                "category": AlertCategory.HVAC,
                "device_id": device.id,
            }
        )
        self._track(
            self.ledger.append_temperature_alert(
                device.id, device.name, reading, limit, device.location, "manual_test"
            )
        )
        notified = await self.dispatcher.send_test_notification(
            device.id, reading, limit, device.location, device.name
        )
        return alert, notified

    def resolve_alert(self, alert_id: str) -> Optional[AlertOut]:
        before = self.alerts.get(alert_id)
        resolved = self.alerts.mark_as_resolved(alert_id)
        if before is not None and not before.is_resolved and resolved is not None and resolved.device_id:
            device = self._devices.get(resolved.device_id)
            name = device.name if device else resolved.device_id
            self._track(self.ledger.append_alert_resolution(resolved.device_id, name, alert_id))
        return resolved

    # history and reporting

    def history(self, device_id: str) -> Tuple[List[HistoryPoint], float, bool]:
        limit = self.store.get(device_id)
        throttle = self._history_throttles.setdefault(device_id, ReloadThrottle(self.history_window))
        if not throttle.should_run() and device_id in self._history:
            return self._history[device_id], limit, True

        device = self._devices.get(device_id)
        core_id = (device.core_id if device else None) or device_id
        points = build_history(self.ledger.documents, limit, core_id=core_id)
        self._history[device_id] = points
        return points, limit, False

    def status_report(self) -> str:
        limits = self.store.limits()
        lines = [
            "Global Temperature Monitoring Status:",
            f"Active: {self.is_monitoring}",
            f"Monitored devices: {len(self._devices)}",
            f"Pending audit writes: {len(self._audit_tasks)}",
            f"Temperature limits configured: {len(limits)}",
        ]
        for device_id, value in sorted(limits.items()):
            device = self._devices.get(device_id)
            lines.append(f"- {device.name if device else device_id}: {value:.1f}°C")

        latest = self.ledger.latest_document
        lines.extend(
            [
                "",
                "Audit Ledger:",
                f"Documents: {len(self.ledger.documents)}",
                f"Latest: {latest.id if latest else 'none'}",
                f"Stale: {self.ledger.is_stale}",
            ]
        )
        if self.ledger.error_message:
            lines.append(f"Error: {self.ledger.error_message}")

        lines.extend(["", self.dispatcher.status_report()])
        return "\n".join(lines)

    # internals

    def _record_reading(self, device: DeviceSnapshot, reading: float, severity: Severity) -> None:
        if device.id not in self._devices:
            return
        self._devices[device.id] = self._devices[device.id].model_copy(
            update={
                "value": reading,
                "status": _STATUS_FOR_SEVERITY[severity],
                "last_updated": datetime.now(timezone.utc),
            }
        )

    def _track(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._audit_tasks.add(task)
        task.add_done_callback(self._audit_done)
        return task

    def _audit_done(self, task: asyncio.Task) -> None:
        self._audit_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Audit write task failed: %s", exc)

    async def _refresh_ledger(self) -> None:
        try:
            await self.ledger.refresh()
        except LedgerReadError as exc:
            logger.warning("Using cached ledger documents: %s", exc)

    async def _refresh_devices(self) -> None:
        if self.device_source is None:
            return
        try:
            snapshots = await asyncio.to_thread(self.device_source.fetch_current)
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Device feed unavailable: %s", exc)
            return

        for snapshot in snapshots:
            # only subscribed devices are tracked
            if snapshot.id in self._devices:
                current = self._devices[snapshot.id]
                self._devices[snapshot.id] = snapshot.model_copy(
                    update={"core_id": snapshot.core_id or current.core_id}
                )
