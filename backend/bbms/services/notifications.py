"""Local notifications for threshold alerts.

A device is notified at most once per cooldown window unless its severity
escalates. Delivery is best effort: a failing notification center is logged
and never raised to the monitoring loop.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import requests

from bbms.core.exceptions import PermissionDenied
from bbms.services.alert_engine import CRITICAL_OFFSET, Severity
from bbms.utils.locks import AsyncKeyedLock

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Priority(str, Enum):
    ACTIVE = "active"
    CRITICAL = "critical"


@dataclass(frozen=True)
class NotificationRequest:
    identifier: str
    device_id: str
    severity: Severity
    title: str
    body: str
    category: str
    priority: Priority
    bypass_quiet_hours: bool
    created_at: datetime
    user_info: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "event_type": "alarm",
            "identifier": self.identifier,
            "device_id": self.device_id,
            "severity": self.severity.value,
            "title": self.title,
            "body": self.body,
            "category": self.category,
            "priority": self.priority.value,
            "bypass_quiet_hours": self.bypass_quiet_hours,
            "timestamp": self.created_at.isoformat(),
            "user_info": self.user_info,
        }


@dataclass(frozen=True)
class NotificationRecord:
    device_id: str
    severity: Severity
    scheduled_at: datetime


class NotificationCenter:
    """Where notifications are handed off for delivery."""

    def __init__(self, authorized: bool = True) -> None:
        self._authorized = authorized
        self._lock = threading.Lock()
        self._delivered: List[NotificationRequest] = []

    @property
    def authorized(self) -> bool:
        return self._authorized

    def set_authorization(self, granted: bool) -> bool:
        self._authorized = granted
        return self._authorized

    def schedule(self, request: NotificationRequest) -> None:
        if not self.authorized:
            raise PermissionDenied("notifications are not authorized")
        self._deliver(request)
        with self._lock:
            self._delivered.append(request)

    def delivered(self) -> List[NotificationRequest]:
        with self._lock:
            return list(self._delivered)

    def clear_delivered(self) -> None:
        with self._lock:
            self._delivered.clear()

    def _deliver(self, request: NotificationRequest) -> None:
        raise NotImplementedError


class InMemoryNotificationCenter(NotificationCenter):
    """Keeps notifications in the delivered list and logs them."""

    def _deliver(self, request: NotificationRequest) -> None:
        logger.info("Notification %s: %s", request.identifier, request.title)


class WebhookNotificationCenter(NotificationCenter):
    """POSTs each notification to a webhook URL."""

    def __init__(self, url: str, timeout: float = 5.0, session: Optional[requests.Session] = None) -> None:
        super().__init__(authorized=bool(url))
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def set_authorization(self, granted: bool) -> bool:
        self._authorized = granted and bool(self.url)
        return self._authorized

    def _deliver(self, request: NotificationRequest) -> None:
        response = self.session.post(self.url, json=request.to_payload(), timeout=self.timeout)
        response.raise_for_status()


class NotificationDispatcher:
    def __init__(
        self,
        center: NotificationCenter,
        cooldown_seconds: float = 300.0,
        critical_offset: float = CRITICAL_OFFSET,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.center = center
        self.cooldown_seconds = cooldown_seconds
        self.critical_offset = critical_offset
        self._clock = clock
        self._records: Dict[str, NotificationRecord] = {}
        self._device_locks = AsyncKeyedLock()

    @property
    def notifications_enabled(self) -> bool:
        return self.center.authorized

    def request_permission(self, granted: bool) -> bool:
        enabled = self.center.set_authorization(granted)
        if enabled:
            logger.info("Notification permissions granted")
        else:
            logger.info("Notification permissions denied")
        return enabled

    @property
    def tracked_devices(self) -> int:
        return len(self._records)

    def last_notification(self, device_id: str) -> Optional[NotificationRecord]:
        return self._records.get(device_id)

    def is_due(self, device_id: str, severity: Severity) -> bool:
        last = self._records.get(device_id)
        if last is None:
            return True
        if severity.rank > last.severity.rank:
            return True
        elapsed = (self._clock() - last.scheduled_at).total_seconds()
        return elapsed >= self.cooldown_seconds

    async def notify_if_due(
        self,
        device_id: str,
        severity: Severity,
        reading: float,
        limit: float,
        location: str,
        device_name: Optional[str] = None,
    ) -> bool:
        if severity is Severity.NOMINAL:
            return False
        if not self.notifications_enabled:
            logger.info("Skipping notification for %s - permission not granted", device_id)
            return False

        async with self._device_locks(device_id):
            if not self.is_due(device_id, severity):
                logger.info("Skipping notification for %s - still in cooldown period", device_id)
                return False

            request = self.build_request(device_id, severity, reading, limit, location, device_name)
            return await self._schedule(request)

    async def send_test_notification(
        self,
        device_id: str,
        reading: float,
        limit: float,
        location: str,
        device_name: Optional[str] = None,
    ) -> bool:
        if not self.notifications_enabled:
            logger.info("Skipping test notification for %s - permission not granted", device_id)
            return False
        request = self.build_request(device_id, Severity.WARNING, reading, limit, location, device_name)
        async with self._device_locks(device_id):
            return await self._schedule(request)

    def build_request(
        self,
        device_id: str,
        severity: Severity,
        reading: float,
        limit: float,
        location: str,
        device_name: Optional[str] = None,
    ) -> NotificationRequest:
        now = self._clock()
        name = device_name or device_id
        user_info: Dict[str, Any] = {
            "device_id": device_id,
            "device_name": name,
            "current_temp": reading,
            "location": location,
            "timestamp": now.timestamp(),
        }

        if severity is Severity.CRITICAL:
            critical_limit = limit + self.critical_offset
            user_info.update(type="critical_temperature_alert", critical_limit=critical_limit)
            return NotificationRequest(
                identifier=f"critical_temp_alert_{device_id}_{now.timestamp()}",
                device_id=device_id,
                severity=severity,
                title="CRITICAL Temperature Alert",
                body=(
                    f"URGENT: {name} in {location} has reached critical temperature levels!\n\n"
                    f"Current: {reading:.1f}°C\nCritical Limit: {critical_limit:.1f}°C\n\n"
                    "Immediate action required!"
                ),
                category="CRITICAL_TEMPERATURE_ALERT",
                priority=Priority.CRITICAL,
                bypass_quiet_hours=True,
                created_at=now,
                user_info=user_info,
            )

        user_info.update(type="temperature_alert", limit=limit)
        return NotificationRequest(
            identifier=f"temp_alert_{device_id}_{now.timestamp()}",
            device_id=device_id,
            severity=severity,
            title="High Temperature Alert",
            body=(
                f"{name} in {location} has exceeded the temperature limit!\n\n"
                f"Current: {reading:.1f}°C\nLimit: {limit:.1f}°C"
            ),
            category="TEMPERATURE_ALERT",
            priority=Priority.ACTIVE,
            bypass_quiet_hours=False,
            created_at=now,
            user_info=user_info,
        )

    def clear_record(self, device_id: str) -> None:
        self._records.pop(device_id, None)

    def restore_from_delivered(self) -> int:
        """Rebuild cooldown records from the center's delivered notifications."""
        restored = 0
        for request in sorted(self.center.delivered(), key=lambda item: item.created_at):
            self._records[request.device_id] = NotificationRecord(
                device_id=request.device_id,
                severity=request.severity,
                scheduled_at=request.created_at,
            )
            restored += 1
        return restored

    def status_report(self) -> str:
        lines = [
            "Notification Status Report:",
            f"Authorization: {'Authorized' if self.notifications_enabled else 'Denied'}",
            f"Cooldown: {self.cooldown_seconds:.0f}s",
            f"Delivered notifications: {len(self.center.delivered())}",
            f"Devices in cooldown tracking: {self.tracked_devices}",
        ]
        return "\n".join(lines)

    async def _schedule(self, request: NotificationRequest) -> bool:
        try:
            await asyncio.to_thread(self.center.schedule, request)
        except PermissionDenied:
            logger.info("Cannot send notification %s - permission not granted", request.identifier)
            return False
        except Exception as exc:
            logger.error("Error scheduling notification %s: %s", request.identifier, exc)
            return False

        self._records[request.device_id] = NotificationRecord(
            device_id=request.device_id,
            severity=request.severity,
            scheduled_at=request.created_at,
        )
        logger.info("Notification scheduled for %s - ID: %s", request.device_id, request.identifier)
        return True
