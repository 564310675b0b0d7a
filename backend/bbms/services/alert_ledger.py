"""Alert collection kept in memory and written through to the database.

Ids that no longer exist are ignored by every mutation so a resolve racing a
delete does not fail. Counts are computed from the collection on each call.
"""

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from bbms.crud import alert_crud
from bbms.schemas.alert import AlertCategory, AlertIn, AlertOut, AlertSeverity

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AlertLedger:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory
        self._lock = threading.Lock()
        self._alerts: Dict[str, AlertOut] = {}
        self._sequence: Dict[str, int] = {}
        self._next_sequence = 1

    def load(self) -> int:
        with self._lock, self._session_factory() as db:
            rows = alert_crud.get_all(db)
            self._alerts = {}
            self._sequence = {}
            for row in rows:
                alert = AlertOut.model_validate(row)
                self._alerts[row.id] = alert.model_copy(update={"timestamp": _as_utc(alert.timestamp)})
                self._sequence[row.id] = row.sequence
            self._next_sequence = alert_crud.max_sequence(db) + 1
        logger.info("Loaded %d alerts", len(self._alerts))
        return len(self._alerts)

    def add(self, alert: AlertIn | Dict[str, Any]) -> AlertOut:
        if not isinstance(alert, AlertIn):
            alert = AlertIn.model_validate(alert)

        with self._lock, self._session_factory() as db:
            sequence = self._next_sequence
            row = alert_crud.create(
                db,
                {
                    "id": str(uuid.uuid4()),
                    "sequence": sequence,
                    "timestamp": _as_utc(alert.timestamp or datetime.now(timezone.utc)),
                    "title": alert.title,
                    "message": alert.message,
                    "severity": alert.severity.value,
                    "category": alert.category.value,
                    "device_id": alert.device_id,
                    "zone_id": alert.zone_id,
                    "is_read": False,
                    "is_resolved": False,
                },
            )
            self._next_sequence += 1
            created = AlertOut.model_validate(row)
            created = created.model_copy(update={"timestamp": _as_utc(created.timestamp)})
            self._alerts[created.id] = created
            self._sequence[created.id] = sequence

        logger.info("Alert %s recorded: %s (%s)", created.id, created.title, created.severity.value)
        return created

    def get(self, alert_id: str) -> Optional[AlertOut]:
        with self._lock:
            return self._alerts.get(alert_id)

    def mark_as_read(self, alert_id: str) -> Optional[AlertOut]:
        return self._set_flags(alert_id, is_read=True)

    def mark_as_resolved(self, alert_id: str) -> Optional[AlertOut]:
        return self._set_flags(alert_id, is_read=True, is_resolved=True)

    def mark_all_as_read(self) -> int:
        with self._lock, self._session_factory() as db:
            changed = alert_crud.mark_all_read(db)
            for alert_id, alert in self._alerts.items():
                if not alert.is_read:
                    self._alerts[alert_id] = alert.model_copy(update={"is_read": True})
        return changed

    def delete(self, alert_id: str) -> bool:
        with self._lock, self._session_factory() as db:
            if alert_id not in self._alerts:
                return False
            alert_crud.delete(db, alert_id)
            del self._alerts[alert_id]
            del self._sequence[alert_id]
        logger.info("Alert %s deleted", alert_id)
        return True

    def query(
        self,
        severity: Optional[AlertSeverity] = None,
        category: Optional[AlertCategory] = None,
        device_id: Optional[str] = None,
        unresolved_only: bool = False,
        unread_only: bool = False,
    ) -> List[AlertOut]:
        with self._lock:
            alerts = [
                alert
                for alert in self._alerts.values()
                if (severity is None or alert.severity == severity)
                and (category is None or alert.category == category)
                and (device_id is None or alert.device_id == device_id)
                and not (unresolved_only and alert.is_resolved)
                and not (unread_only and alert.is_read)
            ]
            alerts.sort(key=lambda item: (item.timestamp, self._sequence[item.id]), reverse=True)
        return alerts

    @property
    def unread_count(self) -> int:
        with self._lock:
            return sum(1 for alert in self._alerts.values() if not alert.is_read)

    @property
    def critical_count(self) -> int:
        with self._lock:
            return sum(
                1
                for alert in self._alerts.values()
                if alert.severity == AlertSeverity.CRITICAL and not alert.is_resolved
            )

    def _set_flags(self, alert_id: str, **flags: bool) -> Optional[AlertOut]:
        with self._lock:
            current = self._alerts.get(alert_id)
            if current is None:
                logger.debug("Alert %s no longer exists; ignoring update", alert_id)
                return None

            # flags only ever move from False to True
            changes = {key: True for key, value in flags.items() if value and not getattr(current, key)}
            if not changes:
                return current

            with self._session_factory() as db:
                alert_crud.update_flags(db, alert_id, **changes)
            updated = current.model_copy(update=changes)
            self._alerts[alert_id] = updated
        return updated
