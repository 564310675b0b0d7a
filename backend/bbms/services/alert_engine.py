from enum import Enum
from typing import Any

from bbms.schemas.alert import AlertCategory, AlertSeverity
from bbms.schemas.device import DeviceSnapshot, SensorKind

CRITICAL_OFFSET = 10.0

THRESHOLD_KINDS = frozenset({SensorKind.TEMPERATURE})


class Severity(str, Enum):
    NOMINAL = "nominal"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {Severity.NOMINAL: 0, Severity.WARNING: 1, Severity.CRITICAL: 2}


def classify(reading: float, limit: float, critical_offset: float = CRITICAL_OFFSET) -> Severity:
    if reading <= limit:
        return Severity.NOMINAL
    if reading <= limit + critical_offset:
        return Severity.WARNING
    return Severity.CRITICAL


def supports_threshold(kind: SensorKind) -> bool:
    return kind in THRESHOLD_KINDS


def build_threshold_alert(
    device: DeviceSnapshot,
    reading: float,
    limit: float,
    severity: Severity,
    critical_offset: float = CRITICAL_OFFSET,
) -> dict[str, Any]:
    if severity is Severity.NOMINAL:
        raise ValueError("nominal readings do not produce alerts")

    if severity is Severity.CRITICAL:
        title = "Critical Temperature Alert"
        message = (
            f"Temperature sensor '{device.name}' in {device.location} has reached critical levels. "
            f"Current: {reading:.1f}°C, Critical limit: {limit + critical_offset:.1f}°C"
        )
    else:
        title = "High Temperature Alert"
        message = (
            f"Temperature sensor '{device.name}' in {device.location} has exceeded the limit. "
            f"Current: {reading:.1f}°C, Limit: {limit:.1f}°C"
        )

    return {
        "title": title,
        "message": message,
        "severity": AlertSeverity(severity.value),
        "category": AlertCategory.HVAC,
        "device_id": device.id,
        "zone_id": None,
    }
