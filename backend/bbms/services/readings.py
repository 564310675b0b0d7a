import json
import re
from dataclasses import dataclass
from typing import Any, Optional

# 25.5°C, 25.5 ºC, 25.5C, -3 °F
_TEMPERATURE_PATTERN = re.compile(r"^(-?\d+(?:\.\d+)?)\s*[°º]?\s*([CF])?$", re.IGNORECASE)

# alert and resolution records written by this service carry an "event" key
AUDIT_EVENT_KEY = "event"


@dataclass(frozen=True)
class Reading:
    temperature: Optional[float]
    battery_voltage: Optional[float] = None


def _to_celsius(value: float, unit: str) -> float:
    if unit.upper() == "F":
        return round((value - 32.0) * 5.0 / 9.0, 2)
    return value


def parse_temperature(raw: Any) -> Optional[float]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw)
    if not isinstance(raw, str):
        return None

    match = _TEMPERATURE_PATTERN.match(raw.strip())
    if not match:
        return None
    return _to_celsius(float(match.group(1)), match.group(2) or "C")


def _parse_float(raw: Any) -> Optional[float]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, str):
        match = re.match(r"^\s*(-?\d+(?:\.\d+)?)", raw)
        if match:
            return float(match.group(1))
    return None


def extract_reading(payload: str) -> Reading:
    """Pull the temperature (in °C) and battery voltage out of a ledger payload.

    Payloads are either JSON objects such as ``{"temp": "25.5°C", "battery": "3.7V"}``
    or a bare temperature string. Audit event records are not readings and
    yield an empty ``Reading``.
    """
    try:
        data = json.loads(payload)
    except (TypeError, ValueError):
        data = None

    if isinstance(data, dict):
        if AUDIT_EVENT_KEY in data:
            return Reading(temperature=None)
        battery = _parse_float(data.get("battery", data.get("voltage")))
        return Reading(temperature=parse_temperature(data.get("temp")), battery_voltage=battery)

    return Reading(temperature=parse_temperature(payload))


def extract_temperature(payload: str) -> Optional[float]:
    return extract_reading(payload).temperature


def is_audit_event(payload: str) -> bool:
    try:
        data = json.loads(payload)
    except (TypeError, ValueError):
        return False
    return isinstance(data, dict) and AUDIT_EVENT_KEY in data
