import logging
from typing import Any

import requests
from pydantic import ValidationError as SchemaError

from bbms.schemas.device import DeviceSnapshot

logger = logging.getLogger(__name__)


class DeviceFeedClient:
    """Reads current device snapshots from the building backend."""

    def __init__(self, base_url: str, timeout: float, session: requests.Session | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_current(self) -> list[DeviceSnapshot]:
        response = self.session.get(f"{self.base_url}/temperature/current", timeout=self.timeout)
        response.raise_for_status()
        return self._parse(response.json())

    def _parse(self, payload: Any) -> list[DeviceSnapshot]:
        items = payload.get("devices", payload.get("result", [])) if isinstance(payload, dict) else payload
        snapshots: list[DeviceSnapshot] = []
        for raw in items or []:
            try:
                snapshots.append(DeviceSnapshot.model_validate(raw))
            except SchemaError as exc:
                logger.warning("Skipping malformed device entry: %s", exc)
        return snapshots
