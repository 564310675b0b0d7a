from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SensorKind(str, Enum):
    TEMPERATURE = "temperature"
    WATER_LEVEL = "water_level"
    GAS_LEVEL = "gas_level"
    AIR_CONDITIONING = "air_conditioning"
    LIGHTING = "lighting"
    SECURITY = "security"
    GENERIC = "generic"


class DeviceStatus(str, Enum):
    ONLINE = "online"
    WARNING = "warning"
    CRITICAL = "critical"
    OFFLINE = "offline"


def _normalize_label(value: Any) -> Any:
    # the device feed sends display names such as "Water Level" or "Online"
    if isinstance(value, str):
        return value.strip().lower().replace(" ", "_").replace("-", "_")
    return value


class DeviceSnapshot(BaseModel):
    id: str
    name: str
    kind: SensorKind = Field(default=SensorKind.GENERIC, alias="type")
    location: str = ""
    value: float = 0.0
    unit: str = ""
    core_id: str | None = Field(default=None, alias="coreId")
    status: DeviceStatus = DeviceStatus.ONLINE
    last_updated: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="lastUpdated"
    )

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("kind", mode="before")
    @classmethod
    def _kind(cls, value: Any) -> Any:
        value = _normalize_label(value)
        if isinstance(value, str) and value not in {kind.value for kind in SensorKind}:
            return SensorKind.GENERIC
        return value

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> Any:
        return _normalize_label(value)


class ReadingIn(BaseModel):
    value: float
    device: DeviceSnapshot | None = None
