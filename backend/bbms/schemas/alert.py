from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    SUCCESS = "success"


class AlertCategory(str, Enum):
    SECURITY = "security"
    HVAC = "hvac"
    LIGHTING = "lighting"
    ACCESS = "access"
    MAINTENANCE = "maintenance"
    ENERGY = "energy"
    SAFETY = "safety"
    SYSTEM = "system"
    NETWORK = "network"


class AlertIn(BaseModel):
    title: str = Field(..., min_length=1)
    message: str
    severity: AlertSeverity
    category: AlertCategory
    timestamp: datetime | None = None
    device_id: str | None = None
    zone_id: str | None = None


class AlertOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    timestamp: datetime
    title: str
    message: str
    severity: AlertSeverity
    category: AlertCategory
    device_id: str | None
    zone_id: str | None
    is_read: bool
    is_resolved: bool


class AlertListResponse(BaseModel):
    items: list[AlertOut]
    count: int
    unread_count: int
    critical_count: int


class AlertActionResponse(BaseModel):
    id: str
    applied: bool
    alert: AlertOut | None = None
