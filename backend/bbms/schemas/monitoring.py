from datetime import datetime

from pydantic import BaseModel

from bbms.schemas.alert import AlertOut


class EvaluationOut(BaseModel):
    device_id: str
    reading: float
    limit: float
    severity: str
    evaluated: bool
    alert: AlertOut | None = None
    notified: bool = False


class HistoryPointOut(BaseModel):
    timestamp: datetime
    value: float
    exceeds_limit: bool
    battery_voltage: float | None = None


class HistoryResponse(BaseModel):
    device_id: str
    limit: float
    items: list[HistoryPointOut]
    violations: int
    throttled: bool


class NotificationStatus(BaseModel):
    enabled: bool
    cooldown_seconds: float
    tracked_devices: int
    report: str


class PermissionIn(BaseModel):
    granted: bool


class StatusResponse(BaseModel):
    monitoring: bool
    devices: int
    ledger_stale: bool
    ledger_error: str | None
    notifications_enabled: bool
    report: str
