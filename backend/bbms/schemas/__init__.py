from bbms.schemas.alert import (
    AlertActionResponse,
    AlertCategory,
    AlertIn,
    AlertListResponse,
    AlertOut,
    AlertSeverity,
)
from bbms.schemas.device import DeviceSnapshot, DeviceStatus, ReadingIn, SensorKind
from bbms.schemas.document import AuditDocument, AuditRecord, DocumentListResponse
from bbms.schemas.limit import LimitIn, LimitOut
from bbms.schemas.monitoring import (
    EvaluationOut,
    HistoryPointOut,
    HistoryResponse,
    NotificationStatus,
    PermissionIn,
    StatusResponse,
)

__all__ = [
    "AlertActionResponse",
    "AlertCategory",
    "AlertIn",
    "AlertListResponse",
    "AlertOut",
    "AlertSeverity",
    "AuditDocument",
    "AuditRecord",
    "DeviceSnapshot",
    "DeviceStatus",
    "DocumentListResponse",
    "EvaluationOut",
    "HistoryPointOut",
    "HistoryResponse",
    "LimitIn",
    "LimitOut",
    "NotificationStatus",
    "PermissionIn",
    "ReadingIn",
    "SensorKind",
    "StatusResponse",
]
