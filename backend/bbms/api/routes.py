from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from bbms.api.deps import Services, get_services
from bbms.core.exceptions import LedgerReadError, ValidationError
from bbms.schemas import (
    AlertActionResponse,
    AlertCategory,
    AlertIn,
    AlertListResponse,
    AlertOut,
    AlertSeverity,
    AuditDocument,
    DeviceSnapshot,
    DocumentListResponse,
    EvaluationOut,
    HistoryPointOut,
    HistoryResponse,
    LimitIn,
    LimitOut,
    NotificationStatus,
    PermissionIn,
    ReadingIn,
    StatusResponse,
)
from bbms.services import Evaluation

router = APIRouter()


def _serialize_evaluation(result: Evaluation) -> EvaluationOut:
    return EvaluationOut(
        device_id=result.device_id,
        reading=result.reading,
        limit=result.limit,
        severity=result.severity.value,
        evaluated=result.evaluated,
        alert=result.alert,
        notified=result.notified,
    )


def _serialize_limit(services: Services, device_id: str, value: float) -> LimitOut:
    return LimitOut(device_id=device_id, value=value, critical_value=value + services.settings.critical_offset)


def _serialize_documents(services: Services) -> DocumentListResponse:
    items = services.ledger.documents
    return DocumentListResponse(
        items=items,
        count=len(items),
        latest=services.ledger.latest_document,
        is_stale=services.ledger.is_stale,
        error_message=services.ledger.error_message,
        is_loading=services.ledger.is_loading,
    )


def _serialize_notifications(services: Services) -> NotificationStatus:
    dispatcher = services.dispatcher
    return NotificationStatus(
        enabled=dispatcher.notifications_enabled,
        cooldown_seconds=dispatcher.cooldown_seconds,
        tracked_devices=dispatcher.tracked_devices,
        report=dispatcher.status_report(),
    )


def _require_device(services: Services, device_id: str) -> DeviceSnapshot:
    device = services.monitor.device(device_id)
    if device is None:
        raise HTTPException(status_code=404, detail="Device is not monitored")
    return device


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/status", response_model=StatusResponse)
def get_status(services: Services = Depends(get_services)) -> StatusResponse:
    return StatusResponse(
        monitoring=services.monitor.is_monitoring,
        devices=len(services.monitor.devices()),
        ledger_stale=services.ledger.is_stale,
        ledger_error=services.ledger.error_message,
        notifications_enabled=services.dispatcher.notifications_enabled,
        report=services.monitor.status_report(),
    )


@router.post("/monitoring/start")
async def start_monitoring(services: Services = Depends(get_services)) -> dict[str, bool]:
    started = await services.monitor.start()
    return {"monitoring": services.monitor.is_monitoring, "changed": started}


@router.post("/monitoring/stop")
async def stop_monitoring(services: Services = Depends(get_services)) -> dict[str, bool]:
    stopped = await services.monitor.stop()
    return {"monitoring": services.monitor.is_monitoring, "changed": stopped}


@router.post("/monitoring/poll", response_model=list[EvaluationOut])
async def poll_now(services: Services = Depends(get_services)) -> list[EvaluationOut]:
    results = await services.monitor.poll_once()
    return [_serialize_evaluation(result) for result in results]


@router.get("/devices", response_model=list[DeviceSnapshot])
def list_devices(services: Services = Depends(get_services)) -> list[DeviceSnapshot]:
    return services.monitor.devices()


@router.post("/devices", response_model=DeviceSnapshot)
def subscribe_device(device: DeviceSnapshot, services: Services = Depends(get_services)) -> DeviceSnapshot:
    return services.monitor.subscribe(device)


@router.delete("/devices/{device_id}")
def unsubscribe_device(device_id: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    return {"id": device_id, "removed": services.monitor.unsubscribe(device_id)}


@router.post("/devices/{device_id}/readings", response_model=EvaluationOut)
async def ingest_reading(
    device_id: str,
    payload: ReadingIn,
    services: Services = Depends(get_services),
) -> EvaluationOut:
    device = payload.device or _require_device(services, device_id)
    if device.id != device_id:
        raise HTTPException(status_code=400, detail="Device id does not match the path")
    result = await services.monitor.ingest(device, payload.value)
    return _serialize_evaluation(result)


@router.post("/devices/{device_id}/test-alert")
async def send_test_alert(device_id: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    _require_device(services, device_id)
    alert, notified = await services.monitor.send_test_alert(device_id)
    return {"alert": alert, "notified": notified}


@router.get("/devices/{device_id}/history", response_model=HistoryResponse)
def get_device_history(device_id: str, services: Services = Depends(get_services)) -> HistoryResponse:
    points, limit, throttled = services.monitor.history(device_id)
    items = [
        HistoryPointOut(
            timestamp=point.timestamp,
            value=point.value,
            exceeds_limit=point.exceeds_limit,
            battery_voltage=point.battery_voltage,
        )
        for point in points
    ]
    return HistoryResponse(
        device_id=device_id,
        limit=limit,
        items=items,
        violations=sum(1 for point in points if point.exceeds_limit),
        throttled=throttled,
    )


@router.get("/limits/{device_id}", response_model=LimitOut)
def get_limit(device_id: str, services: Services = Depends(get_services)) -> LimitOut:
    return _serialize_limit(services, device_id, services.store.get(device_id))


@router.put("/limits/{device_id}", response_model=LimitOut)
def update_limit(device_id: str, payload: LimitIn, services: Services = Depends(get_services)) -> LimitOut:
    try:
        value = services.store.set(device_id, payload.value)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _serialize_limit(services, device_id, value)


@router.get("/alerts", response_model=AlertListResponse)
def get_alerts(
    severity: AlertSeverity | None = Query(default=None),
    category: AlertCategory | None = Query(default=None),
    device_id: str | None = Query(default=None),
    unresolved_only: bool = Query(default=False),
    unread_only: bool = Query(default=False),
    services: Services = Depends(get_services),
) -> AlertListResponse:
    items = services.alerts.query(
        severity=severity,
        category=category,
        device_id=device_id,
        unresolved_only=unresolved_only,
        unread_only=unread_only,
    )
    return AlertListResponse(
        items=items,
        count=len(items),
        unread_count=services.alerts.unread_count,
        critical_count=services.alerts.critical_count,
    )


@router.post("/alerts", response_model=AlertOut)
def create_alert(payload: AlertIn, services: Services = Depends(get_services)) -> AlertOut:
    return services.alerts.add(payload)


@router.post("/alerts/read-all")
def mark_all_alerts_read(services: Services = Depends(get_services)) -> dict[str, int]:
    return {"updated": services.alerts.mark_all_as_read()}


@router.post("/alerts/{alert_id}/read", response_model=AlertActionResponse)
def mark_alert_read(alert_id: str, services: Services = Depends(get_services)) -> AlertActionResponse:
    alert = services.alerts.mark_as_read(alert_id)
    return AlertActionResponse(id=alert_id, applied=alert is not None, alert=alert)


@router.post("/alerts/{alert_id}/resolve", response_model=AlertActionResponse)
async def resolve_alert(alert_id: str, services: Services = Depends(get_services)) -> AlertActionResponse:
    alert = services.monitor.resolve_alert(alert_id)
    return AlertActionResponse(id=alert_id, applied=alert is not None, alert=alert)


@router.delete("/alerts/{alert_id}", response_model=AlertActionResponse)
def delete_alert(alert_id: str, services: Services = Depends(get_services)) -> AlertActionResponse:
    return AlertActionResponse(id=alert_id, applied=services.alerts.delete(alert_id))


@router.get("/ledger/documents", response_model=DocumentListResponse)
def get_ledger_documents(services: Services = Depends(get_services)) -> DocumentListResponse:
    return _serialize_documents(services)


@router.get("/ledger/latest", response_model=AuditDocument)
def get_latest_document(services: Services = Depends(get_services)) -> AuditDocument:
    latest = services.ledger.latest_document
    if latest is None:
        raise HTTPException(status_code=404, detail="No ledger documents available")
    return latest


@router.post("/ledger/refresh", response_model=DocumentListResponse)
async def refresh_ledger(services: Services = Depends(get_services)) -> DocumentListResponse:
    try:
        await services.ledger.refresh()
    except LedgerReadError as exc:
        raise HTTPException(status_code=502, detail=f"Failed to refresh ledger: {exc}") from exc
    return _serialize_documents(services)


@router.get("/ledger/test")
async def test_ledger_connection(services: Services = Depends(get_services)) -> dict[str, str]:
    return {"report": await services.ledger.test_connection()}


@router.get("/notifications", response_model=NotificationStatus)
def get_notification_status(services: Services = Depends(get_services)) -> NotificationStatus:
    return _serialize_notifications(services)


@router.post("/notifications/permission", response_model=NotificationStatus)
def set_notification_permission(
    payload: PermissionIn,
    services: Services = Depends(get_services),
) -> NotificationStatus:
    services.dispatcher.request_permission(payload.granted)
    return _serialize_notifications(services)
