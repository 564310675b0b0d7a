from bbms.services.alert_engine import CRITICAL_OFFSET, Severity, build_threshold_alert, classify, supports_threshold
from bbms.services.alert_ledger import AlertLedger
from bbms.services.device_feed import DeviceFeedClient
from bbms.services.history import HistoryPoint, ReloadThrottle, build_history
from bbms.services.ledger_client import AuditCycle, AuditLedgerClient, LedgerState
from bbms.services.monitor import Evaluation, MonitoringCoordinator
from bbms.services.notifications import (
    InMemoryNotificationCenter,
    NotificationCenter,
    NotificationDispatcher,
    NotificationRequest,
    WebhookNotificationCenter,
)
from bbms.services.readings import Reading, extract_reading, extract_temperature, is_audit_event, parse_temperature
from bbms.services.threshold_store import Reconciliation, ThresholdStore

__all__ = [
    "AlertLedger",
    "AuditCycle",
    "AuditLedgerClient",
    "CRITICAL_OFFSET",
    "DeviceFeedClient",
    "Evaluation",
    "HistoryPoint",
    "InMemoryNotificationCenter",
    "LedgerState",
    "MonitoringCoordinator",
    "NotificationCenter",
    "NotificationDispatcher",
    "NotificationRequest",
    "Reading",
    "Reconciliation",
    "ReloadThrottle",
    "Severity",
    "ThresholdStore",
    "WebhookNotificationCenter",
    "build_history",
    "build_threshold_alert",
    "classify",
    "extract_reading",
    "extract_temperature",
    "is_audit_event",
    "parse_temperature",
    "supports_threshold",
]
