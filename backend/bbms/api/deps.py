from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.orm import sessionmaker

from bbms.core.config import Settings
from bbms.services import AlertLedger, AuditLedgerClient, MonitoringCoordinator, NotificationDispatcher, ThresholdStore


@dataclass
class Services:
    settings: Settings
    session_factory: sessionmaker
    store: ThresholdStore
    alerts: AlertLedger
    dispatcher: NotificationDispatcher
    ledger: AuditLedgerClient
    monitor: MonitoringCoordinator


def get_services(request: Request) -> Services:
    return request.app.state.services
