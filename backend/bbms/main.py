import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import sessionmaker

from bbms.api import Services, router
from bbms.core import Settings, create_session_factory, init_db, settings as default_settings
from bbms.services import (
    AlertLedger,
    AuditLedgerClient,
    DeviceFeedClient,
    InMemoryNotificationCenter,
    MonitoringCoordinator,
    NotificationCenter,
    NotificationDispatcher,
    ThresholdStore,
    WebhookNotificationCenter,
)
from bbms.utils import setup_logging

logger = logging.getLogger(__name__)


def build_services(
    settings: Settings,
    session_factory: sessionmaker | None = None,
    ledger_client: AuditLedgerClient | None = None,
    notification_center: NotificationCenter | None = None,
    device_source: DeviceFeedClient | None = None,
) -> Services:
    session_factory = session_factory or create_session_factory(settings.database_url)
    ledger_client = ledger_client or AuditLedgerClient(
        settings.ledger_base_url,
        timeout=settings.ledger_timeout,
        token=settings.ledger_token,
        max_attempts=settings.ledger_max_attempts,
        backoff_base=settings.ledger_backoff_base,
    )
    if notification_center is None:
        if settings.notification_webhook_url:
            notification_center = WebhookNotificationCenter(settings.notification_webhook_url)
        else:
            notification_center = InMemoryNotificationCenter()
    if device_source is None and settings.device_feed_url:
        device_source = DeviceFeedClient(settings.device_feed_url, settings.device_feed_timeout)

    store = ThresholdStore(session_factory, settings)
    alerts = AlertLedger(session_factory)
    dispatcher = NotificationDispatcher(
        notification_center,
        cooldown_seconds=settings.notification_cooldown,
        critical_offset=settings.critical_offset,
    )
    monitor = MonitoringCoordinator(store, alerts, dispatcher, ledger_client, device_source, settings)
    services = Services(
        settings=settings,
        session_factory=session_factory,
        store=store,
        alerts=alerts,
        dispatcher=dispatcher,
        ledger=ledger_client,
        monitor=monitor,
    )
    return services


def create_app(
    settings: Settings | None = None,
    session_factory: sessionmaker | None = None,
    ledger_client: AuditLedgerClient | None = None,
    notification_center: NotificationCenter | None = None,
    device_source: DeviceFeedClient | None = None,
    start_monitoring: bool = True,
) -> FastAPI:
    settings = settings or default_settings
    setup_logging(settings)

    app = FastAPI(
        title="Building Temperature Monitor API",
        version="0.1.0",
        description="Threshold monitoring with local alerts and an external audit ledger.",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")
    services = build_services(settings, session_factory, ledger_client, notification_center, device_source)
    app.state.services = services

    @app.on_event("startup")
    async def on_startup() -> None:
        init_db(services.session_factory)
        services.alerts.load()
        if start_monitoring:
            await services.monitor.start()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await services.monitor.stop()
        await services.monitor.drain()

    @app.get("/")
    def root() -> dict[str, str]:
        return {"message": "Building temperature monitor is running", "docs": "/docs"}

    return app


app = create_app()
