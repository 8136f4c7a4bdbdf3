from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .core.config import Settings, get_settings
from .core.logs import configure_logging
from .core.nats import nats_connect, nats_close
from .core.redis import ConsumedTokenRegistry, ping_redis
from .db import async_session_maker, engine, init_db
from .routers import checkins, geofence, stats, tokens, validator
from .schemas import GeofenceRegion
from .services.checkins import CheckInLedger
from .services.geofence import GeofenceMonitor
from .services.identity import MOCK_PARENT, HttpUserDirectory, StaticUserDirectory
from .services.notifications import LogNotificationSink, NatsNotificationSink
from .services.scanning import select_scan_input
from .services.stats import StatsAggregator
from .services.storage import BlobStore
from .services.tokens import allow_all, pickup_window_check

logger = logging.getLogger(__name__)


def build_state(app: FastAPI, settings: Settings, session_maker: async_sessionmaker[AsyncSession]) -> None:
    """Wire one instance of each service per process and hang them on app.state."""
    store = BlobStore(session_maker)
    notifier = (
        NatsNotificationSink(settings.nats_subject_notifications)
        if settings.use_nats_notifications else LogNotificationSink()
    )
    if settings.use_mock_mode:
        directory = StaticUserDirectory([MOCK_PARENT])
    else:
        directory = HttpUserDirectory(settings.auth_base_url)

    s = app.state
    s.settings = settings
    s.store = store
    s.notifier = notifier
    s.directory = directory
    s.mock_profile = MOCK_PARENT
    s.authorize = (
        pickup_window_check(settings.schools, tz=settings.stats_timezone)
        if settings.enforce_pickup_windows else allow_all
    )
    s.consumed = ConsumedTokenRegistry() if settings.replay_guard_enabled else None
    s.ledger = CheckInLedger(
        store, directory, notifier,
        schools=settings.schools,
        retention_minutes=settings.board_retention_minutes,
    )
    s.stats = StatsAggregator(
        store,
        on_time_threshold_minutes=settings.on_time_threshold_minutes,
        tz=settings.stats_timezone,
    )
    s.scheduler = AsyncIOScheduler()
    s.geofence = GeofenceMonitor(
        settings.schools, notifier,
        scheduler=s.scheduler,
        poll_seconds=settings.geofence_poll_seconds,
    )
    s.scan_input = select_scan_input(settings.scan_input)


def create_app(
    settings: Settings | None = None,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    session_maker = session_maker or async_session_maker
    configure_logging(settings.log_level, settings.log_file)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        bind = session_maker.kw.get("bind") or engine
        await init_db(bind)
        # best-effort connect to infra; service still runs if these fail
        if settings.use_nats_notifications:
            try:
                await nats_connect()
            except Exception:
                logger.warning("nats unavailable at startup", exc_info=True)
        if settings.replay_guard_enabled or settings.rl_enabled:
            await ping_redis()

        app.state.scheduler.start()
        await app.state.geofence.start_monitoring(
            [GeofenceRegion.from_school(school) for school in settings.schools]
        )
        yield
        await app.state.geofence.stop_monitoring()
        app.state.scheduler.shutdown(wait=False)
        await nats_close()

    app = FastAPI(title="pickup-svc", lifespan=lifespan)
    build_state(app, settings, session_maker)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(tokens.router)
    app.include_router(validator.router)
    app.include_router(checkins.router)
    app.include_router(stats.router)
    app.include_router(geofence.router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "pickup-svc"}

    if settings.metrics_enabled:
        Instrumentator().instrument(app).expose(app)
    return app


app = create_app()
