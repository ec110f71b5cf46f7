import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from helpdesk.api.routes import metrics, ping, tickets
from helpdesk.core.config import get_settings
from helpdesk.core.logging import configure_logging, init_tracer, shutdown_tracer
from helpdesk.identity import SqlIdentityProvider
from helpdesk.metrics import metrics_registry
from helpdesk.services.postgres import PostgresPoolManager, to_asyncpg_dsn
from helpdesk.tickets import (
    PostgresTicketStore,
    TicketLifecycleEngine,
    TicketQueryService,
    TicketService,
)


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider
    app.state.metrics_registry = metrics_registry

    pool_manager = PostgresPoolManager(
        dsn=settings.postgres_dsn,
        min_size=settings.postgres_pool_min_size,
        max_size=settings.postgres_pool_max_size,
    )
    app.state.postgres_pool = pool_manager
    app.state.ticket_service = None
    app.state.identity_provider = None

    db_engine = None
    try:
        pool = await pool_manager.get_pool()
        store = PostgresTicketStore(pool)
        await store.ensure_schema()

        db_engine = create_async_engine(to_asyncpg_dsn(settings.postgres_dsn), future=True)
        session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
        identity_provider = SqlIdentityProvider(session_factory, engine=db_engine)
        await identity_provider.ensure_schema()

        app.state.identity_provider = identity_provider
        app.state.ticket_service = TicketService(
            TicketLifecycleEngine(store),
            TicketQueryService(
                store,
                max_page_size=settings.max_page_size,
                unsolved_limit=settings.unsolved_limit,
            ),
            registry=metrics_registry,
            timeout=settings.request_timeout_seconds,
        )
    except Exception:
        # Keep serving health checks; ticket routes answer 503 until restart.
        logger.exception("Ticket service initialisation failed")
        if db_engine is not None:
            await db_engine.dispose()
            db_engine = None
    try:
        yield
    finally:
        if db_engine is not None:
            await db_engine.dispose()
        await pool_manager.close()
        shutdown_tracer(tracer_provider)
        logging.getLogger(__name__).info("Helpdesk API shut down")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(ping.router)
    app.include_router(metrics.router)
    app.include_router(tickets.router)
    return app


app = create_app()
