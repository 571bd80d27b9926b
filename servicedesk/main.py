from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from servicedesk.api.routes import me, ping, tickets
from servicedesk.core.config import Settings, get_settings
from servicedesk.core.logging import configure_logging, init_tracer, shutdown_tracer
from servicedesk.middleware import RBACMiddleware
from servicedesk.storage import InMemoryKeyValueStore, SQLKeyValueStore
from servicedesk.storage.sql import to_asyncpg_dsn
from servicedesk.tickets.service import TicketService


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)
    app.state.logger = logger
    app.state.tracer_provider = tracer_provider

    db_engine = None
    if settings.storage_backend == "postgres":
        db_engine = create_async_engine(to_asyncpg_dsn(settings.postgres_dsn), future=True)
        store = SQLKeyValueStore(async_sessionmaker(db_engine, expire_on_commit=False), engine=db_engine)
        await store.ensure_schema()
    else:
        store = InMemoryKeyValueStore(
            max_bytes=settings.storage_max_bytes,
            latency_ms=settings.storage_latency_ms,
        )
    app.state.ticket_service = TicketService.from_store(store, key_prefix=settings.storage_key_prefix)
    logger.info("Ticket service ready with %s storage", settings.storage_backend)
    try:
        yield
    finally:
        if db_engine is not None:
            await db_engine.dispose()
        shutdown_tracer(tracer_provider)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.add_middleware(RBACMiddleware)
    app.include_router(ping.router)
    app.include_router(me.router)
    app.include_router(tickets.router)
    return app


app = create_app()
