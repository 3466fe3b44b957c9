"""
FastAPI Application — entry point.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from olytics import __version__
from olytics.aggregation import AggregationManager, ContentArchiveAggregation
from olytics.aggregation.indexes import IndexManager
from olytics.config import settings
from olytics.database import async_session, close_db, init_db
from olytics.mongo import close_mongo_client, get_mongo_client
from olytics.routes import router
from olytics.services.enablement import EnablementService

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)

logger = logging.getLogger(__name__)


def build_manager(client, enablement: EnablementService) -> AggregationManager:
    """Wire the aggregations against a Mongo client and enablement store."""
    index_manager = IndexManager(client, cache=settings.index_cache_enabled)
    return AggregationManager([
        ContentArchiveAggregation(
            client,
            enablement,
            index_manager,
            session_db=settings.session_archive_db,
            traffic_db=settings.traffic_archive_db,
            session_ttl_seconds=settings.session_archive_ttl_days * 24 * 60 * 60,
        ),
    ])


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown hook."""
    logger.info("🚀 Starting Olytics Content Archive API v%s", __version__)
    await init_db()
    logger.info("✅ Database ready")

    enablement = EnablementService(
        async_session, default_enabled=settings.aggregation_default_enabled
    )
    app.state.enablement = enablement
    app.state.aggregation_manager = build_manager(get_mongo_client(), enablement)
    logger.info("✅ Aggregations ready: %s", ", ".join(app.state.aggregation_manager.names))

    yield

    await close_mongo_client()
    await close_db()
    logger.info("👋 Shutdown complete")


app = FastAPI(
    title="Olytics Content Archive API",
    description=(
        "Aggregates content page-view events into monthly session and "
        "traffic archives."
    ),
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "Olytics Content Archive API",
        "version": __version__,
        "docs": "/docs",
    }
