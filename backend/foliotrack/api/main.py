"""
FastAPI application entry point.

Run with ``uvicorn foliotrack.api.main:app``.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from foliotrack.core.config import settings
from foliotrack.core.database import close_db, engine
from foliotrack.core.exceptions import LedgerError
from foliotrack.core.logging import setup_logging
from foliotrack.core.metrics import metrics
from foliotrack.core.redis import close_redis, get_async_redis

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Portfolio ledger: transactions, holdings, cash balances and valuation",
    debug=settings.DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Domain errors that a router did not translate itself."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.on_event("startup")
async def startup() -> None:
    # Schema is managed by Alembic
    logger.info(
        "%s %s starting (%s, %s)",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT, engine.dialect.name,
    )
    if settings.METRICS_REDIS_ENABLED:
        metrics.set_redis(await get_async_redis())
        logger.info("Publishing ledger metrics to Redis")


@app.on_event("shutdown")
async def shutdown() -> None:
    metrics.set_redis(None)
    await close_redis()
    await close_db()


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "database": engine.dialect.name,
    }


@app.get("/")
async def root() -> dict[str, str]:
    return {"service": settings.APP_NAME, "version": settings.APP_VERSION, "docs": "/docs"}


from foliotrack.api.assets import router as assets_router
from foliotrack.api.metrics import router as metrics_router
from foliotrack.api.platforms import router as platforms_router
from foliotrack.api.portfolios import router as portfolios_router
from foliotrack.api.transactions import router as transactions_router

app.include_router(portfolios_router, prefix="/api/v1/portfolios", tags=["portfolios"])
app.include_router(transactions_router, prefix="/api/v1/transactions", tags=["transactions"])
app.include_router(assets_router, prefix="/api/v1/assets", tags=["assets"])
app.include_router(platforms_router, prefix="/api/v1/platforms", tags=["platforms"])
app.include_router(metrics_router, prefix="/api/v1/metrics", tags=["metrics"])
