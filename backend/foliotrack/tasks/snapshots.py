"""
Daily portfolio snapshot task.

Values every portfolio and upserts today's snapshot row. A portfolio that
fails is logged and skipped so the rest still get their snapshot.
"""
import asyncio
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from foliotrack.core.database import close_db
from foliotrack.core.exceptions import LedgerError
from foliotrack.scheduler.celery_app import app
from foliotrack.services.portfolio_service import PortfolioService

logger = logging.getLogger(__name__)


async def _create_daily_snapshots_async(service: Optional[PortfolioService] = None) -> dict:
    service = service or PortfolioService()
    portfolio_ids = await service.list_portfolio_ids()

    created = 0
    failed = []
    for portfolio_id in portfolio_ids:
        try:
            snapshot = await service.create_portfolio_snapshot(portfolio_id)
        except (LedgerError, SQLAlchemyError) as e:
            logger.error(f"Snapshot failed for portfolio {portfolio_id}: {e}")
            failed.append(portfolio_id)
            continue
        created += 1
        logger.debug(f"Snapshot for portfolio {portfolio_id}: value={snapshot.total_value}")

    logger.info(f"Daily snapshots: {created} created, {len(failed)} failed")
    return {
        "status": "success" if not failed else "partial",
        "portfolios": len(portfolio_ids),
        "created": created,
        "failed": failed,
    }


@app.task(name="foliotrack.tasks.snapshots.create_daily_snapshots")
def create_daily_snapshots():
    """Celery beat entry point: snapshot every portfolio for today."""
    async def _run():
        try:
            return await _create_daily_snapshots_async()
        finally:
            # Pooled connections are bound to this event loop
            await close_db()

    return asyncio.run(_run())


@app.task(name="foliotrack.tasks.snapshots.create_portfolio_snapshot")
def create_portfolio_snapshot(portfolio_id: int):
    """Snapshot a single portfolio on demand."""
    async def _run():
        try:
            snapshot = await PortfolioService().create_portfolio_snapshot(portfolio_id)
            return {
                "portfolio_id": portfolio_id,
                "snapshot_date": snapshot.snapshot_date.isoformat(),
                "total_value": float(snapshot.total_value),
            }
        finally:
            await close_db()

    return asyncio.run(_run())
