"""
Metrics API Router.

Read-only views over the in-process metrics buffer.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel

from foliotrack.core.metrics import MetricEvent, metrics

router = APIRouter()

# ---------- Pydantic Schemas ----------

class MetricsSummary(BaseModel):
    period_hours: int
    total_events: int
    by_category: dict
    by_event: dict
    transactions_processed: int
    transactions_rolled_back: int
    amount_processed: float
    price_lookup_failures: int
    failing_symbols: List[str]
    snapshots_created: int


class MetricEventSchema(BaseModel):
    timestamp: datetime
    category: str
    event_type: str
    portfolio_id: Optional[int]
    value: float
    metadata: dict

    class Config:
        from_attributes = True


def _matches(event: MetricEvent, cutoff: datetime, category: Optional[str],
             event_type: Optional[str], portfolio_id: Optional[int]) -> bool:
    return (
        event.timestamp >= cutoff
        and (category is None or event.category == category)
        and (event_type is None or event.event_type == event_type)
        and (portfolio_id is None or event.portfolio_id == portfolio_id)
    )


# ---------- Endpoints ----------

@router.get("/summary", response_model=MetricsSummary)
async def get_metrics_summary(
    hours: int = Query(default=24, ge=1, le=168),
):
    """Event counts, amount processed and the symbols whose prices keep failing."""
    return metrics.get_summary(hours=hours)


@router.get("/events", response_model=List[MetricEventSchema])
async def get_events(
    category: Optional[str] = Query(default=None, description="ledger, valuation or snapshot"),
    event_type: Optional[str] = None,
    portfolio_id: Optional[int] = None,
    hours: int = Query(default=24, ge=1, le=168),
    limit: int = Query(default=100, ge=1, le=1000),
):
    """Buffered events, newest first."""
    cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
    newest_first = reversed(metrics.get_buffer())
    return [e for e in newest_first if _matches(e, cutoff, category, event_type, portfolio_id)][:limit]
