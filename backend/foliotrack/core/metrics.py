"""
Ledger metrics.

Every event goes to the log and to a bounded in-memory buffer that backs the
/api/v1/metrics endpoints. When a Redis client is attached the event is also
appended to the metrics stream for out-of-process consumers.

Events:
- ledger/transaction_processed      value = total_amount
- ledger/transaction_rolled_back    value = 1
- valuation/price_lookup_failed     value = 1
- snapshot/created                  value = total portfolio value
"""
import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Deque, Dict, List, Optional

from foliotrack.core.config import settings
from foliotrack.core.redis import METRICS_STREAM, publish_json

logger = logging.getLogger(__name__)

LEDGER = "ledger"
VALUATION = "valuation"
SNAPSHOT = "snapshot"


@dataclass
class MetricEvent:
    timestamp: datetime
    category: str
    event_type: str
    portfolio_id: Optional[int]
    value: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.category}/{self.event_type}"

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "category": self.category,
            "event_type": self.event_type,
            "portfolio_id": self.portfolio_id,
            "value": self.value,
            "metadata": self.metadata,
        }


class MetricsEmitter:
    """Collects ledger events. One module-level instance, ``metrics``, is shared."""

    def __init__(self, redis_client=None, buffer_size: Optional[int] = None):
        self.redis = redis_client
        self._buffer: Deque[MetricEvent] = deque(maxlen=buffer_size or settings.METRICS_BUFFER_SIZE)
        self._enabled = True

    def set_redis(self, redis_client) -> None:
        self.redis = redis_client

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    async def emit(
        self,
        category: str,
        event_type: str,
        value: float,
        portfolio_id: Optional[int] = None,
        **metadata: Any,
    ) -> Optional[MetricEvent]:
        """
        Record one event.

        A Redis publish failure is logged and dropped; it never fails the
        ledger operation that produced the event.
        """
        if not self._enabled:
            return None

        event = MetricEvent(
            timestamp=datetime.now(timezone.utc),
            category=category,
            event_type=event_type,
            portfolio_id=portfolio_id,
            value=value,
            metadata=metadata,
        )
        logger.info("METRIC %s portfolio=%s value=%s %s", event.key, portfolio_id, value, metadata or "")
        self._buffer.append(event)

        if self.redis is not None:
            try:
                await publish_json(self.redis, METRICS_STREAM, event.to_dict())
            except Exception as e:
                logger.warning("Failed to publish metric %s to Redis: %s", event.key, e)

        return event

    # ---------- ledger events ----------

    async def transaction_processed(self, portfolio_id: int, transaction_id: int,
                                    kind: str, total_amount: float) -> Optional[MetricEvent]:
        return await self.emit(LEDGER, "transaction_processed", total_amount, portfolio_id,
                               transaction_id=transaction_id, kind=kind)

    async def transaction_rolled_back(self, portfolio_id: Optional[int], kind: Optional[str],
                                      error: str) -> Optional[MetricEvent]:
        return await self.emit(LEDGER, "transaction_rolled_back", 1.0, portfolio_id,
                               kind=kind, error=error)

    async def price_lookup_failed(self, portfolio_id: Optional[int], symbol: str,
                                  source: Optional[str], reason: str) -> Optional[MetricEvent]:
        return await self.emit(VALUATION, "price_lookup_failed", 1.0, portfolio_id,
                               symbol=symbol, source=source, reason=reason)

    async def snapshot_created(self, portfolio_id: int, total_value: float,
                               holdings_count: int) -> Optional[MetricEvent]:
        return await self.emit(SNAPSHOT, "created", total_value, portfolio_id,
                               holdings_count=holdings_count)

    # ---------- reads ----------

    def get_buffer(self) -> List[MetricEvent]:
        return list(self._buffer)

    def get_summary(self, hours: int = 24) -> dict:
        """Counts over the buffered events of the last ``hours`` hours."""
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
        recent = [e for e in self._buffer if e.timestamp >= cutoff]

        by_event = Counter(e.key for e in recent)
        failing = Counter(
            e.metadata.get("symbol") for e in recent if e.key == "valuation/price_lookup_failed"
        )
        return {
            "period_hours": hours,
            "total_events": len(recent),
            "by_category": dict(Counter(e.category for e in recent)),
            "by_event": dict(by_event),
            "transactions_processed": by_event["ledger/transaction_processed"],
            "transactions_rolled_back": by_event["ledger/transaction_rolled_back"],
            "amount_processed": sum(
                e.value for e in recent if e.key == "ledger/transaction_processed"
            ),
            "price_lookup_failures": by_event["valuation/price_lookup_failed"],
            "failing_symbols": [symbol for symbol, _ in failing.most_common(10)],
            "snapshots_created": by_event["snapshot/created"],
        }

    def clear_buffer(self) -> int:
        count = len(self._buffer)
        self._buffer.clear()
        return count


metrics = MetricsEmitter()
