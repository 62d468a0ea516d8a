"""
Redis access for the API process.

Celery talks to Redis through its own broker connection. The API only needs
an async client for publishing ledger metrics to a capped stream.
"""

import json
from typing import Any, Mapping, Optional

from redis.asyncio import Redis as AsyncRedis

from foliotrack.core.config import settings

METRICS_STREAM = "foliotrack:metrics"

_client: Optional[AsyncRedis] = None


async def get_async_redis() -> AsyncRedis:
    """Shared async client, created on first use."""
    global _client
    if _client is None:
        _client = AsyncRedis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
        )
    return _client


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


async def publish_json(
    client: AsyncRedis,
    stream: str,
    payload: Mapping[str, Any],
    maxlen: Optional[int] = None,
) -> str:
    """XADD ``payload`` as one JSON ``data`` field, trimming the stream to about ``maxlen`` entries."""
    return await client.xadd(
        stream,
        {"data": json.dumps(payload, default=str)},
        maxlen=maxlen or settings.METRICS_STREAM_MAXLEN,
        approximate=True,
    )
