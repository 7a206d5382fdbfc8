"""
Public tracking snapshot cache.

Snapshots are cached in Redis by tracking number and dropped after every
committed change to the shipment. Redis trouble degrades to a cache miss;
the shipment store stays the source of truth.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError
from pydantic import ValidationError

from backend.app.core.config import settings
from backend.app.schemas.shipment import TrackingResponse

logger = logging.getLogger(__name__)

KEY_PREFIX = "tracking:snapshot:"

# Connections are opened lazily on first use
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


def _key(tracking_number: str) -> str:
    return f"{KEY_PREFIX}{tracking_number}"


async def ping() -> bool:
    """Health probe; False when Redis is unreachable."""
    try:
        return bool(await redis_client.ping())
    except RedisError as exc:
        logger.warning("Tracking cache unreachable: %s", exc)
        return False


async def get_snapshot(tracking_number: str) -> Optional[TrackingResponse]:
    try:
        raw = await redis_client.get(_key(tracking_number))
    except RedisError as exc:
        logger.warning("Tracking cache read failed for %s: %s", tracking_number, exc)
        return None
    if raw is None:
        return None
    try:
        return TrackingResponse.model_validate_json(raw)
    except ValidationError:
        logger.warning("Discarding unreadable tracking cache entry for %s", tracking_number)
        await invalidate(tracking_number)
        return None


async def store_snapshot(snapshot: TrackingResponse) -> None:
    try:
        await redis_client.set(
            _key(snapshot.tracking_number),
            snapshot.model_dump_json(),
            ex=settings.tracking_cache_ttl_seconds,
        )
    except RedisError as exc:
        logger.warning("Tracking cache write failed for %s: %s", snapshot.tracking_number, exc)


async def invalidate(tracking_number: str) -> None:
    try:
        await redis_client.delete(_key(tracking_number))
    except RedisError as exc:
        logger.warning("Tracking cache invalidation failed for %s: %s", tracking_number, exc)


async def close() -> None:
    await redis_client.aclose()
