import logging

import redis.asyncio as redis

from app.config import settings

logger = logging.getLogger(__name__)

REVOKED_PREFIX = "revoked:"


class CacheManager:
    """
    Session revocation cache backed by Redis.

    Nothing in the data layer depends on it being up: when Redis is
    unavailable ``revoke`` is skipped and ``is_revoked`` answers False,
    so requests keep working and only logout loses its effect.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None
        self._lookups: int = 0
        self._revoked_hits: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, revocation disabled: %s", exc)

    async def disconnect(self) -> None:
        """Close the connection pool.  Called once at application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    async def revoke(self, key: str, ttl: int | None = None) -> bool:
        """Mark *key* revoked for *ttl* seconds; False when Redis is unavailable."""
        if not self._redis:
            return False
        try:
            await self._redis.set(REVOKED_PREFIX + key, "1", ex=ttl or settings.REVOCATION_TTL)
            return True
        except Exception as exc:
            logger.warning("Revocation SET failed for key=%r: %s", key, exc)
            return False

    async def is_revoked(self, key: str) -> bool:
        if not self._redis:
            return False
        self._lookups += 1
        try:
            revoked = bool(await self._redis.exists(REVOKED_PREFIX + key))
        except Exception as exc:
            logger.debug("Revocation EXISTS failed for key=%r: %s", key, exc)
            return False
        if revoked:
            self._revoked_hits += 1
        return revoked

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        return {
            "connected": self._redis is not None,
            "lookups": self._lookups,
            "revoked_hits": self._revoked_hits,
        }


# Module-level singleton shared across all request handlers.
cache = CacheManager()
