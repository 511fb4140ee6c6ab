"""
Redis cache for pricing settings.

Only small decimal values are stored (the resolved tax rate today), as plain
strings so they round-trip without float drift. Every operation degrades to
a miss when Redis is unreachable; callers fall back to the database.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

import redis
from redis.exceptions import RedisError
from flask import Flask

logger = logging.getLogger(__name__)


class PricingCache:
    """Keys look like {prefix}:{namespace}:{name}, e.g. jewelry:tax:rate."""

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self.enabled = False
        self.prefix = 'jewelry'
        self.default_ttl = 60

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.enabled = app.config.get('CACHE_ENABLED', True)
        self.prefix = app.config.get('CACHE_KEY_PREFIX', 'jewelry')
        self.default_ttl = app.config.get('CACHE_DEFAULT_TTL', 60)

        if not self.enabled:
            logger.info("[CACHE] Pricing cache disabled")
            return

        redis_url = app.config.get('REDIS_URL', 'redis://localhost:6379/0')
        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                retry_on_timeout=True,
            )
            self.client.ping()
            logger.info(f"[CACHE] Redis connected: {redis_url}")
        except RedisError as e:
            logger.warning(f"[CACHE] Redis unreachable ({e}); pricing settings read from the database")
            self.enabled = False
            self.client = None

    def is_available(self) -> bool:
        if not self.enabled or self.client is None:
            return False
        try:
            return bool(self.client.ping())
        except RedisError:
            return False

    def key(self, namespace: str, name: str) -> str:
        return f"{self.prefix}:{namespace}:{name}"

    def get_decimal(self, namespace: str, name: str) -> Optional[Decimal]:
        if not self.is_available():
            return None
        try:
            raw = self.client.get(self.key(namespace, name))
        except RedisError as e:
            logger.warning(f"[CACHE] Read of {namespace}:{name} failed: {e}")
            return None
        if raw is None:
            return None
        try:
            return Decimal(raw)
        except InvalidOperation:
            logger.warning(f"[CACHE] Dropping malformed value for {namespace}:{name}: {raw!r}")
            self.invalidate(namespace, name)
            return None

    def put_decimal(self, namespace: str, name: str, value: Decimal, ttl: Optional[int] = None) -> bool:
        if not self.is_available():
            return False
        try:
            self.client.setex(self.key(namespace, name), ttl or self.default_ttl, str(value))
            return True
        except RedisError as e:
            logger.warning(f"[CACHE] Write of {namespace}:{name} failed: {e}")
            return False

    def invalidate(self, namespace: str, name: str) -> bool:
        if not self.is_available():
            return False
        try:
            self.client.delete(self.key(namespace, name))
            return True
        except RedisError as e:
            logger.warning(f"[CACHE] Invalidate of {namespace}:{name} failed: {e}")
            return False

    def cached_decimal(self, namespace: str, name: str, loader: Callable[[], Decimal],
                       ttl: Optional[int] = None) -> Decimal:
        """Cache-aside read: the loader runs on a miss and its result is stored."""
        cached = self.get_decimal(namespace, name)
        if cached is not None:
            return cached
        value = loader()
        self.put_decimal(namespace, name, value, ttl)
        return value

    def health_check(self) -> bool:
        """Write and read back a throwaway key."""
        if not self.put_decimal('system', 'health_check', Decimal('1'), ttl=10):
            return False
        return self.get_decimal('system', 'health_check') == Decimal('1')


_cache: Optional[PricingCache] = None


def init_cache(app: Flask) -> None:
    global _cache
    _cache = PricingCache(app)
    app.extensions['pricing_cache'] = _cache


def get_cache() -> PricingCache:
    if _cache is None:
        raise RuntimeError("Pricing cache not initialized.")
    return _cache
