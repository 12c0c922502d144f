"""
Redis cache and change notifications, partitioned by user.

Everything here is best-effort: when Redis is disabled or unreachable every
call degrades to a no-op (reads miss, writes and publishes are dropped) and
callers keep working against the database.
"""

import logging
import json
import time
from typing import Any, Callable, Optional
from datetime import datetime, date
from decimal import Decimal

import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError
from flask import Flask

logger = logging.getLogger(__name__)

# Seconds to wait before probing Redis again after a connection failure
RECONNECT_COOLDOWN = 30


def _encode(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return {"__decimal__": str(obj)}
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def _decode(obj: dict) -> Any:
    if "__decimal__" in obj:
        return Decimal(obj["__decimal__"])
    return obj


class CacheService:
    """
    User-partitioned Redis access.

    Keys:     {prefix}:user:{user_id}:{module}:{key}
    Channels: {prefix}:user:{user_id}:changes:{collection}
    """

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self.enabled = False
        self.prefix = 'pos'
        self.default_ttl = 60
        self._down_since: Optional[float] = None
        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Connect using REDIS_URL; a failed ping leaves the cache disabled."""
        self.enabled = app.config.get('CACHE_ENABLED', True)
        self.prefix = app.config.get('CACHE_KEY_PREFIX', 'pos')
        self.default_ttl = app.config.get('CACHE_DEFAULT_TTL', 60)
        if not self.enabled:
            logger.info("[CACHE] Disabled via config")
            return

        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')
        self.client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=3,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        try:
            self.client.ping()
            logger.info(f"[CACHE] Redis connected: {redis_url}")
        except RedisError as e:
            logger.warning(f"[CACHE] Redis connection failed: {e}. Cache DISABLED.")
            self.enabled = False
            self.client = None

    # Availability

    def is_available(self) -> bool:
        if not self.enabled or self.client is None:
            return False
        if self._down_since is not None and time.monotonic() - self._down_since < RECONNECT_COOLDOWN:
            return False
        return True

    def _mark_down(self, action: str, error: Exception) -> None:
        if isinstance(error, (ConnectionError, TimeoutError)):
            self._down_since = time.monotonic()
        logger.warning(f"[CACHE] {action} failed: {error}")

    def _run(self, action: str, fn: Callable[[], Any], default: Any = None) -> Any:
        """Run a Redis call; any Redis failure returns ``default``."""
        if not self.is_available():
            return default
        try:
            result = fn()
        except RedisError as e:
            self._mark_down(action, e)
            return default
        self._down_since = None
        return result

    # Keys

    def key(self, user_id: int, module: str, key: str) -> str:
        return f"{self.prefix}:user:{user_id}:{module}:{key}"

    def channel(self, user_id: int, collection: str) -> str:
        return f"{self.prefix}:user:{user_id}:changes:{collection}"

    # Cache-aside

    def get(self, user_id: int, module: str, key: str) -> Optional[Any]:
        raw = self._run('get', lambda: self.client.get(self.key(user_id, module, key)))
        if raw is None:
            return None
        try:
            return json.loads(raw, object_hook=_decode)
        except ValueError as e:
            logger.warning(f"[CACHE] Corrupt entry {module}:{key}: {e}")
            return None

    def set(self, user_id: int, module: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        payload = json.dumps(value, default=_encode)
        return bool(self._run(
            'set',
            lambda: self.client.setex(self.key(user_id, module, key), ttl or self.default_ttl, payload),
            default=False,
        ))

    def memoize(self, user_id: int, module: str, key: str, loader: Callable[[], Any],
                ttl: Optional[int] = None) -> Any:
        cached = self.get(user_id, module, key)
        if cached is not None:
            return cached
        value = loader()
        self.set(user_id, module, key, value, ttl)
        return value

    def invalidate_module(self, user_id: int, module: str) -> int:
        """Drop every key of one module for a user; returns the number removed."""
        pattern = self.key(user_id, module, '*')

        def unlink_all() -> int:
            keys = list(self.client.scan_iter(match=pattern, count=200))
            return self.client.unlink(*keys) if keys else 0

        removed = self._run('invalidate', unlink_all, default=0)
        if removed:
            logger.info(f"[CACHE] INVALIDATE {pattern} ({removed} keys)")
        return removed

    # Change notifications

    def publish(self, user_id: int, collection: str) -> int:
        """Announce that a collection changed; returns the number of listeners."""
        return self._run('publish', lambda: self.client.publish(self.channel(user_id, collection), 'changed'), default=0)

    def pubsub(self, user_id: int, collection: str):
        """PubSub subscribed to a collection's channel, or None without Redis."""
        def subscribe():
            listener = self.client.pubsub(ignore_subscribe_messages=True)
            listener.subscribe(self.channel(user_id, collection))
            return listener
        return self._run('subscribe', subscribe)


_cache_service: Optional[CacheService] = None


def init_cache(app: Flask) -> None:
    """Create the process-wide cache service and attach it to the app."""
    global _cache_service
    _cache_service = CacheService(app)
    app.extensions['cache'] = _cache_service


def get_cache() -> CacheService:
    if _cache_service is None:
        raise RuntimeError("Cache not initialized.")
    return _cache_service


def invalidate_user_views(user_id: int, *collections: str) -> None:
    """After a committed write: drop the user's cached reports and notify feed subscribers."""
    try:
        cache = get_cache()
    except RuntimeError:
        return
    cache.invalidate_module(user_id, 'reports')
    for collection in collections:
        cache.publish(user_id, collection)
