# SPDX-License-Identifier: Apache-2.0

"""
Redis service for caching, rate limiting and JWT token management.

Redis is optional: when ``REDIS_URL`` is empty or the server cannot be
reached every operation degrades to a no-op and callers fall back to
their uncached behaviour.
"""

import os
import json
import time
from typing import Optional, List, Dict, Any, Union
import redis
from opentelemetry import trace
import logging

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

LOCATIONS_CACHE_KEY = "directory:locations"
LOCATIONS_CACHE_TTL = 300


class RedisConnectionError(Exception):
    """Raised when Redis connection fails."""
    pass


class RedisService:
    """
    Redis service built on redis-py.

    Provides the JWT blocklist used by logout, fixed-window counters for
    rate limiting and a small JSON cache for directory lookups.
    """

    def __init__(self, redis_url: Optional[str] = None):
        """
        Initialize the Redis service.

        Args:
            redis_url: Redis connection URL (redis://host:port/db)
        """
        self.redis_url = redis_url if redis_url is not None else os.getenv("REDIS_URL", "")

        if not self.redis_url:
            logger.warning("No REDIS_URL configured, Redis operations will be disabled")
            self.client = None
            return

        try:
            self.client = redis.from_url(self.redis_url, decode_responses=True)
            self._test_connection()
            logger.info("Redis service initialized", extra={"redis_url": self.redis_url})
        except (redis.RedisError, RedisConnectionError) as e:
            logger.error(f"Failed to initialize Redis service: {str(e)}")
            self.client = None

    def _test_connection(self) -> None:
        try:
            if not self.client.ping():
                raise RedisConnectionError("Redis ping failed")
        except redis.RedisError as e:
            raise RedisConnectionError(f"Redis connection failed: {str(e)}") from e

    def is_available(self) -> bool:
        """Check if Redis service is available."""
        return self.client is not None

    def set(self, key: str, value: Union[str, Dict, List], ttl: Optional[int] = None) -> bool:
        """
        Set a key-value pair.

        Args:
            key: Redis key
            value: Value to store (dicts and lists are JSON encoded)
            ttl: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        if not self.client:
            return False

        with tracer.start_as_current_span("redis.set") as span:
            span.set_attributes({"redis.key": key, "redis.ttl": ttl or 0})

            try:
                if isinstance(value, (dict, list)):
                    value = json.dumps(value)

                if ttl:
                    result = self.client.setex(key, ttl, value)
                else:
                    result = self.client.set(key, value)

                span.set_attribute("redis.result", "success")
                return bool(result)

            except redis.RedisError as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis set failed for key {key}: {str(e)}")
                return False

    def get(self, key: str) -> Optional[Any]:
        """
        Get a value, decoding JSON where possible.

        Returns:
            Value if found, None otherwise
        """
        if not self.client:
            return None

        with tracer.start_as_current_span("redis.get") as span:
            span.set_attribute("redis.key", key)

            try:
                value = self.client.get(key)
            except redis.RedisError as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis get failed for key {key}: {str(e)}")
                return None

            if value is None:
                span.set_attribute("redis.result", "miss")
                return None

            span.set_attribute("redis.result", "hit")
            try:
                return json.loads(value)
            except (json.JSONDecodeError, TypeError):
                return value

    def delete(self, key: str) -> bool:
        """Delete a key. Returns True if a key was removed."""
        if not self.client:
            return False

        with tracer.start_as_current_span("redis.delete") as span:
            span.set_attribute("redis.key", key)

            try:
                return bool(self.client.delete(key))
            except redis.RedisError as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis delete failed for key {key}: {str(e)}")
                return False

    def exists(self, key: str) -> bool:
        if not self.client:
            return False

        try:
            return bool(self.client.exists(key))
        except redis.RedisError as e:
            logger.error(f"Redis exists check failed for key {key}: {str(e)}")
            return False

    def increment(self, key: str, ttl: int) -> Optional[int]:
        """
        Increment a counter, starting its expiry window on first use.

        Args:
            key: Counter key
            ttl: Window length in seconds

        Returns:
            The new count, or None if Redis is unavailable
        """
        if not self.client:
            return None

        with tracer.start_as_current_span("redis.increment") as span:
            span.set_attributes({"redis.key": key, "redis.ttl": ttl})

            try:
                pipe = self.client.pipeline()
                pipe.incr(key)
                pipe.expire(key, ttl, nx=True)
                count, _ = pipe.execute()
                return int(count)
            except redis.RedisError as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis increment failed for key {key}: {str(e)}")
                return None

    def add_to_blocklist(self, jti: str, exp: int) -> bool:
        """
        Add a JWT token to the blocklist until it would have expired.

        Args:
            jti: JWT ID (unique token identifier)
            exp: Token expiration timestamp
        """
        ttl = max(0, exp - int(time.time()))
        if ttl <= 0:
            return True  # already expired

        return self.set(f"blocklist:jwt:{jti}", "blocked", ttl)

    def is_token_blocked(self, jti: str) -> bool:
        return self.exists(f"blocklist:jwt:{jti}")

    # Directory caching

    def cache_locations(self, locations: Dict[str, List[str]], ttl: int = LOCATIONS_CACHE_TTL) -> bool:
        return self.set(LOCATIONS_CACHE_KEY, locations, ttl)

    def get_cached_locations(self) -> Optional[Dict[str, List[str]]]:
        cached = self.get(LOCATIONS_CACHE_KEY)
        return cached if isinstance(cached, dict) else None

    def invalidate_locations(self) -> bool:
        return self.delete(LOCATIONS_CACHE_KEY)

    # Health Check Methods

    def ping(self) -> bool:
        if not self.client:
            return False

        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.error(f"Redis ping failed: {str(e)}")
            return False

    def get_info(self) -> Dict[str, Any]:
        """Selected fields from the server INFO command."""
        if not self.client:
            return {}

        try:
            info = self.client.info()
        except redis.RedisError as e:
            logger.error(f"Failed to get Redis info: {str(e)}")
            return {}

        return {
            "redis_version": info.get("redis_version", "unknown"),
            "used_memory": info.get("used_memory", 0),
            "connected_clients": info.get("connected_clients", 0),
            "uptime_in_seconds": info.get("uptime_in_seconds", 0)
        }


def create_redis_service(redis_url: Optional[str] = None) -> RedisService:
    """Factory function to create Redis service instance."""
    return RedisService(redis_url)
