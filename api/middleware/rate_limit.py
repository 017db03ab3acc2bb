# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Rate limiting middleware for API endpoints.
Fixed-window counters kept in Redis; requests are allowed when Redis is
unavailable.
"""

from functools import wraps
from flask import request, jsonify, g, current_app
from typing import Dict, Any, Optional, Callable
import time
import hashlib
import logging

from services.hal import HalFormatter

logger = logging.getLogger(__name__)


class RateLimiter:
    """Redis-based fixed-window rate limiter."""

    def __init__(self, redis_service, hal_formatter: HalFormatter):
        self.redis_service = redis_service
        self.hal_formatter = hal_formatter

    def get_client_identifier(self, user_context=None) -> str:
        """
        Get unique identifier for rate limiting.

        Authenticated callers are keyed by account; anonymous callers by a
        hash of their address. Forwarded headers are only honoured through
        the trusted proxy hops configured on the app, never read here.
        """
        if user_context:
            return f"user:{user_context.user_id}"

        ip_address = request.remote_addr or 'unknown'
        identifier_hash = hashlib.sha256(ip_address.encode()).hexdigest()[:32]
        return f"ip:{identifier_hash}"

    def get_rate_limit_key(self, identifier: str, endpoint: str, window_seconds: int, now: Optional[float] = None) -> str:
        window_start = int(now if now is not None else time.time()) // window_seconds
        return f"rate_limit:{identifier}:{endpoint}:{window_start}"

    def check_rate_limit(
        self,
        identifier: str,
        endpoint: str,
        limit: int,
        window_seconds: int = 3600
    ) -> Dict[str, Any]:
        """
        Count this request and report whether it is within the limit.

        Returns:
            Dictionary with allowed, limit, remaining, reset_time and retry_after
        """
        now = int(time.time())
        reset_time = (now // window_seconds + 1) * window_seconds
        key = self.get_rate_limit_key(identifier, endpoint, window_seconds, now)

        count = self.redis_service.increment(key, window_seconds)
        if count is None:
            # Fail open when Redis is unavailable
            return {
                'allowed': True,
                'limit': limit,
                'remaining': limit - 1,
                'reset_time': reset_time,
                'retry_after': 0
            }

        if count > limit:
            return {
                'allowed': False,
                'limit': limit,
                'remaining': 0,
                'reset_time': reset_time,
                'retry_after': max(1, reset_time - now)
            }

        return {
            'allowed': True,
            'limit': limit,
            'remaining': max(0, limit - count),
            'reset_time': reset_time,
            'retry_after': 0
        }

    def add_rate_limit_headers(self, response, rate_limit_info: Dict[str, Any]):
        response.headers['X-RateLimit-Limit'] = str(rate_limit_info['limit'])
        response.headers['X-RateLimit-Remaining'] = str(rate_limit_info['remaining'])
        response.headers['X-RateLimit-Reset'] = str(rate_limit_info['reset_time'])

        if rate_limit_info['retry_after'] > 0:
            response.headers['Retry-After'] = str(rate_limit_info['retry_after'])

        return response


def rate_limit(
    limit: int,
    window_seconds: int = 3600,
    endpoint: Optional[str] = None,
    per_user: bool = True
):
    """
    Decorator for rate limiting endpoints.

    Args:
        limit: Maximum requests allowed per window
        window_seconds: Window length in seconds
        endpoint: Custom endpoint identifier
        per_user: Key authenticated requests by account instead of client address
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            redis_service = getattr(current_app, 'redis_service', None)
            if redis_service is None or not redis_service.is_available():
                return f(*args, **kwargs)

            rate_limiter = RateLimiter(redis_service, current_app.hal_formatter)

            user_context = getattr(g, 'user_context', None) if per_user else None
            identifier = rate_limiter.get_client_identifier(user_context)
            endpoint_name = endpoint or request.endpoint or f.__name__

            rate_limit_info = rate_limiter.check_rate_limit(identifier, endpoint_name, limit, window_seconds)

            if not rate_limit_info['allowed']:
                logger.warning(
                    "Rate limit exceeded",
                    extra={
                        'identifier': identifier,
                        'endpoint': endpoint_name,
                        'limit': limit,
                        'retry_after': rate_limit_info['retry_after']
                    }
                )

                error_response = rate_limiter.hal_formatter.builder.build_error_response(
                    "rate-limit-exceeded",
                    "Rate Limit Exceeded",
                    429,
                    f"Too many requests. Please try again in {rate_limit_info['retry_after']} seconds.",
                    request.path
                )

                response = jsonify(error_response)
                response.status_code = 429
                rate_limiter.add_rate_limit_headers(response, rate_limit_info)
                return response

            response = current_app.make_response(f(*args, **kwargs))
            rate_limiter.add_rate_limit_headers(response, rate_limit_info)
            return response

        return decorated_function
    return decorator


def rate_limit_tokens(f: Callable) -> Callable:
    """Token requests: 20 per client per 10 minutes."""
    return rate_limit(20, 600, per_user=False)(f)


def rate_limit_auth(f: Callable) -> Callable:
    """Authentication endpoints: 10 requests per 15 minutes."""
    return rate_limit(10, 900, per_user=False)(f)


def rate_limit_public_form(f: Callable) -> Callable:
    """Public submissions such as assistance requests: 30 per hour."""
    return rate_limit(30, 3600, per_user=False)(f)
