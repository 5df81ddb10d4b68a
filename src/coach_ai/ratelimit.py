"""
Per-client fixed-window rate limiting.

Redis is used when configured; any Redis failure falls back to the in-process
counter map for that request, so the relay keeps limiting when Redis is down.
"""
import threading
import time
from dataclasses import dataclass
from typing import Optional

import redis
from loguru import logger
from redis.exceptions import RedisError

from .config import RelayConfig


KEY_PREFIX = "ai-chat:rl:"


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    def __init__(self, max_requests: int, window_ms: int, redis_client: Optional[redis.Redis] = None):
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.redis_client = redis_client
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: RelayConfig) -> "RateLimiter":
        client = None
        if config.redis_url:
            client = redis.from_url(
                config.redis_url,
                password=config.redis_token or None,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
        return cls(config.rate_limit_max, config.rate_limit_window_ms, client)

    def _redis_limited(self, client_ip: str) -> Optional[bool]:
        """Atomic INCR + PTTL in one transaction; None when Redis is unusable."""
        if self.redis_client is None:
            return None
        key = f"{KEY_PREFIX}{client_ip}"
        try:
            pipe = self.redis_client.pipeline(transaction=True)
            pipe.incr(key)
            pipe.pttl(key)
            count, ttl_ms = pipe.execute()
            if ttl_ms is None or int(ttl_ms) < 0:
                self.redis_client.pexpire(key, self.window_ms)
            return int(count) > self.max_requests
        except (RedisError, TypeError, ValueError) as e:
            logger.warning(f"Rate limit store unavailable, using in-process counter: {e}")
            return None

    def _memory_limited(self, client_ip: str) -> bool:
        now = time.monotonic() * 1000
        with self._lock:
            window = self._windows.get(client_ip)
            if window is None or window.reset_at <= now:
                self._windows[client_ip] = _Window(count=1, reset_at=now + self.window_ms)
                return False
            if window.count >= self.max_requests:
                return True
            window.count += 1
            return False

    def is_limited(self, client_ip: str) -> bool:
        limited = self._redis_limited(client_ip)
        if limited is None:
            limited = self._memory_limited(client_ip)
        if limited:
            logger.info("Rate limit hit for client")
        return limited
