"""Sliding-window throttles for failed authentication attempts."""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from collections import deque
from threading import Lock
from typing import Deque, Dict, Protocol

from redis import Redis

from ..config import Settings

logger = logging.getLogger(__name__)


class LoginThrottle(Protocol):
    def is_blocked(self, key: str) -> bool: ...

    def record_failure(self, key: str) -> None: ...

    def reset(self, key: str) -> None: ...


def throttle_key(email: str) -> str:
    """Derive a throttle key from a normalised email without keeping the address itself."""
    digest = hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()
    return f"login:{digest[:32]}"


class SlidingWindowLoginThrottle:
    """Thread-safe in-process failure counter."""

    def __init__(self, max_failures: int, window_seconds: int) -> None:
        self._max_failures = max_failures
        self._window = window_seconds
        self._failures: Dict[str, Deque[float]] = {}
        self._lock = Lock()

    def _prune(self, key: str, now: float) -> int:
        # a key with no live failures is removed
        queue = self._failures.get(key)
        if queue is None:
            return 0
        while queue and now - queue[0] > self._window:
            queue.popleft()
        if not queue:
            del self._failures[key]
        return len(queue)

    def is_blocked(self, key: str) -> bool:
        """Return ``True`` once ``key`` has reached the failure limit inside the window."""
        with self._lock:
            return self._prune(key, time.time()) >= self._max_failures

    def record_failure(self, key: str) -> None:
        now = time.time()
        with self._lock:
            self._prune(key, now)
            self._failures.setdefault(key, deque()).append(now)

    def reset(self, key: str) -> None:
        with self._lock:
            self._failures.pop(key, None)


class RedisLoginThrottle:
    """Failure counter shared across processes, backed by Redis sorted sets."""

    def __init__(
        self,
        client: Redis,
        *,
        max_failures: int,
        window_seconds: int,
        key_prefix: str = "throttle",
    ) -> None:
        self._client = client
        self._max_failures = max_failures
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix

    def _redis_key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"

    def is_blocked(self, key: str) -> bool:
        now_ms = int(time.time() * 1000)
        redis_key = self._redis_key(key)
        self._client.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        return int(self._client.zcard(redis_key)) >= self._max_failures

    def record_failure(self, key: str) -> None:
        now_ms = int(time.time() * 1000)
        redis_key = self._redis_key(key)
        member = f"{now_ms}:{uuid.uuid4().hex}"
        pipe = self._client.pipeline()
        pipe.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        pipe.zadd(redis_key, {member: now_ms})
        pipe.pexpire(redis_key, self._window_ms)
        pipe.execute()

    def reset(self, key: str) -> None:
        self._client.delete(self._redis_key(key))


def build_login_throttle(settings: Settings) -> LoginThrottle:
    """Instantiate the configured throttle backend, preferring Redis when reachable."""
    if settings.throttle_backend == "redis" and settings.redis_url:
        try:
            client = Redis.from_url(settings.redis_url)
            # ensure connectivity early to fail fast and fall back
            client.ping()
            logger.info("login throttle configured for redis backend")
            return RedisLoginThrottle(
                client,
                max_failures=settings.login_max_failures,
                window_seconds=settings.login_failure_window_seconds,
            )
        except Exception as exc:  # pragma: no cover - depends on a live redis
            logger.warning("redis login throttle unavailable, falling back to in-memory: %s", exc)

    logger.info("login throttle using in-memory backend")
    return SlidingWindowLoginThrottle(
        max_failures=settings.login_max_failures,
        window_seconds=settings.login_failure_window_seconds,
    )
