"""Key-value cache façade over Redis."""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

import redis

from dockyard.constants import DEFAULT_OPERATION_TIMEOUT_SECONDS
from dockyard.exceptions import NotFoundError
from dockyard.harness.spec import Endpoint

logger = logging.getLogger(__name__)

Ttl = int | float | timedelta


def ttl_argument(ttl: Ttl) -> tuple[str, int]:
    """Normalize a TTL to ``("ex", seconds)`` or ``("px", milliseconds)``.

    Whole seconds use second precision; anything else is rounded up to the
    next millisecond so a positive TTL never becomes zero.

    Raises
    ------
    ValueError
        If the TTL is zero or negative.
    """
    seconds = ttl.total_seconds() if isinstance(ttl, timedelta) else float(ttl)
    if seconds <= 0:
        raise ValueError(f"ttl must be positive, got: {ttl}")
    if seconds == int(seconds):
        return "ex", int(seconds)
    return "px", math.ceil(round(seconds * 1000, 6))


class CacheClient:
    """Blocking Redis client with not-found semantics for missing keys.

    A key that was never set and a key whose TTL elapsed are indistinguishable
    to Redis, so both raise :class:`NotFoundError`.

    Parameters
    ----------
    url : str | None
        ``redis://`` connection URL. Ignored when ``client`` is given.
    timeout : float
        Connect and per-command socket timeout in seconds.
    client : redis.Redis | None
        Pre-built client, mainly for tests.
    """

    def __init__(
        self,
        url: str | None = None,
        timeout: float = DEFAULT_OPERATION_TIMEOUT_SECONDS,
        client: redis.Redis | None = None,
    ) -> None:
        if client is None:
            if url is None:
                raise ValueError("Either url or client is required")
            client = redis.Redis.from_url(
                url,
                decode_responses=True,
                socket_timeout=timeout,
                socket_connect_timeout=timeout,
            )
        self._client = client
        self.timeout = timeout

    @classmethod
    def from_endpoint(
        cls, endpoint: Endpoint, timeout: float = DEFAULT_OPERATION_TIMEOUT_SECONDS
    ) -> CacheClient:
        """Connect to the service behind a resolved endpoint."""
        endpoint.ensure_valid()
        return cls(url=endpoint.url, timeout=timeout)

    def ping(self) -> bool:
        return bool(self._client.ping())

    def set(self, key: str, value: Any, ttl: Ttl | None = None) -> None:
        """Store ``value`` under ``key``, replacing any previous value.

        Parameters
        ----------
        key : str
            Cache key.
        value : Any
            String, bytes or number.
        ttl : int | float | timedelta | None
            Time to live; ``None`` keeps the key until deleted.
        """
        if ttl is None:
            self._client.set(key, value)
            return

        unit, amount = ttl_argument(ttl)
        self._client.set(key, value, **{unit: amount})

    def get(self, key: str) -> str:
        """Return the value stored under ``key``.

        Raises
        ------
        NotFoundError
            If the key does not exist or has expired.
        """
        value = self._client.get(key)
        if value is None:
            raise NotFoundError(f"Key not found: {key}")
        return value

    def delete(self, *keys: str) -> int:
        """Delete keys; absent keys are ignored. Returns how many existed."""
        if not keys:
            return 0
        return int(self._client.delete(*keys))

    def exists(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(self._client.exists(*keys))

    def expire(self, key: str, ttl: Ttl) -> bool:
        """Set a TTL on an existing key. Returns False if the key is absent."""
        unit, amount = ttl_argument(ttl)
        if unit == "px":
            return bool(self._client.pexpire(key, amount))
        return bool(self._client.expire(key, amount))

    def increment(self, key: str) -> int:
        """Atomically add one; an absent key counts from zero."""
        return int(self._client.incr(key))

    def decrement(self, key: str) -> int:
        return int(self._client.decr(key))

    def hset(self, key: str, mapping: Mapping[str, Any]) -> int:
        """Set hash fields. Returns the number of newly created fields."""
        if not mapping:
            raise ValueError("mapping cannot be empty")
        return int(self._client.hset(key, mapping=dict(mapping)))

    def hget(self, key: str, field: str) -> str:
        """Return one hash field.

        Raises
        ------
        NotFoundError
            If the hash or the field does not exist.
        """
        value = self._client.hget(key, field)
        if value is None:
            raise NotFoundError(f"Field '{field}' not found in hash: {key}")
        return value

    def hgetall(self, key: str) -> dict[str, str]:
        return dict(self._client.hgetall(key))

    def lpush(self, key: str, *values: Any) -> int:
        return int(self._client.lpush(key, *values))

    def rpush(self, key: str, *values: Any) -> int:
        return int(self._client.rpush(key, *values))

    def lrange(self, key: str, start: int, stop: int) -> list[str]:
        """Return list elements ``start..stop`` inclusive; ``-1`` is the last."""
        return list(self._client.lrange(key, start, stop))

    def close(self) -> None:
        self._client.close()
        logger.debug("Closed cache client")
