"""Redis cache helpers for derived filter dropdown lists."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable

from prometheus_client import Counter, Histogram
from redis import Redis


logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "auditlog"
MODEL_TYPES_KEY = "model_types"
EVENT_TYPES_KEY = "event_types"

_CACHE_HITS = Counter(
    "auditlog_cache_hits_total",
    "Total number of cache hits.",
    labelnames=("namespace",),
)
_CACHE_MISSES = Counter(
    "auditlog_cache_misses_total",
    "Total number of cache misses.",
    labelnames=("namespace",),
)
_CACHE_OPERATIONS = Counter(
    "auditlog_cache_operations_total",
    "Number of cache operations performed.",
    labelnames=("namespace", "operation"),
)
_CACHE_LATENCY = Histogram(
    "auditlog_cache_operation_seconds",
    "Duration of cache operations in seconds.",
    labelnames=("namespace", "operation"),
)


class CacheService:
    """High level API for interacting with the shared Redis cache."""

    def __init__(
        self,
        client: Redis | None,
        default_ttl: int,
        *,
        namespace: str = CACHE_NAMESPACE,
    ) -> None:
        self.client = client
        self.default_ttl = max(default_ttl, 0)
        self.namespace = namespace

    def key(self, *parts: object) -> str:
        """Return a namespaced cache key composed from ``parts``."""

        stringified = [str(part) for part in parts if part not in (None, "")]
        return ":".join([self.namespace, *stringified])

    @property
    def model_types_key(self) -> str:
        return self.key(MODEL_TYPES_KEY)

    @property
    def event_types_key(self) -> str:
        return self.key(EVENT_TYPES_KEY)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def get_json(self, key: str) -> Any | None:
        """Fetch a JSON encoded payload from the cache."""

        if not self.enabled:
            return None
        start = time.perf_counter()
        try:
            value = self.client.get(key)
        except Exception:  # pragma: no cover - instrumentation only
            logger.exception("cache.get failed key=%s", key)
            return None
        finally:
            self._record_metrics("get", start)
        if value is None:
            _CACHE_MISSES.labels(self.namespace).inc()
            return None
        _CACHE_HITS.labels(self.namespace).inc()
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.warning("cache.get invalid json key=%s", key)
            return None

    def set_json(
        self,
        key: str,
        value: Any,
        *,
        ttl: int | None = None,
    ) -> None:
        """Store ``value`` encoded as JSON under ``key``."""

        if not self.enabled:
            return
        payload = json.dumps(value, sort_keys=True)
        ttl = self.default_ttl if ttl is None else max(int(ttl), 0)
        start = time.perf_counter()
        try:
            if ttl:
                self.client.setex(key, ttl, payload)
            else:
                self.client.set(key, payload)
        except Exception:  # pragma: no cover - instrumentation only
            logger.exception("cache.set failed key=%s", key)
        finally:
            self._record_metrics("set", start)

    def remember(self, key: str, loader: Callable[[], Any]) -> Any:
        """Return the cached value for ``key``, computing it on a miss."""

        cached = self.get_json(key)
        if cached is not None:
            return cached
        value = loader()
        self.set_json(key, value)
        return value

    def invalidate(self, *keys: str) -> None:
        if not self.enabled or not keys:
            return
        start = time.perf_counter()
        try:
            self.client.delete(*keys)
        except Exception:  # pragma: no cover - instrumentation only
            logger.exception("cache.delete failed keys=%s", keys)
        finally:
            self._record_metrics("delete", start)

    def invalidate_filter_options(self) -> None:
        """Drop the cached subject type and event kind lists."""

        self.invalidate(self.model_types_key, self.event_types_key)

    def _record_metrics(self, operation: str, start: float | None) -> None:
        _CACHE_OPERATIONS.labels(self.namespace, operation).inc()
        if start is None:
            return
        duration = time.perf_counter() - start
        _CACHE_LATENCY.labels(self.namespace, operation).observe(duration)


__all__ = [
    "CACHE_NAMESPACE",
    "CacheService",
    "EVENT_TYPES_KEY",
    "MODEL_TYPES_KEY",
]
