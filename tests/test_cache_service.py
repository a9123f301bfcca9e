from __future__ import annotations

from auditlog.services.cache import CacheService
from auditlog.services.filters import FilterOptions


class StubRedis:
    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key: str):
        return self.store.get(key)

    def setex(self, key: str, ttl: int, value: str) -> None:
        self.store[key] = value
        self.ttls[key] = ttl

    def set(self, key: str, value: str) -> None:
        self.store[key] = value

    def delete(self, *keys: str) -> None:
        for key in keys:
            self.store.pop(key, None)


class StubStore:
    def __init__(self) -> None:
        self.calls = 0

    def distinct_subject_types(self) -> list[str]:
        self.calls += 1
        return ["Modules\\Blog\\Models\\Post", "system"]

    def distinct_events(self) -> list[str]:
        self.calls += 1
        return ["created", "login"]


def test_cache_service_disabled_operations():
    cache = CacheService(None, 10)
    assert cache.enabled is False
    assert cache.get_json("missing") is None
    cache.set_json("unused", {"value": 1})
    cache.invalidate("unused")
    assert cache.remember("unused", lambda: [1]) == [1]
    cache._record_metrics("noop", None)


def test_cache_keys_are_namespaced():
    cache = CacheService(None, 10)
    assert cache.model_types_key == "auditlog:model_types"
    assert cache.event_types_key == "auditlog:event_types"
    assert cache.key("a", None, "", 1) == "auditlog:a:1"


def test_cache_service_store_retrieve_and_invalidate():
    redis = StubRedis()
    cache = CacheService(redis, 5)

    cache.set_json("auditlog:x", {"items": [1, 2]})
    assert cache.get_json("auditlog:x") == {"items": [1, 2]}
    assert redis.ttls["auditlog:x"] == 5

    redis.store["auditlog:x"] = b"{\"items\": [3]}"
    assert cache.get_json("auditlog:x") == {"items": [3]}

    cache.set_json("auditlog:x", {"items": [4]}, ttl=0)
    assert redis.store["auditlog:x"] == "{\"items\": [4]}"

    redis.store["auditlog:bad"] = "not json"
    assert cache.get_json("auditlog:bad") is None


def test_filter_options_are_cached_until_invalidated():
    redis = StubRedis()
    cache = CacheService(redis, 3600)
    store = StubStore()
    options = FilterOptions(store, cache)

    first = options.as_dict()
    second = options.as_dict()

    assert store.calls == 2
    assert first == second
    assert first["model_types"] == [
        {"value": "Modules\\Blog\\Models\\Post", "label": "Post"},
        {"value": "system", "label": "system"},
    ]
    assert first["event_types"] == [
        {"value": "created", "label": "Created"},
        {"value": "login", "label": "Login"},
    ]
    assert redis.ttls[cache.model_types_key] == 3600

    cache.invalidate_filter_options()
    options.model_types()
    assert store.calls == 3
