# tests/conftest.py
import pytest

from meet_engine.services.events_cache import MonthEventsCache


class FakeRedis:
    """In-memory stand-in for the few redis.Redis calls the month cache makes."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        deleted = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                deleted += 1
            self.ttls.pop(key, None)
        return deleted

    def scan_iter(self, match=None):
        prefix = (match or "*").rstrip("*")
        return [k for k in list(self.store) if k.startswith(prefix)]

    def expire_now(self, key):
        """What Redis does once the SETEX ttl runs out."""
        self.delete(key)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def events_cache(fake_redis):
    return MonthEventsCache(ttl_seconds=300, client_factory=lambda: fake_redis)
