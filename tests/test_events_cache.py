# tests/test_events_cache.py
from datetime import datetime

import redis

from meet_engine.services.events_cache import MonthEventsCache, cache_key, months_between


def test_months_between_crosses_year_boundary():
    months = list(months_between(datetime(2029, 11, 30), datetime(2030, 2, 1)))
    assert months == [(2029, 11), (2029, 12), (2030, 1), (2030, 2)]


def test_get_or_load_caches_until_redis_expires_the_key(events_cache, fake_redis):
    calls = []

    def loader():
        calls.append(1)
        return [{"id": len(calls)}]

    assert events_cache.get_or_load("coach-1", 2030, 1, loader) == [{"id": 1}]
    assert events_cache.get_or_load("coach-1", 2030, 1, loader) == [{"id": 1}]
    assert len(calls) == 1
    assert fake_redis.ttls[cache_key("coach-1", 2030, 1)] == 300

    fake_redis.expire_now(cache_key("coach-1", 2030, 1))
    assert events_cache.get_or_load("coach-1", 2030, 1, loader) == [{"id": 2}]
    assert len(calls) == 2


def test_invalidate_interval_drops_only_touched_months(events_cache):
    events_cache.set("coach-1", 2030, 1, [])
    events_cache.set("coach-1", 2030, 2, [])
    events_cache.set("coach-1", 2030, 3, [])
    events_cache.set("coach-2", 2030, 1, [])

    events_cache.invalidate_interval(
        "coach-1", datetime(2030, 1, 31, 23, 0), datetime(2030, 2, 1, 1, 0)
    )

    assert events_cache.get("coach-1", 2030, 1) is None
    assert events_cache.get("coach-1", 2030, 2) is None
    assert events_cache.get("coach-1", 2030, 3) == []
    assert events_cache.get("coach-2", 2030, 1) == []


def test_invalidation_is_seen_by_every_worker(fake_redis):
    worker_a = MonthEventsCache(client_factory=lambda: fake_redis)
    worker_b = MonthEventsCache(client_factory=lambda: fake_redis)

    worker_b.set("coach-1", 2030, 1, [{"id": 1, "video_link": None}])
    worker_a.invalidate_interval("coach-1", datetime(2030, 1, 7, 10), datetime(2030, 1, 7, 11))

    assert worker_b.get("coach-1", 2030, 1) is None


def test_clear_only_touches_month_keys(events_cache, fake_redis):
    fake_redis.store["rate_limit:x"] = "1"
    events_cache.set("coach-1", 2030, 1, [])
    events_cache.set("coach-2", 2030, 5, [])

    assert events_cache.clear() == 2
    assert fake_redis.store == {"rate_limit:x": "1"}


def test_unreachable_redis_reads_through_to_the_loader():
    attempts = []

    def factory():
        attempts.append(1)
        raise redis.ConnectionError("connection refused")

    cache = MonthEventsCache(client_factory=factory)
    calls = []

    def loader():
        calls.append(1)
        return []

    assert cache.get_or_load("coach-1", 2030, 1, loader) == []
    assert cache.get_or_load("coach-1", 2030, 1, loader) == []
    cache.invalidate("coach-1", 2030, 1)

    assert len(calls) == 2
    assert len(attempts) == 1
    assert cache.clear() == 0


def test_missing_redis_url_disables_the_cache(monkeypatch):
    from meet_engine.services import events_cache as events_cache_module

    monkeypatch.setattr(events_cache_module, "_redis_client", None)
    monkeypatch.setattr(events_cache_module.get_settings(), "REDIS_URL", None)

    cache = MonthEventsCache()
    assert cache.set("coach-1", 2030, 1, []) is False
    assert cache.get("coach-1", 2030, 1) is None
