# tests/test_calendar_sync.py
from datetime import datetime

import httpx

from meet_engine.services.calendar_sync import HttpCalendarSync, safe_busy_intervals


START = datetime(2030, 1, 7, 9, 0)
END = datetime(2030, 1, 7, 18, 0)


def test_busy_intervals_parses_bridge_response(monkeypatch):
    seen = {}

    def fake_get(url, params=None, timeout=None):
        seen["url"] = url
        seen["params"] = params
        return httpx.Response(
            200,
            json={
                "busy": [
                    {"start": "2030-01-07T10:00:00", "end": "2030-01-07T11:00:00"},
                    {"start": "garbage", "end": "2030-01-07T11:00:00"},
                    {"start": "2030-01-07T12:00:00", "end": "2030-01-07T12:00:00"},
                ]
            },
            request=httpx.Request("GET", url),
        )

    monkeypatch.setattr(httpx, "get", fake_get)

    sync = HttpCalendarSync("http://calendar.local/", timeout=1.0)
    busy = sync.busy_intervals("coach-1", START, END)

    assert seen["url"] == "http://calendar.local/busy"
    assert seen["params"]["person_id"] == "coach-1"
    assert len(busy) == 1
    assert busy[0].start == datetime(2030, 1, 7, 10, 0)


def test_unreachable_calendar_means_no_busy_time(monkeypatch):
    def fake_get(url, params=None, timeout=None):
        raise httpx.ConnectError("connection refused", request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx, "get", fake_get)

    sync = HttpCalendarSync("http://calendar.local")
    assert safe_busy_intervals(sync, "coach-1", START, END) == []
    assert safe_busy_intervals(None, "coach-1", START, END) == []


def test_server_error_means_no_busy_time(monkeypatch):
    def fake_get(url, params=None, timeout=None):
        return httpx.Response(500, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx, "get", fake_get)

    assert safe_busy_intervals(HttpCalendarSync("http://calendar.local"), "c", START, END) == []
