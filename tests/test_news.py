from __future__ import annotations

from urllib.parse import unquote

import pytest
import requests

import news


class _Response:
    def __init__(self, payload, status=200):
        self._payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


FEED = {
    "status": "ok",
    "items": [
        {
            "title": "Fire breaks out at Burrabazar warehouse - The Telegraph",
            "description": '<a href="https://example.org/x">Fire tenders rushed</a> to the spot <b>early</b> today.',
            "link": "https://example.org/fire",
            "pubDate": "2025-12-10 08:30:00",
            "author": "",
        },
        {
            "title": "Dense fog delays flights at Kolkata airport - NDTV",
            "description": "Several flights were delayed.",
            "link": "https://example.org/fog",
            "pubDate": "2025-12-10 06:05:00",
            "author": "PTI",
        },
    ],
}


@pytest.mark.parametrize(
    "title,expected",
    [
        ("Cyclone Remal makes landfall", "critical"),
        ("Traffic snarls on EM Bypass", "warning"),
        ("Special intensive revision of rolls begins", "warning"),
        ("Flood warning issued for Malda", "critical"),
        ("Book fair opens in Salt Lake", "info"),
        ("", "info"),
    ],
)
def test_classify_severity(title, expected) -> None:
    assert news.classify_severity(title) == expected


def test_classification_is_repeatable() -> None:
    title = "Heavy rain alert for south Bengal"
    assert news.classify_severity(title) == news.classify_severity(title) == "warning"


def test_clean_html_strips_tags() -> None:
    assert news.clean_html("<p>Roads <b>closed</b>\n near   Howrah</p>") == "Roads closed near Howrah"
    assert news.clean_html("") == ""
    assert news.clean_html("   ") == ""


def test_normalize_item_truncates_message() -> None:
    item = {"title": "Blast at factory - ABP", "description": "x" * 200, "link": "l", "pubDate": "bad"}
    alert = news.normalize_item(item)
    assert alert.title == "Blast at factory"
    assert alert.type == "critical"
    assert alert.message == "x" * 110 + "..."
    assert alert.full_details == "x" * 200
    assert alert.source == "ABP"
    assert alert.time == ""
    assert alert.location == "West Bengal"
    assert alert.affected_area == "Statewide"


def test_normalize_item_with_city() -> None:
    alert = news.normalize_item(FEED["items"][1], city="Kolkata")
    assert alert.source == "PTI"
    assert alert.time == "06:05"
    assert alert.location == "Kolkata"
    assert alert.affected_area == "Kolkata Region"
    assert alert.message == "Several flights were delayed."


def test_build_feed_url() -> None:
    assert "West Bengal breaking news emergency" in unquote(news.build_feed_url())
    assert "West Bengal Siliguri emergency alerts" in unquote(news.build_feed_url("Siliguri"))
    assert "breaking news" in unquote(news.build_feed_url("All West Bengal"))


def test_fetch_alerts_success_is_cached(monkeypatch) -> None:
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append(params)
        return _Response(FEED)

    monkeypatch.setattr(news.requests, "get", fake_get)
    result = news.fetch_alerts()
    assert result.ok
    assert [a.type for a in result.items] == ["critical", "warning"]
    assert result.items[0].message == "Fire tenders rushed to the spot early today."

    news.fetch_alerts()
    assert len(calls) == 1


def test_fetch_alerts_failure_is_explicit(monkeypatch) -> None:
    def fake_get(url, params=None, timeout=None):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(news.requests, "get", fake_get)
    result = news.fetch_alerts("Howrah")
    assert not result.ok
    assert result.items == []
    assert result.error


def test_alerts_route(client, monkeypatch) -> None:
    monkeypatch.setattr(news.requests, "get", lambda url, params=None, timeout=None: _Response({}, 503))
    resp = client.get("/api/alerts", params={"city": "Durgapur"})
    assert resp.status_code == 200
    assert resp.json()["ok"] is False
    assert resp.json()["items"] == []


@pytest.mark.parametrize(
    "payload",
    [
        [FEED["items"][0]],
        {"status": "error", "message": "rss_url parameter is invalid", "items": []},
        {"status": "ok", "items": {"title": "not a list"}},
    ],
)
def test_fetch_alerts_rejects_bad_envelopes(monkeypatch, payload) -> None:
    monkeypatch.setattr(news.requests, "get", lambda url, params=None, timeout=None: _Response(payload))
    result = news.fetch_alerts("Asansol")
    assert result.ok is False
    assert result.items == []
    assert result.error


def test_fetch_alerts_skips_malformed_items(monkeypatch) -> None:
    payload = dict(FEED, items=["stray string", None, FEED["items"][0]])
    monkeypatch.setattr(news.requests, "get", lambda url, params=None, timeout=None: _Response(payload))
    result = news.fetch_alerts()
    assert result.ok
    assert [a.type for a in result.items] == ["critical"]


def test_fetch_alerts_cache_key_is_normalized(monkeypatch) -> None:
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append(params)
        return _Response(FEED)

    monkeypatch.setattr(news.requests, "get", fake_get)
    first = news.fetch_alerts("Kolkata")
    assert news.fetch_alerts("  kolkata ") is first
    assert news.fetch_alerts("KOLKATA") is first
    assert len(calls) == 1
    assert first.items[0].location == "Kolkata"
