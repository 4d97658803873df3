"""
Alerts feed: regional news pulled through an RSS-to-JSON proxy and
classified by headline keywords.
"""
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from lxml import etree, html as lxml_html

from cache import TTLCache
from schemas import AlertItem, FeedResult

logger = logging.getLogger(__name__)

RSS2JSON_URL = "https://api.rss2json.com/v1/api.json"
GOOGLE_NEWS_RSS = "https://news.google.com/rss/search?q={query}&hl=en-IN&gl=IN&ceid=IN:en"
REFRESH_SECONDS = 5 * 60
MESSAGE_CHARS = 110

CRITICAL_KEYWORDS = ["accident", "death", "fire", "killed", "blast", "emergency", "dead", "flood", "cyclone",
                     "collapsed"]
WARNING_KEYWORDS = ["alert", "warning", "delay", "protest", "traffic", "weather", "rain", "fog", "strike",
                    "intensive revision"]

_PUBDATE_FORMATS = ("%Y-%m-%d %H:%M:%S", "%a, %d %b %Y %H:%M:%S %Z", "%a, %d %b %Y %H:%M:%S %z")

_cache = TTLCache(REFRESH_SECONDS)


def region() -> str:
    return os.getenv("ALERT_REGION", "West Bengal")


def classify_severity(title: str) -> str:
    lowered = (title or "").lower()
    if any(key in lowered for key in CRITICAL_KEYWORDS):
        return "critical"
    if any(key in lowered for key in WARNING_KEYWORDS):
        return "warning"
    return "info"


def clean_html(fragment: str) -> str:
    if not fragment or not fragment.strip():
        return ""
    try:
        text = lxml_html.fromstring(fragment).text_content()
    except (etree.ParserError, ValueError):
        return fragment.strip()
    return " ".join(text.split())


def format_time(pub_date: Optional[str]) -> str:
    for fmt in _PUBDATE_FORMATS:
        try:
            return datetime.strptime(pub_date or "", fmt).strftime("%H:%M")
        except ValueError:
            continue
    return ""


def normalize_item(item: Dict[str, Any], city: str = "") -> AlertItem:
    title = item.get("title") or ""
    details = clean_html(item.get("description") or "")
    message = details[:MESSAGE_CHARS] + ("..." if len(details) > MESSAGE_CHARS else "")
    return AlertItem(
        id=item.get("link") or title,
        type=classify_severity(title),
        title=title.split(" - ")[0],
        message=message,
        full_details=details,
        time=format_time(item.get("pubDate")),
        location=city or region(),
        source=item.get("author") or title.split(" - ")[-1] or "News Source",
        affected_area=f"{city} Region" if city else "Statewide",
    )


def build_feed_url(city: str = "") -> str:
    if city and city != f"All {region()}":
        query = f"{region()} {city} emergency alerts"
    else:
        query = f"{region()} breaking news emergency"
    return GOOGLE_NEWS_RSS.format(query=quote(query))


def fetch_alerts(city: str = "") -> FeedResult:
    """
    Fetch and classify the feed for `city`.

    A failed fetch returns ok=False so callers can tell an outage from a
    quiet news day. Successful results are reused for REFRESH_SECONDS.
    """
    city = " ".join(city.split())
    key = city.casefold()
    cached = _cache.get(key)
    if cached is not None:
        return cached

    try:
        r = requests.get(RSS2JSON_URL, params={"rss_url": build_feed_url(city)}, timeout=10)
        r.raise_for_status()
        data = r.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("News feed fetch failed for %r: %s", city, e)
        return FeedResult(ok=False, items=[], error="Unable to fetch alerts feed")

    # rss2json reports its own failures as {"status": "error", "message": ...}
    if not isinstance(data, dict) or data.get("status") != "ok":
        reason = data.get("message") if isinstance(data, dict) else type(data).__name__
        logger.warning("News feed for %r returned an error envelope: %s", city, reason)
        return FeedResult(ok=False, items=[], error="Unable to fetch alerts feed")
    raw_items = data.get("items") or []
    if not isinstance(raw_items, list):
        logger.warning("News feed for %r returned malformed items", city)
        return FeedResult(ok=False, items=[], error="Unable to fetch alerts feed")

    items: List[AlertItem] = [normalize_item(i, city) for i in raw_items if isinstance(i, dict)]
    result = FeedResult(ok=True, items=items)
    _cache.set(key, result)
    return result


def clear_cache() -> None:
    _cache.clear()
