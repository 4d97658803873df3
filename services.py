"""
Third-party lookups: geocoding, air quality, the first-aid assistant and
SMS delivery for SOS broadcasts.

Every call here goes over the network; failures are caught at this layer
and handed back as explicit values so routes never see a raw exception.
"""
import json
import logging
import os
from typing import Any, Dict, List, Optional

import google.generativeai as genai
import requests

from cache import TTLCache
from first_aid import GUIDES

logger = logging.getLogger(__name__)

NOMINATIM_URL = "https://nominatim.openstreetmap.org"
AIR_QUALITY_URL = "https://air-quality-api.open-meteo.com/v1/air-quality"
AQI_CACHE_SECONDS = 5 * 60
ASSISTANT_MODEL = "gemini-2.5-flash-lite"

MISSING_KEY_REPLY = "API Key missing."
BUSY_REPLY = "The AI is currently busy. Please retry in a few seconds or use the manual guides below."
FALLBACK_REPLY = "Connection error. Please call 100/101."

MAX_SOS_CONTACTS = 4


class UpstreamError(Exception):
    """A third-party service could not be reached or answered garbage."""


def _user_agent() -> str:
    return os.getenv("NOMINATIM_USER_AGENT", "reliefnet-api/1.0")


# -------------------- Geocoding --------------------

def geocode(address: str) -> Optional[Dict[str, Any]]:
    """Address to coordinate. None when nothing matched."""
    try:
        r = requests.get(
            f"{NOMINATIM_URL}/search",
            params={"q": address, "format": "json", "limit": 1},
            headers={"User-Agent": _user_agent()},
            timeout=10,
        )
        r.raise_for_status()
        results = r.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("Geocoding failed for %r: %s", address, e)
        raise UpstreamError("Geocoding service unavailable") from e
    if not results:
        return None
    try:
        hit = results[0]
        return {"lat": float(hit["lat"]), "lng": float(hit["lon"]), "display_name": hit.get("display_name", "")}
    except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
        logger.warning("Unexpected geocoding response for %r: %s", address, e)
        raise UpstreamError("Geocoding service returned an unexpected response") from e


def reverse_geocode(lat: float, lng: float) -> Optional[Dict[str, Any]]:
    try:
        r = requests.get(
            f"{NOMINATIM_URL}/reverse",
            params={"lat": lat, "lon": lng, "format": "json"},
            headers={"User-Agent": _user_agent()},
            timeout=10,
        )
        r.raise_for_status()
        data = r.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("Reverse geocoding failed for %s,%s: %s", lat, lng, e)
        raise UpstreamError("Geocoding service unavailable") from e
    if not data:
        return None
    if not isinstance(data, dict):
        raise UpstreamError("Geocoding service returned an unexpected response")
    if "error" in data:
        return None
    return {"lat": lat, "lng": lng, "display_name": data.get("display_name", ""),
            "address": data.get("address", {})}


# -------------------- Air quality --------------------

def categorize_aqi(aqi: Optional[int]) -> str:
    if aqi is None:
        return "Unknown"
    if aqi <= 50:
        return "Good"
    if aqi <= 100:
        return "Moderate"
    if aqi <= 150:
        return "Unhealthy for Sensitive"
    if aqi <= 200:
        return "Unhealthy"
    if aqi <= 300:
        return "Very Unhealthy"
    return "Hazardous"


_aqi_cache = TTLCache(AQI_CACHE_SECONDS)


def air_quality(lat: float, lng: float) -> Dict[str, Any]:
    key = (round(lat, 2), round(lng, 2))
    cached = _aqi_cache.get(key)
    if cached is not None:
        return cached

    try:
        r = requests.get(
            AIR_QUALITY_URL,
            params={"latitude": lat, "longitude": lng, "current": "us_aqi,pm2_5,pm10"},
            timeout=10,
        )
        r.raise_for_status()
        current = r.json().get("current") or {}
        aqi = current.get("us_aqi")
        aqi = int(aqi) if aqi is not None else None
    except (requests.RequestException, ValueError, TypeError, AttributeError) as e:
        logger.warning("AQI lookup failed for %s,%s: %s", lat, lng, e)
        return {"ok": False, "aqi": None, "category": "Unknown", "note": "Unable to fetch external data"}

    payload = {
        "ok": True,
        "aqi": aqi,
        "category": categorize_aqi(aqi),
        "metrics": {"pm2_5": current.get("pm2_5"), "pm10": current.get("pm10")},
    }
    _aqi_cache.set(key, payload)
    return payload


# -------------------- First-aid assistant --------------------

def ask_assistant(prompt: str) -> str:
    api_key = os.getenv("GEMINI_API_KEY")
    if not api_key:
        return MISSING_KEY_REPLY

    genai.configure(api_key=api_key)
    model = genai.GenerativeModel(ASSISTANT_MODEL)
    system_prompt = f"You are an emergency medical assistant. Use this data: {json.dumps(GUIDES)}"
    try:
        result = model.generate_content([system_prompt, prompt])
        return result.text
    except Exception as e:
        # The client surfaces quota errors with the HTTP status in the message
        if "429" in str(e):
            return BUSY_REPLY
        logger.warning("Assistant call failed: %s", e)
        return FALLBACK_REPLY


# -------------------- SMS --------------------

def sos_message(name: str, phone: str, lat: Optional[float], lng: Optional[float]) -> str:
    where = f"https://maps.google.com/?q={lat},{lng}" if lat is not None and lng is not None else "unknown"
    return (
        f"EMERGENCY ALERT! {name} needs help immediately. "
        f"Current location: {where}. "
        f"Contact: {phone}."
    )


def notify_contacts(contacts: List[Dict[str, Any]], message: str) -> List[Dict[str, str]]:
    """Text up to MAX_SOS_CONTACTS numbers, simulating when Twilio is not configured."""
    numbers = [str(c.get("phone")) for c in contacts[:MAX_SOS_CONTACTS] if c.get("phone")]
    account_sid = os.getenv("TWILIO_ACCOUNT_SID")
    auth_token = os.getenv("TWILIO_AUTH_TOKEN")
    from_number = os.getenv("TWILIO_PHONE_NUMBER")

    if not (account_sid and auth_token and from_number):
        return [{"to": n, "sid": "simulated"} for n in numbers]

    sent = []
    try:
        from twilio.rest import Client  # type: ignore
        client = Client(account_sid, auth_token)
        for n in numbers:
            res = client.messages.create(body=message, from_=from_number, to=n)
            sent.append({"to": n, "sid": res.sid})
    except Exception as e:
        logger.warning("Twilio delivery failed, falling back to simulated send: %s", e)
        delivered = {s["to"] for s in sent}
        sent += [{"to": n, "sid": "simulated"} for n in numbers if n not in delivered]
    return sent


def clear_caches() -> None:
    _aqi_cache.clear()
