"""
Nearby-shelter aggregation

Pure helpers for distance, occupancy status and radius filtering, plus
`NearbyShelters`, the view that re-derives its result whenever its records,
origin or radius change.
"""
import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

EARTH_RADIUS_KM = 6371.0
DEFAULT_RADIUS_KM = 50
MAX_RADIUS_KM = 500
RADIUS_STEP_KM = 5
DISTANCE_PLACEHOLDER = "--"

LatLng = Tuple[float, float]


def haversine_km(origin: LatLng, target: LatLng) -> float:
    lat1, lon1 = map(math.radians, origin)
    lat2, lon2 = map(math.radians, target)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def format_distance(km: Optional[float]) -> str:
    if km is None:
        return DISTANCE_PLACEHOLDER
    return f"{km:.1f} km"


def occupancy_percent(current: int, capacity: int) -> int:
    if capacity <= 0:
        return 100
    return round(current / capacity * 100)


def occupancy_status(current: int, capacity: int) -> str:
    """open up to 70%, limited up to 90%, full above. No capacity means full."""
    if capacity <= 0:
        return "full"
    ratio = current / capacity * 100
    if ratio > 90:
        return "full"
    if ratio > 70:
        return "limited"
    return "open"


def clamp_radius(radius_km: Optional[float]) -> int:
    if radius_km is None or not math.isfinite(radius_km):
        return DEFAULT_RADIUS_KM
    radius = min(max(radius_km, 0), MAX_RADIUS_KM)
    return int(round(radius / RADIUS_STEP_KM) * RADIUS_STEP_KM)


def coords_of(record: Dict[str, Any]) -> Optional[LatLng]:
    coords = record.get("coords") or {}
    lat, lng = coords.get("lat"), coords.get("lng")
    if lat is None or lng is None:
        return None
    try:
        return float(lat), float(lng)
    except (TypeError, ValueError):
        return None


def map_markers(records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Records that can be pinned on a map."""
    markers = []
    for r in records:
        point = coords_of(r)
        if point is None:
            continue
        markers.append({
            "id": r.get("id"),
            "name": r.get("name"),
            "lat": point[0],
            "lng": point[1],
            "status": r.get("status"),
            "occupancy": occupancy_percent(r.get("current", 0), r.get("capacity", 0)),
        })
    return markers


def aggregate_nearby(records: Iterable[Dict[str, Any]], origin: Optional[LatLng],
                     radius_km: Optional[float] = DEFAULT_RADIUS_KM) -> List[Dict[str, Any]]:
    """
    Annotate records with their distance from `origin` and keep those inside
    the radius.

    Without an origin nothing is filtered and every record gets the
    placeholder distance. With an origin, records lacking coordinates are
    dropped along with those beyond the radius, and the rest come back
    nearest first. Input records are not mutated.
    """
    if origin is None:
        return [dict(r, distance=DISTANCE_PLACEHOLDER, distance_km=None) for r in records]

    radius = clamp_radius(radius_km)
    nearby = []
    for r in records:
        point = coords_of(r)
        if point is None:
            continue
        km = haversine_km(origin, point)
        if km > radius:
            continue
        nearby.append(dict(r, distance=format_distance(km), distance_km=round(km, 3)))
    nearby.sort(key=lambda r: r["distance_km"])
    return nearby


class NearbyShelters:
    """Lazily recomputed nearby view over a live shelter snapshot."""

    def __init__(self, origin: Optional[LatLng] = None, radius_km: Optional[float] = DEFAULT_RADIUS_KM):
        self._records: List[Dict[str, Any]] = []
        self._origin = origin
        self._radius = clamp_radius(radius_km)
        self._results: Optional[List[Dict[str, Any]]] = None

    @property
    def origin(self) -> Optional[LatLng]:
        return self._origin

    @property
    def radius_km(self) -> int:
        return self._radius

    def update_records(self, records: Iterable[Dict[str, Any]]) -> None:
        self._records = list(records)
        self._results = None

    def set_origin(self, origin: Optional[LatLng]) -> None:
        if origin != self._origin:
            self._origin = origin
            self._results = None

    def set_radius(self, radius_km: Optional[float]) -> None:
        radius = clamp_radius(radius_km)
        if radius != self._radius:
            self._radius = radius
            self._results = None

    @property
    def results(self) -> List[Dict[str, Any]]:
        if self._results is None:
            self._results = aggregate_nearby(self._records, self._origin, self._radius)
        return self._results
