"""
Location extraction from query rows and the map centre/zoom hint.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from src.shared.config import MapConfig

ID_KEYS = ("id", "location", "locationId", "uri", "station", "s")
LAT_KEYS = ("lat", "latitude")
LNG_KEYS = ("lng", "lon", "long", "longitude")
WKT_KEYS = ("wkt", "geometry", "geom", "asWKT", "point")
NAME_KEYS = ("name", "label", "title")
DESCRIPTION_KEYS = ("description", "comment")

# Optional CRS IRI prefix, then POINT(x y); CRS84 axis order is lon, lat
_WKT_POINT_RE = re.compile(
    r"^\s*(?:<[^>]*>\s*)?POINT\s*Z?\s*\(\s*([-+0-9.eE]+)\s+([-+0-9.eE]+)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Location:
    id: str
    lat: float
    lng: float
    name: Optional[str] = None
    description: Optional[str] = None
    wkt: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.id, "lat": self.lat, "lng": self.lng}
        if self.name is not None:
            payload["name"] = self.name
        if self.description is not None:
            payload["description"] = self.description
        if self.wkt is not None:
            payload["wkt"] = self.wkt
        return payload


def _first(row: Dict[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        value = row.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_wkt_point(wkt: str) -> Optional[Tuple[float, float]]:
    """Return ``(lat, lng)`` for a WKT point literal, or None."""
    match = _WKT_POINT_RE.match(wkt)
    if not match:
        return None
    lng, lat = _as_float(match.group(1)), _as_float(match.group(2))
    if lat is None or lng is None:
        return None
    return lat, lng


def location_from_row(row: Dict[str, Any]) -> Optional[Location]:
    """Build a Location from one result row; None when id or point is missing."""
    identifier = _first(row, ID_KEYS)
    if identifier is None:
        return None

    lat = _as_float(_first(row, LAT_KEYS))
    lng = _as_float(_first(row, LNG_KEYS))
    wkt = _first(row, WKT_KEYS)
    if (lat is None or lng is None) and isinstance(wkt, str):
        point = parse_wkt_point(wkt)
        if point:
            lat, lng = point
    if lat is None or lng is None:
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        return None

    name = _first(row, NAME_KEYS)
    description = _first(row, DESCRIPTION_KEYS)
    return Location(
        id=str(identifier),
        lat=lat,
        lng=lng,
        name=str(name) if name is not None else None,
        description=str(description) if description is not None else None,
        wkt=wkt if isinstance(wkt, str) else None,
    )


def extract_locations(rows: Iterable[Dict[str, Any]]) -> Tuple[List[Location], int]:
    """Return unique locations in row order and the number of rows skipped."""
    locations: List[Location] = []
    seen = set()
    skipped = 0
    for row in rows:
        location = location_from_row(row)
        if location is None:
            skipped += 1
            continue
        if location.id in seen:
            continue
        seen.add(location.id)
        locations.append(location)
    return locations, skipped


def map_hint(locations: Sequence[Location], map_config: MapConfig) -> Dict[str, Any]:
    """
    Centre and zoom for displaying ``locations``.

    Two or more points: centroid, zoom fitted to the bounding box span.
    One point: that point at the default zoom. None: configured default.
    """
    if not locations:
        center = map_config.default_center
        return {
            "center": {"lat": center.lat, "lng": center.lng},
            "zoom": map_config.default_zoom,
        }
    if len(locations) == 1:
        only = locations[0]
        return {
            "center": {"lat": only.lat, "lng": only.lng},
            "zoom": map_config.default_zoom,
        }

    lats = [loc.lat for loc in locations]
    lngs = [loc.lng for loc in locations]
    span = max(max(lats) - min(lats), max(lngs) - min(lngs))
    if span <= 0:
        zoom = map_config.max_zoom
    else:
        zoom = int(math.floor(math.log2(360.0 / span)))
    zoom = max(map_config.min_zoom, min(map_config.max_zoom, zoom))

    return {
        "center": {"lat": sum(lats) / len(lats), "lng": sum(lngs) / len(lngs)},
        "zoom": zoom,
    }
