from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from math import asin, cos, pi, sin, sqrt

from sqlalchemy.orm import Session

from fieldforce.errors import CoordinatesRequired, LocationNotFound, OutsideGeofence
from fieldforce.models import Location

EARTH_RADIUS_M = 6371000.0


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


def _to_radians(angle: float) -> float:
    return angle * pi / 180


def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    lat1_rad = _to_radians(lat1)
    lat2_rad = _to_radians(lat2)

    delta_lat = _to_radians(lat2 - lat1)
    delta_lon = _to_radians(lon2 - lon1)

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(delta_lon / 2) ** 2
    c = 2 * asin(min(1.0, sqrt(a)))
    return EARTH_RADIUS_M * c


def is_within_geofence(point: GeoPoint, center: GeoPoint, radius_m: float) -> bool:
    return distance_m(point.lat, point.lng, center.lat, center.lng) <= radius_m


def is_office_location(location: Location | None) -> bool:
    if location is None:
        return False
    if location.is_office:
        return True
    name = (location.name or "").lower()
    code = (location.code or "").lower()
    return "office" in name or "office" in code


def get_location_or_raise(db: Session, location_id: int) -> Location:
    # Always hit the store: radius/center may have been edited since the client fetched it.
    location = db.get(Location, location_id, populate_existing=True)
    if location is None:
        raise LocationNotFound()
    return location


def verify_presence(location: Location, lat: float | None, lng: float | None) -> float:
    """Raise unless (lat, lng) lies inside the location's geofence.

    Returns the measured distance in meters.
    """
    if lat is None or lng is None:
        raise CoordinatesRequired()

    distance_value = distance_m(lat, lng, location.center_lat, location.center_lng)
    if not is_within_geofence(
        GeoPoint(lat, lng),
        GeoPoint(location.center_lat, location.center_lng),
        location.radius_m,
    ):
        raise OutsideGeofence(
            f"You are {round(distance_value)} m from {location.name}; "
            f"the allowed radius is {round(location.radius_m)} m."
        )
    return distance_value


def parse_hhmm(value: str | None) -> time | None:
    if not value or not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) != 2:
        return None
    try:
        hour = int(parts[0])
        minute = int(parts[1])
    except ValueError:
        return None
    if hour < 0 or hour > 23 or minute < 0 or minute > 59:
        return None
    return time(hour=hour, minute=minute)


def resolve_shift_start(location: Location | None, default_start: str) -> time:
    if location is not None:
        for candidate in (location.morning_shift_start, location.night_shift_start):
            parsed = parse_hhmm(candidate)
            if parsed is not None:
                return parsed
    return parse_hhmm(default_start) or time(hour=9)
