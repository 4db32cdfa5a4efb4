"""
Great-circle distance and coordinate resolution for users and venues.

Precise coordinates always win. CITY_COORDS is a coarse, degraded-accuracy
fallback for a handful of major US cities, used only when a user or venue
was never geocoded.
"""

import math

from .models import EventRecord, GeoPoint, UserProfile

EARTH_RADIUS_MILES = 3959.0

CITY_COORDS: dict[str, GeoPoint] = {
    "los angeles-ca": GeoPoint(34.0522, -118.2437),
    "san diego-ca": GeoPoint(32.7157, -117.1611),
    "san francisco-ca": GeoPoint(37.7749, -122.4194),
    "anaheim-ca": GeoPoint(33.8366, -117.9143),
    "inglewood-ca": GeoPoint(33.9617, -118.3531),
    "oakland-ca": GeoPoint(37.8044, -122.2712),
    "phoenix-az": GeoPoint(33.4484, -112.0740),
    "las vegas-nv": GeoPoint(36.1699, -115.1398),
    "houston-tx": GeoPoint(29.7604, -95.3698),
    "dallas-tx": GeoPoint(32.7767, -96.7970),
    "austin-tx": GeoPoint(30.2672, -97.7431),
    "new york-ny": GeoPoint(40.7128, -74.0060),
    "brooklyn-ny": GeoPoint(40.6782, -73.9442),
    "miami-fl": GeoPoint(25.7617, -80.1918),
    "orlando-fl": GeoPoint(28.5383, -81.3792),
    "chicago-il": GeoPoint(41.8781, -87.6298),
    "denver-co": GeoPoint(39.7392, -104.9903),
    "seattle-wa": GeoPoint(47.6062, -122.3321),
    "atlanta-ga": GeoPoint(33.7490, -84.3880),
    "boston-ma": GeoPoint(42.3601, -71.0589),
    "nashville-tn": GeoPoint(36.1627, -86.7816),
    "philadelphia-pa": GeoPoint(39.9526, -75.1652),
    "washington-dc": GeoPoint(38.9072, -77.0369),
    "detroit-mi": GeoPoint(42.3314, -83.0458),
    "minneapolis-mn": GeoPoint(44.9778, -93.2650),
    "portland-or": GeoPoint(45.5152, -122.6784),
}


def distance_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine great-circle distance in miles."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def distance_between(a: GeoPoint, b: GeoPoint) -> float:
    return distance_miles(a.lat, a.lon, b.lat, b.lon)


def city_key(city: str | None, state: str | None) -> str | None:
    if not city or not state:
        return None
    return f"{city.strip().lower()}-{state.strip().lower()}"


def lookup_city(city: str | None, state: str | None) -> GeoPoint | None:
    key = city_key(city, state)
    return CITY_COORDS.get(key) if key else None


def resolve_user_location(user: UserProfile) -> tuple[GeoPoint, str] | None:
    """
    Geocoded coordinates first, then the static city table.

    Returns (point, provenance) or None; callers must treat None as fatal
    for that user.
    """
    if user.coordinates is not None:
        return user.coordinates, "geocoded"

    point = lookup_city(user.city, user.state)
    if point is not None:
        return point, "city_lookup"
    return None


def resolve_venue_location(event: EventRecord) -> GeoPoint | None:
    """GeoJSON [lng, lat] on the venue first, then the static city table."""
    location = event.venue.location
    if location and len(location) == 2:
        lng, lat = location
        if lat and lng:
            return GeoPoint(lat, lng)

    return lookup_city(event.venue.city, event.venue.state)
