"""
Maps helpers — straight-line distance and delivery ETA.

Shop search and tracking only need rough numbers, so everything here is
computed locally; no geocoding or routing provider is called.
"""

import math

PREPARATION_MIN = 10       # Loading jars before the boy leaves
CITY_SPEED_KMH = 20.0


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Straight-line distance in km using the Haversine formula."""
    R = 6371  # Earth radius in km
    lat1, lng1, lat2, lng2 = float(lat1), float(lng1), float(lat2), float(lng2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(dlng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(R * c, 2)


def estimate_delivery_minutes(distance_km: float, avg_speed_kmh: float = CITY_SPEED_KMH) -> int:
    """Preparation time plus travel time at average city speed."""
    return PREPARATION_MIN + max(math.ceil((distance_km / avg_speed_kmh) * 60), 1)


def within_radius(
    origin: tuple[float, float],
    target: tuple[float, float],
    radius_km: float,
) -> tuple[bool, float]:
    """Return (inside, distance_km) for a target point around an origin."""
    d = haversine_distance(origin[0], origin[1], target[0], target[1])
    return d <= radius_km, d
