"""Great-circle distance and the bounding-box pre-filter used by proximity search."""

from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0

# Approximate kilometres per degree of latitude. Also applied to longitude,
# so away from the equator the box is narrower east-west than the radius.
KM_PER_DEGREE = 111.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return the great-circle distance in kilometres between two points.

    Inputs are in degrees.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlon / 2) ** 2
    # Rounding can push a a hair outside [0, 1] for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


@dataclass(frozen=True)
class BoundingBox:
    """Inclusive latitude/longitude rectangle."""

    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, latitude: float, longitude: float) -> bool:
        return (
            self.min_lat <= latitude <= self.max_lat
            and self.min_lon <= longitude <= self.max_lon
        )


def bounding_box(latitude: float, longitude: float, radius_km: float) -> BoundingBox:
    """Return the cheap pre-filter rectangle around a centre point."""
    deg_range = radius_km / KM_PER_DEGREE
    return BoundingBox(
        min_lat=latitude - deg_range,
        max_lat=latitude + deg_range,
        min_lon=longitude - deg_range,
        max_lon=longitude + deg_range,
    )
