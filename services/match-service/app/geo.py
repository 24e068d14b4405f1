import math
from typing import List, Tuple

from .domain import GeoPoint, Volunteer
from .errors import InvalidInputError

EARTH_RADIUS_KM = 6371.0
KM_PER_DEG_LAT = 111.0


def haversine(lat1, lon1, lat2, lon2):
    R = EARTH_RADIUS_KM
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return R * c


def km_to_deg_lat(km: float) -> float:
    return km / KM_PER_DEG_LAT


def km_to_deg_lon(km: float, lat: float) -> float:
    # avoid division by zero near poles
    c = math.cos(math.radians(lat))
    if abs(c) < 0.01:
        c = 0.01
    return km / (KM_PER_DEG_LAT * c)


def bounding_box(center: GeoPoint, radius_km: float):
    """
    Conservative (lat_min, lat_max, lon_min, lon_max) around a circle.
    Returns None when the box would wrap a pole or the antimeridian, in
    which case callers must fall back to the exact distance test alone.
    """
    if abs(center.lat) > 85:
        return None

    # pad slightly so the box never cuts into the circle
    d_lat = km_to_deg_lat(radius_km) * 1.01
    d_lon = km_to_deg_lon(radius_km, center.lat) * 1.01

    lat_min = center.lat - d_lat
    lat_max = center.lat + d_lat
    lon_min = center.lng - d_lon
    lon_max = center.lng + d_lon

    if lat_min <= -90 or lat_max >= 90 or lon_min <= -180 or lon_max >= 180:
        return None
    return lat_min, lat_max, lon_min, lon_max


class GeoIndex:
    """
    Radius queries over the volunteer directory.

    Reads the directory's current active set on every call, so volunteers
    toggling availability between queries are picked up immediately.
    """

    def __init__(self, directory):
        self.directory = directory

    async def find_within_radius(self, center: GeoPoint, radius_km: float) -> List[Tuple[Volunteer, float]]:
        if radius_km is None or radius_km <= 0:
            raise InvalidInputError(f"Radius must be positive, got {radius_km}")
        center.validate()

        box = bounding_box(center, radius_km)
        volunteers = await self.directory.get_active_volunteers()

        found = []
        for v in volunteers:
            if not v.active or v.location is None:
                continue
            lat, lng = v.location.lat, v.location.lng
            if box is not None:
                lat_min, lat_max, lon_min, lon_max = box
                if not (lat_min <= lat <= lat_max and lon_min <= lng <= lon_max):
                    continue
            distance = haversine(center.lat, center.lng, lat, lng)
            if distance <= radius_km:
                found.append((v, distance))
        return found
