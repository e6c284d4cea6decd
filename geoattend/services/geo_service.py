"""
Great-circle distance between GPS coordinates
"""
import math

EARTH_RADIUS_M = 6371000.0


def haversine_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two GPS coordinates in meters.

    Rounded to 0.1 m; disposition thresholds compare against this value,
    which is also what gets stored on the record.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) *
         math.sin(delta_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return round(EARTH_RADIUS_M * c, 1)


def is_valid_coordinates(latitude: float, longitude: float) -> bool:
    """Latitude in [-90, 90] and longitude in [-180, 180]"""
    return -90 <= latitude <= 90 and -180 <= longitude <= 180
