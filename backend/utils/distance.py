"""
Great-circle distance helpers for resource proximity search.
"""
import math
from functools import lru_cache

# Earth's mean radius in kilometers
EARTH_RADIUS_KM = 6371.0


@lru_cache(maxsize=10000)
def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great circle distance between two points using the Haversine formula.

    Memoized with an LRU cache: resource coordinates are fixed after creation,
    so the same resource/query pairs are recomputed on every refresh of the map.

    Args:
        lat1: Latitude of the first point in decimal degrees
        lon1: Longitude of the first point in decimal degrees
        lat2: Latitude of the second point in decimal degrees
        lon2: Longitude of the second point in decimal degrees

    Returns:
        Distance between the two points in kilometers

    Examples:
        >>> # Bandra relief centre to Red Cross Bhavan, Mumbai
        >>> round(haversine_distance(19.0596, 72.8295, 19.0728, 72.8826), 1)
        5.8

        >>> haversine_distance(28.6448, 77.2141, 28.6448, 77.2141)
        0.0

    Note:
        Does NOT validate coordinates - caller is responsible for validation.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def clear_distance_cache() -> None:
    """Clear the haversine_distance LRU cache."""
    haversine_distance.cache_clear()


def get_cache_info() -> dict:
    """
    Get hit/miss statistics for the haversine_distance cache.

    Returns:
        Dictionary with hits, misses, maxsize and currsize
    """
    info = haversine_distance.cache_info()
    return {
        'hits': info.hits,
        'misses': info.misses,
        'maxsize': info.maxsize,
        'currsize': info.currsize
    }
