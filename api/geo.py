import math

EARTH_RADIUS_KM = 6371


def calculate_distance(lat1, lon1, lat2, lon2):
    """Haversine distance in km, or None when a coordinate is missing."""
    if lat1 is None or lon1 is None or lat2 is None or lon2 is None:
        return None
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (math.sin(d_lat / 2) * math.sin(d_lat / 2) +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(d_lon / 2) * math.sin(d_lon / 2))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_label(lat1, lon1, lat2, lon2):
    distance = calculate_distance(lat1, lon1, lat2, lon2)
    if distance is None:
        return None
    return f"{distance:.1f}"


def _coords(location):
    if not isinstance(location, dict):
        return None, None
    return location.get('lat'), location.get('lng')


def sort_by_distance(items, origin, location_key='location'):
    """
    Annotate each item with ``distance`` (one-decimal string) and order them
    nearest first. Items without coordinates keep their relative order after
    every item that has them.
    """
    origin_lat, origin_lng = _coords(origin)
    located, unlocated = [], []
    for item in items:
        lat, lng = _coords(item.get(location_key))
        distance = calculate_distance(origin_lat, origin_lng, lat, lng)
        if distance is None:
            unlocated.append(dict(item, distance=None))
        else:
            located.append((distance, dict(item, distance=f"{distance:.1f}")))
    located.sort(key=lambda pair: pair[0])
    return [item for _, item in located] + unlocated
