"""Geolocation helpers for proximity searches."""

from typing import Any, List, Dict, Tuple, Optional
from math import radians, cos, sin, asin, sqrt

EARTH_RADIUS_KM = 6371


class GeoService:
    """Service for geolocation calculations."""

    @staticmethod
    def haversine_distance(
        lat1: float,
        lon1: float,
        lat2: float,
        lon2: float
    ) -> float:
        """
        Calculate the great circle distance between two points
        on the earth (specified in decimal degrees).

        Returns distance in kilometers.
        """
        lon1, lat1, lon2, lat2 = map(radians, [lon1, lat1, lon2, lat2])

        dlon = lon2 - lon1
        dlat = lat2 - lat1
        a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
        c = 2 * asin(sqrt(a))

        return c * EARTH_RADIUS_KM

    @staticmethod
    def find_nearest(
        lat: float,
        lon: float,
        points: List[Any],
        max_results: int = 20,
        max_distance_km: Optional[float] = None
    ) -> List[Tuple[Any, float]]:
        """
        Rank objects exposing ``latitude``/``longitude`` attributes by distance.

        Args:
            lat: Reference latitude
            lon: Reference longitude
            points: Objects (ORM rows) with latitude and longitude attributes
            max_results: Maximum number of results to return
            max_distance_km: Optional maximum distance filter in kilometers

        Returns:
            List of tuples (point, distance_km) sorted by distance
        """
        with_distance = []

        for point in points:
            if point.latitude is None or point.longitude is None:
                continue

            distance = GeoService.haversine_distance(
                lat,
                lon,
                float(point.latitude),
                float(point.longitude)
            )

            if max_distance_km is None or distance <= max_distance_km:
                with_distance.append((point, distance))

        with_distance.sort(key=lambda x: x[1])

        return with_distance[:max_results]

    @staticmethod
    def to_point(lat: float, lon: float) -> Dict[str, Any]:
        """GeoJSON point (longitude first)."""
        return {"type": "Point", "coordinates": [lon, lat]}
