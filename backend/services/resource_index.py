"""
Geospatial Resource Index

In-memory store of relief resources (shelters, medical posts, rescue
stations) answering "what is within R km of me, nearest first".
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional
import copy
import logging
import threading

from utils.distance import haversine_distance

logger = logging.getLogger(__name__)


class ResourceIndex:
    """Resource store with haversine radius queries"""

    def __init__(self, initial_resources: Optional[List[Dict]] = None):
        """
        Args:
            initial_resources: Resources inserted (and assigned ids) at construction
        """
        self._resources: Dict[int, Dict] = {}
        self._next_id = 1
        self._lock = threading.Lock()

        for resource in initial_resources or []:
            self.insert(resource)

    def insert(self, resource: Dict) -> Dict:
        """
        Assign an id and creation time, store, and return the stored record.

        Args:
            resource: Dict with name, locationName, latitude, longitude, type
                and an optional disasterId

        Returns:
            Copy of the stored resource
        """
        with self._lock:
            record = {
                'id': self._next_id,
                'disasterId': resource.get('disasterId'),
                'name': resource['name'],
                'locationName': resource['locationName'],
                'latitude': float(resource['latitude']),
                'longitude': float(resource['longitude']),
                'type': resource['type'],
                'createdAt': datetime.now(timezone.utc).isoformat()
            }
            self._next_id += 1
            self._resources[record['id']] = record
            return dict(record)

    def get(self, resource_id: int) -> Optional[Dict]:
        with self._lock:
            record = self._resources.get(resource_id)
            return dict(record) if record else None

    def count(self) -> int:
        with self._lock:
            return len(self._resources)

    def _snapshot(self) -> List[Dict]:
        # dicts preserve insertion order, which is id order
        with self._lock:
            return copy.deepcopy(list(self._resources.values()))

    def query_near(self, lat: float, lon: float, radius_km: float) -> List[Dict]:
        """
        Find resources within radius_km of (lat, lon), nearest first.

        Resources at equal distance keep their insertion order.

        Args:
            lat: Query latitude
            lon: Query longitude
            radius_km: Search radius in kilometers (inclusive)

        Returns:
            List of resources sorted by ascending distance
        """
        nearby = []
        for resource in self._snapshot():
            distance = haversine_distance(lat, lon, resource['latitude'], resource['longitude'])
            if distance <= radius_km:
                nearby.append((distance, resource))

        nearby.sort(key=lambda item: item[0])
        return [resource for _, resource in nearby]

    def query_by_disaster(self, disaster_id: Optional[int] = None) -> List[Dict]:
        """
        List resources, optionally only those linked to disaster_id, newest first.
        """
        resources = self._snapshot()
        if disaster_id is not None:
            resources = [r for r in resources if r.get('disasterId') == disaster_id]

        return sorted(resources, key=lambda r: (r['createdAt'], r['id']), reverse=True)
