"""
In-memory store for disasters, reports, resources and social media posts.

One DisasterStore is created by the app factory and handed to every route;
nothing here is a module-level singleton. Each collection has its own lock
and its own id counter, so ids stay unique and are never reused even after
a delete.
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional
import copy
import logging
import threading

from services.resource_index import ResourceIndex
from utils.errors import NotFoundError
from utils.validators import DisasterValidator

logger = logging.getLogger(__name__)


# Relief centres available when the hub starts
DEFAULT_RESOURCES = [
    {'name': 'Mumbai Flood Relief Center', 'locationName': 'Bandra Community Center, Mumbai',
     'latitude': 19.0596, 'longitude': 72.8295, 'type': 'shelter'},
    {'name': 'Delhi Emergency Medical Center', 'locationName': 'AIIMS Delhi Emergency Wing',
     'latitude': 28.5672, 'longitude': 77.2100, 'type': 'medical'},
    {'name': 'Chennai Cyclone Evacuation Center', 'locationName': 'Anna University Sports Complex',
     'latitude': 13.0181, 'longitude': 80.2358, 'type': 'shelter'},
    {'name': 'Bangalore Fire Station', 'locationName': 'Electronic City Fire Station',
     'latitude': 12.8456, 'longitude': 77.6603, 'type': 'fire'},
    {'name': 'Kolkata Traffic Control Center', 'locationName': 'Kolkata Police Traffic HQ',
     'latitude': 22.5726, 'longitude': 88.3639, 'type': 'transport'},
    {'name': 'Indian Red Cross - Mumbai', 'locationName': 'Red Cross Bhavan, Mumbai',
     'latitude': 19.0728, 'longitude': 72.8826, 'type': 'medical'},
    {'name': 'NDRF Station Delhi', 'locationName': 'National Disaster Response Force, Delhi',
     'latitude': 28.6448, 'longitude': 77.2141, 'type': 'rescue'},
    {'name': 'Chennai Marina Beach Rescue Post', 'locationName': 'Marina Beach Lifeguard Station',
     'latitude': 13.0478, 'longitude': 80.2785, 'type': 'rescue'},
]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _newest_first(records: List[Dict]) -> List[Dict]:
    return sorted(records, key=lambda r: (r['createdAt'], r['id']), reverse=True)


def _optional_float(value) -> Optional[float]:
    """Numeric strings pass validation; store them as floats"""
    return None if value is None else float(value)


class _Collection:
    """Id counter plus records for one entity type, guarded by one lock"""

    def __init__(self):
        self.records: Dict[int, Dict] = {}
        self.next_id = 1
        self.lock = threading.Lock()

    def allocate_id(self) -> int:
        # caller holds self.lock
        new_id = self.next_id
        self.next_id += 1
        return new_id

    def snapshot(self) -> List[Dict]:
        with self.lock:
            return copy.deepcopy(list(self.records.values()))


class DisasterStore:
    """Owns every collection of the hub for the lifetime of the process"""

    def __init__(self, initial_resources: Optional[List[Dict]] = None):
        """
        Args:
            initial_resources: Resources to seed the index with; None seeds nothing
        """
        self._disasters = _Collection()
        self._reports = _Collection()
        self._posts = _Collection()
        self.resources = ResourceIndex(initial_resources)

    # ===== DISASTERS =====

    def list_disasters(self, tag: Optional[str] = None, owner_id: Optional[str] = None) -> List[Dict]:
        disasters = self._disasters.snapshot()
        if tag:
            disasters = [d for d in disasters if tag in d['tags']]
        if owner_id:
            disasters = [d for d in disasters if d['ownerId'] == owner_id]
        return _newest_first(disasters)

    def get_disaster(self, disaster_id: int) -> Dict:
        with self._disasters.lock:
            disaster = self._disasters.records.get(disaster_id)
            if disaster is None:
                raise NotFoundError('Disaster not found')
            return copy.deepcopy(disaster)

    def create_disaster(self, data: Dict) -> Dict:
        """
        Create a disaster record with a 'create' audit entry by its owner.

        Args:
            data: Validated submission (title, locationName, description,
                ownerId, optional latitude/longitude/tags)
        """
        now = _now_iso()
        with self._disasters.lock:
            disaster = {
                'id': self._disasters.allocate_id(),
                'title': data['title'],
                'locationName': data['locationName'],
                'latitude': _optional_float(data.get('latitude')),
                'longitude': _optional_float(data.get('longitude')),
                'description': data['description'],
                'tags': DisasterValidator.normalize_tags(data.get('tags') or []),
                'ownerId': data['ownerId'],
                'createdAt': now,
                'auditTrail': [{'action': 'create', 'userId': data['ownerId'], 'timestamp': now}]
            }
            self._disasters.records[disaster['id']] = disaster
            return copy.deepcopy(disaster)

    def update_disaster(self, disaster_id: int, updates: Dict, user_id: str) -> Dict:
        """
        Apply a partial update and append an 'update' audit entry.

        id, createdAt and auditTrail in `updates` are ignored.

        Raises:
            NotFoundError: If the disaster does not exist
        """
        with self._disasters.lock:
            disaster = self._disasters.records.get(disaster_id)
            if disaster is None:
                raise NotFoundError('Disaster not found')

            for field in DisasterValidator.UPDATABLE_FIELDS:
                if field in updates:
                    disaster[field] = updates[field]
            if 'tags' in updates:
                disaster['tags'] = DisasterValidator.normalize_tags(updates['tags'])
            for field in ('latitude', 'longitude'):
                if field in updates:
                    disaster[field] = _optional_float(updates[field])

            disaster['auditTrail'].append({'action': 'update', 'userId': user_id, 'timestamp': _now_iso()})
            return copy.deepcopy(disaster)

    def delete_disaster(self, disaster_id: int) -> None:
        with self._disasters.lock:
            if self._disasters.records.pop(disaster_id, None) is None:
                raise NotFoundError('Disaster not found')

    # ===== REPORTS =====

    def list_reports(self, disaster_id: Optional[int] = None) -> List[Dict]:
        reports = self._reports.snapshot()
        if disaster_id is not None:
            reports = [r for r in reports if r['disasterId'] == disaster_id]
        return _newest_first(reports)

    def create_report(self, data: Dict) -> Dict:
        with self._reports.lock:
            report = {
                'id': self._reports.allocate_id(),
                'disasterId': data['disasterId'],
                'userId': data['userId'],
                'content': data['content'],
                'imageUrl': data.get('imageUrl'),
                'verificationStatus': data.get('verificationStatus', 'pending'),
                'createdAt': _now_iso()
            }
            self._reports.records[report['id']] = report
            return dict(report)

    def update_report_status(self, report_id: int, status: str) -> Dict:
        with self._reports.lock:
            report = self._reports.records.get(report_id)
            if report is None:
                raise NotFoundError('Report not found')
            report['verificationStatus'] = status
            return dict(report)

    # ===== RESOURCES =====

    def create_resource(self, data: Dict) -> Dict:
        return self.resources.insert(data)

    def list_resources(self, disaster_id: Optional[int] = None) -> List[Dict]:
        return self.resources.query_by_disaster(disaster_id)

    def nearby_resources(self, lat: float, lon: float, radius_km: float) -> List[Dict]:
        return self.resources.query_near(lat, lon, radius_km)

    # ===== SOCIAL MEDIA =====

    def list_social_media_posts(self, disaster_id: Optional[int] = None) -> List[Dict]:
        posts = self._posts.snapshot()
        if disaster_id is not None:
            posts = [p for p in posts if p.get('disasterId') == disaster_id]
        return _newest_first(posts)

    def create_social_media_post(self, data: Dict) -> Dict:
        with self._posts.lock:
            post = {
                'id': self._posts.allocate_id(),
                'disasterId': data.get('disasterId'),
                'content': data['content'],
                'user': data['user'],
                'platform': data.get('platform', 'twitter'),
                'priority': data.get('priority', 'normal'),
                'createdAt': _now_iso()
            }
            self._posts.records[post['id']] = post
            return dict(post)

    # ===== STATS =====

    def stats(self) -> Dict:
        with self._disasters.lock:
            active_disasters = len(self._disasters.records)
        with self._reports.lock:
            pending_reports = sum(1 for r in self._reports.records.values()
                                  if r['verificationStatus'] == 'pending')
        return {
            'activeDisasters': active_disasters,
            'pendingReports': pending_reports,
            'availableResources': self.resources.count()
        }
