"""
End-to-end API tests through the Flask test client

External providers (AI, geocoding) are replaced with mocks; the store,
cache and broadcaster are the real in-memory implementations.
"""
import json
import pytest
from unittest.mock import Mock

from app import create_app, serve_subscriber
from services.broadcaster import Broadcaster
from services.store import DisasterStore, DEFAULT_RESOURCES
from utils.errors import UpstreamError

FLOOD = {
    'title': 'Test Flood',
    'locationName': 'Manhattan, NYC',
    'description': 'Flooding in Central Park area',
    'tags': ['flood', 'urgent'],
    'ownerId': 'u1'
}


class FakeConnection:
    def __init__(self):
        self.sent = []
        self.connected = True

    def send(self, text):
        self.sent.append(json.loads(text))

    def events(self, event_type):
        return [message for message in self.sent if message['type'] == event_type]


class FakeSocket(FakeConnection):
    """Client socket that sends the given frames, then disconnects"""

    def __init__(self, frames):
        super().__init__()
        self.frames = list(frames)

    def receive(self):
        if not self.frames:
            raise ConnectionError('client went away')
        return self.frames.pop(0)


class ApiTestCase:

    def setup_method(self):
        self.ai_service = Mock()
        self.ai_service.available = True
        self.ai_service.extract_location.return_value = None
        self.geocoding_service = Mock()
        self.app = create_app(
            'testing',
            store=DisasterStore(DEFAULT_RESOURCES),
            ai_service=self.ai_service,
            geocoding_service=self.geocoding_service
        )
        self.client = self.app.test_client()
        self.hub = self.app.extensions['hub']
        self.subscriber = FakeConnection()
        self.hub.broadcaster.subscribe(self.subscriber)

    def create_disaster(self, **overrides):
        data = dict(FLOOD)
        data.update(overrides)
        response = self.client.post('/api/disasters', json=data)
        assert response.status_code == 201
        return response.get_json()


class TestDisasterEndpoints(ApiTestCase):

    def test_create_list_and_broadcast(self):
        """A new disaster is stored, listed and pushed to live subscribers exactly once"""
        disaster = self.create_disaster()

        assert disaster['id'] == 1
        assert disaster['tags'] == ['flood', 'urgent']
        assert disaster['auditTrail'][0]['action'] == 'create'
        assert disaster['auditTrail'][0]['userId'] == 'u1'

        listed = self.client.get('/api/disasters').get_json()
        assert [d['id'] for d in listed] == [1]

        events = self.subscriber.events('disaster_updated')
        assert len(events) == 1
        assert events[0]['data']['id'] == 1

    def test_minimal_disaster(self):
        disaster = self.create_disaster(locationName='X', description='desc', tags=['flood'])

        assert disaster['id'] == 1
        assert [(e['action'], e['userId']) for e in disaster['auditTrail']] == [('create', 'u1')]
        assert disaster['id'] in [d['id'] for d in self.client.get('/api/disasters').get_json()]
        assert [e['data']['id'] for e in self.subscriber.events('disaster_updated')] == [1]

    def test_owner_defaults_to_current_user(self):
        data = dict(FLOOD)
        del data['ownerId']
        response = self.client.post('/api/disasters', json=data)
        assert response.get_json()['ownerId'] == 'netrunnerX'

    def test_create_validation_error(self):
        response = self.client.post('/api/disasters', json={'title': 'Test Flood'})
        assert response.status_code == 400
        assert response.get_json() == {'error': 'Missing required fields: locationName, description'}
        assert self.subscriber.events('disaster_updated') == []

    def test_html_stripped_from_text(self):
        disaster = self.create_disaster(title='<b>Test Flood</b>', description='<img src=x onerror=alert(1)>Rising water')
        assert disaster['title'] == 'Test Flood'
        assert disaster['description'] == 'Rising water'

    def test_markup_only_title_rejected(self):
        data = dict(FLOOD, title='<b></b>')
        response = self.client.post('/api/disasters', json=data)
        assert response.status_code == 400

    def test_create_without_body(self):
        response = self.client.post('/api/disasters', data='not json', content_type='text/plain')
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Request body is required'

    def test_filters(self):
        self.create_disaster(title='Flood', tags=['flood'], ownerId='u1')
        self.create_disaster(title='Fire', tags=['fire'], ownerId='u2')

        assert [d['title'] for d in self.client.get('/api/disasters?tag=fire').get_json()] == ['Fire']
        assert [d['title'] for d in self.client.get('/api/disasters?owner=u1').get_json()] == ['Flood']

    def test_get_one_and_missing(self):
        self.create_disaster()
        assert self.client.get('/api/disasters/1').get_json()['title'] == 'Test Flood'

        response = self.client.get('/api/disasters/42')
        assert response.status_code == 404
        assert response.get_json() == {'error': 'Disaster not found'}

    def test_update_appends_audit_and_broadcasts(self):
        self.create_disaster()
        response = self.client.put('/api/disasters/1', json={'title': 'Major Flood'})

        assert response.status_code == 200
        body = response.get_json()
        assert body['title'] == 'Major Flood'
        assert [entry['action'] for entry in body['auditTrail']] == ['create', 'update']
        assert body['auditTrail'][1]['userId'] == 'netrunnerX'
        assert len(self.subscriber.events('disaster_updated')) == 2

    def test_string_coordinates_returned_as_numbers(self):
        disaster = self.create_disaster(latitude='19.07', longitude='72.88')

        assert disaster['latitude'] == 19.07
        assert isinstance(disaster['latitude'], float)
        assert isinstance(disaster['longitude'], float)
        broadcast = self.subscriber.events('disaster_updated')[0]['data']
        assert isinstance(broadcast['latitude'], float)

        body = self.client.put('/api/disasters/1', json={'latitude': '28.61', 'longitude': '77.2'}).get_json()
        assert isinstance(body['latitude'], float)
        assert isinstance(body['longitude'], float)

    def test_update_clears_coordinates_with_null_pair(self):
        self.create_disaster(latitude=19.07, longitude=72.88)

        response = self.client.put('/api/disasters/1', json={'latitude': None, 'longitude': None})
        assert response.status_code == 200
        assert response.get_json()['latitude'] is None
        assert response.get_json()['longitude'] is None

        response = self.client.put('/api/disasters/1', json={'latitude': None})
        assert response.status_code == 400

    def test_update_without_valid_fields(self):
        self.create_disaster()
        response = self.client.put('/api/disasters/1', json={'id': 9})
        assert response.status_code == 400
        assert response.get_json() == {'error': 'No valid fields to update'}

    def test_update_missing(self):
        response = self.client.put('/api/disasters/7', json={'title': 'X'})
        assert response.status_code == 404
        assert self.subscriber.events('disaster_updated') == []

    def test_delete_broadcasts_tombstone(self):
        self.create_disaster()
        response = self.client.delete('/api/disasters/1')

        assert response.status_code == 200
        assert self.subscriber.events('disaster_updated')[-1]['data'] == {'id': 1, 'deleted': True}
        assert self.client.get('/api/disasters/1').status_code == 404
        assert self.client.delete('/api/disasters/1').status_code == 404


class TestResourceEndpoints(ApiTestCase):

    def test_proximity_query(self):
        """Red Cross Mumbai (~5.77 km from Bandra) is outside 5 km and inside 10 km"""
        near = self.client.get('/api/resources?lat=19.0596&lon=72.8295&radius=5').get_json()
        assert [r['name'] for r in near] == ['Mumbai Flood Relief Center']

        wider = self.client.get('/api/resources?lat=19.0596&lon=72.8295&radius=10').get_json()
        assert [r['name'] for r in wider] == ['Mumbai Flood Relief Center', 'Indian Red Cross - Mumbai']

    def test_default_radius_is_10km(self):
        resources = self.client.get('/api/resources?lat=19.0596&lon=72.8295').get_json()
        assert len(resources) == 2

    def test_invalid_proximity_query(self):
        response = self.client.get('/api/resources?lat=abc&lon=72.8')
        assert response.status_code == 400
        assert response.get_json() == {'error': 'lat and lon must be valid numbers'}

        response = self.client.get('/api/resources?lat=19&lon=72.8&radius=-3')
        assert response.status_code == 400

    def test_list_all(self):
        assert len(self.client.get('/api/resources').get_json()) == 8

    def test_create_resource_for_disaster(self):
        self.create_disaster()
        response = self.client.post('/api/resources', json={
            'name': 'Dadar Shelter', 'locationName': 'Dadar', 'type': 'shelter',
            'latitude': 19.0178, 'longitude': 72.8478, 'disasterId': 1
        })

        assert response.status_code == 201
        resource = response.get_json()
        assert resource['id'] == 9
        assert self.subscriber.events('resources_updated')[0]['data']['id'] == 9

        linked = self.client.get('/api/disasters/1/resources').get_json()
        assert [r['name'] for r in linked] == ['Dadar Shelter']

    def test_create_resource_unknown_disaster(self):
        response = self.client.post('/api/resources', json={
            'name': 'Dadar Shelter', 'locationName': 'Dadar', 'type': 'shelter',
            'latitude': 19.0178, 'longitude': 72.8478, 'disasterId': 5
        })
        assert response.status_code == 404
        assert self.subscriber.events('resources_updated') == []

    def test_create_resource_invalid(self):
        response = self.client.post('/api/resources', json={'name': 'Shelter'})
        assert response.status_code == 400


class TestReportEndpoints(ApiTestCase):

    def test_report_lifecycle(self):
        self.create_disaster()

        response = self.client.post('/api/reports', json={'disasterId': 1, 'content': 'Need boats on Linking Road'})
        assert response.status_code == 201
        report = response.get_json()
        assert report['verificationStatus'] == 'pending'
        assert report['userId'] == 'netrunnerX'

        response = self.client.put(f"/api/reports/{report['id']}/status", json={'verificationStatus': 'verified'})
        assert response.status_code == 200
        assert response.get_json()['verificationStatus'] == 'verified'

        statuses = [e['data']['verificationStatus'] for e in self.subscriber.events('report_updated')]
        assert statuses == ['pending', 'verified']

    def test_new_report_cannot_skip_verification(self):
        self.create_disaster()
        response = self.client.post('/api/reports', json={
            'disasterId': 1, 'content': 'All good', 'verificationStatus': 'verified'
        })
        assert response.get_json()['verificationStatus'] == 'pending'

    def test_report_image_url_must_be_public_https_image(self):
        self.create_disaster()

        response = self.client.post('/api/reports', json={
            'disasterId': 1, 'content': 'Bridge down', 'imageUrl': 'http://localhost/bridge.jpg'
        })
        assert response.status_code == 400
        assert response.get_json()['error'] == 'imageUrl: Only HTTPS URLs are allowed'
        assert self.subscriber.events('report_updated') == []

        response = self.client.post('/api/reports', json={
            'disasterId': 1, 'content': 'Bridge down', 'imageUrl': 'https://example.com/bridge.jpg'
        })
        assert response.status_code == 201
        assert response.get_json()['imageUrl'] == 'https://example.com/bridge.jpg'

    def test_report_for_unknown_disaster(self):
        response = self.client.post('/api/reports', json={'disasterId': 3, 'content': 'Help'})
        assert response.status_code == 404

    def test_invalid_status(self):
        self.create_disaster()
        self.client.post('/api/reports', json={'disasterId': 1, 'content': 'Help'})
        response = self.client.put('/api/reports/1/status', json={'verificationStatus': 'approved'})
        assert response.status_code == 400

    def test_status_for_unknown_report(self):
        response = self.client.put('/api/reports/8/status', json={'verificationStatus': 'verified'})
        assert response.status_code == 404

    def test_list_filtered(self):
        self.create_disaster()
        self.create_disaster(title='Second')
        self.client.post('/api/reports', json={'disasterId': 1, 'content': 'a'})
        self.client.post('/api/reports', json={'disasterId': 2, 'content': 'b'})

        assert [r['content'] for r in self.client.get('/api/reports?disasterId=2').get_json()] == ['b']
        assert len(self.client.get('/api/reports').get_json()) == 2
        assert self.client.get('/api/reports?disasterId=x').status_code == 400


class TestGeocodeEndpoint(ApiTestCase):

    def test_location_name(self):
        self.geocoding_service.geocode.return_value = {
            'latitude': 19.0596, 'longitude': 72.8295, 'formattedAddress': 'Bandra West, Mumbai'
        }
        response = self.client.post('/api/geocode', json={'locationName': 'Bandra'})

        assert response.status_code == 200
        assert response.get_json() == {
            'locationName': 'Bandra', 'latitude': 19.0596, 'longitude': 72.8295,
            'formattedAddress': 'Bandra West, Mumbai'
        }
        self.ai_service.extract_location.assert_not_called()

    def test_description_extracted_first(self):
        self.ai_service.extract_location.return_value = 'Andheri, Mumbai'
        self.geocoding_service.geocode.return_value = {
            'latitude': 19.1136, 'longitude': 72.8697, 'formattedAddress': 'Andheri East, Mumbai'
        }
        response = self.client.post('/api/geocode', json={'description': 'Building collapse near the metro'})

        assert response.get_json()['locationName'] == 'Andheri, Mumbai'
        self.geocoding_service.geocode.assert_called_once_with('Andheri, Mumbai')

    def test_description_heuristic_when_ai_down(self):
        self.ai_service.extract_location.side_effect = UpstreamError()
        self.geocoding_service.geocode.return_value = {
            'latitude': 40.78, 'longitude': -73.96, 'formattedAddress': 'Central Park, New York'
        }
        response = self.client.post('/api/geocode', json={'description': 'Flooding in Central Park area'})

        assert response.status_code == 200
        self.geocoding_service.geocode.assert_called_once_with('Central Park')

    def test_nothing_to_geocode(self):
        response = self.client.post('/api/geocode', json={})
        assert response.status_code == 400
        assert response.get_json() == {'error': 'No location provided or found'}

    def test_unextractable_description(self):
        response = self.client.post('/api/geocode', json={'description': 'water everywhere, send help'})
        assert response.status_code == 400
        body = response.get_json()
        assert body['error'] == 'Unable to extract location from description'
        assert 'suggestion' in body

    def test_location_not_found(self):
        self.geocoding_service.geocode.return_value = None
        response = self.client.post('/api/geocode', json={'locationName': 'Atlantis'})
        assert response.status_code == 404
        assert response.get_json() == {'error': 'Location not found'}

    def test_providers_down(self):
        self.geocoding_service.geocode.side_effect = UpstreamError()
        response = self.client.post('/api/geocode', json={'locationName': 'Bandra'})
        assert response.status_code == 502
        assert response.get_json() == {'error': 'External service unavailable, please try again later'}


class TestVerifyImageEndpoint(ApiTestCase):

    def test_verification_cached(self):
        self.create_disaster()
        self.ai_service.verify_image.return_value = {
            'isAuthentic': True, 'confidence': 'high', 'analysis': 'Consistent water levels'
        }

        first = self.client.post('/api/disasters/1/verify-image', json={'imageUrl': 'https://example.com/a.jpg'})
        second = self.client.post('/api/disasters/1/verify-image', json={'imageUrl': 'https://example.com/a.jpg'})

        assert first.status_code == 200
        assert first.get_json() == second.get_json()
        self.ai_service.verify_image.assert_called_once_with('https://example.com/a.jpg')

    def test_failure_not_cached(self):
        self.create_disaster()
        self.ai_service.verify_image.side_effect = [UpstreamError('Image verification failed'),
                                                    {'isAuthentic': False, 'confidence': 'low', 'analysis': 'x'}]

        first = self.client.post('/api/disasters/1/verify-image', json={'imageUrl': 'https://example.com/a.jpg'})
        second = self.client.post('/api/disasters/1/verify-image', json={'imageUrl': 'https://example.com/a.jpg'})

        assert first.status_code == 502
        assert second.status_code == 200

    def test_image_url_required(self):
        self.create_disaster()
        response = self.client.post('/api/disasters/1/verify-image', json={})
        assert response.status_code == 400
        assert response.get_json() == {'error': 'Image URL is required'}

    def test_image_url_rejected_before_ai_call(self):
        self.create_disaster()
        for url in ('http://example.com/a.jpg', 'https://127.0.0.1/a.jpg', 'https://example.com/page.html'):
            response = self.client.post('/api/disasters/1/verify-image', json={'imageUrl': url})
            assert response.status_code == 400, url
        self.ai_service.verify_image.assert_not_called()

    def test_unknown_disaster(self):
        response = self.client.post('/api/disasters/4/verify-image', json={'imageUrl': 'https://example.com/a.jpg'})
        assert response.status_code == 404
        self.ai_service.verify_image.assert_not_called()


class TestMiscEndpoints(ApiTestCase):

    def test_health(self):
        body = self.client.get('/api/health').get_json()
        assert body == {'status': 'healthy', 'subscribers': 1}

    def test_stats(self):
        self.create_disaster()
        self.client.post('/api/reports', json={'disasterId': 1, 'content': 'Help'})
        assert self.client.get('/api/stats').get_json() == {
            'activeDisasters': 1, 'pendingReports': 1, 'availableResources': 8
        }

    def test_official_updates(self):
        self.create_disaster()
        updates = self.client.get('/api/disasters/1/official-updates').get_json()
        assert [u['source'] for u in updates][0] == 'NDMA'

    def test_social_media(self):
        self.create_disaster()
        self.hub.store.create_social_media_post({'content': 'SOS near Dadar', 'user': '@resident', 'disasterId': 1})
        self.hub.social_media_service.ingest_once()

        assert len(self.client.get('/api/social-media').get_json()) == 2
        assert [p['content'] for p in self.client.get('/api/disasters/1/social-media').get_json()] == ['SOS near Dadar']
        assert len(self.subscriber.events('social_media_updated')) == 1

    def test_cache_admin(self):
        self.hub.cache_manager.set('geocode:abc', {'latitude': 1}, 60)

        assert self.client.get('/api/cache/status').get_json()['namespaces'] == {'geocode': 1}
        response = self.client.post('/api/cache/clear', json={'namespace': 'geocode'})
        assert response.get_json() == {'message': 'Cache cleared', 'removed': 1}

    def test_cache_admin_requires_admin(self):
        self.app.config['MOCK_USER_ROLE'] = 'responder'
        response = self.client.get('/api/cache/status')
        assert response.status_code == 403
        assert response.get_json() == {'error': 'Admin access required'}

    def test_unknown_route_is_json(self):
        response = self.client.get('/api/nowhere')
        assert response.status_code == 404
        assert response.get_json() == {'error': 'Not Found'}

    def test_unexpected_error_hidden(self):
        self.hub.store.stats = Mock(side_effect=RuntimeError('db exploded'))
        response = self.client.get('/api/stats')
        assert response.status_code == 500
        assert response.get_json() == {'error': 'Internal server error'}

    def test_security_headers(self):
        response = self.client.get('/api/health')
        assert response.headers['X-Frame-Options'] == 'DENY'
        assert response.headers['X-Content-Type-Options'] == 'nosniff'

    def test_monitoring_not_started_in_tests(self):
        assert self.hub.social_media_service.running is False


class TestLiveUpdates:

    def test_ping_pong_and_cleanup(self):
        broadcaster = Broadcaster()
        socket = FakeSocket(['ping', 'hello', 'ping'])

        with pytest.raises(ConnectionError):
            serve_subscriber(socket, broadcaster)

        assert [m['type'] for m in socket.sent] == ['connected', 'pong', 'pong']
        assert broadcaster.subscriber_count == 0
