from flask import Flask, Blueprint, current_app, g, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_sock import Sock
from werkzeug.exceptions import HTTPException
import os
import json
import logging
from functools import wraps
from dotenv import load_dotenv

from config import config
from services.ai_service import AIService
from services.broadcaster import Broadcaster
from services.cache_manager import CacheManager
from services.geocoding_service import GeocodingService
from services.location_extractor import LocationExtractor
from services.official_updates_service import OfficialUpdatesService
from services.social_media_service import SocialMediaService
from services.store import DisasterStore, DEFAULT_RESOURCES
from utils.errors import HubError, InternalError, NotFoundError, ValidationError
from utils.secure_logging import hash_user_id, redact_coordinates, truncate_for_log
from utils.url_validator import validate_image_url
from utils.validators import CoordinateValidator, DisasterValidator, ReportValidator, ResourceValidator, sanitize_fields

load_dotenv()

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)
sock = Sock()
api = Blueprint('api', __name__, url_prefix='/api')

DEFAULT_RADIUS_KM = '10'


class Hub:
    """Services shared by every request, created once per app"""

    def __init__(self, store, cache_manager, broadcaster, ai_service, geocoding_service,
                 location_extractor, official_updates_service, social_media_service):
        self.store = store
        self.cache_manager = cache_manager
        self.broadcaster = broadcaster
        self.ai_service = ai_service
        self.geocoding_service = geocoding_service
        self.location_extractor = location_extractor
        self.official_updates_service = official_updates_service
        self.social_media_service = social_media_service


def _hub() -> Hub:
    return current_app.extensions['hub']


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        raise ValidationError('Request body is required')
    return data


def _check(result):
    is_valid, error_message = result
    if not is_valid:
        raise ValidationError(error_message)


def _ai_rate_limit():
    return current_app.config['AI_RATE_LIMIT']


# ===== MIDDLEWARE & DECORATORS =====

@api.before_request
def load_current_user():
    """Attach the acting user; a fixed identity stands in for real authentication"""
    g.current_user = {
        'id': current_app.config['MOCK_USER_ID'],
        'role': current_app.config['MOCK_USER_ROLE']
    }


def require_admin(f):
    """Decorator to restrict an endpoint to the admin role"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.current_user.get('role') != 'admin':
            logger.warning(f"User {hash_user_id(g.current_user.get('id'))} attempted to access admin endpoint")
            return jsonify({'error': 'Admin access required'}), 403
        return f(*args, **kwargs)

    return decorated_function


# ===== HEALTH & STATS =====

@api.route('/health', methods=['GET'])
def health_check():
    return jsonify({'status': 'healthy', 'subscribers': _hub().broadcaster.subscriber_count})


@api.route('/stats', methods=['GET'])
def get_stats():
    return jsonify(_hub().store.stats())


# ===== DISASTERS =====

@api.route('/disasters', methods=['GET'])
def get_disasters():
    """List disasters, newest first. Query: ?tag=&owner="""
    disasters = _hub().store.list_disasters(
        tag=request.args.get('tag') or None,
        owner_id=request.args.get('owner') or None
    )
    return jsonify(disasters)


@api.route('/disasters/<int:disaster_id>', methods=['GET'])
def get_disaster(disaster_id):
    return jsonify(_hub().store.get_disaster(disaster_id))


@api.route('/disasters', methods=['POST'])
def create_disaster():
    """
    Create a disaster record

    Body: title, locationName, description, optional latitude/longitude/tags/ownerId.
    ownerId defaults to the acting user.
    """
    data = _json_body()
    data.setdefault('ownerId', g.current_user['id'])
    sanitize_fields(data, DisasterValidator.TEXT_FIELDS)
    _check(DisasterValidator.validate_disaster_data(data))

    hub = _hub()
    disaster = hub.store.create_disaster(data)
    hub.broadcaster.publish_disaster(disaster)

    logger.info(f"Disaster created: #{disaster['id']} '{truncate_for_log(disaster['title'])}' "
                f"by {hash_user_id(disaster['ownerId'])}")
    return jsonify(disaster), 201


@api.route('/disasters/<int:disaster_id>', methods=['PUT'])
def update_disaster(disaster_id):
    updates = sanitize_fields(_json_body(), DisasterValidator.TEXT_FIELDS)
    _check(DisasterValidator.validate_disaster_update(updates))

    hub = _hub()
    disaster = hub.store.update_disaster(disaster_id, updates, g.current_user['id'])
    hub.broadcaster.publish_disaster(disaster)

    logger.info(f"Disaster updated: #{disaster_id} by {hash_user_id(g.current_user['id'])}")
    return jsonify(disaster)


@api.route('/disasters/<int:disaster_id>', methods=['DELETE'])
def delete_disaster(disaster_id):
    hub = _hub()
    hub.store.delete_disaster(disaster_id)
    hub.broadcaster.publish_disaster({'id': disaster_id, 'deleted': True})

    logger.info(f"Disaster deleted: #{disaster_id} by {hash_user_id(g.current_user['id'])}")
    return jsonify({'message': 'Disaster deleted successfully', 'id': disaster_id})


# ===== GEOCODING & AI =====

@api.route('/geocode', methods=['POST'])
@limiter.limit(_ai_rate_limit)
def geocode_location():
    """
    Resolve a location to coordinates

    Body: {locationName?, description?}. When locationName is missing the
    location is extracted from description first.

    Returns:
        200: {locationName, latitude, longitude, formattedAddress}
        400: No location given or extractable
        404: Geocoding found nothing
        502: Geocoding providers unavailable
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')

    location = data.get('locationName')
    description = data.get('description')
    location = location.strip() if isinstance(location, str) else ''
    description = description.strip() if isinstance(description, str) else ''

    hub = _hub()
    if not location and description:
        location = hub.location_extractor.extract(description)

    if not location:
        raise ValidationError('No location provided or found')

    result = hub.geocoding_service.geocode(location)
    if not result:
        raise NotFoundError('Location not found')

    return jsonify({
        'locationName': location,
        'latitude': result['latitude'],
        'longitude': result['longitude'],
        'formattedAddress': result['formattedAddress']
    })


@api.route('/disasters/<int:disaster_id>/verify-image', methods=['POST'])
@limiter.limit(_ai_rate_limit)
def verify_image(disaster_id):
    """Check whether an image looks like authentic disaster damage (cached per imageUrl)"""
    data = request.get_json(silent=True) or {}
    image_url = data.get('imageUrl') if isinstance(data, dict) else None
    if not isinstance(image_url, str) or not image_url.strip():
        raise ValidationError('Image URL is required')
    image_url = image_url.strip()
    _check(validate_image_url(image_url))

    hub = _hub()
    hub.store.get_disaster(disaster_id)

    cache_key = hub.cache_manager.make_key('image_verify', {'imageUrl': image_url})
    verification = hub.cache_manager.get(cache_key)
    if verification is None:
        verification = hub.ai_service.verify_image(image_url)
        hub.cache_manager.set(cache_key, verification, current_app.config['IMAGE_VERIFY_CACHE_TTL_MINUTES'])

    logger.info(f"Image verified for disaster #{disaster_id}: "
                f"{'Authentic' if verification['isAuthentic'] else 'Suspicious'} ({verification['confidence']})")
    return jsonify(verification)


@api.route('/disasters/<int:disaster_id>/official-updates', methods=['GET'])
def get_official_updates(disaster_id):
    return jsonify(_hub().official_updates_service.get_updates(disaster_id))


# ===== RESOURCES =====

def _resources_response(disaster_id=None):
    store = _hub().store
    lat = request.args.get('lat')
    lon = request.args.get('lon')

    if lat and lon:
        try:
            latitude, longitude, radius_km = CoordinateValidator.parse_proximity_query(
                lat, lon, request.args.get('radius', DEFAULT_RADIUS_KM)
            )
        except ValueError as e:
            raise ValidationError(str(e))

        resources = store.nearby_resources(latitude, longitude, radius_km)
        safe_lat, safe_lon = redact_coordinates(latitude, longitude)
        logger.info(f"Resource search: {len(resources)} found within {radius_km}km of ({safe_lat}, {safe_lon})")
        return jsonify(resources)

    return jsonify(store.list_resources(disaster_id))


@api.route('/resources', methods=['GET'])
def get_resources():
    """List resources, or search by proximity with ?lat=&lon=&radius= (km, default 10)"""
    return _resources_response()


@api.route('/disasters/<int:disaster_id>/resources', methods=['GET'])
def get_disaster_resources(disaster_id):
    return _resources_response(disaster_id)


@api.route('/resources', methods=['POST'])
def create_resource():
    data = sanitize_fields(_json_body(), ResourceValidator.TEXT_FIELDS)
    _check(ResourceValidator.validate_resource_data(data))

    hub = _hub()
    if data.get('disasterId') is not None:
        hub.store.get_disaster(data['disasterId'])

    resource = hub.store.create_resource(data)
    hub.broadcaster.publish_resource(resource)

    logger.info(f"Resource mapped: {resource['name']} at {resource['locationName']}")
    return jsonify(resource), 201


# ===== REPORTS =====

@api.route('/reports', methods=['GET'])
def get_reports():
    disaster_id = request.args.get('disasterId')
    if disaster_id:
        try:
            disaster_id = int(disaster_id)
        except ValueError:
            raise ValidationError('disasterId must be an integer')
    else:
        disaster_id = None

    return jsonify(_hub().store.list_reports(disaster_id))


@api.route('/reports', methods=['POST'])
def create_report():
    """Submit a situational report; it starts as pending verification"""
    data = _json_body()
    data.setdefault('userId', g.current_user['id'])
    data.pop('verificationStatus', None)
    sanitize_fields(data, ReportValidator.TEXT_FIELDS)
    _check(ReportValidator.validate_report_data(data))

    hub = _hub()
    hub.store.get_disaster(data['disasterId'])

    report = hub.store.create_report(data)
    hub.broadcaster.publish_report(report)

    logger.info(f"Report #{report['id']} for disaster #{report['disasterId']} by {hash_user_id(report['userId'])}")
    return jsonify(report), 201


@api.route('/reports/<int:report_id>/status', methods=['PUT'])
def update_report_status(report_id):
    data = _json_body()
    status = data.get('verificationStatus')
    _check(ReportValidator.validate_status(status))

    hub = _hub()
    report = hub.store.update_report_status(report_id, status)
    hub.broadcaster.publish_report(report)

    logger.info(f"Report #{report_id} marked {status} by {hash_user_id(g.current_user['id'])}")
    return jsonify(report)


# ===== SOCIAL MEDIA =====

@api.route('/social-media', methods=['GET'])
def get_social_media():
    return jsonify(_hub().store.list_social_media_posts())


@api.route('/disasters/<int:disaster_id>/social-media', methods=['GET'])
def get_disaster_social_media(disaster_id):
    return jsonify(_hub().store.list_social_media_posts(disaster_id))


# ===== CACHE ADMIN =====

@api.route('/cache/status', methods=['GET'])
@require_admin
def cache_status():
    return jsonify(_hub().cache_manager.status())


@api.route('/cache/clear', methods=['POST'])
@require_admin
def clear_cache():
    data = request.get_json(silent=True) or {}
    namespace = data.get('namespace') if isinstance(data, dict) else None
    removed = _hub().cache_manager.clear(namespace)
    return jsonify({'message': 'Cache cleared', 'removed': removed})


# ===== LIVE UPDATES =====

def serve_subscriber(ws, broadcaster):
    """
    Keep one websocket subscribed until it closes

    The first message is {"type": "connected"}. A text "ping" is answered
    with {"type": "pong"}; anything else from the client is ignored.
    """
    broadcaster.subscribe(ws)
    try:
        while True:
            message = ws.receive()
            if message == 'ping':
                ws.send(json.dumps({'type': 'pong'}))
    finally:
        broadcaster.unsubscribe(ws)


@sock.route('/ws')
def live_updates(ws):
    """Push channel for change events: {"type": ..., "data": ...}"""
    serve_subscriber(ws, _hub().broadcaster)


# ===== SECURITY HEADERS =====

def set_security_headers(response):
    """
    Add security headers to all responses.

    - HSTS: Forces HTTPS for 1 year (only in production)
    - X-Frame-Options: Prevents clickjacking
    - X-Content-Type-Options: Prevents MIME sniffing
    - CSP: The API serves JSON only, so nothing may be embedded or framed
    """
    if os.getenv('FLASK_ENV') == 'production':
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains; preload'

    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    return response


# ===== ERROR HANDLERS =====

def handle_hub_error(error):
    if error.status_code >= 500:
        logger.error(f"{type(error).__name__}: {error.message}")
    return jsonify(error.to_dict()), error.status_code


def handle_http_error(error):
    """Render werkzeug HTTP errors (404, 405, 413, ...) as JSON"""
    body = {'error': error.name}
    if error.code == 413:
        body['max_size'] = '10 MB'
        body['message'] = 'Please reduce the size of your request.'
    return jsonify(body), error.code


def handle_unexpected_error(error):
    logger.error(f"Unhandled error on {request.method} {request.path}: {error}", exc_info=True)
    return jsonify(InternalError().to_dict()), InternalError.status_code


# ===== APP FACTORY =====

def create_app(config_name=None, store=None, cache_manager=None, broadcaster=None, ai_service=None,
               geocoding_service=None, official_updates_service=None):
    """
    Build the Flask app and the services it owns

    Any service can be injected (tests pass mocks); the rest are built from config.

    Args:
        config_name: Key of config.config ('development', 'production', 'testing')

    Returns:
        Flask app; services are reachable through app.extensions['hub']
    """
    config_name = config_name or os.getenv('FLASK_ENV', 'default')
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    logging.basicConfig(level=app.config['LOG_LEVEL'])

    CORS(app, origins=app.config['CORS_ORIGINS'], supports_credentials=True)
    limiter.init_app(app)
    sock.init_app(app)

    if store is None:
        store = DisasterStore(DEFAULT_RESOURCES if app.config['SEED_RESOURCES'] else None)
    if cache_manager is None:
        cache_manager = CacheManager(sweep_threshold=app.config['CACHE_SWEEP_THRESHOLD'])
    if broadcaster is None:
        broadcaster = Broadcaster()
    if ai_service is None:
        ai_service = AIService(
            openai_api_key=app.config['OPENAI_API_KEY'],
            gemini_api_key=app.config['GEMINI_API_KEY'],
            timeout=app.config['AI_TIMEOUT_SECONDS'],
            openai_model=app.config['OPENAI_MODEL'],
            gemini_model=app.config['GEMINI_MODEL']
        )
    if geocoding_service is None:
        geocoding_service = GeocodingService(
            cache_manager,
            google_api_key=app.config['GOOGLE_MAPS_API_KEY'],
            mapbox_api_key=app.config['MAPBOX_API_KEY'],
            timeout=app.config['GEOCODING_TIMEOUT_SECONDS'],
            cache_ttl_minutes=app.config['GEOCODE_CACHE_TTL_MINUTES']
        )
    if official_updates_service is None:
        official_updates_service = OfficialUpdatesService(
            cache_manager,
            app.config['OFFICIAL_UPDATES_FEED_URL'],
            timeout=app.config['OFFICIAL_UPDATES_TIMEOUT_SECONDS']
        )

    location_extractor = LocationExtractor(
        ai_service,
        cache_manager,
        gazetteer=app.config['LOCATION_GAZETTEER'],
        cache_ttl_minutes=app.config['LOCATION_CACHE_TTL_MINUTES']
    )
    social_media_service = SocialMediaService(store, broadcaster, app.config['SOCIAL_MEDIA_POLL_SECONDS'])

    app.extensions['hub'] = Hub(
        store=store,
        cache_manager=cache_manager,
        broadcaster=broadcaster,
        ai_service=ai_service,
        geocoding_service=geocoding_service,
        location_extractor=location_extractor,
        official_updates_service=official_updates_service,
        social_media_service=social_media_service
    )

    app.register_blueprint(api)
    app.after_request(set_security_headers)
    app.register_error_handler(HubError, handle_hub_error)
    app.register_error_handler(HTTPException, handle_http_error)
    app.register_error_handler(Exception, handle_unexpected_error)

    if app.config['SOCIAL_MEDIA_MONITORING']:
        social_media_service.start_monitoring()

    logger.info(f"Disaster response hub ready ({config_name} config, "
                f"{store.resources.count()} resources, gazetteer={app.config['LOCATION_GAZETTEER']})")
    return app


if __name__ == '__main__':
    app = create_app()
    # Use environment variable to control debug mode (defaults to False for production)
    debug_mode = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
    # The reloader would start a second social media monitor
    app.run(debug=debug_mode, host='0.0.0.0', port=int(os.getenv('PORT', '5000')), use_reloader=False)
