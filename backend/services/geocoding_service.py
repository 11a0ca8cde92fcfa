"""
Geocoding Service - Forward geocoding of location names

Converts a place name ("Bandra, Mumbai") into coordinates and a formatted
address for disaster records and resource mapping.

Features:
- Google Maps Geocoding API (if GOOGLE_MAPS_API_KEY is set)
- Mapbox Geocoding API (if MAPBOX_API_KEY is set)
- OpenStreetMap Nominatim fallback (free, no API key, 1 request/second)
- In-memory caching through CacheManager (1 hour TTL)

A provider that errors hands over to the next one; a provider that answers
"no results" ends the chain.
"""

import requests
import time
import threading
from urllib.parse import quote
from typing import Dict, Optional
import logging

from utils.errors import UpstreamError

logger = logging.getLogger(__name__)


class GeocodingProviderError(Exception):
    """A single provider failed (HTTP error, timeout, malformed body)"""


class GeocodingService:
    """
    Forward geocoding with provider fallback

    Usage:
        service = GeocodingService(cache_manager, google_api_key=...)
        result = service.geocode('Marina Beach, Chennai')
        # {'latitude': 13.05, 'longitude': 80.28, 'formattedAddress': 'Marina Beach, ...'}
    """

    GOOGLE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
    MAPBOX_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places/{query}.json"
    NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
    USER_AGENT = 'DisasterResponseHub/1.0'

    def __init__(self, cache_manager, google_api_key=None, mapbox_api_key=None,
                 timeout=5, cache_ttl_minutes=60):
        """
        Initialize geocoding service

        Args:
            cache_manager: CacheManager instance
            google_api_key: Optional Google Maps key
            mapbox_api_key: Optional Mapbox token
            timeout: Per-request timeout in seconds
            cache_ttl_minutes: TTL for cached results
        """
        self.cache_manager = cache_manager
        self.google_api_key = google_api_key
        self.mapbox_api_key = mapbox_api_key
        self.timeout = timeout
        self.cache_ttl_minutes = cache_ttl_minutes
        self.last_request_time = 0
        self.rate_limit_delay = 1.0  # 1 second between requests (Nominatim ToS)
        self._rate_lock = threading.Lock()

    def geocode(self, location_name: str) -> Optional[Dict]:
        """
        Convert a location name to coordinates

        Args:
            location_name: Free-form place name

        Returns:
            Dict with latitude, longitude and formattedAddress, or None if not found

        Raises:
            UpstreamError: If every configured provider failed
        """
        cache_key = self.cache_manager.make_key('geocode', {'locationName': location_name})
        cached = self.cache_manager.get(cache_key)
        if cached:
            logger.info(f"Geocoding cache HIT: {location_name}")
            return cached

        result = self._geocode_with_fallback(location_name)
        if result:
            self.cache_manager.set(cache_key, result, self.cache_ttl_minutes)
            logger.info(f"Location geocoded: {location_name} -> {result['formattedAddress']}")
        return result

    def _providers(self):
        providers = []
        if self.google_api_key:
            providers.append(('google', self._geocode_with_google))
        if self.mapbox_api_key:
            providers.append(('mapbox', self._geocode_with_mapbox))
        providers.append(('nominatim', self._geocode_with_nominatim))
        return providers

    def _geocode_with_fallback(self, location_name: str) -> Optional[Dict]:
        for name, provider in self._providers():
            try:
                return provider(location_name)
            except (GeocodingProviderError, KeyError, IndexError, TypeError, AttributeError) as e:
                logger.warning(f"{name} geocoding failed, trying next provider: {e!r}")

        logger.error(f"All geocoding services failed for '{location_name}'")
        raise UpstreamError('Geocoding service unavailable, please try again later')

    def _get_json(self, url: str, params: Dict, headers: Optional[Dict] = None, expected=dict):
        try:
            response = requests.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise GeocodingProviderError(str(e))

        if response.status_code != 200:
            raise GeocodingProviderError(f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise GeocodingProviderError(f"Invalid JSON: {e}")

        if not isinstance(data, expected):
            raise GeocodingProviderError(f"Unexpected JSON body: {type(data).__name__}")
        return data

    def _geocode_with_google(self, location_name: str) -> Optional[Dict]:
        data = self._get_json(self.GOOGLE_URL, {'address': location_name, 'key': self.google_api_key})

        status = data.get('status')
        if status == 'ZERO_RESULTS':
            return None
        if status != 'OK' or not data.get('results'):
            raise GeocodingProviderError(f"Google status {status}")

        result = data['results'][0]
        return {
            'latitude': result['geometry']['location']['lat'],
            'longitude': result['geometry']['location']['lng'],
            'formattedAddress': result.get('formatted_address', location_name)
        }

    def _geocode_with_mapbox(self, location_name: str) -> Optional[Dict]:
        url = self.MAPBOX_URL.format(query=quote(location_name, safe=""))
        data = self._get_json(url, {'access_token': self.mapbox_api_key, 'limit': 1})

        features = data.get('features') or []
        if not features:
            return None

        feature = features[0]
        longitude, latitude = feature['center'][0], feature['center'][1]
        return {
            'latitude': latitude,
            'longitude': longitude,
            'formattedAddress': feature.get('place_name', location_name)
        }

    def _geocode_with_nominatim(self, location_name: str) -> Optional[Dict]:
        # Rate limiting: ensure 1 second between requests
        with self._rate_lock:
            time_since_last = time.time() - self.last_request_time
            if time_since_last < self.rate_limit_delay:
                time.sleep(self.rate_limit_delay - time_since_last)
            self.last_request_time = time.time()

        data = self._get_json(
            self.NOMINATIM_URL,
            {'q': location_name, 'format': 'json', 'limit': 1},
            headers={'User-Agent': self.USER_AGENT},
            expected=list
        )

        if not data:
            return None

        result = data[0]
        try:
            return {
                'latitude': float(result['lat']),
                'longitude': float(result['lon']),
                'formattedAddress': result.get('display_name', location_name)
            }
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodingProviderError(f"Malformed Nominatim result: {e}")
