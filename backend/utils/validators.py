"""
Validation utilities for disasters, reports, resources and coordinates.

Every validator returns a (is_valid, error_message) tuple; the HTTP layer
turns a failed validation into a ValidationError (400).
"""
import math
from bleach import clean
from typing import Dict, Tuple, Optional, Any

from utils.url_validator import validate_image_url


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def sanitize_text(text: str) -> str:
    """
    Remove all HTML tags from user-supplied text, keep only the text.

    Examples:
        >>> sanitize_text('<b>Flood</b> near <script>x</script>Dadar ')
        'Flood near xDadar'
    """
    return clean(text, tags=[], strip=True).strip()


def sanitize_fields(data: Dict, fields) -> Dict:
    """Sanitize the given string fields of `data` in place and return it."""
    for field in fields:
        if isinstance(data.get(field), str):
            data[field] = sanitize_text(data[field])
    return data


class CoordinateValidator:
    """Validator for geographic coordinates."""

    @staticmethod
    def validate_coordinates(lat: float, lon: float) -> bool:
        """
        Validate latitude and longitude ranges.

        Examples:
            >>> CoordinateValidator.validate_coordinates(19.0760, 72.8777)
            True
            >>> CoordinateValidator.validate_coordinates(91, 0)
            False
            >>> CoordinateValidator.validate_coordinates('abc', 0)
            False
        """
        if isinstance(lat, bool) or isinstance(lon, bool):
            return False
        try:
            latitude = float(lat)
            longitude = float(lon)
        except (TypeError, ValueError):
            return False

        if math.isnan(latitude) or math.isnan(longitude):
            return False

        return -90 <= latitude <= 90 and -180 <= longitude <= 180

    @staticmethod
    def parse_proximity_query(lat: Any, lon: Any, radius: Any) -> Tuple[float, float, float]:
        """
        Parse the ?lat=&lon=&radius= query of a proximity search.

        Returns:
            Tuple of (lat, lon, radius_km) as floats

        Raises:
            ValueError: With a user-facing message if any value is invalid
        """
        try:
            latitude = float(lat)
            longitude = float(lon)
        except (TypeError, ValueError):
            raise ValueError('lat and lon must be valid numbers')

        if not CoordinateValidator.validate_coordinates(latitude, longitude):
            raise ValueError('Invalid coordinates: Latitude must be between -90 and 90, '
                             'Longitude must be between -180 and 180')

        try:
            radius_km = float(radius)
        except (TypeError, ValueError):
            raise ValueError('radius must be a valid number')

        if math.isnan(radius_km) or math.isinf(radius_km) or radius_km < 0:
            raise ValueError('radius must be a non-negative number of kilometers')

        return latitude, longitude, radius_km


class DisasterValidator:
    """Validator for disaster records."""

    REQUIRED_FIELDS = ['title', 'locationName', 'description']
    TEXT_FIELDS = ['title', 'locationName', 'description']
    UPDATABLE_FIELDS = ['title', 'locationName', 'description', 'latitude', 'longitude', 'tags', 'ownerId']

    @staticmethod
    def validate_tags(tags: Any) -> Tuple[bool, Optional[str]]:
        if not isinstance(tags, list):
            return False, 'tags must be an array of strings'
        if any(_is_blank(tag) for tag in tags):
            return False, 'tags must be non-empty strings'
        return True, None

    @staticmethod
    def normalize_tags(tags: list) -> list:
        """
        De-duplicate tags while keeping their first-seen order.

        Examples:
            >>> DisasterValidator.normalize_tags(['flood', ' urgent', 'flood'])
            ['flood', 'urgent']
        """
        seen = []
        for tag in tags:
            tag = tag.strip()
            if tag not in seen:
                seen.append(tag)
        return seen

    @staticmethod
    def _validate_optional_coordinates(data: Dict) -> Tuple[bool, Optional[str]]:
        lat = data.get('latitude')
        lon = data.get('longitude')
        if lat is None and lon is None:
            return True, None
        if (lat is None) != (lon is None):
            return False, 'latitude and longitude must be provided together'
        if not CoordinateValidator.validate_coordinates(lat, lon):
            return False, 'Invalid coordinates: Latitude must be between -90 and 90, Longitude must be between -180 and 180'
        return True, None

    @staticmethod
    def validate_disaster_data(data: Dict) -> Tuple[bool, Optional[str]]:
        """
        Validate a new disaster submission.

        Examples:
            >>> DisasterValidator.validate_disaster_data(
            ...     {'title': 'Test Flood', 'locationName': 'X', 'description': 'desc'})
            (True, None)
            >>> DisasterValidator.validate_disaster_data({'title': 'Test Flood'})
            (False, 'Missing required fields: locationName, description')
        """
        missing_fields = [field for field in DisasterValidator.REQUIRED_FIELDS if _is_blank(data.get(field))]
        if missing_fields:
            return False, f'Missing required fields: {", ".join(missing_fields)}'

        if 'tags' in data:
            is_valid, error_msg = DisasterValidator.validate_tags(data['tags'])
            if not is_valid:
                return False, error_msg

        if 'ownerId' in data and _is_blank(data['ownerId']):
            return False, 'ownerId must be a non-empty string'

        return DisasterValidator._validate_optional_coordinates(data)

    @staticmethod
    def validate_disaster_update(updates: Dict) -> Tuple[bool, Optional[str]]:
        """Validate a partial update; only fields present are checked."""
        fields = [field for field in updates if field in DisasterValidator.UPDATABLE_FIELDS]
        if not fields:
            return False, 'No valid fields to update'

        for field in ('title', 'locationName', 'description', 'ownerId'):
            if field in updates and _is_blank(updates[field]):
                return False, f'{field} must be a non-empty string'

        if 'tags' in updates:
            is_valid, error_msg = DisasterValidator.validate_tags(updates['tags'])
            if not is_valid:
                return False, error_msg

        if 'latitude' in updates or 'longitude' in updates:
            # An explicit pair of nulls clears the coordinates
            clears = ('latitude' in updates and 'longitude' in updates
                      and updates['latitude'] is None and updates['longitude'] is None)
            if not clears and not CoordinateValidator.validate_coordinates(
                    updates.get('latitude'), updates.get('longitude')):
                return False, 'latitude and longitude must be valid and provided together'

        return True, None


class ReportValidator:
    """Validator for situational reports."""

    VALID_STATUSES = ['pending', 'verified', 'rejected']
    TEXT_FIELDS = ['content']

    @staticmethod
    def validate_report_data(data: Dict) -> Tuple[bool, Optional[str]]:
        if 'disasterId' not in data:
            return False, 'Missing required fields: disasterId'
        disaster_id = data['disasterId']
        if isinstance(disaster_id, bool) or not isinstance(disaster_id, int) or disaster_id < 1:
            return False, 'disasterId must be a positive integer'

        if _is_blank(data.get('content')):
            return False, 'Missing required fields: content'

        image_url = data.get('imageUrl')
        if image_url is not None:
            if _is_blank(image_url):
                return False, 'imageUrl must be a non-empty string'
            is_valid, error_msg = validate_image_url(image_url.strip())
            if not is_valid:
                return False, f'imageUrl: {error_msg}'

        if 'verificationStatus' in data:
            return ReportValidator.validate_status(data['verificationStatus'])

        return True, None

    @staticmethod
    def validate_status(status: Any) -> Tuple[bool, Optional[str]]:
        """
        Examples:
            >>> ReportValidator.validate_status('verified')
            (True, None)
            >>> ReportValidator.validate_status('approved')
            (False, 'Invalid verificationStatus. Must be one of: pending, verified, rejected')
        """
        if status not in ReportValidator.VALID_STATUSES:
            valid = ', '.join(ReportValidator.VALID_STATUSES)
            return False, f'Invalid verificationStatus. Must be one of: {valid}'
        return True, None


class ResourceValidator:
    """Validator for relief resources (shelters, medical posts, ...)."""

    REQUIRED_FIELDS = ['name', 'locationName', 'type']
    TEXT_FIELDS = ['name', 'locationName']

    @staticmethod
    def validate_resource_data(data: Dict) -> Tuple[bool, Optional[str]]:
        missing_fields = [field for field in ResourceValidator.REQUIRED_FIELDS if _is_blank(data.get(field))]
        if data.get('latitude') is None:
            missing_fields.append('latitude')
        if data.get('longitude') is None:
            missing_fields.append('longitude')
        if missing_fields:
            return False, f'Missing required fields: {", ".join(missing_fields)}'

        if not CoordinateValidator.validate_coordinates(data['latitude'], data['longitude']):
            return False, 'Invalid coordinates: Latitude must be between -90 and 90, Longitude must be between -180 and 180'

        disaster_id = data.get('disasterId')
        if disaster_id is not None and (isinstance(disaster_id, bool) or not isinstance(disaster_id, int)):
            return False, 'disasterId must be an integer'

        return True, None
