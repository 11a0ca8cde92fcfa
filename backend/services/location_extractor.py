"""
Location Extraction Fallback Chain

Turns a free-text disaster description into a location name, cheapest
reliable source first:

1. cached AI extraction for the same text
2. the AI extractor (result cached for an hour)
3. ordered regex heuristics (gazetteer, "near X", "in X", "at X", "X area", "downtown X")

Only when every step comes up empty does the caller get a ValidationError.
"""
from collections import namedtuple
from typing import Callable, List, Optional
import logging
import re

from utils.errors import ValidationError
from utils.secure_logging import truncate_for_log

logger = logging.getLogger(__name__)


LocationPattern = namedtuple('LocationPattern', ['name', 'regex', 'postprocess'])

# Place names recognized verbatim. One gazetteer is active per deployment.
GAZETTEERS = {
    'india': [
        'Mumbai', 'Bandra', 'Andheri', 'Dadar', 'Colaba', 'Delhi', 'New Delhi', 'Connaught Place',
        'Chennai', 'Marina Beach', 'Kolkata', 'Howrah Bridge', 'Bangalore', 'Bengaluru',
        'Electronic City', 'Hyderabad', 'Pune', 'Ahmedabad', 'Jaipur', 'Lucknow', 'Patna',
        'Guwahati', 'Bhubaneswar', 'Kochi', 'Surat', 'Nagpur',
    ],
    'us': [
        'Times Square', 'Central Park', 'Brooklyn Bridge', 'Manhattan', 'Brooklyn',
        'Queens', 'Bronx', 'Staten Island',
    ],
}

SUGGESTIONS = {
    'india': "Please specify a location like 'Bandra, Mumbai' or 'Marina Beach, Chennai'",
    'us': "Please specify a location like 'Times Square' or 'Downtown Manhattan'",
}

# Capitalized words that start a capture but are never places
STOP_WORDS = {
    'Emergency', 'Severe', 'Heavy', 'Urgent', 'Breaking', 'Major', 'Massive', 'Alert',
    'Warning', 'Help', 'Please', 'The', 'This', 'That', 'Fire', 'Flood', 'Flooding',
    'Earthquake', 'Cyclone', 'Local', 'Residents', 'People', 'Rescue', 'Water', 'Power',
}

# Trailing clauses that are not part of the place name
_QUALIFIER_RE = re.compile(r'\s+\b(?:with|causing|area|after|due|and|where|since|following)\b.*$',
                           re.IGNORECASE)

_PLACE = r"[A-Z][A-Za-z'.-]*(?:\s+[A-Z][A-Za-z'.-]*)*"


def clean_capture(text: Optional[str]) -> Optional[str]:
    """
    Strip qualifier clauses and leading stop-words from a captured span.

    Examples:
        >>> clean_capture('Central Park Area')
        'Central Park'
        >>> clean_capture('The Gateway Of India')
        'Gateway Of India'
        >>> clean_capture('Severe') is None
        True
    """
    if not text:
        return None

    text = _QUALIFIER_RE.sub('', text.strip()).strip(" ,.;:!?-")
    words = text.split()
    while words and words[0] in STOP_WORDS:
        words.pop(0)

    return ' '.join(words) or None


def _gazetteer_pattern(places: List[str]) -> LocationPattern:
    # longest names first so 'New Delhi' beats 'Delhi'
    ordered = sorted(places, key=len, reverse=True)
    canonical = {place.lower(): place for place in ordered}
    regex = re.compile(r'\b(' + '|'.join(re.escape(place) for place in ordered) + r')\b', re.IGNORECASE)

    def postprocess(match):
        return canonical.get(match.group(1).lower())

    return LocationPattern('gazetteer', regex, postprocess)


def _capture(match):
    return clean_capture(match.group(1))


def build_patterns(gazetteer: str = 'india') -> List[LocationPattern]:
    """
    Build the ordered heuristic list for a gazetteer policy.

    Args:
        gazetteer: Key of GAZETTEERS ('india' or 'us')

    Raises:
        ValueError: For an unknown gazetteer
    """
    if gazetteer not in GAZETTEERS:
        raise ValueError(f"Unknown gazetteer '{gazetteer}'. Must be one of: {', '.join(GAZETTEERS)}")

    return [
        _gazetteer_pattern(GAZETTEERS[gazetteer]),
        LocationPattern('near', re.compile(r'\b(?i:near)\s+(' + _PLACE + r')'), _capture),
        LocationPattern('in', re.compile(r'\b(?i:in)\s+(' + _PLACE + r')'), _capture),
        LocationPattern('at', re.compile(r'\b(?i:at)\s+(' + _PLACE + r')'), _capture),
        LocationPattern('area', re.compile(r'(' + _PLACE + r')\s+(?i:area)\b'), _capture),
        LocationPattern('downtown', re.compile(r'\b(?i:downtown)\s+(' + _PLACE + r')'), _capture),
    ]


def match_patterns(description: str, patterns: List[LocationPattern]) -> Optional[str]:
    """
    Return the first location any pattern yields, trying patterns in order.

    Within one pattern, later matches are tried when an earlier capture is
    rejected by the stop-list.
    """
    for pattern in patterns:
        for match in pattern.regex.finditer(description):
            location = pattern.postprocess(match)
            if location:
                logger.info(f"Extracted location using pattern '{pattern.name}': {location}")
                return location
    return None


class LocationExtractor:
    """Cache -> AI -> regex heuristics, never failing on provider errors"""

    def __init__(self, ai_service, cache_manager, gazetteer: str = 'india',
                 patterns: Optional[List[LocationPattern]] = None, cache_ttl_minutes: float = 60):
        """
        Args:
            ai_service: Object with extract_location(text) -> str | None, or None to skip AI
            cache_manager: CacheManager instance
            gazetteer: Gazetteer policy used when `patterns` is not given
            patterns: Explicit ordered heuristic list (overrides gazetteer)
            cache_ttl_minutes: TTL of cached AI extractions
        """
        self.ai_service = ai_service
        self.cache_manager = cache_manager
        self.gazetteer = gazetteer
        self.patterns = patterns if patterns is not None else build_patterns(gazetteer)
        self.cache_ttl_minutes = cache_ttl_minutes
        self.suggestion = SUGGESTIONS.get(gazetteer, SUGGESTIONS['india'])

    def extract(self, description: str) -> str:
        """
        Extract a location from free text

        Raises:
            ValidationError: If no strategy finds a location
        """
        cache_key = self.cache_manager.make_key('location', {'description': description})
        cached = self.cache_manager.get(cache_key)
        if cached and cached.get('location'):
            logger.info(f"Using cached location: {cached['location']}")
            return cached['location']

        location = self._extract_with_ai(description)
        if location:
            self.cache_manager.set(cache_key, {'location': location}, self.cache_ttl_minutes)
            return location

        logger.info(f"Trying pattern matching on: {truncate_for_log(description)}")
        location = match_patterns(description, self.patterns)
        if location:
            return location

        raise ValidationError('Unable to extract location from description', suggestion=self.suggestion)

    def _extract_with_ai(self, description: str) -> Optional[str]:
        if self.ai_service is None or not getattr(self.ai_service, 'available', True):
            return None
        try:
            location = self.ai_service.extract_location(description)
            if location:
                logger.info(f"AI extracted location: {location}")
            return location
        except Exception as e:
            # provider outages and timeouts degrade to the heuristics
            logger.warning(f"AI location extraction failed, using heuristics: {e}")
            return None
