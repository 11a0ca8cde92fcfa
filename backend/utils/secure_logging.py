"""
Helpers that keep personal data out of the server logs.

Reports and disasters carry user ids, free-text descriptions and precise
coordinates of people in distress; log lines use these helpers instead of
the raw values.

Usage:
    from utils.secure_logging import hash_user_id, redact_coordinates

    lat, lon = redact_coordinates(latitude, longitude)
    logger.info(f"Resource search around ({lat}, {lon}) by {hash_user_id(user_id)}")
"""

import re
import hashlib
from typing import Optional

_EMAIL_RE = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
# 4+ decimals is building-level precision
_PRECISE_COORD_RE = re.compile(r'-?\d{1,3}\.\d{4,}')
# Indian mobile numbers (+91 optional) and US-style 10 digit numbers
_PHONE_RE = re.compile(r'(?:\+91[-\s]?)?\b[6-9]\d{9}\b|\b\(?\d{3}\)?[-.\s]\d{3}[-.\s]\d{4}\b')


def redact_pii(text: str) -> str:
    """
    Redact emails, phone numbers and precise coordinates from free text.

    Examples:
        >>> redact_pii("Trapped at 19.07283, 72.88261 call 9876543210")
        'Trapped at [COORD_REDACTED], [COORD_REDACTED] call [PHONE_REDACTED]'
    """
    if not text:
        return text

    text = _EMAIL_RE.sub('[EMAIL_REDACTED]', text)
    text = _PRECISE_COORD_RE.sub('[COORD_REDACTED]', text)
    text = _PHONE_RE.sub('[PHONE_REDACTED]', text)
    return text


def hash_user_id(user_id: Optional[str], length: int = 12) -> str:
    """
    One-way hash of a user id so log lines for one user can still be correlated.

    Examples:
        >>> hash_user_id(None)
        '[NO_USER_ID]'
    """
    if not user_id:
        return '[NO_USER_ID]'

    return hashlib.sha256(str(user_id).encode('utf-8')).hexdigest()[:length]


def redact_coordinates(lat: Optional[float], lon: Optional[float], precision: int = 2) -> tuple:
    """
    Round coordinates to a loggable precision (2 decimals is roughly 1 km).

    Examples:
        >>> redact_coordinates(19.0596, 72.8295)
        ('19.06', '72.83')
        >>> redact_coordinates(None, 72.8295)
        ('[REDACTED]', '[REDACTED]')
    """
    if lat is None or lon is None:
        return ('[REDACTED]', '[REDACTED]')

    return (f"{lat:.{precision}f}", f"{lon:.{precision}f}")


def truncate_for_log(text: Optional[str], limit: int = 60) -> str:
    """Redact and shorten user-supplied text before it is logged."""
    if not text:
        return ''
    text = redact_pii(text)
    return text if len(text) <= limit else text[:limit] + '...'
