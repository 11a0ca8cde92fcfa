"""
Image URL checks for report photos and image verification.

The verify-image route hands the URL to an AI provider that fetches it, so
only public HTTPS image links are accepted.

Usage:
    from utils.url_validator import validate_image_url

    is_valid, error = validate_image_url(report['imageUrl'])
"""
from urllib.parse import urlparse
from typing import Optional, Tuple
import ipaddress


MAX_URL_LENGTH = 2048

LOCAL_HOSTNAMES = ['localhost', 'localhost.localdomain', '0.0.0.0']

ALLOWED_IMAGE_EXTENSIONS = ['.jpg', '.jpeg', '.png', '.gif', '.webp', '.bmp']


def _is_internal_address(hostname: str) -> bool:
    """True for loopback, private, link-local or unspecified IP literals"""
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return address.is_private or address.is_loopback or address.is_link_local or address.is_unspecified


def validate_image_url(url: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a user-supplied image URL.

    Rules:
    1. At most 2048 characters
    2. HTTPS only
    3. No localhost and no private or loopback IP addresses
    4. Path ends in an image extension

    Args:
        url: The URL to validate

    Returns:
        Tuple[bool, str]: (True, None) if valid, else (False, error_message)
    """
    if len(url) > MAX_URL_LENGTH:
        return False, f'URL too long (max {MAX_URL_LENGTH} characters)'

    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError:
        return False, 'Invalid URL format'

    if parsed.scheme != 'https':
        return False, 'Only HTTPS URLs are allowed'

    if not hostname:
        return False, 'Invalid hostname'

    if hostname in LOCAL_HOSTNAMES or hostname.endswith('.localhost'):
        return False, 'Local URLs not allowed'

    if _is_internal_address(hostname):
        return False, 'Private network URLs not allowed'

    path = parsed.path.lower()
    if not any(path.endswith(ext) for ext in ALLOWED_IMAGE_EXTENSIONS):
        return False, f'Only image files allowed: {", ".join(ALLOWED_IMAGE_EXTENSIONS)}'

    return True, None
