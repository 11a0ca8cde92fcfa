"""
Cache Manager for external lookups
Memoizes geocoding, location extraction and image verification results
in memory with a per-entry time-to-live, to avoid spamming rate-limited APIs
"""
from datetime import datetime, timedelta, timezone
import hashlib
import json
import logging
import threading

logger = logging.getLogger(__name__)


def _utcnow():
    return datetime.now(timezone.utc)


class CacheManager:
    """Expiring key-value cache with lazy eviction"""

    # Cache durations in minutes
    CACHE_DURATIONS = {
        'location': 60,         # 1 hour - AI location extraction
        'geocode': 60,          # 1 hour - forward geocoding results
        'image_verify': 60,     # 1 hour - AI image verification
        'official_updates': 15, # 15 minutes - official RSS bulletins
    }

    def __init__(self, clock=None, sweep_threshold=1000):
        """
        Initialize an empty cache

        Args:
            clock: Optional callable returning an aware datetime (tests inject simulated time)
            sweep_threshold: Entry count above which `set` also drops expired entries
        """
        self._clock = clock or _utcnow
        self._entries = {}
        self._lock = threading.Lock()
        self.sweep_threshold = sweep_threshold

    @staticmethod
    def make_key(namespace, payload):
        """
        Build a deterministic cache key from a request payload

        The payload is encoded as canonical JSON (sorted keys, no whitespace)
        and hashed with SHA-256, so identical requests share an entry and
        different requests only collide on a hash collision.

        Args:
            namespace (str): Kind of lookup, e.g. 'geocode'
            payload: JSON-serializable request input

        Returns:
            str: Key such as 'geocode:3f1a...'
        """
        encoded = json.dumps(payload, sort_keys=True, separators=(',', ':'), ensure_ascii=False)
        digest = hashlib.sha256(encoded.encode('utf-8')).hexdigest()
        return f"{namespace}:{digest}"

    def duration_for(self, namespace, default=60):
        return self.CACHE_DURATIONS.get(namespace, default)

    def get(self, key):
        """
        Get a cached value

        Args:
            key (str): Cache key

        Returns:
            The stored value, or None if absent or expired (expired entries are evicted)
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            if self._clock() > entry['expiresAt']:
                del self._entries[key]
                logger.debug(f"Cache EXPIRED: {key}")
                return None

            logger.debug(f"Cache HIT: {key}")
            return entry['value']

    def set(self, key, value, ttl_minutes):
        """
        Store a value, overwriting any existing entry for the key

        Args:
            key (str): Cache key
            value: JSON-compatible value
            ttl_minutes (float): Time-to-live in minutes
        """
        with self._lock:
            self._entries[key] = {
                'key': key,
                'value': value,
                'expiresAt': self._clock() + timedelta(minutes=ttl_minutes)
            }
            needs_sweep = len(self._entries) > self.sweep_threshold

        if needs_sweep:
            self.clear_expired()

    def clear_expired(self):
        """
        Remove every expired entry

        Returns:
            int: Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if now > entry['expiresAt']]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.info(f"Removed {len(expired)} expired cache entries")
        return len(expired)

    def clear(self, namespace=None):
        """
        Clear cache for a specific namespace or all

        Args:
            namespace (str, optional): Namespace to clear, or None for all

        Returns:
            int: Number of entries removed
        """
        with self._lock:
            if namespace:
                keys = [key for key in self._entries if key.startswith(f"{namespace}:")]
            else:
                keys = list(self._entries)
            for key in keys:
                del self._entries[key]

        logger.info(f"Cleared {len(keys)} cache entries ({namespace or 'all'})")
        return len(keys)

    def status(self):
        """
        Summarize cache contents per namespace

        Returns:
            dict: {'total': int, 'expired': int, 'namespaces': {namespace: count}}
        """
        with self._lock:
            now = self._clock()
            namespaces = {}
            expired = 0
            for key, entry in self._entries.items():
                namespace = key.split(':', 1)[0]
                namespaces[namespace] = namespaces.get(namespace, 0) + 1
                if now > entry['expiresAt']:
                    expired += 1

            return {
                'total': len(self._entries),
                'expired': expired,
                'namespaces': namespaces
            }
