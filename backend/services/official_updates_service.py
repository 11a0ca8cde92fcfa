"""
Official Updates
Bulletins from government and relief agencies shown next to a disaster.
Reads an RSS feed when OFFICIAL_UPDATES_FEED_URL is configured, otherwise
serves a fixed set of standing bulletins.
"""
import feedparser
import requests
import logging
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)


STANDING_BULLETINS = [
    {
        'source': 'NDMA',
        'content': 'Emergency shelters activated in affected districts. Central assistance approved for relief operations.',
        'minutes_ago': 15,
        'icon': 'fas fa-university'
    },
    {
        'source': 'India Meteorological Department',
        'content': 'Heavy rainfall warning extended until 11 PM. Avoid unnecessary travel in low-lying areas.',
        'minutes_ago': 32,
        'icon': 'fas fa-cloud-showers-heavy'
    },
    {
        'source': 'Indian Red Cross Society',
        'content': 'Blood donation camps and first-aid posts set up near relief centres. Volunteers report to district branches.',
        'minutes_ago': 48,
        'icon': 'fas fa-plus-square'
    },
]


class OfficialUpdatesService:
    """Serve official bulletins, optionally from an RSS feed"""

    CACHE_TYPE = 'official_updates'
    MAX_ENTRIES = 10

    USER_AGENT = 'DisasterResponseHub/1.0'

    def __init__(self, cache_manager, feed_url=None, timeout=10):
        """
        Args:
            cache_manager: CacheManager instance
            feed_url: Optional RSS/Atom feed of official bulletins
            timeout: Feed request timeout in seconds
        """
        self.cache_manager = cache_manager
        self.feed_url = feed_url
        self.timeout = timeout

    def get_updates(self, disaster_id=None):
        """
        Get official updates, newest first

        Args:
            disaster_id: Disaster the updates are shown for (bulletins are not per-disaster yet)

        Returns:
            list: [{'source', 'content', 'timestamp', 'icon'}]
        """
        if not self.feed_url:
            return self._standing_bulletins()

        cache_key = self.cache_manager.make_key(self.CACHE_TYPE, {'feed': self.feed_url})
        cached = self.cache_manager.get(cache_key)
        if cached is not None:
            return cached

        updates = self.fetch_feed()
        if not updates:
            return self._standing_bulletins()

        self.cache_manager.set(cache_key, updates, self.cache_manager.duration_for(self.CACHE_TYPE))
        return updates

    def fetch_feed(self):
        """
        Fetch and parse the configured feed

        Returns:
            list: Parsed updates, or an empty list on failure
        """
        try:
            logger.info(f"Official updates: Fetching RSS feed from {self.feed_url}")
            response = requests.get(
                self.feed_url,
                headers={'User-Agent': self.USER_AGENT},
                timeout=self.timeout
            )
            response.raise_for_status()

            # Parse the downloaded body; feedparser never touches the network
            feed = feedparser.parse(response.content)

            if getattr(feed, 'bozo', False):
                logger.warning(f"Official updates: RSS feed parse warning: {feed.get('bozo_exception')}")

            return self._parse_feed(feed)

        except requests.RequestException as e:
            logger.error(f"Official updates: Failed to fetch RSS feed: {e}")
            return []
        except Exception as e:
            logger.error(f"Official updates: Failed to parse RSS feed: {e}")
            return []

    def _parse_feed(self, feed):
        default_source = feed.get('feed', {}).get('title', 'Official Source')
        updates = []

        for entry in feed.get('entries', [])[:self.MAX_ENTRIES]:
            content = entry.get('title', '')
            summary = entry.get('summary', '')
            if summary and summary != content:
                content = f"{content}: {summary}" if content else summary
            if not content:
                continue

            updates.append({
                'source': entry.get('author') or default_source,
                'content': content,
                'timestamp': self._parse_pub_date(entry),
                'icon': 'fas fa-bullhorn'
            })

        return updates

    @staticmethod
    def _parse_pub_date(entry):
        parsed = entry.get('published_parsed') or entry.get('updated_parsed')
        if parsed:
            try:
                return datetime(*parsed[:6], tzinfo=timezone.utc).isoformat()
            except (TypeError, ValueError):
                pass
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _standing_bulletins():
        now = datetime.now(timezone.utc)
        return [
            {
                'source': bulletin['source'],
                'content': bulletin['content'],
                'timestamp': (now - timedelta(minutes=bulletin['minutes_ago'])).isoformat(),
                'icon': bulletin['icon']
            }
            for bulletin in STANDING_BULLETINS
        ]
