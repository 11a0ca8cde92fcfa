"""
Social Media Monitor
Simulates a live social media / news feed by periodically storing a post
from a fixed set of Indian news and official accounts, then publishing it to
websocket subscribers. A real integration would replace `fetch_post`.
"""
import logging
import random
import threading
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


FEED_TEMPLATES = [
    {
        'content': "Mumbai: Heavy rainfall alert issued by IMD. Local trains on Central and Western lines running with delays. Citizens advised to avoid travel. #MumbaiRains #IMDAlert",
        'user': '@IndianMetDept', 'platform': 'twitter', 'priority': 'official'
    },
    {
        'content': "Delhi: Air quality reaches 'severe' category. Schools in NCR region may close tomorrow. Health advisory issued for outdoor activities. #DelhiPollution #AQI",
        'user': '@CPCBOfficial', 'platform': 'twitter', 'priority': 'official'
    },
    {
        'content': "Chennai: Cyclone warning for coastal Tamil Nadu. Fishermen advised not to venture into sea. NDRF teams deployed in vulnerable areas. #CycloneAlert #TamilNadu",
        'user': '@ChennaiRains', 'platform': 'twitter', 'priority': 'priority'
    },
    {
        'content': "Bangalore: Traffic congestion due to waterlogging at Electronic City. IT companies allowing work from home. Alternative routes via Hosur Road. #BangaloreTraffic",
        'user': '@BlrTrafficInfo', 'platform': 'twitter', 'priority': 'normal'
    },
    {
        'content': "Kolkata: Bridge inspection underway at Howrah Bridge. Vehicular movement restricted. Metro services extended hours to accommodate commuters. #KolkataTraffic",
        'user': '@KolkataPolice', 'platform': 'twitter', 'priority': 'official'
    },
    {
        'content': "URGENT: Fire incident at industrial area in Pune. Hazmat team deployed. Residents within 2km radius advised to stay indoors. #PuneEmergency #FireAlert",
        'user': '@PuneFireDept', 'platform': 'twitter', 'priority': 'priority'
    },
    {
        'content': "Hyderabad: Water shortage in several areas due to pipeline burst. Tanker services arranged. Repair work expected to complete by evening. #HyderabadWater",
        'user': '@GHMCOnline', 'platform': 'twitter', 'priority': 'normal'
    },
    {
        'content': "Ahmedabad: Heat wave continues with temperatures above 45°C. Cooling centers opened at community halls. Health advisory for elderly and children. #GujaratHeat",
        'user': '@GujaratState', 'platform': 'twitter', 'priority': 'official'
    },
]

URGENT_KEYWORDS = ['urgent', 'sos', 'help', 'emergency', 'stranded', 'trapped']
OFFICIAL_SOURCES = ['@NDMA_India', '@NDRFHQ', '@IndianMetDept', '@RedCross', '@PIBHomeAffairs']


def analyze_post_priority(content: str, user: Optional[str] = None) -> str:
    """
    Classify a post as 'official', 'priority' or 'normal'

    Official handles win over urgent keywords.

    Examples:
        >>> analyze_post_priority("Evacuation update from @NDRFHQ")
        'official'
        >>> analyze_post_priority("SOS! Family trapped on roof in Patna")
        'priority'
        >>> analyze_post_priority("Roads clear in Jaipur today")
        'normal'
    """
    if user in OFFICIAL_SOURCES or any(source in content for source in OFFICIAL_SOURCES):
        return 'official'

    lower_content = content.lower()
    if any(keyword in lower_content for keyword in URGENT_KEYWORDS):
        return 'priority'

    return 'normal'


class SocialMediaService:
    """Periodic post generator feeding the store and the broadcaster"""

    def __init__(self, store, broadcaster, interval_seconds=30, templates: Optional[List[Dict]] = None,
                 rng: Optional[random.Random] = None):
        """
        Args:
            store: DisasterStore to persist posts into
            broadcaster: Broadcaster to publish social_media_updated events on
            interval_seconds: Seconds between generated posts
            templates: Post templates (defaults to FEED_TEMPLATES)
            rng: Random source (tests pass a seeded one)
        """
        self.store = store
        self.broadcaster = broadcaster
        self.interval_seconds = interval_seconds
        self.templates = templates or FEED_TEMPLATES
        self.rng = rng or random.Random()
        self._stop_event = threading.Event()
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def fetch_post(self) -> Dict:
        """Pick the next post to ingest."""
        template = self.rng.choice(self.templates)
        return dict(template)

    def ingest_once(self) -> Dict:
        """
        Store one post and publish it

        Returns:
            The stored post
        """
        post = self.fetch_post()
        if not post.get('priority'):
            post['priority'] = analyze_post_priority(post['content'], post.get('user'))

        stored = self.store.create_social_media_post(post)
        self.broadcaster.publish_social_media_post(stored)
        logger.info(f"Social media post #{stored['id']} from {stored['user']} ({stored['priority']})")
        return stored

    def start_monitoring(self) -> None:
        if self.running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name='social-media-monitor', daemon=True)
        self._thread.start()
        logger.info(f"Social media monitoring started (every {self.interval_seconds}s)")

    def stop_monitoring(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Social media monitoring stopped")

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.ingest_once()
            except Exception as e:
                logger.error(f"Error in social media monitoring: {e}", exc_info=True)
