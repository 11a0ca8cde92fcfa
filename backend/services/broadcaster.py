"""
Live Update Broadcaster

Fans typed change events out to every connected websocket subscriber.
A connection is anything with `send(text)`; if it exposes a `connected`
attribute (simple-websocket's Server does) a False value means closed.
Dead connections are only pruned at publish time.
"""
import json
import logging
import threading
from typing import Any, Dict

logger = logging.getLogger(__name__)

CONNECTED = 'connected'
DISASTER_UPDATED = 'disaster_updated'
REPORT_UPDATED = 'report_updated'
RESOURCES_UPDATED = 'resources_updated'
SOCIAL_MEDIA_UPDATED = 'social_media_updated'

EVENT_TYPES = (DISASTER_UPDATED, REPORT_UPDATED, RESOURCES_UPDATED, SOCIAL_MEDIA_UPDATED)


def _is_open(connection) -> bool:
    return getattr(connection, 'connected', True)


class Broadcaster:
    """Set of live subscribers plus publish fan-out"""

    CONNECTED_MESSAGE = 'Connected to disaster response hub'

    def __init__(self):
        self._subscribers = set()
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, connection) -> None:
        """
        Add a connection and confirm the channel to it alone.

        The confirmation uses its own 'connected' event type so clients never
        mistake it for a resource change.
        """
        with self._lock:
            self._subscribers.add(connection)
        logger.info(f"WebSocket client connected ({self.subscriber_count} active)")

        if not self._deliver(connection, {'type': CONNECTED, 'data': {'message': self.CONNECTED_MESSAGE}}):
            self.unsubscribe(connection)

    def unsubscribe(self, connection) -> None:
        with self._lock:
            removed = connection in self._subscribers
            self._subscribers.discard(connection)
        if removed:
            logger.info(f"WebSocket client disconnected ({self.subscriber_count} active)")

    def publish(self, event_type: str, payload: Any) -> int:
        """
        Send {"type": event_type, "data": payload} to every open subscriber.

        Args:
            event_type: One of EVENT_TYPES
            payload: The affected entity, or {'id': ..., 'deleted': True}

        Returns:
            Number of successful deliveries
        """
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")

        message = {'type': event_type, 'data': payload}
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        dead = []
        for connection in subscribers:
            if _is_open(connection) and self._deliver(connection, message):
                delivered += 1
            else:
                dead.append(connection)

        if dead:
            with self._lock:
                self._subscribers.difference_update(dead)
            logger.info(f"Pruned {len(dead)} dead WebSocket connection(s)")

        logger.debug(f"Published {event_type} to {delivered} subscriber(s)")
        return delivered

    def _deliver(self, connection, message: Dict) -> bool:
        try:
            connection.send(json.dumps(message, default=str))
            return True
        except Exception as e:
            logger.warning(f"WebSocket send failed: {e}")
            return False

    def publish_disaster(self, disaster: Dict) -> int:
        return self.publish(DISASTER_UPDATED, disaster)

    def publish_report(self, report: Dict) -> int:
        return self.publish(REPORT_UPDATED, report)

    def publish_resource(self, resource: Dict) -> int:
        return self.publish(RESOURCES_UPDATED, resource)

    def publish_social_media_post(self, post: Dict) -> int:
        return self.publish(SOCIAL_MEDIA_UPDATED, post)
