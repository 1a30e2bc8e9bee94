"""
Change Feed
In-process push subscriptions on store collections
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from collections import defaultdict


logger = logging.getLogger(__name__)


Topic = Tuple[str, ...]
Listener = Callable[["ChangeEvent"], None]


def medicine_topic(elder_id: str) -> Topic:
    """Topic for elder/{elderId}/medicine"""
    return ("medicine", elder_id)


def items_topic(elder_id: str, day_key: str) -> Topic:
    """Topic for elder/{elderId}/scheduleDay/{date}/item"""
    return ("items", elder_id, day_key)


@dataclass
class ChangeEvent:
    """A committed write on a watched collection"""
    topic: Topic
    action: str  # created, updated, deleted
    document_ids: List[str] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)


class Subscription:
    """Handle returned by subscribe(); remove() detaches the listener"""

    def __init__(self, feed: "ChangeFeed", topic: Topic, listener: Listener):
        self._feed = feed
        self.topic = topic
        self._listener = listener
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def remove(self):
        if self._active:
            self._feed._remove(self.topic, self._listener)
            self._active = False


class ChangeFeed:
    """
    Publishes committed writes to subscribed listeners.

    Listeners run synchronously on the publisher's thread and must not block;
    the schedule coordinator only enqueues a resync request from them.
    """

    def __init__(self):
        self._listeners: Dict[Topic, List[Listener]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, topic: Topic, listener: Listener) -> Subscription:
        with self._lock:
            self._listeners[topic].append(listener)
        logger.debug(f"Subscribed to {'/'.join(topic)}")
        return Subscription(self, topic, listener)

    def _remove(self, topic: Topic, listener: Listener):
        with self._lock:
            listeners = self._listeners.get(topic, [])
            if listener in listeners:
                listeners.remove(listener)
            if not listeners:
                self._listeners.pop(topic, None)

    def listener_count(self, topic: Optional[Topic] = None) -> int:
        with self._lock:
            if topic is not None:
                return len(self._listeners.get(topic, []))
            return sum(len(v) for v in self._listeners.values())

    def publish(
        self,
        topic: Topic,
        action: str,
        document_ids: Optional[List[str]] = None,
        **data
    ) -> int:
        """Deliver an event; returns the number of listeners notified"""
        with self._lock:
            listeners = list(self._listeners.get(topic, []))

        if not listeners:
            return 0

        event = ChangeEvent(
            topic=topic,
            action=action,
            document_ids=list(document_ids or []),
            data=data
        )
        delivered = 0
        for listener in listeners:
            try:
                listener(event)
                delivered += 1
            except Exception as e:
                logger.error(f"Change listener for {'/'.join(topic)} failed: {e}")
        return delivered


# Singleton instance
change_feed = ChangeFeed()
