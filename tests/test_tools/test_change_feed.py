"""
Tests for Change Feed
Tests topic subscriptions, delivery and listener isolation
"""

import pytest

from tools.change_feed import ChangeFeed, items_topic, medicine_topic


@pytest.fixture
def feed():
    return ChangeFeed()


class TestChangeFeed:
    """Tests for ChangeFeed"""

    @pytest.mark.unit
    def test_publish_reaches_topic_listeners_only(self, feed):
        received = []
        feed.subscribe(medicine_topic("elder-1"), received.append)

        assert feed.publish(medicine_topic("elder-1"), "created", ["m1"], source="test") == 1
        assert feed.publish(medicine_topic("elder-2"), "created", ["m2"]) == 0

        assert len(received) == 1
        event = received[0]
        assert event.action == "created"
        assert event.document_ids == ["m1"]
        assert event.data == {"source": "test"}

    @pytest.mark.unit
    def test_items_topic_is_per_day(self, feed):
        received = []
        feed.subscribe(items_topic("elder-1", "2026-10-17"), received.append)

        feed.publish(items_topic("elder-1", "2026-10-16"), "updated", ["x"])
        feed.publish(items_topic("elder-1", "2026-10-17"), "updated", ["y"])

        assert [e.document_ids for e in received] == [["y"]]

    @pytest.mark.unit
    def test_remove_detaches_listener(self, feed):
        received = []
        subscription = feed.subscribe(medicine_topic("elder-1"), received.append)

        subscription.remove()
        subscription.remove()
        feed.publish(medicine_topic("elder-1"), "updated")

        assert received == []
        assert not subscription.active
        assert feed.listener_count() == 0

    @pytest.mark.unit
    def test_failing_listener_does_not_block_others(self, feed):
        received = []

        def broken(event):
            raise RuntimeError("boom")

        feed.subscribe(medicine_topic("elder-1"), broken)
        feed.subscribe(medicine_topic("elder-1"), received.append)

        assert feed.publish(medicine_topic("elder-1"), "updated") == 1
        assert len(received) == 1
