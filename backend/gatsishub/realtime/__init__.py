from gatsishub.realtime.feed import ChangeEvent, ChangeFeed, Subscription, capture_changes, feed
from gatsishub.realtime.projection import Projection, watch

__all__ = [
    "ChangeEvent",
    "ChangeFeed",
    "Subscription",
    "capture_changes",
    "feed",
    "Projection",
    "watch",
]
