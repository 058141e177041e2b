"""Change feed module."""

from .cache import RecentMessageCache
from .change_feed import ChangeFeed, FeedSubscription, IChangeFeed
from .consumer import FeedConsumer, IFeedListener

__all__ = [
    "ChangeFeed",
    "FeedConsumer",
    "FeedSubscription",
    "IChangeFeed",
    "IFeedListener",
    "RecentMessageCache",
]
