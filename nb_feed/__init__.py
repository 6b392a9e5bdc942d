"""Namebase depth feed: REST snapshots + websocket diffs kept in sync."""

from .feed import DepthFeed
from .settings import FeedSettings
from .subscription import DepthSubscription, SessionPhase, StreamSession, TradeSubscription

__all__ = [
    "DepthFeed",
    "DepthSubscription",
    "FeedSettings",
    "SessionPhase",
    "StreamSession",
    "TradeSubscription",
]
