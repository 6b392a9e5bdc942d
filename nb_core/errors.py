"""Error taxonomy for the depth feed.

Collaborators (REST client, websocket transport) raise these so the
subscription worker can tell a dead connection from a bad payload.
"""

from __future__ import annotations


class FeedError(Exception):
    """Base class for every feed error."""


class ConnectError(FeedError):
    """Stream dial or snapshot fetch failed."""


class TransientStreamError(FeedError):
    """Read failure on an open stream; recovered by a full resync."""


class FatalReconnectError(FeedError):
    """Resync after a stream failure did not succeed; the session ends."""


class DecodeError(FeedError, ValueError):
    """Malformed level, event or snapshot payload."""


class UnsupportedPairError(FeedError, ValueError):
    """Pair is not listed by the venue."""
