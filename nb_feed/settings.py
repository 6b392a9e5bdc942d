from __future__ import annotations

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y")


NAMEBASE_REST_BASE_URL = "https://www.namebase.io"
NAMEBASE_WS_BASE_URL = "wss://app.namebase.io:443"


@dataclass(frozen=True)
class FeedSettings:
    rest_base_url: str = NAMEBASE_REST_BASE_URL
    ws_base_url: str = NAMEBASE_WS_BASE_URL
    http_timeout_s: float = 10.0

    snapshot_depth: int = 50
    snapshot_retry_max: int = 1
    snapshot_retry_backoff_s: float = 0.5
    snapshot_retry_backoff_max_s: float = 5.0

    ws_open_timeout_s: float = 10.0
    ws_ping_interval_s: float = 20.0
    ws_ping_timeout_s: float = 60.0

    # Resync policy after a stream read error. backoff 0 = reconnect immediately.
    resync_max_attempts: int = 3
    resync_backoff_s: float = 0.0
    resync_backoff_max_s: float = 30.0
    strict_gaps: bool = False

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "FeedSettings":
        """Read settings at call time so tests and launch scripts can override them."""
        return cls(
            rest_base_url=os.getenv("NAMEBASE_REST_BASE_URL", NAMEBASE_REST_BASE_URL).rstrip("/"),
            ws_base_url=os.getenv("NAMEBASE_WS_BASE_URL", NAMEBASE_WS_BASE_URL).rstrip("/"),
            http_timeout_s=_env_float("HTTP_TIMEOUT_S", 10.0),
            snapshot_depth=max(1, _env_int("SNAPSHOT_DEPTH", 50)),
            snapshot_retry_max=max(1, _env_int("SNAPSHOT_RETRY_MAX", 1)),
            snapshot_retry_backoff_s=max(0.0, _env_float("SNAPSHOT_RETRY_BACKOFF_S", 0.5)),
            snapshot_retry_backoff_max_s=max(0.0, _env_float("SNAPSHOT_RETRY_BACKOFF_MAX_S", 5.0)),
            ws_open_timeout_s=_env_float("WS_OPEN_TIMEOUT_S", 10.0),
            ws_ping_interval_s=_env_float("WS_PING_INTERVAL_S", 20.0),
            ws_ping_timeout_s=_env_float("WS_PING_TIMEOUT_S", 60.0),
            resync_max_attempts=max(1, _env_int("RESYNC_MAX_ATTEMPTS", 3)),
            resync_backoff_s=max(0.0, _env_float("RESYNC_BACKOFF_S", 0.0)),
            resync_backoff_max_s=max(0.0, _env_float("RESYNC_BACKOFF_MAX_S", 30.0)),
            strict_gaps=_env_bool("STRICT_GAPS", False),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
