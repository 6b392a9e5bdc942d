from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import requests

from nb_core.decoding import parse_depth_snapshot, parse_symbol_info
from nb_core.errors import ConnectError, DecodeError
from nb_core.symbols import SymbolRegistry
from nb_core.types import CurrencyPair, OrderBook

from .base import SnapshotSource
from .settings import FeedSettings

_DEPTH_PATH = "/api/v0/depth"
_INFO_PATH = "/api/v0/info"

log = logging.getLogger("rest")


def _call_with_retry(fn, attempts: int, backoff_s: float, backoff_max_s: float):
    attempts = max(1, int(attempts))
    backoff_s = max(0.0, float(backoff_s))
    backoff_max_s = max(backoff_s, float(backoff_max_s))
    delay = backoff_s
    last_exc = None
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except ConnectError as exc:
            last_exc = exc
            if attempt >= attempts:
                break
            log.warning("Request failed (attempt %d/%d): %s", attempt, attempts, exc)
            if delay > 0:
                time.sleep(delay)
                delay = min(backoff_max_s, delay * 2)
    raise last_exc


class NamebaseRestClient(SnapshotSource):
    """Public REST endpoints needed by the depth feed (snapshots, symbol list)."""

    def __init__(self, settings: Optional[FeedSettings] = None) -> None:
        self.settings = settings or FeedSettings.from_env()
        self.base_url = self.settings.rest_base_url.rstrip("/")
        self.timeout_s = float(self.settings.http_timeout_s)

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = requests.get(
                url,
                params=params,
                headers={"Accept": "application/json"},
                timeout=self.timeout_s,
            )
        except requests.Timeout as exc:
            raise ConnectError(f"GET {path} timed out after {self.timeout_s}s") from exc
        except requests.RequestException as exc:
            raise ConnectError(f"GET {path} failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and body.get("code"):
            raise ConnectError(f"GET {path} rejected: {body.get('message') or body.get('code')}")

        if resp.status_code != 200:
            raise ConnectError(f"GET {path} http code: {resp.status_code}, body: {resp.text[:200]}")

        if body is None:
            raise ConnectError(f"GET {path} returned a non-JSON body")
        return body

    def get_depth(self, pair: CurrencyPair, limit: int = 0) -> OrderBook:
        """Query the order book; ``limit == 0`` uses the venue default."""
        params: Dict[str, Any] = {"symbol": pair.symbol}
        if limit:
            params["limit"] = int(limit)
        payload = self._get(_DEPTH_PATH, params)
        try:
            return parse_depth_snapshot(payload, pair=pair)
        except DecodeError as exc:
            raise ConnectError(f"Invalid snapshot payload for {pair.symbol}: {exc}") from exc

    def fetch_snapshot(self, pair: CurrencyPair, depth: int) -> OrderBook:
        s = self.settings
        book = _call_with_retry(
            lambda: self.get_depth(pair, depth),
            attempts=s.snapshot_retry_max,
            backoff_s=s.snapshot_retry_backoff_s,
            backoff_max_s=s.snapshot_retry_backoff_max_s,
        )
        log.info(
            "Snapshot %s loaded lastEventId=%s bids=%d asks=%d",
            pair.symbol,
            book.last_event_id,
            len(book.bids),
            len(book.asks),
        )
        return book

    def exchange_info(self) -> SymbolRegistry:
        """Fetch listed symbols once; the registry is immutable afterwards."""
        payload = self._get(_INFO_PATH)
        symbols = payload.get("symbols") if isinstance(payload, dict) else None
        if not isinstance(symbols, list):
            raise ConnectError("exchange info payload missing symbols")
        infos = []
        for raw in symbols:
            try:
                infos.append(parse_symbol_info(raw))
            except DecodeError as exc:
                log.warning("Skipping malformed symbol entry: %s", exc)
        return SymbolRegistry(infos)
