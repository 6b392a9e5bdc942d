from __future__ import annotations

import asyncio
import logging
from typing import Optional

from websockets.asyncio.client import connect as ws_connect  # type: ignore
from websockets.exceptions import ConnectionClosed  # type: ignore

from nb_core.errors import ConnectError, TransientStreamError
from nb_core.types import CurrencyPair

from .base import EventStreamOpener, Transport
from .settings import FeedSettings

_DEPTH_PATH = "/ws/v0/ticker/depth"
_TRADES_PATH = "/ws/v0/stream/trades"


class WSTransport(Transport):
    """Thin wrapper mapping websocket failures onto the feed error taxonomy."""

    def __init__(self, ws, url: str) -> None:
        self._ws = ws
        self.url = url
        self._closed = False
        self._log = logging.getLogger("websocket")

    @property
    def closed(self) -> bool:
        return self._closed

    async def recv(self) -> str | bytes:
        if self._closed:
            raise TransientStreamError(f"stream {self.url} already closed")
        try:
            return await self._ws.recv()
        except ConnectionClosed as exc:
            code = getattr(getattr(exc, "rcvd", None), "code", None)
            raise TransientStreamError(f"stream closed (code={code}): {exc}") from exc
        except (OSError, asyncio.TimeoutError) as exc:
            raise TransientStreamError(f"failed to read from websocket: {exc}") from exc

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._ws.close()
        except (OSError, ConnectionClosed):
            self._log.debug("Error while closing %s", self.url, exc_info=True)


class NamebaseStreamOpener(EventStreamOpener):
    def __init__(self, settings: Optional[FeedSettings] = None) -> None:
        self.settings = settings or FeedSettings.from_env()
        self._log = logging.getLogger("websocket")

    async def _dial(self, path: str) -> WSTransport:
        s = self.settings
        url = f"{s.ws_base_url.rstrip('/')}{path}"
        connect_kwargs = {
            "open_timeout": s.ws_open_timeout_s,
            "ping_interval": s.ws_ping_interval_s if s.ws_ping_interval_s > 0 else None,
            "ping_timeout": s.ws_ping_timeout_s if s.ws_ping_timeout_s > 0 else None,
            "close_timeout": 5,
        }
        try:
            ws = await ws_connect(url, **connect_kwargs)
        except (OSError, asyncio.TimeoutError, ConnectionClosed) as exc:
            self._log.warning("Failed to establish a websocket connection to %s: %s", url, exc)
            raise ConnectError(f"websocket dial {url} failed: {exc}") from exc
        except Exception as exc:
            # InvalidURI / InvalidHandshake and friends
            self._log.warning("Websocket handshake with %s rejected: %s", url, exc)
            raise ConnectError(f"websocket dial {url} failed: {exc}") from exc
        self._log.info("Websocket connected: %s", url)
        return WSTransport(ws, url)

    async def open_depth_stream(self, pair: CurrencyPair) -> Transport:
        return await self._dial(_DEPTH_PATH)

    async def open_trade_stream(self, pair: CurrencyPair) -> Transport:
        return await self._dial(_TRADES_PATH)
