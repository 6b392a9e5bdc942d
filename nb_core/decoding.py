"""Venue payload decoding.

Levels arrive as ``["0.06844", "10760"]`` (price, quantity); everything else
is a flat JSON envelope. Every failure is a ``DecodeError`` so the stream
worker can drop one bad message and keep going.
"""

from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

from .errors import DecodeError
from .types import CurrencyPair, DepthDiffEvent, Levels, OrderBook, PriceLevel, SymbolInfo, Trade


def _to_decimal(value: Any, what: str) -> Decimal:
    if isinstance(value, bool):
        raise DecodeError(f"{what} must be a decimal, got {value!r}")
    try:
        dec = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise DecodeError(f"{what} is not a valid decimal: {value!r}") from exc
    if not dec.is_finite():
        raise DecodeError(f"{what} is not finite: {value!r}")
    return dec


def _to_int(value: Any, what: str) -> int:
    if value is None or isinstance(value, bool):
        raise DecodeError(f"{what} missing or not an integer: {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise DecodeError(f"{what} is not an integer: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"{what} is not an integer: {value!r}") from exc


def _optional_int(value: Any, what: str, default: int = -1) -> int:
    if value is None:
        return default
    return _to_int(value, what)


def _optional_symbol(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise DecodeError(f"symbol must be a string, got {value!r}")
    return value


def load_message(raw: str | bytes | bytearray | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(raw, Mapping):
        return raw
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"invalid JSON message: {exc}") from exc
    if not isinstance(data, dict):
        raise DecodeError(f"expected a JSON object, got {type(data).__name__}")
    return data


def parse_level(raw: Any) -> PriceLevel:
    """Decode ``[price, quantity]``; extra trailing fields are ignored."""
    if isinstance(raw, (str, bytes)) or not isinstance(raw, (list, tuple)):
        raise DecodeError(f"level must be a [price, quantity] list, got {raw!r}")
    if len(raw) < 2:
        raise DecodeError(f"at least two fields are expected but got: {list(raw)!r}")
    price = _to_decimal(raw[0], "price")
    quantity = _to_decimal(raw[1], "quantity")
    if quantity < 0:
        raise DecodeError(f"negative quantity {raw[1]!r} at price {raw[0]!r}")
    return PriceLevel(price=price, quantity=quantity)


def parse_levels(raw: Optional[Iterable[Any]], what: str = "levels") -> Levels:
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        raise DecodeError(f"{what} must be a list of levels, got {raw!r}")
    return tuple(parse_level(item) for item in raw)


def parse_depth_event(raw: str | bytes | bytearray | Mapping[str, Any]) -> DepthDiffEvent:
    """Decode one ``depthUpdate`` stream message.

    Heartbeats carry no levels and may omit the event ids; they decode to an
    empty event with ids of -1.
    """
    data = load_message(raw)
    bids = parse_levels(data.get("bids"), "bids")
    asks = parse_levels(data.get("asks"), "asks")
    symbol = _optional_symbol(data.get("symbol"))
    event_time = data.get("eventTime", data.get("timestamp", 0))
    if not bids and not asks:
        return DepthDiffEvent(
            first_event_id=_optional_int(data.get("firstEventId"), "firstEventId"),
            last_event_id=_optional_int(data.get("lastEventId"), "lastEventId"),
            event_time=_to_int(event_time or 0, "eventTime"),
            symbol=symbol,
        )
    first_id = _to_int(data.get("firstEventId"), "firstEventId")
    last_id = _to_int(data.get("lastEventId"), "lastEventId")
    if last_id < first_id:
        raise DecodeError(f"lastEventId {last_id} precedes firstEventId {first_id}")
    return DepthDiffEvent(
        first_event_id=first_id,
        last_event_id=last_id,
        event_time=_to_int(event_time or 0, "eventTime"),
        bids=bids,
        asks=asks,
        symbol=symbol,
    )


def parse_depth_snapshot(raw: str | bytes | bytearray | Mapping[str, Any],
                         pair: Optional[CurrencyPair] = None) -> OrderBook:
    """Decode a REST depth payload.

    Levels are returned in the order the venue sent them; ``LocalOrderBook``
    re-sorts on load.
    """
    data = load_message(raw)
    if "bids" not in data or "asks" not in data or "lastEventId" not in data:
        raise DecodeError("snapshot payload missing required keys")
    return OrderBook(
        pair=pair,
        bids=parse_levels(data.get("bids"), "bids"),
        asks=parse_levels(data.get("asks"), "asks"),
        last_event_id=_to_int(data.get("lastEventId"), "lastEventId"),
        timestamp=_to_int(data.get("timestamp", data.get("ts", 0)) or 0, "timestamp"),
    )


def parse_trade(raw: str | bytes | bytearray | Mapping[str, Any]) -> Trade:
    data = load_message(raw)
    quantity = _to_decimal(data.get("quantity"), "quantity")
    if quantity < 0:
        raise DecodeError(f"negative trade quantity {data.get('quantity')!r}")
    return Trade(
        trade_id=_to_int(data.get("tradeId"), "tradeId"),
        price=_to_decimal(data.get("price"), "price"),
        quantity=quantity,
        is_buyer_maker=bool(data.get("isBuyerMaker", False)),
        created_at=_to_int(data.get("createdAt", 0) or 0, "createdAt"),
        event_time=_to_int(data.get("eventTime", 0) or 0, "eventTime"),
        symbol=_optional_symbol(data.get("symbol")),
    )


def parse_symbol_info(raw: Mapping[str, Any]) -> SymbolInfo:
    try:
        return SymbolInfo(
            symbol=str(raw["symbol"]).upper(),
            status=str(raw.get("status", "")),
            base_asset=str(raw["baseAsset"]).upper(),
            base_precision=int(raw.get("basePrecision", 0)),
            quote_asset=str(raw["quoteAsset"]).upper(),
            quote_precision=int(raw.get("quotePrecision", 0)),
            order_types=tuple(raw.get("orderTypes") or ()),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise DecodeError(f"invalid symbol info {raw!r}: {exc}") from exc
