from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional

from .errors import UnsupportedPairError
from .types import CurrencyPair, SymbolInfo

_SEPARATORS = ("/", "-", ":", "_", " ")


def parse_pair(value: str | CurrencyPair) -> CurrencyPair:
    """Parse ``"hns/btc"``, ``"HNS-BTC"`` or ``"hns_btc"`` into a pair.

    Concatenated symbols (``HNSBTC``) are ambiguous without venue metadata;
    use ``SymbolRegistry.resolve`` for those.
    """
    if isinstance(value, CurrencyPair):
        return value
    raw = (value or "").strip()
    for sep in _SEPARATORS:
        if sep in raw:
            base, _, quote = raw.partition(sep)
            if base.strip() and quote.strip():
                return CurrencyPair(base, quote)
            break
    raise ValueError(f"cannot split pair {value!r}; expected BASE/QUOTE")


def symbol_fs(symbol: str, *, upper: bool = False) -> str:
    """Strip separators/spaces from user input so it matches venue symbols (``hns/btc`` -> ``hnsbtc``)."""
    cleaned = symbol
    for sep in _SEPARATORS:
        cleaned = cleaned.replace(sep, "")
    return cleaned.upper() if upper else cleaned


class SymbolRegistry:
    """Read-only view of the venue's listed symbols.

    Loaded once (see ``NamebaseRestClient.exchange_info``) and handed to the
    feed at construction.
    """

    def __init__(self, symbols: Iterable[SymbolInfo] = ()) -> None:
        by_pair = {info.pair: info for info in symbols}
        self._by_pair: Mapping[CurrencyPair, SymbolInfo] = MappingProxyType(by_pair)
        self._by_symbol: Mapping[str, SymbolInfo] = MappingProxyType(
            {info.symbol.upper(): info for info in by_pair.values()}
        )

    def __len__(self) -> int:
        return len(self._by_pair)

    def __iter__(self) -> Iterator[SymbolInfo]:
        return iter(self._by_pair.values())

    def __contains__(self, pair: object) -> bool:
        return pair in self._by_pair

    def get(self, pair: CurrencyPair) -> Optional[SymbolInfo]:
        return self._by_pair.get(pair)

    def require(self, pair: CurrencyPair) -> SymbolInfo:
        info = self._by_pair.get(pair)
        if info is None:
            raise UnsupportedPairError(f"unsupported symbol {pair.symbol}")
        return info

    def resolve(self, value: str | CurrencyPair) -> CurrencyPair:
        """Map user input (separated or concatenated) to a listed pair."""
        if isinstance(value, CurrencyPair):
            return self.require(value).pair
        info = self._by_symbol.get(symbol_fs(value, upper=True))
        if info is not None:
            return info.pair
        return self.require(parse_pair(value)).pair
