from __future__ import annotations

from decimal import Decimal
from typing import Mapping, Optional, Protocol, Union

from papertrade.utils.exceptions import PriceUnavailable
from papertrade.utils.logger import get_logger

logger = get_logger(__name__)

Number = Union[Decimal, int, float, str]


class PriceSource(Protocol):
    def get_price(self, symbol: str) -> Decimal: ...


class StaticPriceSource:
    """In-memory quotes keyed by upper-cased symbol."""

    def __init__(self, quotes: Optional[Mapping[str, Number]] = None) -> None:
        self._quotes: dict[str, Decimal] = {}
        for symbol, price in (quotes or {}).items():
            self.set_price(symbol, price)

    def set_price(self, symbol: str, price: Number) -> None:
        value = Decimal(str(price))
        if value <= 0:
            raise ValueError(f"price must be positive for {symbol}: {price}")
        self._quotes[symbol.upper()] = value

    def get_price(self, symbol: str) -> Decimal:
        try:
            return self._quotes[symbol.upper()]
        except KeyError:
            logger.warning("price_unavailable", symbol=symbol)
            raise PriceUnavailable(symbol) from None

    def snapshot(self) -> dict[str, Decimal]:
        return dict(self._quotes)
