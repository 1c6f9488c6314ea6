# price_sources.py
"""Upstream read capabilities consumed by the pipeline.

These stand in for the external price-submission layer: anything exposing
``read() -> int`` (a price scaled to ``fixed_point.UNIT``) can be plugged into
a data source, oracle or trigger.
"""

from __future__ import annotations

import logging
from typing import Protocol, Tuple

import fixed_point
from errors import InvalidConfiguration, PriceUnavailable

log = logging.getLogger(__name__)


class PriceReader(Protocol):
    def read(self) -> int:
        ...


class PriceFeed:
    """Latest-value price feed (medianizer stand-in).

    Holds one value at a time in its own ``unit``; ``read`` rescales it to
    ``fixed_point.UNIT`` and fails until a price has been poked.
    """

    def __init__(self, name: str = "feed", unit: int = fixed_point.UNIT) -> None:
        if unit <= 0:
            raise InvalidConfiguration("unit must be > 0")
        self.name = name
        self.unit = unit
        self._price: int = 0
        self._timestamp: int = 0

    def poke(self, price: int, timestamp: int) -> None:
        if price <= 0:
            raise InvalidConfiguration("price must be > 0")
        self._price = price
        self._timestamp = timestamp
        log.debug(f"{self.name}: price={price} ts={timestamp}")

    def peek(self) -> Tuple[int, bool]:
        return self._price, self._price > 0

    @property
    def timestamp(self) -> int:
        return self._timestamp

    def read(self) -> int:
        if self._price == 0:
            raise PriceUnavailable(f"{self.name} has no valid price")
        return fixed_point.rescale(self._price, self.unit, fixed_point.UNIT)


class ConstantPriceOracle:
    def __init__(self, price: int) -> None:
        self.price = price

    def read(self) -> int:
        return self.price


class ExchangeRateSource:
    """Stored exchange rate of a compounding token, scaled by its own full unit."""

    def __init__(self, rate: int) -> None:
        self._rate = rate

    def set_rate(self, rate: int) -> None:
        self._rate = rate

    def exchange_rate_stored(self) -> int:
        return self._rate
