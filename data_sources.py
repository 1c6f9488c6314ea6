# data_sources.py
"""Data sources that normalize one upstream observation per store update.

A poke that lands within ``interpolation_threshold`` of its scheduled slot
records the raw observation unchanged. A later poke is linearized: the raw
value is blended with the last stored value in proportion to how overdue the
update is, which damps the jump after a long stale gap.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import fixed_point
from errors import InvalidConfiguration, TooSoon
from indicators import calculate_ema
from models import PricePoint
from price_sources import PriceReader

if TYPE_CHECKING:
    from time_series import TimeSeriesStore

log = logging.getLogger(__name__)


def interpolate_delayed_price(
    current_price: int,
    previous_value: int,
    update_interval: int,
    time_from_expected_update: int,
    time_from_last_update: int,
) -> int:
    """floor((current * interval + previous * late_by) / since_last)."""
    numerator = fixed_point.add(
        fixed_point.mul(current_price, update_interval),
        fixed_point.mul(previous_value, time_from_expected_update),
    )
    return fixed_point.div(numerator, time_from_last_update)


class LinearizedDataSource(ABC):
    """Shared admission check and linearization; subclasses supply the raw value."""

    def __init__(self, interpolation_threshold: int, data_description: str = "") -> None:
        if interpolation_threshold < 0:
            raise InvalidConfiguration("interpolation_threshold must be >= 0")
        self.interpolation_threshold = interpolation_threshold
        self.data_description = data_description

    @abstractmethod
    def raw_value(self, store: "TimeSeriesStore") -> int:
        ...

    def read(self, store: "TimeSeriesStore", now: int) -> PricePoint:
        if now < store.next_earliest_update:
            raise TooSoon(f"next update at {store.next_earliest_update}, now {now}")

        raw = self.raw_value(store)
        time_from_expected_update = now - store.next_earliest_update
        if time_from_expected_update <= self.interpolation_threshold:
            return PricePoint(value=raw, timestamp=now)

        previous = store.latest()
        value = interpolate_delayed_price(
            current_price=raw,
            previous_value=previous.value,
            update_interval=store.update_interval,
            time_from_expected_update=time_from_expected_update,
            time_from_last_update=now - previous.timestamp,
        )
        log.info(
            f"{self.data_description or 'data source'}: late by {time_from_expected_update}s, "
            f"linearized raw={raw} previous={previous.value} -> {value}"
        )
        return PricePoint(value=value, timestamp=now)


class LinearizedPriceDataSource(LinearizedDataSource):
    def __init__(self, upstream: PriceReader, interpolation_threshold: int, data_description: str = "") -> None:
        super().__init__(interpolation_threshold, data_description)
        self.upstream = upstream

    def current_value(self) -> int:
        return self.upstream.read()

    def raw_value(self, store: "TimeSeriesStore") -> int:
        return self.current_value()


class LinearizedEMADataSource(LinearizedDataSource):
    """Records an EMA series: each raw value advances the store's last EMA."""

    def __init__(
        self,
        upstream: PriceReader,
        ema_period: int,
        interpolation_threshold: int,
        data_description: str = "",
    ) -> None:
        if ema_period <= 0:
            raise InvalidConfiguration("ema_period must be > 0")
        super().__init__(interpolation_threshold, data_description)
        self.upstream = upstream
        self.ema_period = ema_period

    def raw_value(self, store: "TimeSeriesStore") -> int:
        return calculate_ema(store.latest().value, self.ema_period, self.upstream.read())


class TwoAssetLinearizedDataSource(LinearizedDataSource):
    """Records base/quote price ratios scaled to ``fixed_point.UNIT``."""

    def __init__(
        self,
        base: PriceReader,
        quote: PriceReader,
        interpolation_threshold: int,
        data_description: str = "",
    ) -> None:
        super().__init__(interpolation_threshold, data_description)
        self.base = base
        self.quote = quote

    def current_value(self) -> int:
        return fixed_point.mul_div(self.base.read(), fixed_point.UNIT, self.quote.read())

    def raw_value(self, store: "TimeSeriesStore") -> int:
        return self.current_value()
