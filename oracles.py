# oracles.py
"""Stateless signals derived from stores and upstream prices.

``DerivedOracle`` is a closed set of variants selected at construction by
``OracleKind``; every variant answers the same ``read() -> int``. Because the
output shape matches ``PriceReader``, oracles compose: a ratio of two moving
averages is ``DerivedOracle.ratio(ma_base, ma_quote)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

import fixed_point
from errors import InvalidConfiguration
from indicators import calculate_rsi, calculate_sma
from price_sources import ExchangeRateSource, PriceReader
from time_series import TimeSeriesStore


class OracleKind(str, Enum):
    LAST_VALUE = "last_value"
    MOVING_AVERAGE = "moving_average"
    RSI = "rsi"
    RATIO = "ratio"
    TOKEN_EXCHANGE_RATE = "token_exchange_rate"


@dataclass(frozen=True)
class DerivedOracle:
    kind: OracleKind
    data_description: str = ""
    store: Optional[TimeSeriesStore] = None
    data_points: int = 0
    base: Optional[PriceReader] = None
    quote: Optional[PriceReader] = None
    exchange_rate: Optional[ExchangeRateSource] = None
    token_full_unit: int = 0
    underlying_full_unit: int = 0

    # --- constructors, one per variant ---

    @classmethod
    def last_value(cls, store: TimeSeriesStore, data_description: str = "") -> "DerivedOracle":
        return cls(OracleKind.LAST_VALUE, data_description, store=store)

    @classmethod
    def moving_average(cls, store: TimeSeriesStore, data_points: int, data_description: str = "") -> "DerivedOracle":
        if data_points <= 0:
            raise InvalidConfiguration("moving average window must be > 0")
        return cls(OracleKind.MOVING_AVERAGE, data_description, store=store, data_points=data_points)

    @classmethod
    def rsi(cls, store: TimeSeriesStore, period: int, data_description: str = "") -> "DerivedOracle":
        if period <= 0:
            raise InvalidConfiguration("RSI period must be > 0")
        return cls(OracleKind.RSI, data_description, store=store, data_points=period)

    @classmethod
    def ratio(cls, base: PriceReader, quote: PriceReader, data_description: str = "") -> "DerivedOracle":
        return cls(OracleKind.RATIO, data_description, base=base, quote=quote)

    @classmethod
    def token_exchange_rate(
        cls,
        underlying: PriceReader,
        exchange_rate: ExchangeRateSource,
        token_full_unit: int,
        underlying_full_unit: int,
        data_description: str = "",
    ) -> "DerivedOracle":
        if token_full_unit <= 0 or underlying_full_unit <= 0:
            raise InvalidConfiguration("full units must be > 0")
        return cls(
            OracleKind.TOKEN_EXCHANGE_RATE,
            data_description,
            base=underlying,
            exchange_rate=exchange_rate,
            token_full_unit=token_full_unit,
            underlying_full_unit=underlying_full_unit,
        )

    def read(self) -> int:
        return _READERS[self.kind](self)


def _read_last_value(oracle: DerivedOracle) -> int:
    return oracle.store.read(1)[0].value


def _read_moving_average(oracle: DerivedOracle) -> int:
    return calculate_sma(oracle.store.read_values(oracle.data_points), oracle.data_points)


def _read_rsi(oracle: DerivedOracle) -> int:
    period = oracle.data_points
    return calculate_rsi(oracle.store.read_values(period + 1), period)


def _read_ratio(oracle: DerivedOracle) -> int:
    return fixed_point.mul_div(oracle.base.read(), fixed_point.UNIT, oracle.quote.read())


def _read_token_exchange_rate(oracle: DerivedOracle) -> int:
    # Division order is part of the result: rescale to the underlying, then drop UNIT.
    value = fixed_point.mul(oracle.base.read(), oracle.exchange_rate.exchange_rate_stored())
    value = fixed_point.mul_div(value, oracle.token_full_unit, oracle.underlying_full_unit)
    return fixed_point.div(value, fixed_point.UNIT)


_READERS: Dict[OracleKind, Callable[[DerivedOracle], int]] = {
    OracleKind.LAST_VALUE: _read_last_value,
    OracleKind.MOVING_AVERAGE: _read_moving_average,
    OracleKind.RSI: _read_rsi,
    OracleKind.RATIO: _read_ratio,
    OracleKind.TOKEN_EXCHANGE_RATE: _read_token_exchange_rate,
}
