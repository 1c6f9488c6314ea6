# pipeline.py
"""Wires configured components into one addressable pipeline.

Data flows one way: upstream price -> data source -> store -> oracle ->
trigger. The pipeline owns every component and resolves them by name for the
service and the replay runner.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Union

from config import DataSourceConfig, PipelineConfig
from data_sources import (
    LinearizedDataSource,
    LinearizedEMADataSource,
    LinearizedPriceDataSource,
    TwoAssetLinearizedDataSource,
)
from errors import UnknownComponent
from fixed_point import to_fixed
from models import PricePoint
from oracles import DerivedOracle, OracleKind
from price_sources import ConstantPriceOracle, ExchangeRateSource, PriceFeed, PriceReader
from time_series import TimeSeriesStore
from triggers import BandTrigger, ConfirmationTrigger, CrossoverTrigger

log = logging.getLogger(__name__)

Upstream = Union[PriceFeed, ConstantPriceOracle]


class Pipeline:
    def __init__(self) -> None:
        self.upstreams: Dict[str, Upstream] = {}
        self.exchange_rates: Dict[str, ExchangeRateSource] = {}
        self.feeds: Dict[str, TimeSeriesStore] = {}
        self.oracles: Dict[str, DerivedOracle] = {}
        self.confirmation_triggers: Dict[str, ConfirmationTrigger] = {}
        self.crossover_triggers: Dict[str, CrossoverTrigger] = {}
        self.band_triggers: Dict[str, BandTrigger] = {}

    @classmethod
    def from_config(cls, config: PipelineConfig, now: int) -> "Pipeline":
        pipeline = cls()

        for up in config.upstreams:
            if up.kind == "constant":
                pipeline.upstreams[up.name] = ConstantPriceOracle(to_fixed(up.price))
            else:
                feed = PriceFeed(up.name, up.full_unit)
                if up.price:
                    feed.poke(to_fixed(up.price, up.full_unit), now)
                pipeline.upstreams[up.name] = feed

        for rate in config.exchange_rates:
            pipeline.exchange_rates[rate.name] = ExchangeRateSource(rate.rate)

        for fc in config.feeds:
            next_update = fc.next_earliest_update
            if next_update is None:
                next_update = now + fc.update_interval
            pipeline.feeds[fc.name] = TimeSeriesStore(
                update_interval=fc.update_interval,
                max_data_points=fc.max_data_points,
                data_source=pipeline._build_data_source(fc.data_source, fc.data_description),
                seeded_values=[to_fixed(v) for v in fc.seeded_values],
                next_earliest_update=next_update,
                now=now,
                data_description=fc.data_description or fc.name,
            )

        for oc in config.oracles:
            pipeline.oracles[oc.name] = pipeline._build_oracle(oc)

        for tc in config.confirmation_triggers:
            pipeline.confirmation_triggers[tc.name] = ConfirmationTrigger(
                signal_source=pipeline.reader(tc.signal),
                reference_source=pipeline.reader(tc.reference),
                confirmation_min_time=tc.confirmation_min_time,
                confirmation_max_time=tc.confirmation_max_time,
                initial_state=tc.initial_state,
                name=tc.name,
            )

        for xc in config.crossover_triggers:
            pipeline.crossover_triggers[xc.name] = CrossoverTrigger(
                signal_source=pipeline.reader(xc.signal),
                reference_source=pipeline.reader(xc.reference),
                name=xc.name,
            )

        for bc in config.band_triggers:
            pipeline.band_triggers[bc.name] = BandTrigger(
                oscillator=pipeline.reader(bc.oscillator),
                lower_bound=bc.lower_bound,
                upper_bound=bc.upper_bound,
                initial_allocation=bc.initial_allocation,
                name=bc.name,
            )

        log.info(
            f"Pipeline built: {len(pipeline.feeds)} feeds, {len(pipeline.oracles)} oracles, "
            f"{len(pipeline.confirmation_triggers) + len(pipeline.crossover_triggers) + len(pipeline.band_triggers)} triggers"
        )
        return pipeline

    def _build_data_source(self, dc: DataSourceConfig, description: str) -> LinearizedDataSource:
        upstream = self.upstream(dc.upstream)
        if dc.kind == "linearized_ema":
            return LinearizedEMADataSource(upstream, dc.ema_period, dc.interpolation_threshold, description)
        if dc.kind == "two_asset_linearized":
            return TwoAssetLinearizedDataSource(
                upstream, self.upstream(dc.quote_upstream), dc.interpolation_threshold, description
            )
        return LinearizedPriceDataSource(upstream, dc.interpolation_threshold, description)

    def _build_oracle(self, oc) -> DerivedOracle:
        if oc.kind == OracleKind.LAST_VALUE:
            return DerivedOracle.last_value(self.feed(oc.feed), oc.data_description)
        if oc.kind == OracleKind.MOVING_AVERAGE:
            return DerivedOracle.moving_average(self.feed(oc.feed), oc.data_points, oc.data_description)
        if oc.kind == OracleKind.RSI:
            return DerivedOracle.rsi(self.feed(oc.feed), oc.data_points, oc.data_description)
        if oc.kind == OracleKind.RATIO:
            return DerivedOracle.ratio(self.reader(oc.base), self.reader(oc.quote), oc.data_description)
        return DerivedOracle.token_exchange_rate(
            self.reader(oc.base),
            self.exchange_rates[oc.exchange_rate],
            oc.token_full_unit,
            oc.underlying_full_unit,
            oc.data_description,
        )

    # --- lookups ---

    def upstream(self, name: str) -> Upstream:
        try:
            return self.upstreams[name]
        except KeyError:
            raise UnknownComponent(f"unknown upstream '{name}'") from None

    def feed(self, name: str) -> TimeSeriesStore:
        try:
            return self.feeds[name]
        except KeyError:
            raise UnknownComponent(f"unknown feed '{name}'") from None

    def oracle(self, name: str) -> DerivedOracle:
        try:
            return self.oracles[name]
        except KeyError:
            raise UnknownComponent(f"unknown oracle '{name}'") from None

    def reader(self, name: str) -> PriceReader:
        """Anything with ``read() -> int``: an oracle or an upstream price."""
        if name in self.oracles:
            return self.oracles[name]
        return self.upstream(name)

    def confirmation_trigger(self, name: str) -> ConfirmationTrigger:
        try:
            return self.confirmation_triggers[name]
        except KeyError:
            raise UnknownComponent(f"unknown confirmation trigger '{name}'") from None

    def crossover_trigger(self, name: str) -> CrossoverTrigger:
        try:
            return self.crossover_triggers[name]
        except KeyError:
            raise UnknownComponent(f"unknown crossover trigger '{name}'") from None

    def band_trigger(self, name: str) -> BandTrigger:
        try:
            return self.band_triggers[name]
        except KeyError:
            raise UnknownComponent(f"unknown band trigger '{name}'") from None

    def has_trigger(self, name: str) -> bool:
        return (
            name in self.confirmation_triggers
            or name in self.crossover_triggers
            or name in self.band_triggers
        )

    def is_bullish(self, name: str) -> bool:
        """Current decision of any trigger: confirmation, crossover or band."""
        if name in self.confirmation_triggers:
            return self.confirmation_triggers[name].is_bullish()
        if name in self.crossover_triggers:
            return self.crossover_triggers[name].is_bullish()
        return self.band_trigger(name).is_bullish()

    def price_feeds(self) -> Dict[str, PriceFeed]:
        return {name: up for name, up in self.upstreams.items() if isinstance(up, PriceFeed)}

    def poke_due(self, now: int) -> List[PricePoint]:
        """Poke every feed whose next slot has been reached, in declaration order."""
        recorded = []
        for store in self.feeds.values():
            if now >= store.next_earliest_update:
                recorded.append(store.poke(now))
        return recorded
