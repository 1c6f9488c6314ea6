# config.py
"""Pipeline configuration.

A pipeline is described by named components: upstream prices, exchange rates,
time series feeds (each with its data source), derived oracles and triggers.
Components reference each other by name; the validators below reject dangling
references and bad bounds before anything is built.

Prices are written as decimals (``150``, ``"0.015"``) and converted to fixed
point at build time. Durations are integer seconds.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path
from typing import List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, PositiveInt, ValidationError, model_validator

from errors import InvalidConfiguration
from fixed_point import UNIT
from oracles import OracleKind

log = logging.getLogger(__name__)

CONFIG_ENV_VAR = "ORACLE_PIPELINE_CONFIG"

ONE_HOUR = 60 * 60
ONE_DAY = 24 * ONE_HOUR


class UpstreamConfig(BaseModel):
    name: str
    kind: Literal["feed", "constant"] = "feed"
    # initial value for a feed, fixed value for a constant
    price: Optional[Decimal] = None
    # scale the feed is poked in (10**6 for a USDC-style quote); reads are rescaled to UNIT
    full_unit: PositiveInt = UNIT

    @model_validator(mode="after")
    def _constant_has_price(self) -> "UpstreamConfig":
        if self.kind == "constant" and not self.price:
            raise ValueError(f"constant upstream '{self.name}' needs a positive price")
        return self


class ExchangeRateConfig(BaseModel):
    name: str
    rate: PositiveInt


class DataSourceConfig(BaseModel):
    kind: Literal["linearized_price", "linearized_ema", "two_asset_linearized"] = "linearized_price"
    upstream: str
    quote_upstream: Optional[str] = None
    interpolation_threshold: int = Field(default=6 * ONE_HOUR, ge=0)
    ema_period: Optional[PositiveInt] = None

    @model_validator(mode="after")
    def _kind_parameters(self) -> "DataSourceConfig":
        if self.kind == "two_asset_linearized" and not self.quote_upstream:
            raise ValueError("two_asset_linearized needs quote_upstream")
        if self.kind == "linearized_ema" and not self.ema_period:
            raise ValueError("linearized_ema needs ema_period")
        return self


class FeedConfig(BaseModel):
    name: str
    data_description: str = ""
    update_interval: PositiveInt = ONE_DAY
    max_data_points: PositiveInt = 200
    seeded_values: List[Decimal] = Field(min_length=1)
    # None: first update is due one interval after the pipeline is built
    next_earliest_update: Optional[int] = None
    data_source: DataSourceConfig

    @model_validator(mode="after")
    def _seeds_fit(self) -> "FeedConfig":
        if len(self.seeded_values) > self.max_data_points:
            raise ValueError(f"feed '{self.name}': more seeded_values than max_data_points")
        return self


class OracleConfig(BaseModel):
    name: str
    kind: OracleKind
    data_description: str = ""
    feed: Optional[str] = None
    data_points: Optional[PositiveInt] = None
    base: Optional[str] = None
    quote: Optional[str] = None
    exchange_rate: Optional[str] = None
    token_full_unit: Optional[PositiveInt] = None
    underlying_full_unit: Optional[PositiveInt] = None

    @model_validator(mode="after")
    def _kind_parameters(self) -> "OracleConfig":
        required = {
            OracleKind.LAST_VALUE: ("feed",),
            OracleKind.MOVING_AVERAGE: ("feed", "data_points"),
            OracleKind.RSI: ("feed", "data_points"),
            OracleKind.RATIO: ("base", "quote"),
            OracleKind.TOKEN_EXCHANGE_RATE: ("base", "exchange_rate", "token_full_unit", "underlying_full_unit"),
        }[self.kind]
        missing = [f for f in required if getattr(self, f) is None]
        if missing:
            raise ValueError(f"oracle '{self.name}' ({self.kind.value}) is missing {', '.join(missing)}")
        return self


class ConfirmationTriggerConfig(BaseModel):
    name: str
    signal: str
    reference: str
    confirmation_min_time: int = Field(default=6 * ONE_HOUR, ge=0)
    confirmation_max_time: int = Field(default=12 * ONE_HOUR, ge=0)
    initial_state: bool = False

    @model_validator(mode="after")
    def _window(self) -> "ConfirmationTriggerConfig":
        if self.confirmation_min_time > self.confirmation_max_time:
            raise ValueError(f"trigger '{self.name}': confirmation_min_time > confirmation_max_time")
        return self


class CrossoverTriggerConfig(BaseModel):
    name: str
    signal: str
    reference: str


class BandTriggerConfig(BaseModel):
    name: str
    oscillator: str
    lower_bound: int = Field(ge=0, le=100)
    upper_bound: int = Field(ge=0, le=100)
    # None builds a strict (memoryless) trigger
    initial_allocation: Optional[Literal[0, 100]] = None

    @model_validator(mode="after")
    def _bounds(self) -> "BandTriggerConfig":
        if self.lower_bound > self.upper_bound:
            raise ValueError(f"trigger '{self.name}': lower_bound > upper_bound")
        return self


class StreamConfig(BaseModel):
    enabled: bool = True
    interval_ms: PositiveInt = 50
    jitter: float = Field(default=0.08, ge=0)
    # poke every due feed after each tick
    auto_poke: bool = True


class PipelineConfig(BaseModel):
    upstreams: List[UpstreamConfig] = Field(default_factory=list)
    exchange_rates: List[ExchangeRateConfig] = Field(default_factory=list)
    feeds: List[FeedConfig] = Field(default_factory=list)
    oracles: List[OracleConfig] = Field(default_factory=list)
    confirmation_triggers: List[ConfirmationTriggerConfig] = Field(default_factory=list)
    crossover_triggers: List[CrossoverTriggerConfig] = Field(default_factory=list)
    band_triggers: List[BandTriggerConfig] = Field(default_factory=list)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _references(self) -> "PipelineConfig":
        names: List[str] = [
            c.name
            for group in (
                self.upstreams, self.exchange_rates, self.feeds,
                self.oracles, self.confirmation_triggers, self.crossover_triggers,
                self.band_triggers,
            )
            for c in group
        ]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate component names: {', '.join(duplicates)}")

        upstreams = {u.name for u in self.upstreams}
        feeds = {f.name for f in self.feeds}
        rates = {r.name for r in self.exchange_rates}

        def _need(name: Optional[str], known: set, owner: str) -> None:
            if name is not None and name not in known:
                raise ValueError(f"{owner} references unknown component '{name}'")

        for feed in self.feeds:
            _need(feed.data_source.upstream, upstreams, f"feed '{feed.name}'")
            _need(feed.data_source.quote_upstream, upstreams, f"feed '{feed.name}'")

        # oracles may only read upstreams or oracles declared before them
        readers = set(upstreams)
        for oracle in self.oracles:
            _need(oracle.feed, feeds, f"oracle '{oracle.name}'")
            _need(oracle.base, readers, f"oracle '{oracle.name}'")
            _need(oracle.quote, readers, f"oracle '{oracle.name}'")
            _need(oracle.exchange_rate, rates, f"oracle '{oracle.name}'")
            readers.add(oracle.name)

        for trigger in [*self.confirmation_triggers, *self.crossover_triggers]:
            _need(trigger.signal, readers, f"trigger '{trigger.name}'")
            _need(trigger.reference, readers, f"trigger '{trigger.name}'")
        for band in self.band_triggers:
            _need(band.oscillator, readers, f"trigger '{band.name}'")
        return self


def load_config(config_path: Union[str, Path]) -> PipelineConfig:
    path = Path(config_path)
    try:
        with path.open("r") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise InvalidConfiguration(f"{path}: invalid YAML: {e}") from e

    try:
        cfg = PipelineConfig.model_validate(raw)
    except ValidationError as e:
        raise InvalidConfiguration(f"{path}: {e}") from e
    log.info(f"Loaded pipeline config from {path}: {len(cfg.feeds)} feeds, {len(cfg.oracles)} oracles")
    return cfg


def default_config() -> PipelineConfig:
    """ETH daily pipeline: 20-day MA crossover (confirmed and raw) plus RSI(14) band triggers."""
    return PipelineConfig(
        upstreams=[UpstreamConfig(name="eth_usd", price=Decimal(150))],
        feeds=[
            FeedConfig(
                name="eth_daily",
                data_description="200DailyETHPrice",
                seeded_values=[Decimal(150 + i) for i in range(20)],
                data_source=DataSourceConfig(upstream="eth_usd", interpolation_threshold=6 * ONE_HOUR),
            )
        ],
        oracles=[
            OracleConfig(name="eth_last", kind=OracleKind.LAST_VALUE, feed="eth_daily", data_description="ETHDailyPrice"),
            OracleConfig(name="eth_ma20", kind=OracleKind.MOVING_AVERAGE, feed="eth_daily", data_points=20, data_description="ETH20dayMA"),
            OracleConfig(name="eth_rsi14", kind=OracleKind.RSI, feed="eth_daily", data_points=14, data_description="ETHDailyRSI"),
        ],
        confirmation_triggers=[
            ConfirmationTriggerConfig(name="eth_ma_crossover", signal="eth_ma20", reference="eth_usd"),
        ],
        crossover_triggers=[
            CrossoverTriggerConfig(name="eth_spot_above_ma20", signal="eth_ma20", reference="eth_usd"),
        ],
        band_triggers=[
            BandTriggerConfig(name="eth_rsi_trending", oscillator="eth_rsi14", lower_bound=40, upper_bound=60, initial_allocation=0),
            BandTriggerConfig(name="eth_rsi_midline", oscillator="eth_rsi14", lower_bound=40, upper_bound=60),
        ],
    )
