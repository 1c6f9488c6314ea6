# backtest_runner.py
"""
Deterministic replay of daily closes through an oracle pipeline.

Behavior:
- Clock: logical, taken from the CSV timestamps; no wall clock is read.
- Each bar publishes its close to one upstream price feed, then pokes every
  store whose update slot has come due (late pokes are linearized exactly as
  in production).
- Band and crossover triggers are evaluated on every bar.
- Confirmation triggers are armed on the bar and confirmed
  ``confirmation_min_time`` seconds later at the same close.
- The decision of one chosen trigger drives a 0/100 allocation between the
  asset and cash.
- Outputs:
  * Allocation changes (stdout)
  * Total return, Max Drawdown, exposure, Daily Sharpe Ratio (stdout)
  * Equity Curve CSV (close, allocation held, equity) written to equity_curve.csv
"""

from __future__ import annotations

import argparse
import csv
import logging
import math
import os
import statistics
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from config import PipelineConfig, default_config, load_config
from errors import (
    AmbiguousSignal,
    CrossoverReversed,
    InsufficientHistory,
    NoCrossoverDetected,
    NotEnoughTimePassed,
    UnknownComponent,
    WindowNotOpen,
)
from fixed_point import to_fixed
from logging_setup import setup_colored_logging
from pipeline import Pipeline
from triggers import BandTrigger, ConfirmationTrigger, CrossoverTrigger, FULL_ALLOCATION, ZERO_ALLOCATION

log = logging.getLogger(__name__)


@dataclass
class AllocationChange:
    timestamp: datetime
    trigger: str
    allocation: int  # 0 or 100
    price: float


@dataclass
class EquityPoint:
    timestamp: datetime
    close: float
    allocation: int  # held from this bar into the next
    equity: float


class AllocationReplay:
    def __init__(self, pipeline: Pipeline, upstream: str, decision_trigger: str) -> None:
        if not pipeline.has_trigger(decision_trigger):
            raise UnknownComponent(f"unknown trigger '{decision_trigger}'")
        self.pipeline = pipeline
        self.upstream = pipeline.upstream(upstream)
        self.upstream_name = upstream
        self.decision_trigger = decision_trigger

        self.allocation: int = ZERO_ALLOCATION
        self.equity: float = 1.0
        self.equity_curve: List[EquityPoint] = []
        self.returns: List[float] = []  # strategy return per bar, one bar per day
        self.changes: List[AllocationChange] = []
        self._last_close: Optional[float] = None
        self._decisions: Dict[str, int] = {}

    def _step_confirmation(self, trigger: ConfirmationTrigger, now: int) -> int:
        try:
            trigger.initial_trigger(now)
            trigger.confirm_trigger(now + trigger.confirmation_min_time)
        except (NoCrossoverDetected, NotEnoughTimePassed, InsufficientHistory, CrossoverReversed, WindowNotOpen):
            pass
        return FULL_ALLOCATION if trigger.is_bullish() else ZERO_ALLOCATION

    def _step_crossover(self, trigger: CrossoverTrigger) -> Optional[int]:
        try:
            return FULL_ALLOCATION if trigger.is_bullish() else ZERO_ALLOCATION
        except InsufficientHistory:
            return None

    def _step_band(self, trigger: BandTrigger) -> Optional[int]:
        try:
            return trigger.retrieve_base_asset_allocation()
        except (AmbiguousSignal, InsufficientHistory):
            return None

    def _record(self, ts: datetime, name: str, allocation: Optional[int], close: float) -> None:
        if allocation is None or self._decisions.get(name) == allocation:
            return
        self._decisions[name] = allocation
        self.changes.append(AllocationChange(ts, name, allocation, close))
        log.debug(f"{ts.isoformat()} {name} -> {allocation}")

    def on_bar(self, ts: datetime, close: float) -> None:
        # The allocation chosen on the previous bar earns this bar's move
        if self._last_close is not None:
            bar_return = (self.allocation / FULL_ALLOCATION) * (close / self._last_close - 1.0)
            self.returns.append(bar_return)
            self.equity *= 1.0 + bar_return

        now = int(ts.timestamp())
        self.upstream.poke(to_fixed(close, self.upstream.unit), now)
        self.pipeline.poke_due(now)

        for name, trigger in self.pipeline.confirmation_triggers.items():
            self._record(ts, name, self._step_confirmation(trigger, now), close)
        for name, crossover in self.pipeline.crossover_triggers.items():
            self._record(ts, name, self._step_crossover(crossover), close)
        for name, band in self.pipeline.band_triggers.items():
            self._record(ts, name, self._step_band(band), close)

        self.allocation = self._decisions.get(self.decision_trigger, self.allocation)
        self.equity_curve.append(EquityPoint(ts, close, self.allocation, self.equity))
        self._last_close = close

    # --- Metrics ---
    def total_return(self) -> float:
        return self.equity - 1.0

    def max_drawdown(self) -> float:
        """Largest fall from a running equity peak, as a fraction of that peak."""
        peak, worst = 1.0, 0.0
        for point in self.equity_curve:
            peak = max(peak, point.equity)
            worst = max(worst, 1.0 - point.equity / peak)
        return worst

    def exposure(self) -> float:
        """Share of bar returns earned while fully allocated."""
        held = [p.allocation for p in self.equity_curve[:-1]]
        if not held:
            return 0.0
        return sum(1 for a in held if a == FULL_ALLOCATION) / len(held)

    def daily_sharpe(self) -> float:
        if len(self.returns) < 2:
            return 0.0
        std = statistics.stdev(self.returns)
        if std == 0:
            return 0.0
        # Annualize with sqrt(365): crypto trades every day
        return statistics.mean(self.returns) / std * math.sqrt(365)

    def save_equity_curve(self, path: str = "equity_curve.csv") -> None:
        with open(path, "w", newline="") as f:
            w = csv.writer(f)
            w.writerow(["timestamp", "close", "allocation", "equity"])
            for p in self.equity_curve:
                w.writerow([p.timestamp.isoformat(), p.close, p.allocation, f"{p.equity:.8f}"])


# --- CSV ingestion ---

def read_ohlcv_csv(path: str) -> List[Tuple[datetime, float]]:
    """Read OHLCV CSV and return list of (timestamp, close) in ascending time order.

    Expected columns (header order flexible):
    - timestamp (or time, datetime): epoch seconds or ISO8601 string
    - close (other columns are ignored)
    Without a header the layout timestamp,open,high,low,close,volume is assumed.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(path)

    rows: List[Tuple[datetime, float]] = []
    with open(path, "r", newline="") as f:
        reader = csv.reader(f)
        header = next(reader, None)
        if header is None:
            return rows
        lower = [h.strip().lower() for h in header]
        if "close" in lower:
            ts_idx = next((i for i, h in enumerate(lower) if h in ("timestamp", "time", "datetime")), 0)
            close_idx = lower.index("close")
        else:
            # No header: the first line is data
            f.seek(0)
            reader = csv.reader(f)
            ts_idx, close_idx = 0, 4

        for row in reader:
            if not row:
                continue
            try:
                ts = _parse_timestamp(row[ts_idx])
                close = float(row[close_idx])
            except (ValueError, IndexError):
                log.warning(f"Skipping malformed row: {row}")
                continue
            rows.append((ts, close))

    rows.sort(key=lambda x: x[0])
    return rows


def _parse_timestamp(val: str) -> datetime:
    """Epoch seconds (integer or fractional) or ISO 8601; naive times are UTC."""
    val = val.strip()
    if val.replace(".", "", 1).isdigit():
        return datetime.fromtimestamp(float(val), tz=timezone.utc)
    parsed = datetime.fromisoformat(val.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# --- Runner ---

def replay(
    bars: List[Tuple[datetime, float]],
    config: Optional[PipelineConfig] = None,
    upstream: str = "eth_usd",
    decision_trigger: str = "eth_ma_crossover",
) -> AllocationReplay:
    if not bars:
        raise ValueError("no bars to replay")
    config = config or default_config()
    start = int(bars[0][0].timestamp())
    pipeline = Pipeline.from_config(config, start)
    runner = AllocationReplay(pipeline, upstream, decision_trigger)
    for ts, close in bars:
        runner.on_bar(ts, close)
    return runner


def run_backtest(
    csv_path: str = "ohlcv.csv",
    config_path: Optional[str] = None,
    upstream: str = "eth_usd",
    decision_trigger: str = "eth_ma_crossover",
    equity_path: str = "equity_curve.csv",
) -> AllocationReplay:
    config = load_config(config_path) if config_path else default_config()
    runner = replay(read_ohlcv_csv(csv_path), config, upstream, decision_trigger)
    runner.save_equity_curve(equity_path)

    print("==== Allocation changes ====")
    for c in runner.changes:
        print(f"{c.timestamp.isoformat()}\t{c.trigger}\tallocation={c.allocation}\tprice={c.price:.6f}")

    print("\n==== Summary ====")
    print(f"Decision trigger: {decision_trigger}")
    print(f"Total return: {runner.total_return():.6%}")
    print(f"Max Drawdown: {runner.max_drawdown():.6%}")
    print(f"Exposure: {runner.exposure():.2%}")
    print(f"Daily Sharpe Ratio: {runner.daily_sharpe():.6f}")
    print(f"Equity curve written to {equity_path}")
    return runner


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Replay daily closes through an oracle pipeline")
    parser.add_argument("csv_path", nargs="?", default="ohlcv.csv")
    parser.add_argument("--config", dest="config_path", default=None)
    parser.add_argument("--upstream", default="eth_usd")
    parser.add_argument("--trigger", dest="decision_trigger", default="eth_ma_crossover")
    args = parser.parse_args()
    setup_colored_logging()
    run_backtest(args.csv_path, args.config_path, args.upstream, args.decision_trigger)
