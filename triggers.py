# triggers.py
"""Allocation decisions driven by oracle signals.

Two shapes cover every trigger:

- ``ConfirmationTrigger``: a crossover between a reference price and a signal
  (moving average) is armed by ``initial_trigger`` and only flips the confirmed
  state if it still holds inside the ``[min, max]`` confirmation window.
- ``BandTrigger``: an oscillator (RSI) is mapped straight to a 0/100
  allocation by a lower/upper band. With memory it holds its last decision
  inside the band; without memory it refuses to decide there.

``CrossoverTrigger`` is the unconfirmed, stateless comparison.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from errors import (
    AmbiguousSignal,
    CrossoverReversed,
    InvalidBounds,
    InvalidConfiguration,
    InvalidInitialAllocation,
    NoCrossoverDetected,
    NotEnoughTimePassed,
    WindowNotOpen,
)
from price_sources import PriceReader

log = logging.getLogger(__name__)

FULL_ALLOCATION = 100
ZERO_ALLOCATION = 0

# (reference, signal) -> True bullish, False bearish, None no direction
Crossover = Callable[[int, int], Optional[bool]]


def price_crossover(reference: int, signal: int) -> Optional[bool]:
    if reference > signal:
        return True
    if reference < signal:
        return False
    return None


def _label(direction: Optional[bool]) -> str:
    if direction is None:
        return "FLAT"
    return "BULLISH" if direction else "BEARISH"


class CrossoverTrigger:
    def __init__(
        self,
        signal_source: PriceReader,
        reference_source: PriceReader,
        crossover: Crossover = price_crossover,
        name: str = "",
    ) -> None:
        self.signal_source = signal_source
        self.reference_source = reference_source
        self.crossover = crossover
        self.name = name or "crossover trigger"

    def is_bullish(self) -> bool:
        return self.crossover(self.reference_source.read(), self.signal_source.read()) is True


class ConfirmationTrigger:
    """Two-phase crossover: arm with ``initial_trigger``, finalize with ``confirm_trigger``.

    ``can_initial_trigger`` / ``can_confirm_trigger`` run the same checks
    without mutating anything and answer False instead of raising.
    ``trigger_flipped_index`` counts confirmed flips.
    """

    def __init__(
        self,
        signal_source: PriceReader,
        reference_source: PriceReader,
        confirmation_min_time: int,
        confirmation_max_time: int,
        initial_state: bool,
        crossover: Crossover = price_crossover,
        name: str = "",
    ) -> None:
        if confirmation_min_time > confirmation_max_time:
            raise InvalidConfiguration("confirmation_min_time must be <= confirmation_max_time")
        self.signal_source = signal_source
        self.reference_source = reference_source
        self.confirmation_min_time = confirmation_min_time
        self.confirmation_max_time = confirmation_max_time
        self.crossover = crossover
        self.name = name or "confirmation trigger"

        self.last_confirmed_allocation: bool = initial_state
        self.last_initial_trigger_timestamp: int = 0
        self.pending_direction: Optional[bool] = None
        self.trigger_flipped_index: int = 0

    def _direction(self) -> Optional[bool]:
        return self.crossover(self.reference_source.read(), self.signal_source.read())

    def _check_initial(self, now: int) -> bool:
        elapsed = now - self.last_initial_trigger_timestamp
        if elapsed < self.confirmation_min_time:
            raise NotEnoughTimePassed(
                f"{self.name}: {elapsed}s since last initial trigger, need {self.confirmation_min_time}s"
            )

        direction = self._direction()
        if direction is None or direction == self.last_confirmed_allocation:
            raise NoCrossoverDetected(
                f"{self.name}: signal is {_label(direction)}, "
                f"confirmed state is {_label(self.last_confirmed_allocation)}"
            )
        return direction

    def _check_confirm(self, now: int) -> bool:
        elapsed = now - self.last_initial_trigger_timestamp
        if self.pending_direction is None or not (
            self.confirmation_min_time <= elapsed <= self.confirmation_max_time
        ):
            raise WindowNotOpen(
                f"{self.name}: {elapsed}s since initial trigger, window is "
                f"[{self.confirmation_min_time}, {self.confirmation_max_time}]"
            )

        direction = self._direction()
        if direction != self.pending_direction:
            raise CrossoverReversed(
                f"{self.name}: armed {_label(self.pending_direction)}, now {_label(direction)}"
            )
        return direction

    def can_initial_trigger(self, now: int) -> bool:
        try:
            self._check_initial(now)
        except (NotEnoughTimePassed, NoCrossoverDetected):
            return False
        return True

    def can_confirm_trigger(self, now: int) -> bool:
        try:
            self._check_confirm(now)
        except (WindowNotOpen, CrossoverReversed):
            return False
        return True

    def initial_trigger(self, now: int) -> None:
        direction = self._check_initial(now)
        self.last_initial_trigger_timestamp = now
        self.pending_direction = direction
        log.info(f"{self.name}: armed {_label(direction)} crossover at {now}")

    def confirm_trigger(self, now: int) -> None:
        direction = self._check_confirm(now)
        self.last_confirmed_allocation = direction
        self.pending_direction = None
        self.trigger_flipped_index += 1
        log.info(f"{self.name}: confirmed {_label(direction)} at {now} (flip #{self.trigger_flipped_index})")

    def is_bullish(self) -> bool:
        return self.last_confirmed_allocation


class BandTrigger:
    """Maps an oscillator in [0, 100] to a 0/100 allocation.

    ``initial_allocation`` set: hysteretic, the last decision is held inside the
    band and persisted. ``initial_allocation`` None: strict, a reading strictly
    inside the band raises ``AmbiguousSignal``.
    """

    def __init__(
        self,
        oscillator: PriceReader,
        lower_bound: int,
        upper_bound: int,
        initial_allocation: Optional[int] = None,
        name: str = "",
    ) -> None:
        if lower_bound > upper_bound:
            raise InvalidBounds(f"lower bound {lower_bound} above upper bound {upper_bound}")
        if initial_allocation not in (None, ZERO_ALLOCATION, FULL_ALLOCATION):
            raise InvalidInitialAllocation(f"initial allocation must be 0 or 100, got {initial_allocation}")
        self.oscillator = oscillator
        self.lower_bound = lower_bound
        self.upper_bound = upper_bound
        self.current_trend_allocation = initial_allocation
        self.name = name or "band trigger"

    @property
    def hysteretic(self) -> bool:
        return self.current_trend_allocation is not None

    def retrieve_base_asset_allocation(self) -> int:
        value = self.oscillator.read()
        if value >= self.upper_bound:
            allocation = FULL_ALLOCATION
        elif value <= self.lower_bound:
            allocation = ZERO_ALLOCATION
        elif self.current_trend_allocation is None:
            raise AmbiguousSignal(
                f"{self.name}: {value} inside ({self.lower_bound}, {self.upper_bound})"
            )
        else:
            allocation = self.current_trend_allocation

        if self.hysteretic and allocation != self.current_trend_allocation:
            log.info(f"{self.name}: allocation {self.current_trend_allocation} -> {allocation} (oscillator {value})")
            self.current_trend_allocation = allocation
        return allocation

    check_price_trigger = retrieve_base_asset_allocation

    def is_bullish(self) -> bool:
        return self.retrieve_base_asset_allocation() == FULL_ALLOCATION


def rsi_trending_trigger(
    rsi_oracle: PriceReader,
    lower_bound: int,
    upper_bound: int,
    initial_allocation: int,
    name: str = "",
) -> BandTrigger:
    if initial_allocation is None:
        raise InvalidInitialAllocation("a trending trigger needs an initial allocation of 0 or 100")
    return BandTrigger(rsi_oracle, lower_bound, upper_bound, initial_allocation, name=name)


def rsi_midline_cross_trigger(
    rsi_oracle: PriceReader,
    lower_bound: int,
    upper_bound: int,
    name: str = "",
) -> BandTrigger:
    return BandTrigger(rsi_oracle, lower_bound, upper_bound, None, name=name)
