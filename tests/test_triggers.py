"""Tests for confirmation, crossover and band triggers."""

import pytest

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
from fixed_point import UNIT
from models import PricePoint
from oracles import DerivedOracle
from triggers import (
    BandTrigger,
    ConfirmationTrigger,
    CrossoverTrigger,
    FULL_ALLOCATION,
    ZERO_ALLOCATION,
    price_crossover,
    rsi_midline_cross_trigger,
    rsi_trending_trigger,
)
from time_series import TimeSeriesStore

HOUR = 60 * 60
DAY = 24 * HOUR
START = 1_000 * DAY
MIN_TIME = 6 * HOUR
MAX_TIME = 12 * HOUR


class Settable:
    """Price reader whose value the test moves by hand."""

    def __init__(self, value):
        self.value = value

    def read(self):
        return self.value


class NullSource:
    def read(self, store, now):
        return PricePoint(value=store.latest().value, timestamp=now)


def make_confirmation(reference=170 * UNIT, signal=160 * UNIT, initial_state=False):
    ref, sig = Settable(reference), Settable(signal)
    trigger = ConfirmationTrigger(sig, ref, MIN_TIME, MAX_TIME, initial_state, name="ETH MA crossover")
    return trigger, ref, sig


# --- crossover predicate ---

def test_price_crossover_direction():
    assert price_crossover(2, 1) is True
    assert price_crossover(1, 2) is False
    assert price_crossover(1, 1) is None


def test_crossover_trigger_is_stateless():
    ref, sig = Settable(2 * UNIT), Settable(UNIT)
    trigger = CrossoverTrigger(sig, ref)
    assert trigger.is_bullish()
    ref.value = UNIT // 2
    assert not trigger.is_bullish()
    ref.value = UNIT
    assert not trigger.is_bullish()


# --- confirmation trigger ---

def test_confirmation_rejects_inverted_window():
    with pytest.raises(InvalidConfiguration):
        ConfirmationTrigger(Settable(1), Settable(1), MAX_TIME, MIN_TIME, False)


def test_confirmation_inside_window_flips_state():
    trigger, _, _ = make_confirmation()

    trigger.initial_trigger(START)
    assert trigger.pending_direction is True
    assert trigger.last_initial_trigger_timestamp == START
    assert not trigger.is_bullish()

    trigger.confirm_trigger(START + 8 * HOUR)
    assert trigger.is_bullish()
    assert trigger.pending_direction is None


@pytest.mark.parametrize("delay", [MIN_TIME, MAX_TIME])
def test_confirmation_window_bounds_are_inclusive(delay):
    trigger, _, _ = make_confirmation()
    trigger.initial_trigger(START)
    trigger.confirm_trigger(START + delay)
    assert trigger.is_bullish()


@pytest.mark.parametrize("delay", [0, MIN_TIME - 1, MAX_TIME + 1])
def test_confirmation_outside_window_fails_without_effect(delay):
    trigger, _, _ = make_confirmation()
    trigger.initial_trigger(START)

    with pytest.raises(WindowNotOpen):
        trigger.confirm_trigger(START + delay)

    assert not trigger.is_bullish()
    assert trigger.pending_direction is True


def test_confirm_without_armed_crossover_fails():
    trigger, _, _ = make_confirmation()
    with pytest.raises(WindowNotOpen):
        trigger.confirm_trigger(START)


def test_reversed_crossover_fails_and_keeps_state():
    trigger, ref, _ = make_confirmation()
    trigger.initial_trigger(START)
    ref.value = 150 * UNIT

    with pytest.raises(CrossoverReversed):
        trigger.confirm_trigger(START + 8 * HOUR)
    assert not trigger.is_bullish()


def test_crossover_collapsing_to_equality_counts_as_reversed():
    trigger, ref, sig = make_confirmation()
    trigger.initial_trigger(START)
    ref.value = sig.value
    with pytest.raises(CrossoverReversed):
        trigger.confirm_trigger(START + 8 * HOUR)


def test_initial_trigger_without_crossover_fails():
    # already bullish and reference still above signal
    trigger, _, _ = make_confirmation(initial_state=True)
    with pytest.raises(NoCrossoverDetected):
        trigger.initial_trigger(START)
    assert trigger.last_initial_trigger_timestamp == 0

    trigger, _, _ = make_confirmation(reference=UNIT, signal=UNIT)
    with pytest.raises(NoCrossoverDetected):
        trigger.initial_trigger(START)


def test_initial_trigger_rate_limited_by_min_time():
    trigger, _, _ = make_confirmation()
    trigger.initial_trigger(START)

    with pytest.raises(NotEnoughTimePassed):
        trigger.initial_trigger(START + MIN_TIME - 1)
    assert trigger.last_initial_trigger_timestamp == START

    # re-arming after the window lapsed restarts the clock
    trigger.initial_trigger(START + DAY)
    assert trigger.last_initial_trigger_timestamp == START + DAY


def test_bullish_then_bearish_cycle():
    trigger, ref, _ = make_confirmation()
    trigger.initial_trigger(START)
    trigger.confirm_trigger(START + MIN_TIME)
    assert trigger.is_bullish()

    ref.value = 140 * UNIT
    trigger.initial_trigger(START + DAY)
    assert trigger.pending_direction is False
    trigger.confirm_trigger(START + DAY + MAX_TIME)
    assert not trigger.is_bullish()


def test_confirmation_accepts_custom_crossover():
    def inverted(reference, signal):
        return price_crossover(signal, reference)

    ref, sig = Settable(UNIT), Settable(2 * UNIT)
    trigger = ConfirmationTrigger(sig, ref, MIN_TIME, MAX_TIME, False, crossover=inverted)
    trigger.initial_trigger(START)
    trigger.confirm_trigger(START + MIN_TIME)
    assert trigger.is_bullish()


def test_can_initial_trigger_mirrors_initial_trigger_checks():
    trigger, ref, sig = make_confirmation()
    assert trigger.can_initial_trigger(START)

    # equal prices: no crossover
    ref.value = sig.value
    assert not trigger.can_initial_trigger(START)

    ref.value = 170 * UNIT
    trigger.initial_trigger(START)
    # too soon to re-arm, and nothing was mutated by asking
    assert not trigger.can_initial_trigger(START + MIN_TIME - 1)
    assert trigger.last_initial_trigger_timestamp == START
    assert trigger.pending_direction is True


def test_can_confirm_trigger_mirrors_confirm_trigger_checks():
    trigger, ref, _ = make_confirmation()
    assert not trigger.can_confirm_trigger(START)

    trigger.initial_trigger(START)
    assert not trigger.can_confirm_trigger(START + MIN_TIME - 1)
    assert trigger.can_confirm_trigger(START + MIN_TIME)
    assert trigger.can_confirm_trigger(START + MAX_TIME)
    assert not trigger.can_confirm_trigger(START + MAX_TIME + 1)

    ref.value = 150 * UNIT
    assert not trigger.can_confirm_trigger(START + MIN_TIME)
    assert not trigger.is_bullish()
    assert trigger.pending_direction is True


def test_trigger_flipped_index_counts_confirmed_flips():
    trigger, ref, _ = make_confirmation()
    assert trigger.trigger_flipped_index == 0

    trigger.initial_trigger(START)
    trigger.confirm_trigger(START + MIN_TIME)
    assert trigger.trigger_flipped_index == 1

    # a failed confirmation does not count
    ref.value = 140 * UNIT
    trigger.initial_trigger(START + DAY)
    ref.value = 170 * UNIT
    with pytest.raises(CrossoverReversed):
        trigger.confirm_trigger(START + DAY + MIN_TIME)
    assert trigger.trigger_flipped_index == 1

    ref.value = 140 * UNIT
    trigger.initial_trigger(START + 2 * DAY)
    trigger.confirm_trigger(START + 2 * DAY + MIN_TIME)
    assert trigger.trigger_flipped_index == 2
    assert not trigger.is_bullish()


# --- band triggers ---

def test_band_rejects_inverted_bounds():
    with pytest.raises(InvalidBounds):
        BandTrigger(Settable(50), 60, 40)


@pytest.mark.parametrize("initial", [1, 50, 99, -1])
def test_band_rejects_initial_allocation_outside_zero_or_hundred(initial):
    with pytest.raises(InvalidInitialAllocation):
        BandTrigger(Settable(50), 40, 60, initial)


def test_trending_trigger_requires_initial_allocation():
    with pytest.raises(InvalidInitialAllocation):
        rsi_trending_trigger(Settable(50), 40, 60, None)


def test_trending_trigger_is_hysteretic():
    rsi = Settable(70)
    trigger = rsi_trending_trigger(rsi, 40, 60, ZERO_ALLOCATION, name="ETH RSI trending")
    assert trigger.hysteretic

    sequence = [(70, 100), (50, 100), (30, 0), (50, 0), (60, 100), (40, 0)]
    for value, expected in sequence:
        rsi.value = value
        assert trigger.retrieve_base_asset_allocation() == expected
        assert trigger.current_trend_allocation == expected


def test_midline_trigger_refuses_inside_band():
    rsi = Settable(50)
    trigger = rsi_midline_cross_trigger(rsi, 40, 60)
    assert not trigger.hysteretic

    with pytest.raises(AmbiguousSignal):
        trigger.check_price_trigger()

    for value, expected in [(60, 100), (61, 100), (40, 0), (0, 0)]:
        rsi.value = value
        assert trigger.check_price_trigger() == expected
        assert trigger.current_trend_allocation is None


def test_band_is_bullish():
    rsi = Settable(80)
    trigger = BandTrigger(rsi, 40, 60, FULL_ALLOCATION)
    assert trigger.is_bullish()
    rsi.value = 10
    assert not trigger.is_bullish()


# --- end to end through a store and an RSI oracle ---

def rsi_of(closes):
    store = TimeSeriesStore(DAY, 200, NullSource(), [c * UNIT for c in closes], START + DAY, START)
    return DerivedOracle.rsi(store, 14, "ETHRSI14")


@pytest.mark.parametrize("initial", [ZERO_ALLOCATION, FULL_ALLOCATION])
def test_rising_closes_drive_trending_trigger_to_full(initial):
    rsi = rsi_of(range(100, 115))
    trigger = rsi_trending_trigger(rsi, 40, 60, initial)
    assert trigger.retrieve_base_asset_allocation() == FULL_ALLOCATION


def test_alternating_closes_sit_inside_band():
    closes = [170 if i % 2 == 0 else 150 for i in range(15)]
    rsi = rsi_of(closes)

    with pytest.raises(AmbiguousSignal):
        rsi_midline_cross_trigger(rsi, 40, 60).check_price_trigger()
    assert rsi_trending_trigger(rsi, 40, 60, FULL_ALLOCATION).retrieve_base_asset_allocation() == FULL_ALLOCATION
    assert rsi_trending_trigger(rsi, 40, 60, ZERO_ALLOCATION).retrieve_base_asset_allocation() == ZERO_ALLOCATION


def test_ma_crossover_confirmed_over_store():
    closes = [(150 + i) * UNIT for i in range(20)]
    store = TimeSeriesStore(DAY, 200, NullSource(), closes, START + DAY, START)
    ma = DerivedOracle.moving_average(store, 20)
    spot = Settable(170 * UNIT)

    trigger = ConfirmationTrigger(ma, spot, MIN_TIME, MAX_TIME, False)
    trigger.initial_trigger(START)
    trigger.confirm_trigger(START + MIN_TIME)
    assert trigger.is_bullish()
