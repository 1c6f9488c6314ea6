"""Replay tests: daily closes driven through the default ETH pipeline."""

import csv
from datetime import datetime, timedelta, timezone

import pytest

from backtest_runner import read_ohlcv_csv, replay
from errors import UnknownComponent

DAY = 24 * 60 * 60
T0 = datetime.fromtimestamp(1_000 * DAY, tz=timezone.utc)


def bars(closes):
    return [(T0 + timedelta(days=i), close) for i, close in enumerate(closes)]


def test_crossover_goes_long_then_flat():
    runner = replay(bars([180.0, 100.0, 100.0]))

    ma_changes = [c.allocation for c in runner.changes if c.trigger == "eth_ma_crossover"]
    assert ma_changes == [100, 0]
    assert runner.changes[0].trigger == "eth_ma_crossover"
    assert runner.changes[0].timestamp == T0
    assert runner.allocation == 0

    # long over the 180 -> 100 bar, flat afterwards
    assert len(runner.equity_curve) == 3
    assert runner.total_return() == pytest.approx(100.0 / 180.0 - 1.0)
    assert runner.max_drawdown() == pytest.approx(1.0 - 100.0 / 180.0)
    assert runner.exposure() == pytest.approx(0.5)
    assert [p.allocation for p in runner.equity_curve] == [100, 0, 0]


def test_rsi_band_triggers_follow_the_drop():
    runner = replay(bars([180.0, 100.0]), decision_trigger="eth_rsi_trending")

    trending = [c.allocation for c in runner.changes if c.trigger == "eth_rsi_trending"]
    assert trending == [100, 0]
    assert runner.allocation == 0


def test_stateless_crossover_can_drive_the_allocation():
    runner = replay(bars([180.0, 100.0, 100.0]), decision_trigger="eth_spot_above_ma20")

    spot_changes = [c.allocation for c in runner.changes if c.trigger == "eth_spot_above_ma20"]
    assert spot_changes == [100, 0]
    assert runner.allocation == 0
    assert runner.total_return() == pytest.approx(100.0 / 180.0 - 1.0)


def test_flat_replay_has_no_exposure_or_sharpe():
    # spot stays below the 20 day average, so the allocation never leaves cash
    runner = replay(bars([150.0, 140.0, 130.0]))

    assert runner.changes[0].allocation == 0
    assert runner.exposure() == 0.0
    assert runner.total_return() == 0.0
    assert runner.daily_sharpe() == 0.0


def test_unknown_decision_trigger_rejected():
    with pytest.raises(UnknownComponent):
        replay(bars([150.0]), decision_trigger="nope")


def test_empty_replay_rejected():
    with pytest.raises(ValueError):
        replay([])


def test_equity_curve_written(tmp_path):
    runner = replay(bars([180.0, 190.0]))
    path = tmp_path / "equity.csv"
    runner.save_equity_curve(str(path))

    with open(path, newline="") as f:
        rows = list(csv.reader(f))
    assert rows[0] == ["timestamp", "close", "allocation", "equity"]
    assert len(rows) == 3
    assert rows[1][1:3] == ["180.0", "100"]
    assert float(rows[2][3]) == pytest.approx(190.0 / 180.0)


def test_read_ohlcv_csv_sorts_and_skips_bad_rows(tmp_path):
    path = tmp_path / "ohlcv.csv"
    path.write_text(
        "timestamp,open,high,low,close,volume\n"
        "2024-01-02T00:00:00Z,1,1,1,101.5,10\n"
        "not-a-time,1,1,1,99,10\n"
        "1704067200,1,1,1,100.0,10\n"
    )

    rows = read_ohlcv_csv(str(path))

    assert [close for _, close in rows] == [100.0, 101.5]
    assert rows[0][0] == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert rows[1][0] == datetime(2024, 1, 2, tzinfo=timezone.utc)


def test_read_ohlcv_csv_without_header(tmp_path):
    path = tmp_path / "ohlcv.csv"
    path.write_text("1704067200,1,1,1,100.0,10\n1704153600,1,1,1,102.0,10\n")

    rows = read_ohlcv_csv(str(path))

    assert [close for _, close in rows] == [100.0, 102.0]


def test_missing_csv_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_ohlcv_csv(str(tmp_path / "missing.csv"))
