"""Tests for history reconstruction."""

from datetime import date, timedelta

import numpy as np
import pandas as pd
import pytest

from index_mcp.data.history import (
    DAILY_VOLATILITY,
    MOVING_AVERAGE_WINDOW,
    history_to_csv,
    history_to_frame,
    reconstruct_history,
)

END = date(2024, 6, 14)


class TestReconstructHistory:
    """Tests for reconstruct_history function."""

    def test_length(self):
        """Returns exactly the requested number of points."""
        assert len(reconstruct_history(24873.85, 34.0, 90, end_date=END, seed=1)) == 90

    def test_ends_at_anchor(self):
        """Last point carries the anchor price and ratio exactly."""
        points = reconstruct_history(24873.85, 34.0, 90, end_date=END, seed=1)
        assert points[-1].price == 24873.85
        assert points[-1].ratio == 34.0
        assert points[-1].date == END

    def test_dates_strictly_increasing_daily(self):
        """Dates ascend one calendar day at a time."""
        points = reconstruct_history(100.0, 20.0, 30, end_date=END, seed=3)
        assert points[0].date == END - timedelta(days=29)
        for prev, cur in zip(points, points[1:]):
            assert cur.date - prev.date == timedelta(days=1)

    def test_single_point(self):
        """Length 1 is just the anchor."""
        points = reconstruct_history(24500.0, 30.0, 1, end_date=END, seed=1)
        assert len(points) == 1
        assert points[0].price == 24500.0
        assert points[0].ratio == 30.0

    @pytest.mark.parametrize("length", [0, -1])
    def test_rejects_non_positive_length(self, length):
        """Length below 1 is an error."""
        with pytest.raises(ValueError, match="length must be >= 1"):
            reconstruct_history(100.0, 20.0, length)

    def test_seed_reproducible(self):
        """Same seed, same series."""
        a = reconstruct_history(24873.85, 34.0, 50, end_date=END, seed=42)
        b = reconstruct_history(24873.85, 34.0, 50, end_date=END, seed=42)
        assert a == b

    def test_different_seeds_differ(self):
        """Different seeds give different walks."""
        a = reconstruct_history(24873.85, 34.0, 50, end_date=END, seed=1)
        b = reconstruct_history(24873.85, 34.0, 50, end_date=END, seed=2)
        assert [p.price for p in a] != [p.price for p in b]

    def test_rng_takes_precedence_over_seed(self):
        """An injected generator is used instead of the seed."""
        a = reconstruct_history(100.0, 20.0, 20, end_date=END, rng=np.random.default_rng(5), seed=99)
        b = reconstruct_history(100.0, 20.0, 20, end_date=END, rng=np.random.default_rng(5))
        assert a == b

    def test_daily_steps_bounded(self):
        """Each backward step moves at most DAILY_VOLATILITY of the later price (plus rounding)."""
        points = reconstruct_history(24873.85, 34.0, 200, end_date=END, seed=11)
        for earlier, later in zip(points, points[1:]):
            assert abs(later.price - earlier.price) <= later.price * DAILY_VOLATILITY + 0.01

    def test_ratio_tracks_price(self):
        """Ratio stays within the noise band of price-proportional scaling."""
        anchor_price, anchor_ratio = 24873.85, 34.0
        points = reconstruct_history(anchor_price, anchor_ratio, 100, end_date=END, seed=4)
        for p in points[:-1]:
            scaled = p.price / anchor_price * anchor_ratio
            assert abs(p.ratio - scaled) <= 0.5 + 0.02

    def test_zero_anchor_price(self):
        """A zero anchor does not divide by zero."""
        points = reconstruct_history(0.0, 30.0, 10, end_date=END, seed=1)
        assert len(points) == 10
        assert points[-1].price == 0.0
        assert all(29.5 - 0.01 <= p.ratio <= 30.5 + 0.01 for p in points)

    def test_defaults_to_today(self):
        """end_date defaults to today."""
        points = reconstruct_history(100.0, 20.0, 3, seed=1)
        assert points[-1].date == date.today()


class TestHistorySerialization:
    """Tests for history_to_frame and history_to_csv."""

    def test_frame_columns(self):
        """Frame has date, price, ratio, ma10 columns with datetime dates."""
        points = reconstruct_history(100.0, 20.0, 5, end_date=END, seed=1)
        df = history_to_frame(points)
        assert list(df.columns) == ["date", "price", "ratio", "ma10"]
        assert len(df) == 5
        assert pd.api.types.is_datetime64_any_dtype(df["date"])

    def test_csv_format(self):
        """CSV has a header, ISO dates and two-decimal floats."""
        points = reconstruct_history(24500.0, 30.0, 3, end_date=END, seed=1)
        lines = history_to_csv(points).strip().splitlines()
        assert lines[0] == "date,price,ratio,ma10"
        assert len(lines) == 4
        assert lines[-1].startswith("2024-06-14,24500.00,30.00,")

    def test_moving_average_first_row_is_price(self):
        """The first average covers a single point."""
        points = reconstruct_history(24500.0, 30.0, 20, end_date=END, seed=3)
        df = history_to_frame(points)
        assert df["ma10"].iloc[0] == df["price"].iloc[0]

    def test_moving_average_warm_up(self):
        """Before the window fills, rows average every price so far."""
        points = reconstruct_history(24500.0, 30.0, 20, end_date=END, seed=3)
        df = history_to_frame(points)
        assert df["ma10"].iloc[4] == pytest.approx(df["price"].iloc[:5].mean())

    def test_moving_average_trailing_window(self):
        """Once full, each row averages the last ten prices."""
        points = reconstruct_history(24500.0, 30.0, 20, end_date=END, seed=3)
        df = history_to_frame(points)
        expected = df["price"].iloc[-MOVING_AVERAGE_WINDOW:].mean()
        assert MOVING_AVERAGE_WINDOW == 10
        assert df["ma10"].iloc[-1] == pytest.approx(expected)
        assert df["ma10"].notna().all()
