"""Synthetic daily history anchored on the live reading.

There is no historical feed for the index, only a single live quote. The
chart still needs a series, so one is reconstructed by walking backward
from today's reading with a bounded random walk. The series always ends
exactly at the anchor.
"""

from datetime import date, timedelta

import numpy as np
import pandas as pd

from index_mcp.models import HistoryPoint

DEFAULT_HISTORY_LENGTH = 90

# Trailing window for the chart moving average
MOVING_AVERAGE_WINDOW = 10

# Daily volatility as a fraction of price
DAILY_VOLATILITY = 0.015

# Center of the uniform draw. Below 0.5 means backward steps are slightly
# negative on average, i.e. a mild upward drift when played forward.
DRIFT_CENTER = 0.48

# Half-width of the symmetric noise added to the ratio
RATIO_NOISE = 0.5


def reconstruct_history(
    anchor_price: float,
    anchor_ratio: float,
    length: int = DEFAULT_HISTORY_LENGTH,
    *,
    end_date: date | None = None,
    rng: np.random.Generator | None = None,
    seed: int | None = None,
) -> list[HistoryPoint]:
    """
    Reconstruct a daily price/ratio series ending at the anchor.

    Args:
        anchor_price: Live price; becomes the last point's price
        anchor_ratio: Live PE ratio; becomes the last point's ratio
        length: Number of daily points (>= 1)
        end_date: Date of the last point (default: today)
        rng: Random generator to draw from (takes precedence over seed)
        seed: Seed for a fresh generator; None means unseeded

    Returns:
        Points in ascending date order, one per calendar day

    Raises:
        ValueError: If length < 1
    """
    if length < 1:
        raise ValueError(f"length must be >= 1, got {length}")

    if rng is None:
        rng = np.random.default_rng(seed)
    if end_date is None:
        end_date = date.today()

    points: list[HistoryPoint] = []
    price = float(anchor_price)
    ratio = float(anchor_ratio)

    for i in range(length):
        # Record off the walking value so the first recorded point is the anchor itself
        points.append(
            HistoryPoint(
                date=end_date - timedelta(days=i),
                price=round(price, 2),
                ratio=round(ratio, 2),
            )
        )

        volatility = price * DAILY_VOLATILITY
        delta = (rng.random() - DRIFT_CENTER) * volatility
        price -= delta

        if anchor_price:
            ratio = (price / anchor_price) * anchor_ratio
        else:
            ratio = anchor_ratio
        ratio += (rng.random() - 0.5) * (2 * RATIO_NOISE)

    points.reverse()
    return points


def history_to_frame(points: list[HistoryPoint] | tuple[HistoryPoint, ...]) -> pd.DataFrame:
    """
    Convert history points to a DataFrame.

    Output columns (always, in this order): date, price, ratio, ma10

    ma10 is the trailing mean of up to MOVING_AVERAGE_WINDOW prices; the
    first rows average whatever is available.
    """
    df = pd.DataFrame(
        [(p.date, p.price, p.ratio) for p in points],
        columns=["date", "price", "ratio"],
    )
    df["date"] = pd.to_datetime(df["date"])
    df["ma10"] = df["price"].rolling(window=MOVING_AVERAGE_WINDOW, min_periods=1).mean()
    return df


def history_to_csv(points: list[HistoryPoint] | tuple[HistoryPoint, ...]) -> str:
    """Serialize history to CSV with ISO dates and 2-decimal floats."""
    df = history_to_frame(points)
    return df.to_csv(index=False, date_format="%Y-%m-%d", float_format="%.2f")
