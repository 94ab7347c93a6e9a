"""Pytest configuration and fixtures."""

import json
from collections.abc import Callable
from datetime import date

import pytest

from index_mcp.config import Settings
from index_mcp.data.history import reconstruct_history
from index_mcp.data.providers import ProviderResponse, RawSource
from index_mcp.models import MarketSnapshot
from index_mcp.utils.valuation import estimate_pb_ratio, estimate_pe_percentile


@pytest.fixture
def settings() -> Settings:
    """Offline settings: static market data, template narrative, seeded history."""
    return Settings(
        market_provider="static",
        narrative_provider="template",
        history_length=10,
        history_seed=7,
        provider_timeout_seconds=1.0,
    )


@pytest.fixture
def quote_response() -> ProviderResponse:
    """Typical search-model answer: JSON wrapped in prose, two citations."""
    body = json.dumps(
        {
            "price": "24,873.85",
            "changePercent": "+1.5%",
            "peRatio": "34",
            "high52Week": "25,100.00",
            "low52Week": "17,000.00",
            "volume": "5.2B",
        }
    )
    return ProviderResponse(
        text=f"Here is the latest quote:\n```json\n{body}\n```\nData may be delayed.",
        sources=(
            RawSource(title="Nasdaq-100 Index - Yahoo", uri="https://finance.yahoo.com/quote/%5ENDX"),
            RawSource(title="NDX Index - google.com", uri="https://www.google.com/finance/quote/NDX:INDEXNASDAQ"),
        ),
        provider="openai",
    )


@pytest.fixture
def make_snapshot() -> Callable[..., MarketSnapshot]:
    """Factory for live snapshots with a short seeded history."""

    def _make(
        price: float = 24873.85,
        change_percent: float = 1.5,
        pe_ratio: float = 34.0,
        pe_percentile: float | None = None,
        high_52_week: float = 25100.0,
        low_52_week: float = 17000.0,
        is_fallback: bool = False,
    ) -> MarketSnapshot:
        history = reconstruct_history(price, pe_ratio, 5, end_date=date(2024, 6, 14), seed=1)
        return MarketSnapshot(
            price=price,
            change_percent=change_percent,
            pe_ratio=pe_ratio,
            pe_percentile=(
                pe_percentile if pe_percentile is not None else estimate_pe_percentile(pe_ratio)
            ),
            pb_ratio=estimate_pb_ratio(pe_ratio),
            high_52_week=high_52_week,
            low_52_week=low_52_week,
            volume="5.2B",
            last_updated="2024-06-14 15:00:00",
            history=tuple(history),
            is_fallback=is_fallback,
        )

    return _make
