"""Data layer: providers, history reconstruction and caching."""

from index_mcp.data.cache import HistoryCache, history_uri
from index_mcp.data.history import history_to_csv, history_to_frame, reconstruct_history
from index_mcp.data.narrative import (
    Narrative,
    NarrativeProvider,
    OpenAINarrativeProvider,
    TemplateNarrativeProvider,
    build_narrative_provider,
    template_narrative,
)
from index_mcp.data.providers import (
    MarketDataProvider,
    OpenAIMarketDataProvider,
    ProviderResponse,
    RawSource,
    StaticMarketDataProvider,
    YFinanceMarketDataProvider,
    build_market_provider,
)
from index_mcp.data.retry import BlockingExecutor, RetryPolicy, RetryResult

__all__ = [
    # Cache
    "HistoryCache",
    "history_uri",
    # History
    "history_to_csv",
    "history_to_frame",
    "reconstruct_history",
    # Market data
    "MarketDataProvider",
    "OpenAIMarketDataProvider",
    "ProviderResponse",
    "RawSource",
    "StaticMarketDataProvider",
    "YFinanceMarketDataProvider",
    "build_market_provider",
    # Narrative
    "Narrative",
    "NarrativeProvider",
    "OpenAINarrativeProvider",
    "TemplateNarrativeProvider",
    "build_narrative_provider",
    "template_narrative",
    # Executor
    "BlockingExecutor",
    "RetryPolicy",
    "RetryResult",
]
