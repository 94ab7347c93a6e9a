"""Market-data providers.

A provider returns a ``ProviderResponse``: free text that is expected to
embed one structured block, and/or an already structured ``data`` dict,
plus zero or more source citations. Interpreting the response (and falling
back when it is unusable) is the snapshot assembler's job, not the
provider's.
"""

import json
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import yfinance as yf
from openai import OpenAI

from index_mcp.config import Settings
from index_mcp.data.retry import BlockingExecutor
from index_mcp.errors import ProviderError
from index_mcp.prompts.templates import MARKET_DATA_INSTRUCTION


@dataclass(frozen=True)
class RawSource:
    """Citation as reported by the provider, before selection."""

    title: str | None
    uri: str | None


@dataclass(frozen=True)
class ProviderResponse:
    """Raw provider output handed to the snapshot assembler."""

    text: str = ""
    data: dict[str, Any] | None = None
    sources: tuple[RawSource, ...] = ()
    provider: str = "unknown"
    provenance: dict[str, Any] = field(default_factory=dict)


class MarketDataProvider(ABC):
    name = "unknown"

    @abstractmethod
    async def fetch(self) -> ProviderResponse:
        raise NotImplementedError


def create_openai_client(settings: Settings) -> OpenAI:
    """
    Create the OpenAI client.

    Raises:
        ConfigurationError: If OPENAI_API_KEY is not set
    """
    settings.require_credentials()
    if settings.openai_base_url:
        return OpenAI(api_key=settings.openai_api_key, base_url=settings.openai_base_url)
    return OpenAI(api_key=settings.openai_api_key)


def _citations_from_message(message: Any) -> tuple[RawSource, ...]:
    """Extract url_citation annotations from a chat completion message."""
    out: list[RawSource] = []
    for annotation in getattr(message, "annotations", None) or []:
        citation = getattr(annotation, "url_citation", None)
        if citation is None:
            continue
        out.append(
            RawSource(title=getattr(citation, "title", None), uri=getattr(citation, "url", None))
        )
    return tuple(out)


class OpenAIMarketDataProvider(MarketDataProvider):
    """Asks a search-enabled chat model for the live quote."""

    name = "openai"

    def __init__(self, client: OpenAI | None, executor: BlockingExecutor, settings: Settings):
        self._client = client
        self._settings = settings
        self._executor = executor
        self._model = settings.openai_search_model
        self._prompt = MARKET_DATA_INSTRUCTION.format(
            index_name=settings.index_name,
            symbol=settings.index_symbol,
        )
        self._symbol = settings.index_symbol

    def _get_client(self) -> OpenAI:
        # Created on first use so a missing key surfaces as ConfigurationError
        if self._client is None:
            self._client = create_openai_client(self._settings)
        return self._client

    async def fetch(self) -> ProviderResponse:
        def _call() -> Any:
            return self._get_client().chat.completions.create(
                model=self._model,
                messages=[{"role": "user", "content": self._prompt}],
            )

        retry_result = await self._executor.run(f"openai.quote({self._symbol})", _call)
        response = retry_result.result

        if not response.choices:
            raise ProviderError("Empty response from market-data model")
        message = response.choices[0].message

        return ProviderResponse(
            text=message.content or "",
            sources=_citations_from_message(message),
            provider=self.name,
            provenance={"model": self._model, **retry_result.to_provenance()},
        )


# yfinance info keys -> provider record keys
_YF_FIELD_MAP: dict[str, tuple[str, ...]] = {
    "price": ("regularMarketPrice", "currentPrice"),
    "changePercent": ("regularMarketChangePercent",),
    "peRatio": ("trailingPE",),
    "high52Week": ("fiftyTwoWeekHigh",),
    "low52Week": ("fiftyTwoWeekLow",),
    "volume": ("regularMarketVolume", "volume"),
}


def _first_present(info: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = info.get(key)
        if value is not None:
            return value
    return None


def quote_from_info(info: dict[str, Any]) -> dict[str, Any]:
    """Map a yfinance info dict onto the provider record shape."""
    record = {name: _first_present(info, keys) for name, keys in _YF_FIELD_MAP.items()}

    # Some index quotes omit the change percent but carry price + previous close
    if record["changePercent"] is None:
        price = record["price"]
        prev = info.get("regularMarketPreviousClose") or info.get("previousClose")
        if isinstance(price, (int, float)) and isinstance(prev, (int, float)) and prev:
            record["changePercent"] = round((price / prev - 1) * 100, 2)

    volume = record["volume"]
    if isinstance(volume, (int, float)) and math.isfinite(volume):
        record["volume"] = f"{int(volume):,}"
    else:
        record["volume"] = None
    return record


class YFinanceMarketDataProvider(MarketDataProvider):
    """Structured quote from Yahoo Finance via yfinance."""

    name = "yfinance"

    def __init__(self, executor: BlockingExecutor, symbol: str = "^NDX"):
        self._executor = executor
        self._symbol = symbol

    async def fetch(self) -> ProviderResponse:
        def _call() -> dict[str, Any]:
            info = yf.Ticker(self._symbol).info
            if not info:
                raise ProviderError(f"No quote returned for {self._symbol}")
            return info

        retry_result = await self._executor.run(f"yfinance.info({self._symbol})", _call)
        record = quote_from_info(retry_result.result)

        return ProviderResponse(
            data=record,
            sources=(
                RawSource(
                    title="Yahoo Finance",
                    uri=f"https://finance.yahoo.com/quote/{self._symbol}",
                ),
            ),
            provider=self.name,
            provenance=retry_result.to_provenance(),
        )


class StaticMarketDataProvider(MarketDataProvider):
    """Returns a fixed response. Offline demos and tests."""

    name = "static"

    def __init__(self, response: ProviderResponse | None = None):
        if response is None:
            response = ProviderResponse(
                text=json.dumps(
                    {
                        "price": "24,873.85",
                        "changePercent": "+1.5%",
                        "peRatio": "34",
                        "high52Week": "25,100.00",
                        "low52Week": "17,000.00",
                        "volume": "N/A",
                    }
                ),
                provider=self.name,
            )
        self._response = response
        self.calls = 0

    async def fetch(self) -> ProviderResponse:
        self.calls += 1
        return self._response


def build_market_provider(
    settings: Settings,
    executor: BlockingExecutor,
    client: OpenAI | None = None,
) -> MarketDataProvider:
    kind = settings.market_provider
    if kind == "static":
        return StaticMarketDataProvider()
    if kind == "yfinance":
        return YFinanceMarketDataProvider(executor, symbol=settings.index_symbol)
    if kind == "openai":
        return OpenAIMarketDataProvider(client, executor, settings)
    raise ValueError(f"Unsupported market provider: {kind}")
