"""Market snapshot assembler.

Turns a raw provider response into one immutable ``MarketSnapshot``. Never
raises: any unusable response (provider error, no structured block, no
price) yields the documented fallback snapshot.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any

from index_mcp.data.history import DEFAULT_HISTORY_LENGTH, reconstruct_history
from index_mcp.data.providers import MarketDataProvider, ProviderResponse, RawSource
from index_mcp.models import MarketSnapshot, SourceRef
from index_mcp.utils.parsing import extract_json_block, parse_number_checked, sanitize_text
from index_mcp.utils.valuation import (
    DEFAULT_PE_RATIO,
    estimate_pb_ratio,
    estimate_pe_percentile,
)

logger = logging.getLogger(__name__)

FETCH_FAILED_MARKER = "fetch failed"
FALLBACK_VOLUME = "Error Fetching"

FALLBACK_PRICE = 24500.0
FALLBACK_CHANGE_PERCENT = 0.5
FALLBACK_PE_RATIO = 30.0
FALLBACK_PE_PERCENTILE = 50.0
FALLBACK_PB_RATIO = 5.0
FALLBACK_HIGH_52_WEEK = 26000.0
FALLBACK_LOW_52_WEEK = 17000.0

# Provider record keys, in the order they are parsed
NUMERIC_FIELDS = ("price", "changePercent", "peRatio", "high52Week", "low52Week")


class SnapshotUnavailable(Exception):
    """Internal signal: the response cannot produce a snapshot."""


def _now_text() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def fallback_snapshot(
    *,
    history_length: int = DEFAULT_HISTORY_LENGTH,
    seed: int | None = None,
    symbol: str = "^NDX",
    reason: str | None = None,
) -> MarketSnapshot:
    """
    Fixed snapshot used whenever live data is unusable.

    Args:
        history_length: Points to reconstruct from the fallback anchors
        seed: Optional seed for the reconstruction
        symbol: Index symbol to label the snapshot with
        reason: Why the fallback was used (recorded in warnings)
    """
    history = reconstruct_history(
        FALLBACK_PRICE, FALLBACK_PE_RATIO, history_length, seed=seed
    )
    return MarketSnapshot(
        price=FALLBACK_PRICE,
        change_percent=FALLBACK_CHANGE_PERCENT,
        pe_ratio=FALLBACK_PE_RATIO,
        pe_percentile=FALLBACK_PE_PERCENTILE,
        pb_ratio=FALLBACK_PB_RATIO,
        high_52_week=FALLBACK_HIGH_52_WEEK,
        low_52_week=FALLBACK_LOW_52_WEEK,
        volume=FALLBACK_VOLUME,
        last_updated=FETCH_FAILED_MARKER,
        history=tuple(history),
        source_refs=(),
        symbol=symbol,
        is_fallback=True,
        warnings=(reason,) if reason else (),
    )


def select_source(
    sources: tuple[RawSource, ...] | list[RawSource],
    preferred: str = "google",
) -> tuple[SourceRef, ...]:
    """
    Pick at most one citation.

    Prefer a source whose title or URI names the preferred aggregator,
    otherwise the first source, otherwise none.
    """
    if not sources:
        return ()

    needle = preferred.lower()
    for src in sources:
        title = (src.title or "").lower()
        uri = (src.uri or "").lower()
        if needle and (needle in title or needle in uri):
            if needle == "google":
                return (SourceRef("Google Finance", src.uri or "https://www.google.com/finance"),)
            return (SourceRef(sanitize_text(src.title) or "Search Result", src.uri or "#"),)

    first = sources[0]
    return (SourceRef(sanitize_text(first.title) or "Search Result", first.uri or "#"),)


def _extract_record(response: ProviderResponse | None) -> dict[str, Any]:
    if response is None:
        raise SnapshotUnavailable("no provider response")
    if response.data is not None:
        if not isinstance(response.data, dict):
            raise SnapshotUnavailable("provider data is not an object")
        return response.data

    record = extract_json_block(response.text)
    if record is None:
        raise SnapshotUnavailable("no structured block in provider response")
    return record


def assemble_snapshot(
    response: ProviderResponse | None,
    *,
    history_length: int = DEFAULT_HISTORY_LENGTH,
    seed: int | None = None,
    symbol: str = "^NDX",
    preferred_source: str = "google",
) -> MarketSnapshot:
    """
    Build a snapshot from a raw provider response.

    Args:
        response: Provider output (None if the fetch itself failed)
        history_length: Points in the reconstructed history
        seed: Optional seed for the reconstruction
        symbol: Index symbol
        preferred_source: Aggregator name preferred when selecting a citation

    Returns:
        Live snapshot, or the fallback snapshot if the response is unusable
    """
    try:
        record = _extract_record(response)
    except SnapshotUnavailable as e:
        logger.warning(f"Snapshot fallback: {e}")
        return fallback_snapshot(
            history_length=history_length, seed=seed, symbol=symbol, reason=str(e)
        )

    values: dict[str, float] = {}
    warnings: list[str] = []
    for key in NUMERIC_FIELDS:
        parsed = parse_number_checked(record.get(key))
        values[key] = parsed.value
        if not parsed.ok:
            warnings.append(f"unparsable {key}: {record.get(key)!r}")
            logger.info(f"Provider field {key} unparsable ({record.get(key)!r}), using 0.0")

    # A failed price parse is a provider error, not an index level of zero
    if values["price"] <= 0:
        logger.warning(f"Snapshot fallback: unusable price {record.get('price')!r}")
        return fallback_snapshot(
            history_length=history_length,
            seed=seed,
            symbol=symbol,
            reason=f"unusable price: {record.get('price')!r}",
        )

    price = round(values["price"], 2)
    pe_ratio = values["peRatio"]
    if pe_ratio == 0:
        pe_ratio = DEFAULT_PE_RATIO
        warnings.append(f"peRatio missing, using default {DEFAULT_PE_RATIO}")

    volume = sanitize_text(record.get("volume")) or "N/A"
    history = reconstruct_history(price, pe_ratio, history_length, seed=seed)

    return MarketSnapshot(
        price=price,
        change_percent=values["changePercent"],
        pe_ratio=pe_ratio,
        pe_percentile=estimate_pe_percentile(pe_ratio),
        pb_ratio=estimate_pb_ratio(pe_ratio),
        high_52_week=values["high52Week"],
        low_52_week=values["low52Week"],
        volume=volume,
        last_updated=_now_text(),
        history=tuple(history),
        source_refs=select_source(response.sources if response else (), preferred_source),
        symbol=symbol,
        is_fallback=False,
        warnings=tuple(warnings),
    )


async def fetch_snapshot(
    provider: MarketDataProvider,
    *,
    timeout: float = 30.0,
    history_length: int = DEFAULT_HISTORY_LENGTH,
    seed: int | None = None,
    symbol: str = "^NDX",
    preferred_source: str = "google",
) -> MarketSnapshot:
    """
    Fetch from the provider and assemble. Never raises.

    Provider failures (network, timeout, retries exhausted) are logged and
    routed to the fallback snapshot, same as an unparsable response.
    """
    response: ProviderResponse | None = None
    try:
        response = await asyncio.wait_for(provider.fetch(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Market provider {provider.name} timed out after {timeout}s")
    except Exception as e:
        logger.warning(f"Market provider {provider.name} failed: {type(e).__name__}: {e}")

    return assemble_snapshot(
        response,
        history_length=history_length,
        seed=seed,
        symbol=symbol,
        preferred_source=preferred_source,
    )
