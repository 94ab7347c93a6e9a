"""Index Assessment MCP Server using FastMCP."""

import json
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP

from index_mcp import SCHEMA_VERSION, SERVER_VERSION
from index_mcp.config import Settings
from index_mcp.data.cache import HistoryCache
from index_mcp.data.narrative import build_narrative_provider
from index_mcp.data.providers import build_market_provider
from index_mcp.data.retry import BlockingExecutor, RetryPolicy
from index_mcp.prompts.templates import get_prompt
from index_mcp.resources.history_resource import ResourceNotFoundError, read_history_resource
from index_mcp.scheduler import RefreshScheduler
from index_mcp.session import AssessmentSession
from index_mcp.tools import assessment as assessment_tools

# Configure logging
log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
logger = logging.getLogger(__name__)


class Services:
    """
    Composition root: owns the executor, providers, cache, session and scheduler.

    Nothing below this object reaches for globals; every collaborator is
    handed in here.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.executor = BlockingExecutor(
            max_workers=settings.provider_max_workers,
            policy=RetryPolicy(
                max_retries=settings.provider_max_retries,
                base_delay=settings.provider_base_delay,
                max_delay=settings.provider_max_delay,
            ),
        )
        self.history_cache = HistoryCache(settings.cache_dir, default_ttl=settings.cache_ttl)
        self.session = AssessmentSession(
            settings,
            build_market_provider(settings, self.executor),
            narrator=build_narrative_provider(settings, self.executor),
            history_cache=self.history_cache,
        )
        self.scheduler = RefreshScheduler(
            self._scheduled_refresh,
            run_at=settings.refresh_at,
            tz=settings.refresh_timezone,
        )

    async def _scheduled_refresh(self) -> None:
        started = await self.session.refresh()
        if not started:
            logger.info("Scheduled refresh skipped; a cycle was already in flight")

    def start(self) -> None:
        self.scheduler.start()

    async def close(self) -> None:
        await self.scheduler.stop()
        self.executor.shutdown()
        self.history_cache.close()


_services: Services | None = None


def get_services() -> Services:
    """Return the running services, building them on first use."""
    global _services
    if _services is None:
        _services = Services(Settings.from_env())
    return _services


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[Services]:
    """Start the daily refresh with the server and tear everything down on exit."""
    global _services
    services = get_services()
    services.start()
    logger.info(
        f"Auto-refresh scheduled daily at {services.settings.refresh_at.strftime('%H:%M')} "
        f"({services.settings.refresh_timezone or 'local time'})"
    )
    try:
        yield services
    finally:
        await services.close()
        _services = None


# Create FastMCP server instance
mcp = FastMCP(
    name="index-assessment",
    lifespan=lifespan,
)


def _dumps(result: dict[str, Any]) -> str:
    return json.dumps(result, indent=2, default=str)


# ============================================================================
# TOOLS
# ============================================================================


@mcp.tool
async def get_market_snapshot(include_history: bool = False) -> str:
    """
    Get the current index snapshot: price, daily change, PE and its percentile,
    estimated PB, 52-week range, volume and sources.

    Fetches a snapshot first if none exists yet.

    Args:
        include_history: Include all history points inline (default: false,
            use the history:// resource URI instead)

    Returns:
        JSON with snapshot fields, provenance and history resource URI
    """
    result = await assessment_tools.market_snapshot(
        get_services().session,
        include_history=include_history,
    )
    return _dumps(result)


@mcp.tool
async def get_assessment() -> str:
    """
    Get the entry-score assessment for the current snapshot and risk preference.

    Returns:
        JSON with recommendation, 0-100 score, component breakdown, reasoning,
        risk warning, strategy and chart signal
    """
    result = await assessment_tools.current_assessment(get_services().session)
    return _dumps(result)


@mcp.tool
async def refresh_assessment() -> str:
    """
    Re-fetch market data and re-score. Ignored if a refresh is already running.

    Returns:
        JSON with whether the refresh ran, session status and the new analysis
    """
    result = await assessment_tools.refresh_assessment(get_services().session)
    return _dumps(result)


@mcp.tool
async def set_risk_preference(risk: str) -> str:
    """
    Change the investor risk preference and re-score without re-fetching.

    Args:
        risk: conservative, moderate or aggressive

    Returns:
        JSON with the active preference and the updated analysis
    """
    result = await assessment_tools.update_risk_preference(get_services().session, risk)
    return _dumps(result)


@mcp.tool
async def get_signal() -> str:
    """
    Get the chart overlay state (color, icon, label, emphasis) for the current
    recommendation.

    Returns:
        JSON with the visual signal descriptor
    """
    result = await assessment_tools.current_signal(get_services().session)
    return _dumps(result)


# ============================================================================
# RESOURCES
# ============================================================================


@mcp.resource("history://{snapshot_id}")
def get_cached_history(snapshot_id: str) -> str:
    """
    Get reconstructed price/PE history for a snapshot as CSV.

    Must call get_market_snapshot first to populate the cache.

    Args:
        snapshot_id: Snapshot fingerprint from the snapshot response

    Returns:
        CSV data with date,price,ratio,ma10 columns
    """
    try:
        csv_text, _ = read_history_resource(get_services().history_cache, snapshot_id)
        return csv_text
    except ResourceNotFoundError as e:
        return str(e)


# ============================================================================
# PROMPTS
# ============================================================================


@mcp.prompt
def market_briefing(risk: str = "moderate") -> str:
    """Daily briefing on the tracked index for a given risk preference."""
    result = get_prompt("market_briefing", {"risk": risk})
    if result:
        return result["messages"][0]["content"]
    return f"Brief me on the index for a {risk} investor using get_assessment."


# ============================================================================
# ENTRY POINT
# ============================================================================


def main() -> None:
    """Run the MCP server."""
    logger.info(
        f"Starting Index Assessment MCP Server v{SERVER_VERSION} (schema v{SCHEMA_VERSION})"
    )
    mcp.run()


if __name__ == "__main__":
    main()
