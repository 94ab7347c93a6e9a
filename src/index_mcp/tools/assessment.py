"""Assessment tools: JSON-ready responses over an AssessmentSession."""

from __future__ import annotations

from time import perf_counter
from typing import TYPE_CHECKING, Any

from index_mcp.errors import ConfigurationError
from index_mcp.models import RiskPreference
from index_mcp.tools.signal import COLOR_HEX, map_signal
from index_mcp.utils.provenance import build_error_response, build_meta, build_provenance

if TYPE_CHECKING:
    from index_mcp.session import AssessmentSession


def _configuration_error(e: ConfigurationError) -> dict[str, Any]:
    return build_error_response(
        error_type="configuration_error",
        message=str(e),
        setting=e.setting,
    )


def _snapshot_provenance(session: AssessmentSession) -> dict[str, Any]:
    snapshot = session.snapshot
    if snapshot is None:
        return {}
    source = "fallback" if snapshot.is_fallback else session.settings.market_provider
    return {
        "market": build_provenance(
            source=source,
            as_of=snapshot.last_updated,
            snapshot_id=session.snapshot_id,
            history_uri=session.history_uri,
            history_method="backward_random_walk",
            warnings=list(snapshot.warnings),
        )
    }


async def _ensure_snapshot(session: AssessmentSession) -> dict[str, Any] | None:
    """Run the first refresh on demand. Returns an error response on failure."""
    if session.snapshot is not None:
        return None
    try:
        await session.refresh()
    except ConfigurationError as e:
        return _configuration_error(e)
    if session.snapshot is None:
        return build_error_response(
            error_type="not_ready",
            message="No market snapshot available yet; a refresh is in progress",
        )
    return None


async def market_snapshot(session: AssessmentSession, include_history: bool = False) -> dict[str, Any]:
    """
    Current market snapshot, fetching one first if none exists.

    Args:
        session: Assessment session
        include_history: Include every history point inline (default: resource URI only)
    """
    start_time = perf_counter()

    error = await _ensure_snapshot(session)
    if error is not None:
        return error

    snapshot = session.snapshot
    return {
        "meta": build_meta("market_snapshot", (perf_counter() - start_time) * 1000),
        "data_provenance": _snapshot_provenance(session),
        "snapshot": snapshot.to_dict(include_history=include_history),
    }


async def current_assessment(session: AssessmentSession) -> dict[str, Any]:
    """Current analysis; scores (and fetches) first if none exists."""
    start_time = perf_counter()

    error = await _ensure_snapshot(session)
    if error is not None:
        return error

    if session.analysis is None:
        await session.rescore()
    if session.analysis is None:
        return build_error_response(
            error_type="not_ready",
            message="Analysis is pending; retry shortly",
        )

    analysis = session.analysis
    return {
        "meta": build_meta("assessment", (perf_counter() - start_time) * 1000),
        "data_provenance": _snapshot_provenance(session),
        "price": session.snapshot.price,
        "is_fallback_snapshot": session.snapshot.is_fallback,
        "analysis": analysis.to_dict(),
        "signal": map_signal(analysis.recommendation).to_dict(),
    }


async def refresh_assessment(session: AssessmentSession) -> dict[str, Any]:
    """Force a full re-fetch and re-score."""
    start_time = perf_counter()

    try:
        started = await session.refresh()
    except ConfigurationError as e:
        return _configuration_error(e)

    return {
        "meta": build_meta("refresh_assessment", (perf_counter() - start_time) * 1000),
        "refreshed": started,
        "status": session.status(),
        "analysis": session.analysis.to_dict() if session.analysis else None,
    }


async def update_risk_preference(session: AssessmentSession, risk: str) -> dict[str, Any]:
    """Change the risk preference; re-scores the current snapshot without re-fetching."""
    start_time = perf_counter()

    try:
        preference = RiskPreference.parse(risk)
    except ValueError as e:
        return build_error_response(error_type="invalid_argument", message=str(e))

    analysis = await session.set_risk_preference(preference)

    return {
        "meta": build_meta("set_risk_preference", (perf_counter() - start_time) * 1000),
        "risk_preference": session.risk.value,
        "status": session.status(),
        "analysis": analysis.to_dict() if analysis else None,
    }


async def current_signal(session: AssessmentSession) -> dict[str, Any]:
    """Visual-state descriptor for the current recommendation."""
    if session.analysis is None:
        return build_error_response(
            error_type="not_ready",
            message="No analysis available; call get_assessment first",
        )

    signal = map_signal(session.analysis.recommendation)
    return {
        "meta": build_meta("signal"),
        "recommendation": session.analysis.recommendation.value,
        "score": session.analysis.score,
        "signal": signal.to_dict(),
        "color_hex": COLOR_HEX[signal.color_key],
    }
