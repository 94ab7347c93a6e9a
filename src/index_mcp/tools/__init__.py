"""Index assessment tools."""

from index_mcp.tools.assessment import (
    current_assessment,
    current_signal,
    market_snapshot,
    refresh_assessment,
    update_risk_preference,
)
from index_mcp.tools.scoring import assess, classify_score, score_components, score_snapshot
from index_mcp.tools.signal import map_signal
from index_mcp.tools.snapshot import assemble_snapshot, fallback_snapshot, fetch_snapshot

__all__ = [
    "assemble_snapshot",
    "assess",
    "classify_score",
    "current_assessment",
    "current_signal",
    "fallback_snapshot",
    "fetch_snapshot",
    "map_signal",
    "market_snapshot",
    "refresh_assessment",
    "score_components",
    "score_snapshot",
    "update_risk_preference",
]
