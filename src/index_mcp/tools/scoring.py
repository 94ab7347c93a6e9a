"""Deterministic entry-score rubric.

Three bounded components are summed and clamped to [0, 100]:

- valuation (0-40) from the PE percentile band
- trend (0-30) from the sign of the daily change
- risk alignment (0-30) from how well the setup fits the risk preference

Score and recommendation are always computed here. A narrative provider may
phrase the prose fields, but never changes the numbers.
"""

import logging
from datetime import datetime

from index_mcp.data.narrative import Narrative, NarrativeProvider, template_narrative
from index_mcp.models import (
    AnalysisResult,
    MarketSnapshot,
    Recommendation,
    RiskPreference,
    ScoreBreakdown,
)

logger = logging.getLogger(__name__)

VALUATION_MAX = 40
TREND_MAX = 30
ALIGNMENT_MAX = 30

# Conservative alignment hits zero above this percentile
CONSERVATIVE_PE_CUTOFF = 80.0
# Aggressive alignment bottoms out at this daily change (percent)
AGGRESSIVE_CHANGE_FLOOR = -1.0
MODERATE_ALIGNMENT = 15

FALLBACK_ANALYSIS = AnalysisResult(
    recommendation=Recommendation.HOLD,
    score=50,
    summary="Analysis is temporarily unavailable. Please retry later.",
    reasoning=("Scoring could not be completed for this snapshot.",),
    risk_warning="Live analysis could not be produced.",
    strategy="Stay on the sidelines until analysis is available.",
    components=None,
    narrative_source="fallback",
)


def _clamp(v: int, low: int, high: int) -> int:
    return max(low, min(high, v))


def valuation_component(pe_percentile: float) -> int:
    """Points for the PE percentile band."""
    if pe_percentile < 20:
        return 40
    if pe_percentile < 50:
        return 30
    if pe_percentile < 80:
        return 15
    return 0


def trend_component(change_percent: float) -> int:
    """Points for the daily direction. Flat sits at the midpoint."""
    if change_percent > 0:
        return 30
    if change_percent < 0:
        return 10
    return 20


def alignment_component(snapshot: MarketSnapshot, risk: RiskPreference) -> int:
    """
    Points for fit between the setup and the risk preference.

    Conservative: 0 above the 80th percentile, otherwise falls linearly from
    30 at the 0th percentile. Aggressive: 30 on any positive day, otherwise
    rises linearly from 0 at -1% to 15 on a flat day. Moderate: 15.
    """
    if risk is RiskPreference.CONSERVATIVE:
        if snapshot.pe_percentile > CONSERVATIVE_PE_CUTOFF:
            return 0
        raw = ALIGNMENT_MAX * (1 - snapshot.pe_percentile / CONSERVATIVE_PE_CUTOFF)
        return _clamp(int(round(raw)), 0, ALIGNMENT_MAX)

    if risk is RiskPreference.AGGRESSIVE:
        if snapshot.change_percent > 0:
            return ALIGNMENT_MAX
        change = max(snapshot.change_percent, AGGRESSIVE_CHANGE_FLOOR)
        half = ALIGNMENT_MAX / 2
        raw = half + half * (change / -AGGRESSIVE_CHANGE_FLOOR)
        return _clamp(int(round(raw)), 0, ALIGNMENT_MAX)

    return MODERATE_ALIGNMENT


def score_components(snapshot: MarketSnapshot, risk: RiskPreference) -> ScoreBreakdown:
    """Compute the three rubric components and their clamped total."""
    valuation = valuation_component(snapshot.pe_percentile)
    trend = trend_component(snapshot.change_percent)
    alignment = alignment_component(snapshot, risk)
    return ScoreBreakdown(
        valuation=valuation,
        trend=trend,
        alignment=alignment,
        total=_clamp(valuation + trend + alignment, 0, 100),
    )


def classify_score(score: int) -> Recommendation:
    """
    Map a total score to a recommendation.

    >75 STRONG_BUY, 60-75 BUY, 40-59 HOLD, 25-39 SELL, <25 STRONG_SELL.
    """
    if score > 75:
        return Recommendation.STRONG_BUY
    if score >= 60:
        return Recommendation.BUY
    if score >= 40:
        return Recommendation.HOLD
    if score >= 25:
        return Recommendation.SELL
    return Recommendation.STRONG_SELL


def _build_result(
    breakdown: ScoreBreakdown,
    recommendation: Recommendation,
    risk: RiskPreference,
    narrative: Narrative,
    source: str,
) -> AnalysisResult:
    return AnalysisResult(
        recommendation=recommendation,
        score=breakdown.total,
        summary=narrative.summary,
        reasoning=narrative.reasoning,
        risk_warning=narrative.risk_warning,
        strategy=narrative.strategy,
        components=breakdown,
        risk_preference=risk,
        narrative_source=source,
        generated_at=datetime.now().isoformat(timespec="seconds"),
    )


def score_snapshot(snapshot: MarketSnapshot, risk: RiskPreference) -> AnalysisResult:
    """Score a snapshot with template narrative. Pure apart from ``generated_at``."""
    breakdown = score_components(snapshot, risk)
    recommendation = classify_score(breakdown.total)
    narrative = template_narrative(snapshot, risk, breakdown, recommendation)
    result = _build_result(breakdown, recommendation, risk, narrative, "template")
    _validate_result_invariants(result)
    return result


async def assess(
    snapshot: MarketSnapshot,
    risk: RiskPreference,
    narrator: NarrativeProvider | None = None,
) -> AnalysisResult:
    """
    Score a snapshot and phrase it with the narrative provider.

    Narrator failure falls back to template prose; the score is unaffected.
    Any other failure returns FALLBACK_ANALYSIS.
    """
    try:
        breakdown = score_components(snapshot, risk)
        recommendation = classify_score(breakdown.total)
    except Exception as e:
        logger.error(f"Scoring failed: {type(e).__name__}: {e}")
        return FALLBACK_ANALYSIS

    narrative: Narrative | None = None
    source = "template"
    if narrator is not None:
        try:
            narrative = await narrator.narrate(snapshot, risk, breakdown, recommendation)
            source = narrator.name
        except Exception as e:
            logger.warning(
                f"Narrative provider {narrator.name} failed ({type(e).__name__}: {e}); "
                "using template narrative"
            )

    if narrative is None:
        narrative = template_narrative(snapshot, risk, breakdown, recommendation)
        source = "template"

    result = _build_result(breakdown, recommendation, risk, narrative, source)
    _validate_result_invariants(result)
    return result


def _validate_result_invariants(result: AnalysisResult) -> None:
    """
    Validate invariants between score, recommendation and components.

    Invariants enforced:
    1. score is within [0, 100]
    2. recommendation matches classify_score(score)
    3. components.total equals score, each component within its bound
    4. reasoning is non-empty

    Logs warnings for violations rather than raising (production-safe).
    """
    violations: list[str] = []

    if not 0 <= result.score <= 100:
        violations.append(f"score={result.score} outside [0, 100]")

    expected = classify_score(result.score)
    if result.recommendation is not expected:
        violations.append(
            f"recommendation={result.recommendation.value} but score={result.score} "
            f"classifies as {expected.value}"
        )

    comps = result.components
    if comps is not None:
        if comps.total != result.score:
            violations.append(f"components.total={comps.total} but score={result.score}")
        for name, value, bound in (
            ("valuation", comps.valuation, VALUATION_MAX),
            ("trend", comps.trend, TREND_MAX),
            ("alignment", comps.alignment, ALIGNMENT_MAX),
        ):
            if not 0 <= value <= bound:
                violations.append(f"components.{name}={value} outside [0, {bound}]")

    if not result.reasoning:
        violations.append("reasoning is empty")

    for v in violations:
        logger.warning(f"Analysis invariant violation: {v}")
