"""Tests for the entry-score rubric."""

import asyncio
import logging
from unittest.mock import patch

import pytest

from index_mcp.data.narrative import Narrative, NarrativeProvider
from index_mcp.models import AnalysisResult, Recommendation, RiskPreference, ScoreBreakdown
from index_mcp.tools.scoring import (
    FALLBACK_ANALYSIS,
    _validate_result_invariants,
    alignment_component,
    assess,
    classify_score,
    score_components,
    score_snapshot,
    trend_component,
    valuation_component,
)

C = RiskPreference.CONSERVATIVE
M = RiskPreference.MODERATE
A = RiskPreference.AGGRESSIVE


class BrokenNarrator(NarrativeProvider):
    name = "broken"

    async def narrate(self, snapshot, risk, breakdown, recommendation):
        raise RuntimeError("model unavailable")


class CannedNarrator(NarrativeProvider):
    name = "canned"

    async def narrate(self, snapshot, risk, breakdown, recommendation):
        return Narrative(
            summary="Canned summary.",
            reasoning=("one", "two"),
            risk_warning="Canned warning.",
            strategy="Canned strategy.",
        )


class TestComponents:
    """Tests for the individual rubric components."""

    @pytest.mark.parametrize(
        "pct,expected",
        [(0.0, 40), (19.9, 40), (20.0, 30), (49.9, 30), (50.0, 15), (79.9, 15), (80.0, 0), (100.0, 0)],
    )
    def test_valuation_bands(self, pct, expected):
        """Valuation points by PE percentile band."""
        assert valuation_component(pct) == expected

    @pytest.mark.parametrize("change,expected", [(1.5, 30), (0.01, 30), (0.0, 20), (-0.3, 10)])
    def test_trend(self, change, expected):
        """Up day 30, down day 10, flat 20."""
        assert trend_component(change) == expected

    @pytest.mark.parametrize(
        "pct,expected",
        [(0.0, 30), (26.0, 20), (40.0, 15), (75.0, 2), (80.0, 0), (85.0, 0)],
    )
    def test_conservative_alignment(self, make_snapshot, pct, expected):
        """Conservative fit falls linearly with valuation, zero above 80."""
        assert alignment_component(make_snapshot(pe_percentile=pct), C) == expected

    @pytest.mark.parametrize(
        "change,expected",
        [(1.5, 30), (0.0, 15), (-0.5, 8), (-1.0, 0), (-3.0, 0)],
    )
    def test_aggressive_alignment(self, make_snapshot, change, expected):
        """Aggressive fit is full on up days and floors at -1%."""
        assert alignment_component(make_snapshot(change_percent=change), A) == expected

    @pytest.mark.parametrize("pct,change", [(0.0, 2.0), (90.0, -2.0), (50.0, 0.0)])
    def test_moderate_alignment(self, make_snapshot, pct, change):
        """Moderate fit is always 15."""
        snap = make_snapshot(pe_percentile=pct, change_percent=change)
        assert alignment_component(snap, M) == 15

    @pytest.mark.parametrize("risk", [C, M, A])
    @pytest.mark.parametrize("pct", [0.0, 30.0, 65.0, 80.0, 100.0])
    @pytest.mark.parametrize("change", [-5.0, -0.5, 0.0, 0.5, 5.0])
    def test_bounds(self, make_snapshot, risk, pct, change):
        """Every component stays within its bound and total within [0, 100]."""
        b = score_components(make_snapshot(pe_percentile=pct, change_percent=change), risk)
        assert 0 <= b.valuation <= 40
        assert 0 <= b.trend <= 30
        assert 0 <= b.alignment <= 30
        assert 0 <= b.total <= 100
        assert b.total == b.valuation + b.trend + b.alignment


class TestClassifyScore:
    """Tests for classify_score thresholds."""

    @pytest.mark.parametrize(
        "score,expected",
        [
            (100, Recommendation.STRONG_BUY),
            (76, Recommendation.STRONG_BUY),
            (75, Recommendation.BUY),
            (60, Recommendation.BUY),
            (59, Recommendation.HOLD),
            (40, Recommendation.HOLD),
            (39, Recommendation.SELL),
            (25, Recommendation.SELL),
            (24, Recommendation.STRONG_SELL),
            (0, Recommendation.STRONG_SELL),
        ],
    )
    def test_thresholds(self, score, expected):
        """Boundaries: >75, >=60, >=40, >=25."""
        assert classify_score(score) is expected


class TestScoreSnapshot:
    """Tests for score_snapshot on realistic snapshots."""

    def test_exactly_75_is_buy(self, make_snapshot):
        """PE 34, +1.5%, aggressive scores 15 + 30 + 30 = 75, which is BUY."""
        result = score_snapshot(make_snapshot(pe_ratio=34.0, change_percent=1.5), A)
        assert result.components == ScoreBreakdown(15, 30, 30, 75)
        assert result.score == 75
        assert result.recommendation is Recommendation.BUY

    def test_exactly_60_is_buy(self, make_snapshot):
        """26th percentile, down day, conservative scores 30 + 10 + 20 = 60."""
        result = score_snapshot(make_snapshot(pe_percentile=26.0, change_percent=-0.3), C)
        assert result.score == 60
        assert result.recommendation is Recommendation.BUY

    def test_exactly_40_is_hold(self, make_snapshot):
        """60th percentile, down day, moderate scores 15 + 10 + 15 = 40."""
        result = score_snapshot(make_snapshot(pe_percentile=60.0, change_percent=-0.3), M)
        assert result.score == 40
        assert result.recommendation is Recommendation.HOLD

    def test_exactly_25_is_sell(self, make_snapshot):
        """85th percentile, down day, moderate scores 0 + 10 + 15 = 25."""
        result = score_snapshot(make_snapshot(pe_percentile=85.0, change_percent=-0.3), M)
        assert result.score == 25
        assert result.recommendation is Recommendation.SELL

    def test_strong_sell(self, make_snapshot):
        """Bubble valuation on a down day for a conservative investor."""
        result = score_snapshot(make_snapshot(pe_percentile=85.0, change_percent=-0.3), C)
        assert result.score == 10
        assert result.recommendation is Recommendation.STRONG_SELL

    def test_strong_buy(self, make_snapshot):
        """Cheap valuation on an up day scores 40 + 30 + 15 = 85."""
        result = score_snapshot(make_snapshot(pe_percentile=19.0, change_percent=1.0), M)
        assert result.score == 85
        assert result.recommendation is Recommendation.STRONG_BUY

    def test_risk_changes_score(self, make_snapshot):
        """Same snapshot, different preference, different score."""
        snap = make_snapshot(pe_ratio=34.0, change_percent=1.5)
        assert score_snapshot(snap, A).score == 75
        assert score_snapshot(snap, M).score == 60
        assert score_snapshot(snap, C).score == 47

    def test_idempotent(self, make_snapshot):
        """Scoring twice gives identical results apart from the timestamp."""
        snap = make_snapshot()
        a = score_snapshot(snap, M)
        b = score_snapshot(snap, M)
        assert a.score == b.score
        assert a.recommendation is b.recommendation
        assert a.components == b.components
        assert a.reasoning == b.reasoning

    def test_template_narrative(self, make_snapshot):
        """Template prose names the score and one reason per component."""
        result = score_snapshot(make_snapshot(pe_ratio=34.0, change_percent=1.5), A)
        assert result.summary == "Entry score 75/100 for the aggressive profile: Buy."
        assert len(result.reasoning) == 3
        assert result.reasoning[0].startswith("Valuation 15/40")
        assert result.reasoning[1].startswith("Trend 30/30")
        assert result.reasoning[2].startswith("Risk match 30/30")
        assert result.narrative_source == "template"
        assert result.risk_preference is A
        assert result.generated_at

    def test_fallback_snapshot_warning(self, make_snapshot):
        """A fallback snapshot is called out in the risk warning."""
        result = score_snapshot(make_snapshot(is_fallback=True), M)
        assert "Live data unavailable" in result.risk_warning


class TestAssess:
    """Tests for assess (scoring + narrative provider)."""

    def test_without_narrator(self, make_snapshot):
        """No narrator means template prose."""
        result = asyncio.run(assess(make_snapshot(), M))
        assert result.narrative_source == "template"
        assert result.score == 60

    def test_narrator_used(self, make_snapshot):
        """Narrator prose is used, numbers are local."""
        result = asyncio.run(assess(make_snapshot(), M, CannedNarrator()))
        assert result.narrative_source == "canned"
        assert result.summary == "Canned summary."
        assert result.score == 60
        assert result.recommendation is Recommendation.BUY

    def test_narrator_failure_falls_back_to_template(self, make_snapshot, caplog):
        """A failing narrator does not change the score."""
        with caplog.at_level(logging.WARNING):
            result = asyncio.run(assess(make_snapshot(), M, BrokenNarrator()))
        assert result.narrative_source == "template"
        assert result.score == 60
        assert "Narrative provider broken failed" in caplog.text

    def test_scoring_failure_returns_fallback(self, make_snapshot, caplog):
        """Unexpected scoring errors yield the neutral fallback analysis."""
        with patch(
            "index_mcp.tools.scoring.score_components",
            side_effect=RuntimeError("boom"),
        ):
            with caplog.at_level(logging.ERROR):
                result = asyncio.run(assess(make_snapshot(), M))
        assert result is FALLBACK_ANALYSIS
        assert result.recommendation is Recommendation.HOLD
        assert result.score == 50
        assert "Scoring failed" in caplog.text


class TestResultInvariants:
    """Tests for _validate_result_invariants function."""

    def test_valid_result_no_warnings(self, make_snapshot, caplog):
        """A scored result passes."""
        result = score_snapshot(make_snapshot(), M)
        with caplog.at_level(logging.WARNING):
            _validate_result_invariants(result)
        assert "invariant violation" not in caplog.text.lower()

    def test_fallback_analysis_passes(self, caplog):
        """The fallback analysis (score 50, HOLD, no components) is consistent."""
        with caplog.at_level(logging.WARNING):
            _validate_result_invariants(FALLBACK_ANALYSIS)
        assert "invariant violation" not in caplog.text.lower()

    def test_mismatched_recommendation(self, caplog):
        """Should warn when the recommendation disagrees with the score."""
        result = AnalysisResult(
            recommendation=Recommendation.STRONG_BUY,
            score=50,
            summary="s",
            reasoning=("r",),
            risk_warning="w",
            strategy="x",
        )
        with caplog.at_level(logging.WARNING):
            _validate_result_invariants(result)
        assert "recommendation=STRONG_BUY but score=50 classifies as HOLD" in caplog.text

    def test_components_total_mismatch(self, caplog):
        """Should warn when components do not add up to the score."""
        result = AnalysisResult(
            recommendation=Recommendation.HOLD,
            score=50,
            summary="s",
            reasoning=("r",),
            risk_warning="w",
            strategy="x",
            components=ScoreBreakdown(valuation=15, trend=20, alignment=45, total=80),
        )
        with caplog.at_level(logging.WARNING):
            _validate_result_invariants(result)
        assert "components.total=80 but score=50" in caplog.text
        assert "components.alignment=45 outside [0, 30]" in caplog.text

    def test_score_out_of_range_and_empty_reasoning(self, caplog):
        """Should warn on out-of-range score and empty reasoning."""
        result = AnalysisResult(
            recommendation=Recommendation.STRONG_BUY,
            score=120,
            summary="s",
            reasoning=(),
            risk_warning="w",
            strategy="x",
        )
        with caplog.at_level(logging.WARNING):
            _validate_result_invariants(result)
        assert "score=120 outside [0, 100]" in caplog.text
        assert "reasoning is empty" in caplog.text
