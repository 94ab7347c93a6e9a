"""Narrative providers: prose for an already scored assessment.

Score and recommendation are computed locally by the rubric. A narrative
provider only phrases the summary, reasoning, risk warning and strategy.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from openai import OpenAI

from index_mcp.config import Settings
from index_mcp.data.providers import create_openai_client
from index_mcp.data.retry import BlockingExecutor
from index_mcp.errors import ProviderError
from index_mcp.models import MarketSnapshot, Recommendation, RiskPreference, ScoreBreakdown
from index_mcp.prompts.templates import NARRATIVE_INSTRUCTION, SCORING_RUBRIC
from index_mcp.utils.parsing import extract_json_block, sanitize_text


@dataclass(frozen=True)
class Narrative:
    summary: str
    reasoning: tuple[str, ...]
    risk_warning: str
    strategy: str


class NarrativeProvider(ABC):
    name = "unknown"

    @abstractmethod
    async def narrate(
        self,
        snapshot: MarketSnapshot,
        risk: RiskPreference,
        breakdown: ScoreBreakdown,
        recommendation: Recommendation,
    ) -> Narrative:
        raise NotImplementedError


def _valuation_reason(snapshot: MarketSnapshot, points: int) -> str:
    pct = snapshot.pe_percentile
    if pct < 20:
        band = "undervalued"
    elif pct < 50:
        band = "fairly valued"
    elif pct < 80:
        band = "overvalued"
    else:
        band = "in bubble territory"
    return (
        f"Valuation {points}/40: PE {snapshot.pe_ratio:.2f} sits at the "
        f"{pct:.1f}th historical percentile, {band}."
    )


def _trend_reason(snapshot: MarketSnapshot, points: int) -> str:
    chg = snapshot.change_percent
    if chg > 0:
        desc = f"up {chg:.2f}% today, momentum is positive"
    elif chg < 0:
        desc = f"down {abs(chg):.2f}% today, momentum is weak"
    else:
        desc = "flat today, no momentum signal"
    return f"Trend {points}/30: the index is {desc}."


def _alignment_reason(snapshot: MarketSnapshot, risk: RiskPreference, points: int) -> str:
    if risk is RiskPreference.CONSERVATIVE:
        if snapshot.pe_percentile > 80:
            detail = "valuation is too stretched for a conservative profile"
        else:
            detail = "conservative fit weakens as valuation rises"
    elif risk is RiskPreference.AGGRESSIVE:
        if snapshot.change_percent > 0:
            detail = "positive momentum suits an aggressive profile"
        else:
            detail = "an aggressive profile wants positive momentum"
    else:
        detail = "a moderate profile is neutral on this setup"
    return f"Risk match {points}/30: {detail}."


_STRATEGY = {
    Recommendation.STRONG_BUY: "Build the position now; consider adding on pullbacks.",
    Recommendation.BUY: "Enter gradually in tranches rather than all at once.",
    Recommendation.HOLD: "Hold existing exposure and wait for a clearer entry.",
    Recommendation.SELL: "Trim exposure and tighten stops.",
    Recommendation.STRONG_SELL: "Exit or hedge the position; avoid new entries.",
}


def template_narrative(
    snapshot: MarketSnapshot,
    risk: RiskPreference,
    breakdown: ScoreBreakdown,
    recommendation: Recommendation,
) -> Narrative:
    """Deterministic narrative built from the rubric components."""
    label = recommendation.value.replace("_", " ").title()
    summary = (
        f"Entry score {breakdown.total}/100 for the {risk.value} profile: {label}."
    )
    reasoning = (
        _valuation_reason(snapshot, breakdown.valuation),
        _trend_reason(snapshot, breakdown.trend),
        _alignment_reason(snapshot, risk, breakdown.alignment),
    )

    warnings: list[str] = []
    if snapshot.is_fallback:
        warnings.append("Live data unavailable; figures are placeholders.")
    if snapshot.pe_percentile >= 80:
        warnings.append("Valuation is near the top of its historical band.")
    if snapshot.low_52_week < snapshot.high_52_week:
        position = (snapshot.price - snapshot.low_52_week) / (
            snapshot.high_52_week - snapshot.low_52_week
        )
        if position > 0.9:
            warnings.append("Price is close to its 52-week high.")
    if not warnings:
        warnings.append("Index levels can move sharply; size positions accordingly.")

    return Narrative(
        summary=summary,
        reasoning=reasoning,
        risk_warning=" ".join(warnings),
        strategy=_STRATEGY[recommendation],
    )


class TemplateNarrativeProvider(NarrativeProvider):
    name = "template"

    async def narrate(
        self,
        snapshot: MarketSnapshot,
        risk: RiskPreference,
        breakdown: ScoreBreakdown,
        recommendation: Recommendation,
    ) -> Narrative:
        return template_narrative(snapshot, risk, breakdown, recommendation)


def _require_text(data: dict[str, Any], key: str) -> str:
    value = sanitize_text(data.get(key), max_length=600)
    if not value:
        raise ProviderError(f"Narrative response missing '{key}'")
    return value


def narrative_from_json(data: dict[str, Any]) -> Narrative:
    """
    Validate a decoded narrative object.

    Raises:
        ProviderError: If a field is missing or empty
    """
    raw_reasoning = data.get("reasoning")
    if isinstance(raw_reasoning, str):
        raw_reasoning = [raw_reasoning]
    if not isinstance(raw_reasoning, list):
        raise ProviderError("Narrative response missing 'reasoning'")

    reasoning = tuple(
        text for text in (sanitize_text(item, max_length=300) for item in raw_reasoning) if text
    )
    if not reasoning:
        raise ProviderError("Narrative response has empty 'reasoning'")

    return Narrative(
        summary=_require_text(data, "summary"),
        reasoning=reasoning,
        risk_warning=_require_text(data, "riskWarning"),
        strategy=_require_text(data, "strategy"),
    )


class OpenAINarrativeProvider(NarrativeProvider):
    """Phrases the assessment with a chat model in JSON mode."""

    name = "openai"

    def __init__(self, client: OpenAI | None, executor: BlockingExecutor, settings: Settings):
        self._client = client
        self._settings = settings
        self._executor = executor
        self._model = settings.openai_model
        self._index_name = settings.index_name

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = create_openai_client(self._settings)
        return self._client

    def build_prompt(
        self,
        snapshot: MarketSnapshot,
        risk: RiskPreference,
        breakdown: ScoreBreakdown,
        recommendation: Recommendation,
    ) -> str:
        return NARRATIVE_INSTRUCTION.format(
            risk=risk.value,
            index_name=self._index_name,
            symbol=snapshot.symbol,
            price=snapshot.price,
            pe_ratio=snapshot.pe_ratio,
            pe_percentile=snapshot.pe_percentile,
            change_percent=snapshot.change_percent,
            low_52_week=snapshot.low_52_week,
            high_52_week=snapshot.high_52_week,
            rubric=SCORING_RUBRIC,
            valuation=breakdown.valuation,
            trend=breakdown.trend,
            alignment=breakdown.alignment,
            score=breakdown.total,
            recommendation=recommendation.value,
        )

    async def narrate(
        self,
        snapshot: MarketSnapshot,
        risk: RiskPreference,
        breakdown: ScoreBreakdown,
        recommendation: Recommendation,
    ) -> Narrative:
        prompt = self.build_prompt(snapshot, risk, breakdown, recommendation)

        def _call() -> Any:
            return self._get_client().chat.completions.create(
                model=self._model,
                messages=[{"role": "user", "content": prompt}],
                response_format={"type": "json_object"},
                temperature=0,
                seed=42,
            )

        retry_result = await self._executor.run("openai.narrative", _call)
        response = retry_result.result
        if not response.choices:
            raise ProviderError("Empty response from narrative model")

        data = extract_json_block(response.choices[0].message.content)
        if data is None:
            raise ProviderError("No JSON object in narrative response")
        return narrative_from_json(data)


def build_narrative_provider(
    settings: Settings,
    executor: BlockingExecutor,
    client: OpenAI | None = None,
) -> NarrativeProvider:
    kind = settings.narrative_provider
    if kind == "template":
        return TemplateNarrativeProvider()
    if kind == "openai":
        return OpenAINarrativeProvider(client, executor, settings)
    raise ValueError(f"Unsupported narrative provider: {kind}")
