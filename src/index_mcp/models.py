"""Value objects for the market assessment pipeline."""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any


class RiskPreference(str, Enum):
    """Investor risk preference. Only influences the scoring engine."""

    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"

    @classmethod
    def parse(cls, text: "str | RiskPreference") -> "RiskPreference":
        """Parse a preference name, case-insensitive."""
        if isinstance(text, cls):
            return text
        key = str(text).strip().lower()
        for member in cls:
            if member.value == key:
                return member
        valid = ", ".join(m.value for m in cls)
        raise ValueError(f"Invalid risk preference '{text}'. Must be one of: {valid}")


class Recommendation(str, Enum):
    """Five-way entry recommendation."""

    STRONG_BUY = "STRONG_BUY"
    BUY = "BUY"
    HOLD = "HOLD"
    SELL = "SELL"
    STRONG_SELL = "STRONG_SELL"


@dataclass(frozen=True)
class HistoryPoint:
    """One reconstructed daily reading."""

    date: date
    price: float
    ratio: float

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date.isoformat(), "price": self.price, "ratio": self.ratio}


@dataclass(frozen=True)
class SourceRef:
    """Citation returned by the market-data provider."""

    title: str
    uri: str

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "uri": self.uri}


@dataclass(frozen=True)
class MarketSnapshot:
    """
    Point-in-time view of the index, created once per fetch cycle.

    Replaced wholesale on each refresh, never patched in place. The last
    history point is anchored on ``price``.
    """

    price: float
    change_percent: float
    pe_ratio: float
    pe_percentile: float
    pb_ratio: float
    high_52_week: float
    low_52_week: float
    volume: str
    last_updated: str
    history: tuple[HistoryPoint, ...]
    source_refs: tuple[SourceRef, ...] = ()
    symbol: str = "^NDX"
    is_fallback: bool = False
    warnings: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.history:
            raise ValueError("MarketSnapshot.history must not be empty")
        if self.history[-1].price != self.price:
            raise ValueError(
                f"history must end at the live price: "
                f"last={self.history[-1].price}, price={self.price}"
            )

    def to_dict(self, include_history: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "symbol": self.symbol,
            "price": self.price,
            "change_percent": self.change_percent,
            "pe_ratio": self.pe_ratio,
            "pe_percentile": self.pe_percentile,
            "pb_ratio": self.pb_ratio,
            "high_52_week": self.high_52_week,
            "low_52_week": self.low_52_week,
            "volume": self.volume,
            "last_updated": self.last_updated,
            "is_fallback": self.is_fallback,
            "warnings": list(self.warnings),
            "source_refs": [s.to_dict() for s in self.source_refs],
            "history_points": len(self.history),
        }
        if include_history:
            data["history"] = [p.to_dict() for p in self.history]
        return data


@dataclass(frozen=True)
class ScoreBreakdown:
    """Rubric components. ``total`` is the clamped sum."""

    valuation: int
    trend: int
    alignment: int
    total: int

    def to_dict(self) -> dict[str, int]:
        return {
            "valuation": self.valuation,
            "trend": self.trend,
            "alignment": self.alignment,
            "total": self.total,
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Scored recommendation plus narrative text, created once per scoring cycle."""

    recommendation: Recommendation
    score: int
    summary: str
    reasoning: tuple[str, ...]
    risk_warning: str
    strategy: str
    components: ScoreBreakdown | None = None
    risk_preference: RiskPreference | None = None
    narrative_source: str = "template"
    generated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "recommendation": self.recommendation.value,
            "score": self.score,
            "summary": self.summary,
            "reasoning": list(self.reasoning),
            "risk_warning": self.risk_warning,
            "strategy": self.strategy,
            "components": self.components.to_dict() if self.components else None,
            "risk_preference": self.risk_preference.value if self.risk_preference else None,
            "narrative_source": self.narrative_source,
            "generated_at": self.generated_at or None,
        }
