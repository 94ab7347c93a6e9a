"""Recommendation to chart-overlay visual state."""

from dataclasses import dataclass
from typing import Any

from index_mcp.models import Recommendation


@dataclass(frozen=True)
class SignalState:
    color_key: str
    icon_key: str
    label: str
    is_emphasized: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "color_key": self.color_key,
            "icon_key": self.icon_key,
            "label": self.label,
            "is_emphasized": self.is_emphasized,
        }


# Hex values for consumers without a palette
COLOR_HEX = {
    "emerald-500": "#10b981",
    "emerald-400": "#34d399",
    "amber-400": "#fbbf24",
    "rose-400": "#fb7185",
    "rose-500": "#f43f5e",
}

SIGNALS: dict[Recommendation, SignalState] = {
    Recommendation.STRONG_BUY: SignalState("emerald-500", "arrow-up-circle", "Strong Buy", True),
    Recommendation.BUY: SignalState("emerald-400", "arrow-up-circle", "Buy", False),
    Recommendation.HOLD: SignalState("amber-400", "minus-circle", "Hold", False),
    Recommendation.SELL: SignalState("rose-400", "arrow-down-circle", "Sell", False),
    Recommendation.STRONG_SELL: SignalState("rose-500", "arrow-down-circle", "Strong Sell", True),
}


def map_signal(recommendation: Recommendation | str) -> SignalState:
    """Look up the visual state for a recommendation (enum or its value)."""
    return SIGNALS[Recommendation(recommendation)]
