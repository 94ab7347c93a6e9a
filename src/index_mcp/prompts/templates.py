"""Prompt templates: MCP prompts and the instructions sent to LLM providers."""

from typing import Any

MARKET_DATA_INSTRUCTION = """You are a specialized financial data extractor.
Task: retrieve the current LIVE quote for "{index_name} ({symbol})" using web search.

Source rule:
- Prefer the primary finance quote card (e.g. Google Finance) or the primary search summary.
- Do not return multiple conflicting values.

Accuracy rule:
1. Target: the primary live price, the largest figure on the quote card.
2. Do NOT use "Previous Close". It is a separate, labelled, smaller figure.
3. If the market is closed, the price is the last trade, which differs from
   the previous close (yesterday's close).
   Example: if the card shows "24,873" (large) and "Prev Close: 24,239" (small),
   return 24873.

Required fields:
1. Current price
2. Change percent (e.g. +1.5%)
3. PE ratio (price to earnings)
4. 52 week high
5. 52 week low
6. Volume

Return a JSON object with keys: "price", "changePercent", "peRatio",
"high52Week", "low52Week", "volume".
"""

SCORING_RUBRIC = """SCORING RUBRIC (total 100 points):

1. VALUATION (max 40):
   - PE percentile < 20%: 40 (undervalued)
   - PE percentile 20-50%: 30 (fair)
   - PE percentile 50-80%: 15 (overvalued)
   - PE percentile >= 80%: 0 (bubble)

2. TREND (max 30):
   - Daily change positive: 30
   - Daily change negative: 10
   - Daily change zero: 20

3. RISK PROFILE MATCH (max 30):
   - Conservative and PE percentile > 80%: 0
   - Aggressive and trend positive: 30
   - Otherwise linear: conservative falls as PE percentile rises,
     aggressive rises with the daily change, moderate sits at 15.

Recommendation by total score:
   > 75: STRONG_BUY | 60-75: BUY | 40-59: HOLD | 25-39: SELL | < 25: STRONG_SELL
"""

NARRATIVE_INSTRUCTION = """You are a quantitative analyst writing commentary for a "{risk}" investor
on the {index_name} ({symbol}).

Input data:
- Current price: {price}
- PE ratio: {pe_ratio} (historical percentile: {pe_percentile}%)
- Daily change: {change_percent}%
- 52-week range: {low_52_week} - {high_52_week}

{rubric}
The score has ALREADY been computed with this rubric. Do not recompute or change it:
- valuation: {valuation}/40, trend: {trend}/30, risk match: {alignment}/30
- total score: {score}
- recommendation: {recommendation}

Explain this result. Return pure JSON with keys:
"summary" (one sentence), "reasoning" (array of 2-4 short strings citing
valuation, trend and risk fit), "riskWarning" (one sentence), "strategy" (one sentence).
"""

PROMPTS = {
    "market_briefing": {
        "description": "Daily briefing on the tracked index for a given risk preference",
        "arguments": [{"name": "risk", "required": False}],
    },
}


def list_prompts() -> list[dict[str, Any]]:
    """List available prompts."""
    return [
        {
            "name": name,
            "description": info["description"],
            "arguments": info["arguments"],
        }
        for name, info in PROMPTS.items()
    ]


def get_prompt(name: str, arguments: dict[str, str]) -> dict[str, Any] | None:
    """
    Get a prompt by name with arguments filled in.

    Returns dict with 'messages' key for MCP GetPromptResult.
    """
    if name not in PROMPTS:
        return None

    if name == "market_briefing":
        risk = arguments.get("risk") or "moderate"
        return {
            "messages": [
                {
                    "role": "user",
                    "content": f"""Give me today's briefing on the index for a {risk} investor.

Execute these tools in order:
1. set_risk_preference("{risk}")
2. get_market_snapshot()
3. get_assessment()
4. get_signal()

Then report:
- Price, daily change and where PE sits in its historical band
- The entry score and its three components (valuation, trend, risk match)
- The recommendation and the strategy line
- Flag clearly if the snapshot is a fallback (is_fallback=true): the numbers
  are placeholders and must not be used for decisions.""",
                }
            ]
        }

    return None
