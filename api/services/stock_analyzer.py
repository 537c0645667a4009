"""One-shot BUY/SELL/HOLD analysis for a single symbol."""

import logging
from datetime import datetime, timezone
from typing import Optional

from api.schemas.chart import CurrentPosition
from api.services.ai_gateway import AIGateway
from api.services.response_parser import ResponseParseError, extract_json_object

logger = logging.getLogger(__name__)

DISCLAIMER = "This is AI-generated analysis for educational purposes only. Not financial advice."

_SYSTEM_PROMPT = """You are an expert technical analyst and trading advisor for Quantmentor, an AI-powered algorithmic trading platform. Your role is to analyze stocks, cryptocurrencies, and other financial instruments based on:

1. **Chart Patterns**: Identify key patterns like Head & Shoulders, Double Top/Bottom, Triangles, Flags, Wedges, Cup & Handle, etc.
2. **Open Interest (OI) Data**: Analyze OI trends to gauge market sentiment and potential price movements
3. **Technical Indicators**: Consider RSI, MACD, Moving Averages, Bollinger Bands, Volume patterns
4. **Market Sentiment**: Overall market conditions and sector performance
5. **Support/Resistance Levels**: Key price levels to watch

IMPORTANT DISCLAIMERS:
- This is AI-generated analysis for educational purposes only
- Not financial advice - users should do their own research
- Past performance doesn't guarantee future results
- Consider your risk tolerance before making decisions

Always provide:
- A clear BUY, SELL, or HOLD recommendation
- Confidence level (Low/Medium/High)
- Key reasons for the recommendation (3-5 bullet points)
- Risk factors to consider
- Key price levels (support/resistance)
- Suggested stop-loss and target prices (approximate ranges)

Format your response as JSON with this structure:
{
  "recommendation": "BUY" | "SELL" | "HOLD",
  "confidence": "Low" | "Medium" | "High",
  "summary": "One-line summary of analysis",
  "reasons": ["reason1", "reason2", "reason3"],
  "technicalPatterns": ["pattern1", "pattern2"],
  "riskFactors": ["risk1", "risk2"],
  "supportLevel": "price or range",
  "resistanceLevel": "price or range",
  "stopLoss": "suggested stop-loss level or range",
  "targetPrice": "suggested target or range",
  "timeframe": "Short-term (1-7 days)" | "Medium-term (1-4 weeks)" | "Long-term (1-3 months)",
  "oiAnalysis": "Brief OI interpretation",
  "marketSentiment": "Bullish" | "Bearish" | "Neutral"
}"""

_CLOSING = (
    "Provide comprehensive technical analysis based on current market conditions, "
    "chart patterns, and OI data interpretation."
)


class EmptyAnalysisError(Exception):
    """The model returned no content."""


def build_user_prompt(
    symbol: str,
    asset_type: Optional[str],
    position: Optional[CurrentPosition],
) -> str:
    asset = asset_type or "Stock"
    if position is None:
        return (
            f"Analyze {symbol} ({asset}) for a potential new position.\n\n"
            "Should a trader BUY, SELL (short), or HOLD (wait for better entry)?\n\n"
            f"{_CLOSING}"
        )

    quantity = f", quantity: {position.quantity:g}" if position.quantity else ""
    return (
        f"Analyze {symbol} ({asset}).\n\n"
        f"User's Current Position: {position.type} at {position.entry_price:g}{quantity}\n\n"
        "Given their existing position, should they HOLD, add more (BUY), or exit (SELL)? "
        "Consider their entry price in your analysis.\n\n"
        f"{_CLOSING}"
    )


def fallback_analysis(content: str) -> dict:
    return {
        "recommendation": "HOLD",
        "confidence": "Medium",
        "summary": content[:200],
        "reasons": ["Analysis completed - see summary for details"],
        "technicalPatterns": [],
        "riskFactors": ["Unable to parse detailed analysis"],
        "rawAnalysis": content,
    }


class StockAnalyzer:
    def __init__(self, gateway: AIGateway):
        self.gateway = gateway

    def analyze(
        self,
        symbol: str,
        asset_type: Optional[str] = None,
        current_position: Optional[CurrentPosition] = None,
    ) -> dict:
        self.gateway.require_configured()
        logger.info(
            "Analyzing %s (%s) - Has position: %s", symbol, asset_type, current_position is not None,
        )
        content = self.gateway.complete(
            [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(symbol, asset_type, current_position)},
            ],
            temperature=0.7,
            max_tokens=2000,
            operation="stock analysis",
        )
        if not content:
            raise EmptyAnalysisError("No analysis generated")

        try:
            analysis = extract_json_object(content)
        except ResponseParseError:
            logger.info("Could not parse as JSON, returning structured fallback")
            analysis = fallback_analysis(content)

        logger.info("Analysis complete for %s: %s", symbol, analysis.get("recommendation"))
        return {
            "success": True,
            "symbol": symbol,
            "assetType": asset_type or "Stock",
            "analysis": analysis,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "disclaimer": DISCLAIMER,
        }
