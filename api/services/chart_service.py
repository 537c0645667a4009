"""Chart prediction service: structured JSON read-out or live chat stream.

Structured mode degrades to ``{summary, error, parseError}`` when the model
reply is not valid JSON; chat mode forwards the gateway's SSE bytes as-is.
"""

import logging
from typing import Optional

from api.schemas.chart import ChartContext
from api.services.ai_gateway import AIGateway, GatewayStream
from api.services.response_parser import ResponseParseError, parse_fenced_json

logger = logging.getLogger(__name__)

_STRUCTURED_PROMPT = """You are an elite AI trading analyst. Analyze the trading chart (image and/or conversation) and return a precise technical read-out.

Return ONLY valid JSON with this exact structure (no markdown, no commentary):
{
  "overview": {
    "symbol": "detected symbol or UNKNOWN",
    "timeframe": "detected timeframe",
    "marketStructure": "Bullish | Bearish | Ranging",
    "trendStrength": "Strong | Moderate | Weak"
  },
  "recommendation": {
    "action": "BUY | SELL | HOLD",
    "confidence": 0-100,
    "entryZone": "price range",
    "stopLoss": "price with short reasoning",
    "takeProfit1": "price",
    "takeProfit2": "price",
    "takeProfit3": "price",
    "riskReward": "e.g. 1:2.5"
  },
  "patterns": [
    {"name": "pattern name", "type": "bullish | bearish | neutral", "reliability": "High | Medium | Low", "description": "short note"}
  ],
  "indicators": {
    "rsi": {"value": "reading", "signal": "overbought | oversold | neutral"},
    "macd": {"signal": "bullish crossover | bearish crossover | neutral", "histogram": "expanding | contracting"},
    "movingAverages": {"trend": "above | below key MAs", "keyLevels": "e.g. 50 EMA at X"},
    "volume": {"trend": "increasing | decreasing | average", "confirmation": "confirms | diverges"}
  },
  "supportResistance": [
    {"type": "support | resistance", "price": "level", "strength": "Strong | Moderate | Weak"}
  ],
  "riskAssessment": {
    "level": "Low | Medium | High",
    "factors": ["factor 1", "factor 2"]
  },
  "summary": "2-3 sentence summary. This is educational analysis, not financial advice."
}"""

_CHAT_PROMPT_TEMPLATE = """You are an elite AI trading analyst with expertise in technical analysis, price action, and market psychology. You provide highly accurate, actionable trading insights based on chart analysis.

## Current Market Context:
- **Symbol**: {symbol}
- **Asset Type**: {asset_type}
- **Current Price**: {current_price}
- **Price Change**: {price_change}
- **Chart Timeframe**: {chart_timeframe}

## Your Analysis Framework:

### 1. Chart Pattern Recognition
Identify and analyze: Head & Shoulders, Double/Triple Tops/Bottoms, Ascending/Descending Triangles, Bull/Bear Flags, Pennants, Wedges, Cup & Handle, Inverse Cup & Handle, Rounding Bottoms, Diamond patterns.

### 2. Technical Indicators Analysis
- **RSI (Relative Strength Index)**: Overbought (>70), Oversold (<30), Divergences
- **MACD**: Signal line crossovers, histogram momentum, divergences
- **Moving Averages**: 20/50/100/200 EMA/SMA crossovers, support/resistance
- **Bollinger Bands**: Squeeze patterns, breakouts, mean reversion
- **Volume**: Confirmation of moves, accumulation/distribution

### 3. Price Action Analysis
- **Candlestick Patterns**: Doji, Engulfing, Hammer, Shooting Star, Morning/Evening Star
- **Support/Resistance Levels**: Historical pivots, psychological levels, Fibonacci retracements
- **Trend Analysis**: Higher highs/lows, lower highs/lows, trend channels
- **Market Structure**: Break of structure (BOS), change of character (CHoCH)

### 4. Recommendation Format
Always provide:
- **Recommendation**: BUY / SELL / HOLD with confidence level (%)
- **Entry Zone**: Specific price range
- **Stop Loss**: With reasoning (below support, ATR-based, etc.)
- **Take Profit Targets**: TP1, TP2, TP3 with risk:reward ratios
- **Timeframe**: Expected duration for the trade
- **Risk Level**: Low / Medium / High

## Guidelines:
1. Be specific with exact price levels when possible
2. Always explain your reasoning clearly
3. Acknowledge uncertainty when the setup isn't clear
4. Consider multiple timeframe analysis
5. Factor in overall market conditions
6. Mention key upcoming catalysts (earnings, events) when relevant
7. Be willing to debate and adjust based on user feedback
8. ALWAYS include the disclaimer that this is educational, not financial advice

## Response Style:
- Use markdown formatting for clarity
- Keep responses comprehensive but scannable
- Prioritize actionable information"""

PARSE_ERROR_MESSAGE = "Failed to parse structured analysis"
DEFAULT_IMAGE_PROMPT = "Analyze this chart."


def _image_url(image_base64: str) -> str:
    if image_base64.startswith("data:"):
        return image_base64
    return f"data:image/png;base64,{image_base64}"


def build_chat_prompt(context: Optional[ChartContext] = None) -> str:
    ctx = context or ChartContext()
    return _CHAT_PROMPT_TEMPLATE.format(
        symbol=ctx.symbol or "See chart",
        asset_type=ctx.asset_type or "Unknown",
        current_price=ctx.current_price or "Check chart",
        price_change=ctx.price_change or "Check chart",
        chart_timeframe=ctx.chart_timeframe or "1D",
    )


def build_messages(
    messages: list[dict],
    image_base64: Optional[str],
    system_prompt: str,
) -> list[dict]:
    """System prompt + history; the newest user message carries the image, if any."""
    history = [{"role": m["role"], "content": m["content"]} for m in messages]

    if image_base64:
        image_part = {"type": "image_url", "image_url": {"url": _image_url(image_base64)}}
        for i in range(len(history) - 1, -1, -1):
            if history[i]["role"] == "user":
                history[i] = {
                    "role": "user",
                    "content": [{"type": "text", "text": history[i]["content"]}, image_part],
                }
                break
        else:
            logger.warning("Chart image sent without a user message, adding one")
            history.append({
                "role": "user",
                "content": [{"type": "text", "text": DEFAULT_IMAGE_PROMPT}, image_part],
            })

    return [{"role": "system", "content": system_prompt}, *history]


class ChartPredictionService:
    def __init__(self, gateway: AIGateway):
        self.gateway = gateway

    def analyze(
        self,
        messages: list[dict],
        image_base64: Optional[str] = None,
        context: Optional[ChartContext] = None,
    ) -> dict:
        """Structured mode: always returns a JSON-serialisable dict."""
        self.gateway.require_configured()
        payload = build_messages(messages, image_base64, _STRUCTURED_PROMPT)
        symbol = context.symbol if context else None
        logger.info(
            "Structured chart analysis for %s: %d messages, image=%s",
            symbol or "chart", len(messages), bool(image_base64),
        )
        content = self.gateway.complete(payload, temperature=0.4, operation="chart analysis")

        try:
            return parse_fenced_json(content)
        except ResponseParseError as e:
            logger.warning("Could not parse chart analysis as JSON: %s", e)
            return {
                "summary": content,
                "error": PARSE_ERROR_MESSAGE,
                "parseError": True,
            }

    def stream_chat(
        self,
        messages: list[dict],
        image_base64: Optional[str] = None,
        context: Optional[ChartContext] = None,
    ) -> GatewayStream:
        """Chat mode: raw SSE bytes from the gateway, unbuffered."""
        self.gateway.require_configured()
        payload = build_messages(messages, image_base64, build_chat_prompt(context))
        symbol = context.symbol if context else None
        logger.info("Processing prediction for %s, messages: %d", symbol or "chart", len(messages))
        return self.gateway.stream(payload, operation="chart chat")
