"""Strategy processing pipeline: user strategy -> stored bot + backtest summary.

Flow:
  1. Insert a StrategyBot row in "generating" state (caller always gets an id)
  2. Ask the AI gateway for analysis, indicators, bot pseudocode and a backtest
  3. Parse the reply (fenced block -> raw JSON -> deterministic fallback)
  4. Mark the bot "ready" and store one BacktestResult

The backtest numbers are model-authored placeholders, not a simulation.
"""

import logging
import math
import re
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from api.models.backtest import BacktestResult
from api.models.strategy_bot import BotStatus, StrategyBot
from api.schemas.strategy import StrategyInput
from api.services.ai_gateway import AIGateway, AIGatewayError, AIRateLimitError
from api.services.response_parser import ResponseParseError, extract_json_object

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = """You are an expert quantitative trading bot developer. Your task is to analyze trading strategies and create executable trading bot logic.

You will receive a trading strategy description and must output a structured JSON response with:
1. Parsed entry/exit conditions as programmatic rules
2. Technical indicators needed with their parameters
3. Risk management rules
4. A trading bot pseudocode/logic that can be executed
5. Backtest simulation with sample trades

IMPORTANT: Be realistic. Generate sample backtest results that reflect typical trading performance - not unrealistic gains.

Output MUST be valid JSON with this exact structure:
{
  "analysis": "Brief analysis of the strategy's logic and viability",
  "indicators": [
    {"name": "SMA", "params": {"period": 20}, "usage": "entry signal"},
    {"name": "RSI", "params": {"period": 14, "overbought": 70, "oversold": 30}, "usage": "filter"}
  ],
  "entryLogic": "Structured entry conditions in plain language that can be coded",
  "exitLogic": "Structured exit conditions in plain language that can be coded",
  "riskParams": {
    "riskPerTrade": 1,
    "maxDailyLoss": 3,
    "stopLoss": "2% or ATR-based",
    "takeProfit": "3% or 2:1 RR"
  },
  "botCode": "// Pseudocode for the trading bot\\nfunction checkEntry(candle, indicators) {...}\\nfunction checkExit(position, candle, indicators) {...}",
  "backtestResults": {
    "symbol": "BTCUSDT",
    "timeframe": "1h",
    "startDate": "2024-01-01",
    "endDate": "2024-12-31",
    "initialCapital": 10000,
    "finalCapital": 11250,
    "totalTrades": 48,
    "winningTrades": 28,
    "losingTrades": 20,
    "winRate": 58.3,
    "profitLoss": 1250,
    "profitLossPercentage": 12.5,
    "maxDrawdown": 8.2,
    "sharpeRatio": 1.45,
    "trades": [
      {"date": "2024-01-15", "type": "LONG", "entry": 42500, "exit": 44100, "pnl": 3.76, "reason": "SMA crossover"},
      {"date": "2024-01-22", "type": "LONG", "entry": 43800, "exit": 42900, "pnl": -2.05, "reason": "Stop loss hit"}
    ],
    "equityCurve": [10000, 10376, 10164, 10580, 10320, 10890, 11250]
  }
}"""

_USER_PROMPT_TEMPLATE = """Analyze this trading strategy and generate a complete trading bot:

**Strategy Name:** {name}

**Description:** {description}

**Target Markets:** {markets}

**Timeframe:** {timeframe}

**Entry Rules:** {entry_rules}

**Exit Rules:** {exit_rules}

**Technical Indicators:** {indicators}

**Risk Management:**
- Risk per trade: {risk_per_trade}
- Max daily loss: {max_daily_loss}
- Stop loss type: {stop_loss_type}
- Take profit type: {take_profit_type}
- Position sizing: {position_sizing}

Generate the bot logic and run a realistic backtest simulation. Pick an appropriate symbol from the markets specified."""

_FALLBACK_BOT_CODE = "// Strategy processing completed - manual review recommended"
_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


class BotGenerationError(Exception):
    """Bot generation failed after the bot row was created."""

    def __init__(self, message: str, bot_id: int, rate_limited: bool = False):
        super().__init__(message)
        self.bot_id = bot_id
        self.rate_limited = rate_limited


def parse_number(value: Any, default: float = 0.0) -> float:
    """Read a leading number the way a lenient form parser would ("1%" -> 1.0)."""
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return default
    else:
        match = _LEADING_NUMBER.match(str(value))
        if not match:
            return default
        number = float(match.group(1))
    # NaN and infinities cannot be stored or counted
    return number if math.isfinite(number) else default


def _num_or(value: Any, default: float) -> float:
    # Zero and missing both fall back to the default
    number = parse_number(value, 0.0)
    return number if number else default


def build_user_prompt(strategy: StrategyInput) -> str:
    return _USER_PROMPT_TEMPLATE.format(
        name=strategy.name,
        description=strategy.description,
        markets=", ".join(strategy.markets),
        timeframe=strategy.timeframe,
        entry_rules=strategy.entry_rules,
        exit_rules=strategy.exit_rules,
        indicators=strategy.indicators or "Not specified",
        risk_per_trade=strategy.risk_per_trade or "1%",
        max_daily_loss=strategy.max_daily_loss or "3%",
        stop_loss_type=strategy.stop_loss_type or "Percentage based",
        take_profit_type=strategy.take_profit_type or "Risk-reward ratio",
        position_sizing=strategy.position_sizing or "Fixed percentage",
    )


def default_symbol(strategy: StrategyInput) -> str:
    first_market = strategy.markets[0] if strategy.markets else ""
    return "BTCUSDT" if "crypto" in first_market.lower() else "AAPL"


def fallback_result(strategy: StrategyInput, content: str) -> dict:
    """Deterministic stand-in used when the model reply is not parseable JSON."""
    return {
        "analysis": content,
        "indicators": [],
        "entryLogic": strategy.entry_rules,
        "exitLogic": strategy.exit_rules,
        "riskParams": {
            "riskPerTrade": _num_or(strategy.risk_per_trade, 1),
            "maxDailyLoss": _num_or(strategy.max_daily_loss, 3),
        },
        "botCode": _FALLBACK_BOT_CODE,
        "backtestResults": {
            "symbol": default_symbol(strategy),
            "timeframe": strategy.timeframe,
            "startDate": "2024-01-01",
            "endDate": "2024-12-31",
            "initialCapital": 10000,
            "finalCapital": 10500,
            "totalTrades": 25,
            "winningTrades": 14,
            "losingTrades": 11,
            "winRate": 56,
            "profitLoss": 500,
            "profitLossPercentage": 5,
            "maxDrawdown": 6,
            "sharpeRatio": 1.1,
            "trades": [],
            "equityCurve": [10000, 10100, 10250, 10180, 10350, 10500],
        },
    }


def normalize_backtest(raw: Any, strategy: StrategyInput) -> dict:
    """Map a (possibly partial) camelCase backtest dict onto backtest_results columns.

    Missing numbers become 0 (capital fields 10000), missing lists become [].
    Trade counts are clamped so winning + losing never exceeds total.
    """
    bt = raw if isinstance(raw, dict) else {}

    def _count(key: str) -> int:
        return max(0, int(parse_number(bt.get(key), 0.0)))

    total = _count("totalTrades")
    wins = _count("winningTrades")
    losses = _count("losingTrades")
    if wins + losses > total:
        total = wins + losses

    trades = bt.get("trades")
    equity = bt.get("equityCurve")

    return {
        "symbol": str(bt.get("symbol") or "BTCUSDT"),
        "timeframe": str(bt.get("timeframe") or strategy.timeframe or "1h"),
        "start_date": str(bt.get("startDate") or "2024-01-01"),
        "end_date": str(bt.get("endDate") or "2024-12-31"),
        "initial_capital": _num_or(bt.get("initialCapital"), 10000.0),
        "final_capital": _num_or(bt.get("finalCapital"), 10000.0),
        "total_trades": total,
        "winning_trades": wins,
        "losing_trades": losses,
        "win_rate": parse_number(bt.get("winRate")),
        "profit_loss": parse_number(bt.get("profitLoss")),
        "profit_loss_percentage": parse_number(bt.get("profitLossPercentage")),
        "max_drawdown": parse_number(bt.get("maxDrawdown")),
        "sharpe_ratio": parse_number(bt.get("sharpeRatio")),
        "trade_log": trades if isinstance(trades, list) else [],
        "equity_curve": equity if isinstance(equity, list) else [],
    }


def _as_text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return value if isinstance(value, str) else str(value)


class StrategyPipeline:
    """Turns one StrategyInput into a ready (or errored) bot plus a backtest row."""

    def __init__(self, db: Session, gateway: AIGateway):
        self.db = db
        self.gateway = gateway

    def process(self, strategy: StrategyInput, user_id: str) -> dict:
        self.gateway.require_configured()

        bot = self._create_bot(strategy, user_id)
        bot_id = bot.id
        try:
            parsed = self._generate(strategy, bot)
            self._mark_ready(bot, strategy, parsed)
        except BotGenerationError:
            raise
        except Exception as e:
            logger.error("Strategy processing failed for bot %s: %s", bot_id, e)
            self._mark_error(bot, f"Strategy processing failed: {e}")
            raise

        backtest = normalize_backtest(parsed.get("backtestResults"), strategy)
        self._save_backtest(bot, user_id, backtest)

        logger.info("Strategy processed successfully (bot %s)", bot_id)
        return {
            "success": True,
            "botId": bot_id,
            "analysis": bot.ai_analysis,
            "indicators": bot.indicators,
            "backtestSummary": {
                "winRate": backtest["win_rate"],
                "profitLoss": backtest["profit_loss"],
                "totalTrades": backtest["total_trades"],
                "maxDrawdown": backtest["max_drawdown"],
            },
        }

    # ── Steps ─────────────────────────────────────────────

    def _create_bot(self, strategy: StrategyInput, user_id: str) -> StrategyBot:
        bot = StrategyBot(
            strategy_id=strategy.strategy_id,
            user_id=user_id,
            name=f"{strategy.name} Bot",
            status=BotStatus.GENERATING.value,
            broker="paper",
        )
        self.db.add(bot)
        self.db.commit()
        self.db.refresh(bot)
        logger.info("Created bot %s for user %s (generating)", bot.id, user_id)
        return bot

    def _generate(self, strategy: StrategyInput, bot: StrategyBot) -> dict:
        messages = [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": build_user_prompt(strategy)},
        ]
        try:
            content = self.gateway.complete(
                messages, temperature=0.7, operation="strategy processing",
            )
        except AIGatewayError as e:
            self._mark_error(bot, f"AI processing failed: {e.status_code or 'unreachable'}")
            if isinstance(e, AIRateLimitError):
                raise BotGenerationError(
                    "Rate limit exceeded. Please try again later.", bot.id, rate_limited=True,
                ) from e
            raise BotGenerationError(f"AI processing failed: {e.status_code}", bot.id) from e

        if not content:
            self._mark_error(bot, "No response from AI")
            raise BotGenerationError("No response from AI", bot.id)

        logger.info("AI response received for bot %s, parsing...", bot.id)
        try:
            return extract_json_object(content)
        except ResponseParseError as e:
            logger.warning("Failed to parse AI response for bot %s: %s", bot.id, e)
            logger.debug("Raw content: %s", content[:500])
            return fallback_result(strategy, content)

    def _mark_ready(self, bot: StrategyBot, strategy: StrategyInput, parsed: dict) -> None:
        indicators = parsed.get("indicators")
        risk_params = parsed.get("riskParams")

        bot.status = BotStatus.READY.value
        bot.ai_analysis = _as_text(parsed.get("analysis"))
        bot.indicators = indicators if isinstance(indicators, list) else []
        bot.entry_logic = _as_text(parsed.get("entryLogic"), strategy.entry_rules)
        bot.exit_logic = _as_text(parsed.get("exitLogic"), strategy.exit_rules)
        bot.risk_params = risk_params if isinstance(risk_params, dict) else {}
        bot.generated_code = _as_text(parsed.get("botCode"), _FALLBACK_BOT_CODE)
        bot.bot_config = {"markets": list(strategy.markets), "timeframe": strategy.timeframe}
        bot.error_message = None
        self.db.commit()

    def _mark_error(self, bot: StrategyBot, message: str) -> None:
        self.db.rollback()
        try:
            bot.status = BotStatus.ERROR.value
            bot.error_message = message
            self.db.commit()
        except SQLAlchemyError as e:
            # Row stays as-is; the caller sees the first failure
            self.db.rollback()
            logger.error("Could not mark bot as error: %s", e)

    def _save_backtest(self, bot: StrategyBot, user_id: str, backtest: dict) -> Optional[BacktestResult]:
        bot_id = bot.id
        record = BacktestResult(bot_id=bot_id, user_id=user_id, **backtest)
        try:
            self.db.add(record)
            self.db.commit()
        except SQLAlchemyError as e:
            # Accepted: bot stays "ready" without a backtest row
            self.db.rollback()
            logger.error("Error saving backtest for bot %s: %s", bot_id, e)
            return None
        return record
