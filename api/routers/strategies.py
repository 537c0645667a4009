"""Strategy bots router: process a strategy into a bot, read bots and backtests."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from api.config import ConfigurationError
from api.models.base import get_db
from api.models.backtest import BacktestResult
from api.models.strategy_bot import StrategyBot
from api.schemas.strategy import (
    BacktestResultResponse, BacktestSummary, ProcessStrategyRequest, ProcessStrategyResponse,
    StrategyBotResponse,
)
from api.services.ai_gateway import AIGateway, get_ai_gateway
from api.services.strategy_pipeline import BotGenerationError, StrategyPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["strategies"])


def _iso(dt) -> str:
    return dt.isoformat() if dt else ""


def _bot_response(bot: StrategyBot) -> StrategyBotResponse:
    latest = None
    if bot.backtests:
        bt = bot.backtests[-1]
        latest = BacktestSummary(
            win_rate=bt.win_rate,
            profit_loss=bt.profit_loss,
            total_trades=bt.total_trades,
            max_drawdown=bt.max_drawdown,
        )
    return StrategyBotResponse(
        id=bot.id,
        strategy_id=bot.strategy_id,
        user_id=bot.user_id,
        name=bot.name,
        status=bot.status,
        broker=bot.broker,
        ai_analysis=bot.ai_analysis,
        indicators=bot.indicators,
        entry_logic=bot.entry_logic,
        exit_logic=bot.exit_logic,
        risk_params=bot.risk_params,
        generated_code=bot.generated_code,
        bot_config=bot.bot_config,
        error_message=bot.error_message,
        created_at=_iso(bot.created_at),
        updated_at=_iso(bot.updated_at),
        latest_backtest=latest,
    )


@router.post("/process-strategy", response_model=ProcessStrategyResponse)
def process_strategy(
    req: ProcessStrategyRequest,
    db: Session = Depends(get_db),
    gateway: AIGateway = Depends(get_ai_gateway),
):
    """Turn a user strategy into a stored bot plus a backtest summary."""
    logger.info("Processing strategy %r for user %s", req.strategy.name, req.user_id)
    try:
        return StrategyPipeline(db, gateway).process(req.strategy, req.user_id)
    except BotGenerationError as e:
        if e.rate_limited:
            return JSONResponse({"error": str(e), "botId": e.bot_id}, status_code=429)
        return JSONResponse({"error": str(e)}, status_code=500)
    except ConfigurationError as e:
        logger.error("Strategy processing unavailable: %s", e)
        return JSONResponse({"error": str(e)}, status_code=500)
    except Exception:
        logger.exception("Error processing strategy")
        return JSONResponse({"error": "Failed to process strategy"}, status_code=500)


@router.get("/bots", response_model=list[StrategyBotResponse])
def list_bots(
    user_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    """List a user's bots, newest first."""
    rows = (
        db.query(StrategyBot)
        .filter(StrategyBot.user_id == user_id)
        .order_by(StrategyBot.created_at.desc(), StrategyBot.id.desc())
        .all()
    )
    return [_bot_response(b) for b in rows]


@router.get("/bots/{bot_id}", response_model=StrategyBotResponse)
def get_bot(bot_id: int, db: Session = Depends(get_db)):
    bot = db.query(StrategyBot).filter(StrategyBot.id == bot_id).first()
    if not bot:
        raise HTTPException(404, "Bot not found")
    return _bot_response(bot)


@router.get("/backtests/{backtest_id}", response_model=BacktestResultResponse)
def get_backtest(backtest_id: int, db: Session = Depends(get_db)):
    """Full backtest detail, including trade log and equity curve."""
    bt = db.query(BacktestResult).filter(BacktestResult.id == backtest_id).first()
    if not bt:
        raise HTTPException(404, "Backtest not found")
    return BacktestResultResponse(
        id=bt.id,
        bot_id=bt.bot_id,
        user_id=bt.user_id,
        symbol=bt.symbol,
        timeframe=bt.timeframe,
        start_date=bt.start_date,
        end_date=bt.end_date,
        initial_capital=bt.initial_capital,
        final_capital=bt.final_capital,
        total_trades=bt.total_trades,
        winning_trades=bt.winning_trades,
        losing_trades=bt.losing_trades,
        win_rate=bt.win_rate,
        profit_loss=bt.profit_loss,
        profit_loss_percentage=bt.profit_loss_percentage,
        max_drawdown=bt.max_drawdown,
        sharpe_ratio=bt.sharpe_ratio,
        trade_log=bt.trade_log or [],
        equity_curve=bt.equity_curve or [],
        created_at=_iso(bt.created_at),
    )
