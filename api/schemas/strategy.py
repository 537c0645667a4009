"""Strategy processing Pydantic schemas: request/response models."""

from typing import Optional
from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel


_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class StrategyInput(BaseModel):
    """User-authored strategy description, as submitted from the dashboard."""
    strategy_id: Optional[str] = None
    name: str = Field(min_length=1)
    description: str = ""
    markets: list[str] = []
    timeframe: str
    entry_rules: str
    exit_rules: str
    indicators: str = ""
    # Risk fields arrive as free text ("1", "1%", 2.5)
    risk_per_trade: str = ""
    max_daily_loss: str = ""
    stop_loss_type: str = ""
    take_profit_type: str = ""
    position_sizing: str = ""

    model_config = {**_CAMEL, "frozen": True}

    @field_validator(
        "strategy_id", "risk_per_trade", "max_daily_loss", mode="before",
    )
    @classmethod
    def numbers_to_text(cls, v):
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class ProcessStrategyRequest(BaseModel):
    strategy: StrategyInput
    user_id: str = Field(min_length=1)

    model_config = _CAMEL


class BacktestSummary(BaseModel):
    win_rate: float
    profit_loss: float
    total_trades: int
    max_drawdown: float

    model_config = _CAMEL


class ProcessStrategyResponse(BaseModel):
    success: bool = True
    bot_id: int
    analysis: str
    indicators: list
    backtest_summary: BacktestSummary

    model_config = _CAMEL


# -- Read API -----------------------------------------------

class BacktestResultResponse(BaseModel):
    id: int
    bot_id: Optional[int] = None
    user_id: str
    symbol: str
    timeframe: str
    start_date: str
    end_date: str
    initial_capital: float
    final_capital: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    profit_loss: float
    profit_loss_percentage: float
    max_drawdown: float
    sharpe_ratio: float
    trade_log: list = []
    equity_curve: list = []
    created_at: str

    model_config = {"from_attributes": True}


class StrategyBotResponse(BaseModel):
    id: int
    strategy_id: Optional[str] = None
    user_id: str
    name: str
    status: str
    broker: str
    ai_analysis: Optional[str] = None
    indicators: Optional[list] = None
    entry_logic: Optional[str] = None
    exit_logic: Optional[str] = None
    risk_params: Optional[dict] = None
    generated_code: Optional[str] = None
    bot_config: Optional[dict] = None
    error_message: Optional[str] = None
    created_at: str
    updated_at: str
    latest_backtest: Optional[BacktestSummary] = None

    model_config = {"from_attributes": True}
