"""Strategy bot ORM model: AI-generated trading bot built from a user strategy."""

from datetime import datetime
from enum import Enum

from sqlalchemy import String, DateTime, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class BotStatus(str, Enum):
    GENERATING = "generating"
    READY = "ready"
    RUNNING = "running"
    PAUSED = "paused"
    ERROR = "error"


class StrategyBot(Base):
    __tablename__ = "strategy_bots"

    id: Mapped[int] = mapped_column(primary_key=True)
    strategy_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(150))
    status: Mapped[str] = mapped_column(String(20), default=BotStatus.GENERATING.value)
    broker: Mapped[str] = mapped_column(String(20), default="paper")
    ai_analysis: Mapped[str | None] = mapped_column(Text, nullable=True)
    indicators: Mapped[list | None] = mapped_column(JSON, nullable=True)
    entry_logic: Mapped[str | None] = mapped_column(Text, nullable=True)
    exit_logic: Mapped[str | None] = mapped_column(Text, nullable=True)
    risk_params: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    generated_code: Mapped[str | None] = mapped_column(Text, nullable=True)
    bot_config: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now
    )

    backtests: Mapped[list["BacktestResult"]] = relationship(  # noqa: F821
        back_populates="bot", order_by="BacktestResult.created_at"
    )
