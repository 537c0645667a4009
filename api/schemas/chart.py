"""Chart prediction and stock analysis Pydantic schemas."""

from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel


_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChartContext(BaseModel):
    """Optional market context shown to the model in chat mode."""
    symbol: Optional[str] = None
    asset_type: Optional[str] = None
    current_price: Optional[str] = None
    price_change: Optional[str] = None
    chart_timeframe: Optional[str] = None

    model_config = _CAMEL

    @field_validator("current_price", "price_change", mode="before")
    @classmethod
    def numbers_to_text(cls, v):
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class PredictChartRequest(ChartContext):
    messages: list[ChatMessage] = Field(min_length=1)
    image_base64: Optional[str] = None
    mode: str = "chat"  # "structured" -> JSON read-out, anything else -> SSE stream

    @property
    def context(self) -> ChartContext:
        return ChartContext.model_validate(self.model_dump(include=set(ChartContext.model_fields)))

    def history(self) -> list[dict]:
        return [m.model_dump() for m in self.messages]


class CurrentPosition(BaseModel):
    type: str  # "long" / "short"
    entry_price: float
    quantity: Optional[float] = None

    model_config = _CAMEL


class AnalyzeStockRequest(BaseModel):
    symbol: str = Field(min_length=1)
    asset_type: Optional[str] = None
    current_position: Optional[CurrentPosition] = None

    model_config = _CAMEL
