"""Chart router: chart prediction (JSON or SSE) and one-shot stock analysis."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from api.config import ConfigurationError
from api.schemas.chart import AnalyzeStockRequest, PredictChartRequest
from api.services.ai_gateway import (
    AIGateway, AIGatewayError, AIPaymentRequiredError, AIRateLimitError, get_ai_gateway,
)
from api.services.chart_service import ChartPredictionService
from api.services.stock_analyzer import EmptyAnalysisError, StockAnalyzer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chart"])

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


@router.post("/predict-chart")
def predict_chart(req: PredictChartRequest, gateway: AIGateway = Depends(get_ai_gateway)):
    """Structured mode answers JSON; any other mode relays the model's SSE stream."""
    service = ChartPredictionService(gateway)
    try:
        if req.mode == "structured":
            return service.analyze(req.history(), req.image_base64, req.context)
        stream = service.stream_chat(req.history(), req.image_base64, req.context)
    except AIRateLimitError:
        return _error("Rate limit exceeded. Please try again later.", 429)
    except (AIGatewayError, ConfigurationError) as e:
        logger.error("predict-chart error: %s", e)
        return _error(str(e), 500)
    except Exception:
        logger.exception("predict-chart error")
        return _error("Unknown error", 500)

    # Runs after the body is sent or the client goes away
    return StreamingResponse(
        stream,
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
        background=BackgroundTask(stream.close),
    )


@router.post("/analyze-stock")
def analyze_stock(req: AnalyzeStockRequest, gateway: AIGateway = Depends(get_ai_gateway)):
    """BUY/SELL/HOLD read-out for one symbol, optionally against an open position."""
    try:
        return StockAnalyzer(gateway).analyze(req.symbol, req.asset_type, req.current_position)
    except ConfigurationError as e:
        logger.error("analyze-stock unavailable: %s", e)
        return _error("AI service not configured", 500)
    except AIRateLimitError:
        return _error("Rate limit exceeded. Please try again in a moment.", 429)
    except AIPaymentRequiredError:
        return _error("AI credits exhausted. Please add credits to continue.", 402)
    except AIGatewayError:
        return _error("Failed to analyze. Please try again.", 500)
    except EmptyAnalysisError as e:
        return _error(str(e), 500)
