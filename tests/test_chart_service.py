"""Tests for chart prediction: structured JSON and streamed chat."""

import json

import pytest

from api.schemas.chart import ChartContext
from api.services.ai_gateway import AIRateLimitError
from api.services.chart_service import (
    DEFAULT_IMAGE_PROMPT,
    PARSE_ERROR_MESSAGE,
    ChartPredictionService,
    build_chat_prompt,
    build_messages,
)


HISTORY = [
    {"role": "user", "content": "What do you see on this chart?"},
    {"role": "assistant", "content": "A rising wedge."},
    {"role": "user", "content": "Should I short it?"},
]


class TestBuildMessages:
    def test_system_prompt_first(self):
        msgs = build_messages(HISTORY, None, "SYSTEM")
        assert msgs[0] == {"role": "system", "content": "SYSTEM"}
        assert msgs[1:] == HISTORY

    def test_image_attached_to_last_user_message(self):
        msgs = build_messages(HISTORY, "iVBORw0KGgo=", "SYSTEM")

        assert msgs[1]["content"] == "What do you see on this chart?"
        last = msgs[3]["content"]
        assert last[0] == {"type": "text", "text": "Should I short it?"}
        assert last[1]["image_url"]["url"] == "data:image/png;base64,iVBORw0KGgo="

    def test_image_without_user_message_gets_one(self, caplog):
        history = [{"role": "assistant", "content": "Send me a chart."}]

        msgs = build_messages(history, "iVBORw0KGgo=", "SYSTEM")

        assert msgs[1] == {"role": "assistant", "content": "Send me a chart."}
        assert msgs[2]["role"] == "user"
        assert msgs[2]["content"][0] == {"type": "text", "text": DEFAULT_IMAGE_PROMPT}
        assert msgs[2]["content"][1]["image_url"]["url"] == "data:image/png;base64,iVBORw0KGgo="
        assert "without a user message" in caplog.text

    def test_data_uri_kept(self):
        uri = "data:image/jpeg;base64,/9j/4AAQ"
        msgs = build_messages(HISTORY[:1], uri, "SYSTEM")
        assert msgs[1]["content"][1]["image_url"]["url"] == uri

    def test_chat_prompt_context(self):
        prompt = build_chat_prompt(ChartContext(symbol="TSLA", current_price="242.10"))
        assert "- **Symbol**: TSLA" in prompt
        assert "- **Current Price**: 242.10" in prompt
        assert "- **Chart Timeframe**: 1D" in prompt

    def test_chat_prompt_defaults(self):
        prompt = build_chat_prompt()
        assert "- **Symbol**: See chart" in prompt
        assert "- **Price Change**: Check chart" in prompt


class TestAnalyze:
    def test_parsed_analysis(self, gateway):
        reading = {"recommendation": {"action": "SELL", "confidence": 72}, "summary": "Wedge breakdown."}
        gateway.replies = [f"```json\n{json.dumps(reading)}\n```"]

        result = ChartPredictionService(gateway).analyze(HISTORY, "abc")

        assert result == reading
        assert isinstance(gateway.calls[0]["messages"][-1]["content"], list)

    def test_degraded_object_on_bad_json(self, gateway):
        gateway.replies = ["The chart shows a rising wedge; consider shorting below 240."]

        result = ChartPredictionService(gateway).analyze(HISTORY)

        assert result == {
            "summary": "The chart shows a rising wedge; consider shorting below 240.",
            "error": PARSE_ERROR_MESSAGE,
            "parseError": True,
        }

    def test_nan_reply_degrades(self, gateway):
        """A reply with NaN would not serialise: it is treated as unparseable."""
        reply = '{"recommendation": {"action": "BUY", "confidence": NaN}}'
        gateway.replies = [reply]

        result = ChartPredictionService(gateway).analyze(HISTORY)

        assert result == {"summary": reply, "error": PARSE_ERROR_MESSAGE, "parseError": True}
        json.dumps(result, allow_nan=False)

    def test_rate_limit_propagates(self, gateway):
        gateway.error = AIRateLimitError("Rate limit exceeded", status_code=429)
        with pytest.raises(AIRateLimitError):
            ChartPredictionService(gateway).analyze(HISTORY)


class TestStreamChat:
    def test_bytes_forwarded_unchanged(self, gateway):
        gateway.chunks = [b'data: {"choices":[{"delta":{"content":"Hi"}}]}\n\n', b"data: [DONE]\n\n"]

        stream = ChartPredictionService(gateway).stream_chat(
            HISTORY, context=ChartContext(symbol="BTCUSDT"),
        )

        assert b"".join(stream) == b'data: {"choices":[{"delta":{"content":"Hi"}}]}\n\ndata: [DONE]\n\n'
        system = gateway.calls[0]["messages"][0]["content"]
        assert "- **Symbol**: BTCUSDT" in system

    def test_error_raised_before_streaming(self, gateway):
        gateway.error = AIRateLimitError("Rate limit exceeded", status_code=429)
        with pytest.raises(AIRateLimitError):
            ChartPredictionService(gateway).stream_chat(HISTORY)
