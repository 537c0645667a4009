"""AI gateway client: OpenAI-compatible chat completions, one-shot or streamed.

The gateway is any endpoint speaking the OpenAI chat-completions protocol.
Callers get plain text back (``complete``) or the raw server-sent-event bytes
(``stream``); openai SDK exceptions are translated into ``AIGatewayError``
subclasses so nothing above this module depends on the SDK.
"""

import logging
from contextlib import ExitStack
from typing import Iterator, Optional

import openai
from openai import OpenAI

from api.config import AIGatewayConfig, ConfigurationError, get_settings

logger = logging.getLogger(__name__)

_ERROR_BODY_LIMIT = 500


class AIGatewayError(Exception):
    """Upstream gateway failure (non-2xx or transport error)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AIRateLimitError(AIGatewayError):
    """Gateway answered 429: callers should back off and retry later."""


class AIPaymentRequiredError(AIGatewayError):
    """Gateway answered 402: workspace credits are exhausted."""


class GatewayStream:
    """Raw SSE bytes from an open upstream response.

    ``close()`` releases the upstream connection even if iteration never
    started, e.g. when the client disconnects before the first chunk.
    """

    def __init__(self, response, stack: ExitStack):
        self._response = response
        self._stack = stack
        self.closed = False

    def __iter__(self) -> Iterator[bytes]:
        try:
            yield from self._response.iter_bytes()
        finally:
            self.close()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._stack.close()


class AIGateway:
    """Thin wrapper around the OpenAI SDK pointed at the configured gateway."""

    def __init__(self, config: AIGatewayConfig, client: Optional[OpenAI] = None):
        self.config = config
        self._client = client

    def require_configured(self) -> None:
        if not self.config.api_key and self._client is None:
            raise ConfigurationError("AI gateway API key is not configured")

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self.require_configured()
            self._client = OpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                max_retries=self.config.max_retries,
            )
        return self._client

    def complete(
        self,
        messages: list[dict],
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        operation: str = "chat completion",
    ) -> str:
        """Send one non-streaming request; return the first choice's text ("" if none)."""
        kwargs: dict = {
            "model": model or self.config.model,
            "messages": messages,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        logger.info("Calling AI gateway for %s (model=%s)", operation, kwargs["model"])
        try:
            response = self.client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            raise self._translate(e, operation) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def stream(
        self,
        messages: list[dict],
        *,
        model: Optional[str] = None,
        operation: str = "chat stream",
    ) -> GatewayStream:
        """Open a streaming request and return an iterable over the raw SSE bytes.

        The HTTP request is sent before this method returns, so status errors
        raise here rather than mid-stream. The upstream response is closed
        once iteration ends or ``close()`` is called, whichever comes first.
        """
        stack = ExitStack()
        logger.info("Opening AI gateway stream for %s", operation)
        try:
            response = stack.enter_context(
                self.client.chat.completions.with_streaming_response.create(
                    model=model or self.config.model,
                    messages=messages,
                    stream=True,
                )
            )
        except openai.APIError as e:
            stack.close()
            raise self._translate(e, operation) from e

        return GatewayStream(response, stack)

    @staticmethod
    def _translate(err: openai.APIError, operation: str) -> AIGatewayError:
        status = getattr(err, "status_code", None)
        body = ""
        if isinstance(err, openai.APIStatusError):
            try:
                body = err.response.text[:_ERROR_BODY_LIMIT]
            except Exception:
                body = str(err.body)[:_ERROR_BODY_LIMIT]
        logger.error("AI gateway error during %s: status=%s body=%s", operation, status, body)

        if status == 429:
            return AIRateLimitError("Rate limit exceeded", status_code=429)
        if status == 402:
            return AIPaymentRequiredError("AI credits exhausted", status_code=402)
        if status is None:
            return AIGatewayError(f"AI gateway unreachable: {err.__class__.__name__}")
        return AIGatewayError(f"AI gateway error: {status}", status_code=status)


def get_ai_gateway() -> AIGateway:
    """FastAPI dependency: gateway bound to the process settings."""
    return AIGateway(get_settings().ai_gateway)
