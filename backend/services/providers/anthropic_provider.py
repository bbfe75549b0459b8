import logging
import time
from typing import AsyncIterator

import anthropic
from anthropic import AsyncAnthropic

from backend.services.providers.base import (
    BaseLLMProvider,
    GenerationOptions,
    GenerationResult,
)
from backend.services.providers.errors import (
    ErrorCode,
    ProviderError,
    classify_status,
    error_for,
)

logger = logging.getLogger(__name__)

DEFAULT_ANTHROPIC_MODEL = "claude-3-5-haiku-latest"


class AnthropicProvider(BaseLLMProvider):
    name = "anthropic"

    def __init__(self, api_key: str = "", default_model: str | None = None):
        self.default_model = default_model or DEFAULT_ANTHROPIC_MODEL
        self._client: AsyncAnthropic | None = AsyncAnthropic(api_key=api_key) if api_key else None
        if self._client is None:
            logger.warning("Anthropic API key not configured - Anthropic provider unavailable")

    def is_available(self) -> bool:
        return self._client is not None

    def _request_kwargs(self, prompt: str, system_prompt: str, options: GenerationOptions) -> dict:
        kwargs = {
            "model": self.resolve_model(options),
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        # Anthropic takes the system message as a top-level field
        if system_prompt:
            kwargs["system"] = system_prompt
        if options.top_p is not None:
            kwargs["top_p"] = options.top_p
        if options.stop_sequences:
            kwargs["stop_sequences"] = options.stop_sequences
        return kwargs

    async def generate(
        self,
        prompt: str,
        system_prompt: str = "",
        options: GenerationOptions | None = None,
    ) -> GenerationResult:
        if self._client is None:
            raise self._not_configured()
        options = options or GenerationOptions()
        kwargs = self._request_kwargs(prompt, system_prompt, options)
        start = time.monotonic()

        try:
            message = await self._client.messages.create(**kwargs)
        except Exception as e:
            raise self._classify(e) from e

        text = "".join(block.text for block in message.content if block.type == "text")
        return GenerationResult(
            content=text,
            tokens_used=message.usage.input_tokens + message.usage.output_tokens,
            model=message.model or kwargs["model"],
            latency_ms=int((time.monotonic() - start) * 1000),
            finish_reason=(message.stop_reason or "end_turn").upper(),
        )

    async def generate_stream(
        self,
        prompt: str,
        system_prompt: str = "",
        options: GenerationOptions | None = None,
    ) -> AsyncIterator[str]:
        if self._client is None:
            raise self._not_configured()
        options = options or GenerationOptions()

        try:
            async with self._client.messages.stream(
                **self._request_kwargs(prompt, system_prompt, options)
            ) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield text
        except Exception as e:
            raise self._classify(e) from e

    def _classify(self, error: Exception) -> ProviderError:
        if isinstance(error, anthropic.APIConnectionError):
            return error_for(ErrorCode.NETWORK_ERROR, self.name)
        if isinstance(error, anthropic.APIStatusError):
            # 529 is Anthropic's "overloaded" signal
            code = classify_status(error.status_code)
            if code == ErrorCode.API_ERROR:
                logger.error("Anthropic API error (%s): %s", error.status_code, error.message)
            return error_for(code, self.name, error.message)
        logger.error("Unexpected Anthropic error", exc_info=error)
        return ProviderError("An unexpected error occurred", self.name, ErrorCode.UNKNOWN)
