import logging
import time
from typing import AsyncIterator

import openai
from openai import AsyncOpenAI

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
from backend.services.token_estimator import estimate_tokens

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


class OpenAIProvider(BaseLLMProvider):
    name = "openai"

    def __init__(self, api_key: str = "", default_model: str | None = None):
        self.default_model = default_model or DEFAULT_OPENAI_MODEL
        self._client: AsyncOpenAI | None = AsyncOpenAI(api_key=api_key) if api_key else None
        if self._client is None:
            logger.warning("OpenAI API key not configured - OpenAI provider unavailable")

    def is_available(self) -> bool:
        return self._client is not None

    def _request_kwargs(self, prompt: str, system_prompt: str, options: GenerationOptions) -> dict:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        kwargs = {
            "model": self.resolve_model(options),
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        if options.top_p is not None:
            kwargs["top_p"] = options.top_p
        if options.stop_sequences:
            kwargs["stop"] = options.stop_sequences
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
            response = await self._client.chat.completions.create(**kwargs)
        except Exception as e:
            raise self._classify(e) from e

        choice = response.choices[0] if response.choices else None
        if choice is not None and choice.finish_reason == "content_filter":
            raise error_for(ErrorCode.CONTENT_BLOCKED, self.name)
        text = (choice.message.content if choice else None) or ""
        tokens_used = response.usage.total_tokens if response.usage else estimate_tokens(text)

        return GenerationResult(
            content=text,
            tokens_used=tokens_used,
            model=response.model or kwargs["model"],
            latency_ms=int((time.monotonic() - start) * 1000),
            finish_reason=(choice.finish_reason.upper() if choice and choice.finish_reason else "STOP"),
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
            stream = await self._client.chat.completions.create(
                **self._request_kwargs(prompt, system_prompt, options),
                stream=True,
            )
            async for chunk in stream:
                if not chunk.choices:
                    continue
                if chunk.choices[0].finish_reason == "content_filter":
                    raise error_for(ErrorCode.CONTENT_BLOCKED, self.name)
                if chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except ProviderError:
            raise
        except Exception as e:
            raise self._classify(e) from e

    def _classify(self, error: Exception) -> ProviderError:
        # APITimeoutError subclasses APIConnectionError
        if isinstance(error, openai.APIConnectionError):
            return error_for(ErrorCode.NETWORK_ERROR, self.name)
        if isinstance(error, openai.RateLimitError) and getattr(error, "code", None) == "insufficient_quota":
            return error_for(ErrorCode.QUOTA_EXCEEDED, self.name)
        if isinstance(error, openai.BadRequestError) and getattr(error, "code", None) == "content_filter":
            return error_for(ErrorCode.CONTENT_BLOCKED, self.name)
        if isinstance(error, openai.APIStatusError):
            code = classify_status(error.status_code)
            if code == ErrorCode.API_ERROR:
                logger.error("OpenAI API error (%s): %s", error.status_code, error.message)
            return error_for(code, self.name, error.message)
        logger.error("Unexpected OpenAI error", exc_info=error)
        return ProviderError("An unexpected error occurred", self.name, ErrorCode.UNKNOWN)
