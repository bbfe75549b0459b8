import logging
import time
from typing import AsyncIterator

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from backend.services.providers.base import (
    BaseLLMProvider,
    GenerationOptions,
    GenerationResult,
    build_prompt,
)
from backend.services.providers.errors import (
    ErrorCode,
    ProviderError,
    classify_status,
    error_for,
)
from backend.services.token_estimator import estimate_tokens

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"

_SAFETY_CATEGORIES = (
    types.HarmCategory.HARM_CATEGORY_HARASSMENT,
    types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
    types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
    types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
)


class GeminiProvider(BaseLLMProvider):
    name = "gemini"

    def __init__(self, api_key: str = "", default_model: str | None = None):
        self.default_model = default_model or DEFAULT_GEMINI_MODEL
        self._client: genai.Client | None = None
        if api_key:
            self._client = genai.Client(api_key=api_key)
            logger.info("Gemini provider initialized with model: %s", self.default_model)
        else:
            logger.warning("Google API key not configured - Gemini provider unavailable")

    def is_available(self) -> bool:
        return self._client is not None

    def _build_config(self, options: GenerationOptions) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            temperature=options.temperature,
            max_output_tokens=options.max_tokens,
            top_p=options.top_p,
            stop_sequences=options.stop_sequences,
            safety_settings=[
                types.SafetySetting(
                    category=category,
                    threshold=types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
                )
                for category in _SAFETY_CATEGORIES
            ],
        )

    async def generate(
        self,
        prompt: str,
        system_prompt: str = "",
        options: GenerationOptions | None = None,
    ) -> GenerationResult:
        if self._client is None:
            raise self._not_configured()
        options = options or GenerationOptions()
        model = self.resolve_model(options)
        start = time.monotonic()

        try:
            response = await self._client.aio.models.generate_content(
                model=model,
                contents=build_prompt(prompt, system_prompt),
                config=self._build_config(options),
            )
        except Exception as e:
            raise self._classify(e, "generate") from e

        _check_blocked(response)
        text = response.text or ""
        latency_ms = int((time.monotonic() - start) * 1000)

        tokens_used = 0
        usage = getattr(response, "usage_metadata", None)
        if usage:
            tokens_used = (usage.prompt_token_count or 0) + (usage.candidates_token_count or 0)
        if not tokens_used:
            tokens_used = estimate_tokens(text)

        finish_reason = "STOP"
        if response.candidates and response.candidates[0].finish_reason:
            reason = response.candidates[0].finish_reason
            finish_reason = getattr(reason, "value", None) or str(reason)

        return GenerationResult(
            content=text,
            tokens_used=tokens_used,
            model=model,
            latency_ms=latency_ms,
            finish_reason=finish_reason,
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
            stream = await self._client.aio.models.generate_content_stream(
                model=self.resolve_model(options),
                contents=build_prompt(prompt, system_prompt),
                config=self._build_config(options),
            )
            async for chunk in stream:
                _check_blocked(chunk)
                if chunk.text:
                    yield chunk.text
        except ProviderError:
            raise
        except Exception as e:
            raise self._classify(e, "generate_stream") from e

    def _classify(self, error: Exception, operation: str) -> ProviderError:
        if isinstance(error, genai_errors.APIError):
            code = classify_status(error.code)
            if error.code == 400 and "API_KEY_INVALID" in str(error.details):
                code = ErrorCode.INVALID_KEY
            if code == ErrorCode.API_ERROR:
                logger.error("Gemini error during %s: %s", operation, error.message)
            return error_for(code, self.name, error.message or "")
        if isinstance(error, (httpx.TimeoutException, httpx.TransportError, TimeoutError)):
            return error_for(ErrorCode.NETWORK_ERROR, self.name)
        logger.error("Unexpected Gemini error during %s", operation, exc_info=error)
        return ProviderError("An unexpected error occurred", self.name, ErrorCode.UNKNOWN)


def _check_blocked(response) -> None:
    feedback = getattr(response, "prompt_feedback", None)
    if feedback and getattr(feedback, "block_reason", None):
        raise error_for(ErrorCode.CONTENT_BLOCKED, GeminiProvider.name)
    candidates = getattr(response, "candidates", None) or []
    if candidates and candidates[0].finish_reason == types.FinishReason.SAFETY:
        raise error_for(ErrorCode.CONTENT_BLOCKED, GeminiProvider.name)
