import logging
from dataclasses import replace
from typing import AsyncIterator

from backend.services.providers.base import (
    BaseLLMProvider,
    GenerationOptions,
    GenerationRequest,
    GenerationResult,
)
from backend.services.providers.errors import ErrorCode, ProviderError
from backend.services.provider_registry import ProviderRegistry

logger = logging.getLogger(__name__)

ROUTER_NAME = "llm-router"


class LLMRouter:
    """Routes generation requests to a provider with one bounded fallback.

    A retryable ProviderError triggers exactly one attempt on a different
    available provider; whatever that attempt produces is final.
    """

    def __init__(self, registry: ProviderRegistry):
        self._registry = registry.finalize()

    @property
    def primary_provider(self) -> str | None:
        primary = self._registry.primary
        return primary.name if primary else None

    def available_providers(self) -> list[str]:
        return self._registry.available_providers()

    def select(self, preferred: str | None = None) -> BaseLLMProvider:
        if preferred:
            provider = self._registry.get(preferred)
            if provider is not None and provider.is_available():
                return provider

        primary = self._registry.primary
        if primary is not None and primary.is_available():
            return primary

        available = self._registry.available()
        if available:
            return available[0]

        raise ProviderError("No LLM providers available", ROUTER_NAME, ErrorCode.NO_PROVIDER)

    def split_model(self, options: GenerationOptions) -> tuple[str | None, str | None]:
        """Split ``"<provider>/<model>"`` when the prefix names a registered provider.

        Other slashed ids (``models/gemini-1.5-pro``) are vendor model names
        and pass through whole.
        """
        model = options.model
        if model and "/" in model:
            prefix, rest = model.split("/", 1)
            if self._registry.get(prefix) is not None:
                return prefix, rest or None
        return None, model

    def route(self, request: GenerationRequest, preferred: str | None = None) -> BaseLLMProvider:
        namespace, _ = self.split_model(request.options)
        return self.select(preferred or namespace)

    def options_for(self, provider: BaseLLMProvider, options: GenerationOptions) -> GenerationOptions:
        """Strip a provider namespace; drop the model if it names another provider."""
        namespace, model = self.split_model(options)
        if namespace is None:
            return options
        if namespace == provider.name:
            return replace(options, model=model)
        return replace(options, model=None)

    async def generate(
        self,
        request: GenerationRequest,
        preferred_provider: str | None = None,
    ) -> GenerationResult:
        provider = self.route(request, preferred_provider)
        logger.info("Routing generate to %s", provider.name)
        try:
            return await self._invoke(provider, request)
        except ProviderError as e:
            fallback = self.fallback_for(provider, e)
            if fallback is None:
                raise
            return await self._invoke(fallback, request)

    async def _invoke(self, provider: BaseLLMProvider, request: GenerationRequest) -> GenerationResult:
        options = self.options_for(provider, request.options)
        return await provider.generate(request.prompt, request.system_prompt, options)

    def generate_stream(
        self,
        request: GenerationRequest,
        preferred_provider: str | None = None,
    ) -> "RoutedStream":
        """Return a lazy fragment stream; provider selection runs on first pull."""
        return RoutedStream(self, request, preferred_provider)

    def fallback_for(self, failed: BaseLLMProvider, error: ProviderError) -> BaseLLMProvider | None:
        if not error.retryable:
            logger.warning("%s failed with %s (not retryable)", failed.name, error.code.value)
            return None
        fallback = self._registry.find_fallback(exclude=failed.name)
        if fallback is None:
            logger.warning("%s failed with %s; no fallback provider available", failed.name, error.code.value)
            return None
        logger.warning(
            "%s failed with %s; retrying with fallback provider: %s",
            failed.name, error.code.value, fallback.name,
        )
        return fallback


class RoutedStream:
    """Async iterator over fragments from whichever provider serves the request.

    ``provider_name`` and ``model`` are set once a provider has been chosen,
    and updated if the stream falls back before its first fragment.
    """

    def __init__(self, router: LLMRouter, request: GenerationRequest, preferred: str | None):
        self._router = router
        self._request = request
        self._preferred = preferred
        self.provider_name: str | None = None
        self.model: str | None = None
        self._gen = self._run()

    def __aiter__(self) -> "RoutedStream":
        return self

    async def __anext__(self) -> str:
        return await self._gen.__anext__()

    async def aclose(self) -> None:
        await self._gen.aclose()

    def _use(self, provider: BaseLLMProvider) -> AsyncIterator[str]:
        options = self._router.options_for(provider, self._request.options)
        self.provider_name = provider.name
        self.model = provider.resolve_model(options)
        return provider.generate_stream(self._request.prompt, self._request.system_prompt, options)

    async def _run(self) -> AsyncIterator[str]:
        provider = self._router.route(self._request, self._preferred)
        logger.info("Routing stream to %s", provider.name)
        source = self._use(provider)
        produced = False
        try:
            async for fragment in source:
                produced = True
                yield fragment
            return
        except ProviderError as e:
            # Fragments already handed out can't be recalled
            if produced:
                raise
            fallback = self._router.fallback_for(provider, e)
            if fallback is None:
                raise
        finally:
            await _aclose(source)

        source = self._use(fallback)
        try:
            async for fragment in source:
                yield fragment
        finally:
            await _aclose(source)


async def _aclose(source: AsyncIterator[str]) -> None:
    aclose = getattr(source, "aclose", None)
    if aclose is not None:
        await aclose()

