import logging
from functools import lru_cache

from backend.config import Settings, get_settings
from backend.services.providers.base import BaseLLMProvider
from backend.services.providers.gemini_provider import GeminiProvider
from backend.services.providers.openai_provider import OpenAIProvider
from backend.services.providers.anthropic_provider import AnthropicProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Ordered, fixed set of providers built once at startup.

    Registration order decides the primary: the first provider that reports
    available when ``finalize()`` runs. The registry is read-only afterwards,
    so concurrent requests share it without locking.
    """

    def __init__(self, providers: list[BaseLLMProvider]):
        self._providers: list[BaseLLMProvider] = []
        seen: set[str] = set()
        for provider in providers:
            if not provider.name:
                raise ValueError(f"Provider {type(provider).__name__} has no name")
            if provider.name in seen:
                raise ValueError(f"Duplicate provider name: {provider.name}")
            seen.add(provider.name)
            self._providers.append(provider)
        self._primary: BaseLLMProvider | None = None
        self._finalized = False

    def finalize(self) -> "ProviderRegistry":
        if self._finalized:
            return self
        self._primary = next((p for p in self._providers if p.is_available()), None)
        self._finalized = True
        if self._primary:
            logger.info("LLM registry initialized with primary provider: %s", self._primary.name)
        else:
            logger.error("No LLM providers available")
        return self

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def names(self) -> list[str]:
        return [p.name for p in self._providers]

    @property
    def primary(self) -> BaseLLMProvider | None:
        return self._primary

    def get(self, name: str) -> BaseLLMProvider | None:
        return next((p for p in self._providers if p.name == name), None)

    def available(self) -> list[BaseLLMProvider]:
        return [p for p in self._providers if p.is_available()]

    def available_providers(self) -> list[str]:
        return [p.name for p in self.available()]

    def is_available(self) -> bool:
        return any(p.is_available() for p in self._providers)

    def find_fallback(self, exclude: str) -> BaseLLMProvider | None:
        return next(
            (p for p in self._providers if p.name != exclude and p.is_available()),
            None,
        )


def build_registry(settings: Settings) -> ProviderRegistry:
    providers = [
        GeminiProvider(settings.api_key_for("gemini"), settings.default_model_for("gemini")),
        OpenAIProvider(settings.api_key_for("openai"), settings.default_model_for("openai")),
        AnthropicProvider(settings.api_key_for("anthropic"), settings.default_model_for("anthropic")),
    ]
    return ProviderRegistry(providers).finalize()


@lru_cache
def get_registry() -> ProviderRegistry:
    return build_registry(get_settings())
