from abc import ABC, abstractmethod
from typing import AsyncIterator
from dataclasses import dataclass, field

from backend.services.providers.errors import ErrorCode, ProviderError

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1024


@dataclass(frozen=True)
class GenerationOptions:
    """Sampling options; unset values fall back to provider defaults."""
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    model: str | None = None  # may be namespaced as "<provider>/<model>"
    stop_sequences: list[str] | None = None
    top_p: float | None = None


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    system_prompt: str = ""
    options: GenerationOptions = field(default_factory=GenerationOptions)

    def __post_init__(self):
        if not self.prompt:
            raise ValueError("prompt must not be empty")


@dataclass
class GenerationResult:
    """Normalized single-shot completion from any provider."""
    content: str
    tokens_used: int
    model: str
    latency_ms: int
    finish_reason: str | None = None

    def __post_init__(self):
        if self.tokens_used < 0:
            raise ValueError("tokens_used must be non-negative")
        if self.latency_ms < 0:
            raise ValueError("latency_ms must be non-negative")


def build_prompt(prompt: str, system_prompt: str = "") -> str:
    """Fold system instructions into a single-turn prompt."""
    if system_prompt:
        return f"{system_prompt}\n\nUser: {prompt}"
    return prompt


class BaseLLMProvider(ABC):
    name: str = ""
    default_model: str = ""

    @abstractmethod
    def is_available(self) -> bool:
        """Local check only; never performs network I/O."""
        ...

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: str = "",
        options: GenerationOptions | None = None,
    ) -> GenerationResult:
        ...

    @abstractmethod
    def generate_stream(
        self,
        prompt: str,
        system_prompt: str = "",
        options: GenerationOptions | None = None,
    ) -> AsyncIterator[str]:
        """Yield text fragments as they arrive. Not restartable."""
        ...

    def resolve_model(self, options: GenerationOptions | None) -> str:
        if options and options.model:
            return options.model
        return self.default_model

    def _not_configured(self) -> ProviderError:
        return ProviderError(
            f"{self.name} client not initialized - missing API key",
            self.name,
            ErrorCode.NOT_CONFIGURED,
        )
