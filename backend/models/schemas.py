from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional

from backend.services.providers.base import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    GenerationOptions,
    GenerationRequest,
    GenerationResult,
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Generation ---
class GenerateRequest(_CamelModel):
    prompt: str = Field(..., min_length=1, max_length=10000)
    system_prompt: str = Field(default="", max_length=5000)
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, ge=1, le=8192)
    model: Optional[str] = None
    stop_sequences: Optional[list[str]] = None
    top_p: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    provider: Optional[str] = None

    def to_generation_request(self) -> GenerationRequest:
        return GenerationRequest(
            prompt=self.prompt,
            system_prompt=self.system_prompt,
            options=GenerationOptions(
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                model=self.model,
                stop_sequences=self.stop_sequences,
                top_p=self.top_p,
            ),
        )


class StreamRequest(GenerateRequest):
    conversation_id: Optional[str] = None


class GenerateResponse(_CamelModel):
    content: str
    tokens_used: int
    model: str
    latency_ms: int
    finish_reason: Optional[str] = None

    @classmethod
    def from_result(cls, result: GenerationResult) -> "GenerateResponse":
        return cls(
            content=result.content,
            tokens_used=result.tokens_used,
            model=result.model,
            latency_ms=result.latency_ms,
            finish_reason=result.finish_reason,
        )


class ProvidersResponse(BaseModel):
    available: list[str]
    primary: Optional[str] = None


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str = "0.1.0"
    providers: list[str] = []
    primary_provider: Optional[str] = None
