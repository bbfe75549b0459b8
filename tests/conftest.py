import asyncio
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from backend.database import set_db_path, init_db
from backend.services.providers.base import BaseLLMProvider, GenerationResult
from backend.services.token_estimator import estimate_tokens


class FakeProvider(BaseLLMProvider):
    """In-process provider with scripted outcomes and call accounting."""

    def __init__(
        self,
        name: str,
        available: bool = True,
        content: str = "ok",
        error: Exception | None = None,
        fragments: list[str] | None = None,
        stream_error: Exception | None = None,
        infinite: bool = False,
        default_model: str | None = None,
    ):
        self.name = name
        self.default_model = default_model or f"{name}-model"
        self.available = available
        self.content = content
        self.error = error
        self.fragments = fragments if fragments is not None else ["o", "k"]
        self.stream_error = stream_error
        self.infinite = infinite
        self.generate_calls = 0
        self.stream_calls = 0
        self.pulled = 0
        self.closed = False
        self.last_options = None

    def is_available(self) -> bool:
        return self.available

    async def generate(self, prompt, system_prompt="", options=None):
        self.generate_calls += 1
        self.last_options = options
        if self.error is not None:
            raise self.error
        return GenerationResult(
            content=self.content,
            tokens_used=estimate_tokens(self.content),
            model=self.resolve_model(options),
            latency_ms=1,
            finish_reason="STOP",
        )

    async def generate_stream(self, prompt, system_prompt="", options=None):
        self.stream_calls += 1
        self.last_options = options
        try:
            if self.infinite:
                while True:
                    await asyncio.sleep(0)
                    self.pulled += 1
                    yield f"t{self.pulled} "
            for fragment in self.fragments:
                await asyncio.sleep(0)
                self.pulled += 1
                yield fragment
            if self.stream_error is not None:
                raise self.stream_error
        finally:
            self.closed = True


@pytest.fixture
def make_provider():
    return FakeProvider


@pytest.fixture
def temp_db_path():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    yield path
    Path(path).unlink(missing_ok=True)


@pytest.fixture
def test_settings(temp_db_path):
    from backend.config import Settings
    return Settings(
        google_api_key="fake-google-key",
        openai_api_key="sk-test-fake",
        anthropic_api_key="sk-ant-test-fake",
        database_url=temp_db_path,
    )


@pytest_asyncio.fixture
async def initialized_db(temp_db_path):
    set_db_path(temp_db_path)
    await init_db()
    yield temp_db_path
