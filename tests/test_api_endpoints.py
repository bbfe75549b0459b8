import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from backend.dependencies import get_llm_router, get_stream_bridge
from backend.main import provider_error_handler
from backend.routers import health, llm
from backend.services.llm_router import LLMRouter
from backend.services.provider_registry import ProviderRegistry
from backend.services.providers.errors import ErrorCode, ProviderError
from backend.services.stream_bridge import StreamBridge


def _create_test_app(router: LLMRouter, bridge: StreamBridge) -> FastAPI:
    """Create a minimal FastAPI app without the full lifespan."""
    app = FastAPI()
    app.include_router(health.router)
    app.include_router(llm.router)
    app.add_exception_handler(ProviderError, provider_error_handler)
    app.dependency_overrides[get_llm_router] = lambda: router
    app.dependency_overrides[get_stream_bridge] = lambda: bridge
    return app


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    # sse-starlette keeps a process-wide exit event bound to the first loop
    import sse_starlette.sse as sse
    app_status = getattr(sse, "AppStatus", None)
    if app_status is not None:
        app_status.should_exit_event = None
    yield
    if app_status is not None:
        app_status.should_exit_event = None


@pytest.fixture
def saved():
    return []


@pytest.fixture
def make_client(saved):
    def _make(*providers):
        async def persist(message):
            saved.append(message)

        router = LLMRouter(ProviderRegistry(list(providers)))
        app = _create_test_app(router, StreamBridge(persist=persist))
        return TestClient(app)
    return _make


def _frames(body: str) -> list[dict]:
    return [
        json.loads(line[len("data:"):].strip())
        for line in body.splitlines()
        if line.startswith("data:")
    ]


class TestHealthEndpoint:
    def test_healthy_with_provider(self, make_client, make_provider):
        data = make_client(make_provider("gemini")).get("/health").json()
        assert data["status"] == "healthy"
        assert data["providers"] == ["gemini"]
        assert data["primary_provider"] == "gemini"

    def test_degraded_without_providers(self, make_client, make_provider):
        response = make_client(make_provider("gemini", available=False)).get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["primary_provider"] is None


class TestProvidersEndpoint:
    def test_lists_available_and_primary(self, make_client, make_provider):
        client = make_client(make_provider("a", available=False), make_provider("b"), make_provider("c"))
        assert client.get("/llm/providers").json() == {"available": ["b", "c"], "primary": "b"}


class TestGenerateEndpoint:
    def test_generate_success(self, make_client, make_provider):
        client = make_client(make_provider("gemini", content="Hello, world!"))
        response = client.post("/llm/generate", json={"prompt": "Hi", "systemPrompt": "Be brief."})
        assert response.status_code == 200
        data = response.json()
        assert data["content"] == "Hello, world!"
        assert data["tokensUsed"] == 4
        assert data["model"] == "gemini-model"
        assert data["finishReason"] == "STOP"

    def test_provider_field_selects_provider(self, make_client, make_provider):
        other = make_provider("other", content="from other")
        client = make_client(make_provider("primary"), other)
        response = client.post("/llm/generate", json={"prompt": "Hi", "provider": "other"})
        assert response.json()["content"] == "from other"
        assert other.generate_calls == 1

    def test_options_reach_provider(self, make_client, make_provider):
        provider = make_provider("gemini")
        make_client(provider).post("/llm/generate", json={
            "prompt": "Hi",
            "temperature": 0.2,
            "maxTokens": 64,
            "topP": 0.5,
            "stopSequences": ["END"],
        })
        options = provider.last_options
        assert options.temperature == 0.2
        assert options.max_tokens == 64
        assert options.top_p == 0.5
        assert options.stop_sequences == ["END"]

    @pytest.mark.parametrize("body", [
        {"prompt": ""},
        {"prompt": "Hi", "temperature": 3.0},
        {"prompt": "Hi", "maxTokens": 0},
        {"prompt": "Hi", "topP": 1.5},
        {"prompt": "x" * 10001},
    ])
    def test_validation(self, make_client, make_provider, body):
        assert make_client(make_provider("gemini")).post("/llm/generate", json=body).status_code == 422

    def test_no_provider_is_503(self, make_client, make_provider):
        response = make_client(make_provider("gemini", available=False)).post(
            "/llm/generate", json={"prompt": "Hi"}
        )
        assert response.status_code == 503
        assert response.json()["code"] == "NO_PROVIDER"
        assert response.json()["retryable"] is False

    def test_invalid_key_is_401(self, make_client, make_provider):
        error = ProviderError("Invalid API key", "gemini", ErrorCode.INVALID_KEY)
        response = make_client(make_provider("gemini", error=error)).post(
            "/llm/generate", json={"prompt": "Hi"}
        )
        assert response.status_code == 401
        assert response.json() == {
            "code": "INVALID_KEY",
            "message": "Invalid API key",
            "provider": "gemini",
            "retryable": False,
        }

    def test_rate_limit_falls_back(self, make_client, make_provider):
        error = ProviderError("Rate limit exceeded", "gemini", ErrorCode.RATE_LIMITED)
        client = make_client(make_provider("gemini", error=error), make_provider("openai", content="backup"))
        response = client.post("/llm/generate", json={"prompt": "Hi"})
        assert response.status_code == 200
        assert response.json()["content"] == "backup"


class TestStreamEndpoint:
    def test_stream_frames(self, make_client, make_provider, saved):
        client = make_client(make_provider("gemini", fragments=["Hola", " mundo"]))
        response = client.post("/llm/stream", json={"prompt": "Hi", "conversationId": "conv-1"})
        assert response.status_code == 200

        frames = _frames(response.text)
        assert [f["type"] for f in frames] == ["start", "token", "token", "done"]
        assert frames[0]["conversationId"] == "conv-1"
        assert [f["content"] for f in frames[1:3]] == ["Hola", " mundo"]
        assert frames[-1]["messageId"] == frames[0]["messageId"]
        assert frames[-1]["tokensUsed"] == 2
        assert frames[-1]["model"] == "gemini-model"
        assert saved[0].content == "Hola mundo"

    def test_stream_generates_conversation_id(self, make_client, make_provider):
        frames = _frames(make_client(make_provider("gemini")).post("/llm/stream", json={"prompt": "Hi"}).text)
        assert frames[0]["conversationId"]

    def test_stream_error_frame(self, make_client, make_provider, saved):
        error = ProviderError("Network error - please try again", "gemini", ErrorCode.NETWORK_ERROR)
        client = make_client(make_provider("gemini", fragments=["partial"], stream_error=error))
        frames = _frames(client.post("/llm/stream", json={"prompt": "Hi"}).text)
        assert [f["type"] for f in frames] == ["start", "token", "error"]
        assert frames[-1]["code"] == "NETWORK_ERROR"
        assert saved == []

    def test_stream_without_provider(self, make_client, make_provider):
        frames = _frames(
            make_client(make_provider("gemini", available=False)).post("/llm/stream", json={"prompt": "Hi"}).text
        )
        assert [f["type"] for f in frames] == ["start", "error"]
        assert frames[-1]["code"] == "NO_PROVIDER"
