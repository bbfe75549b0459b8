import logging
import uuid
from contextlib import aclosing

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from backend.models.schemas import (
    GenerateRequest,
    GenerateResponse,
    ProvidersResponse,
    StreamRequest,
)
from backend.services.llm_router import LLMRouter
from backend.services.stream_bridge import StreamBridge
from backend.services.transport import to_sse
from backend.dependencies import get_llm_router, get_stream_bridge

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/llm", tags=["llm"])


@router.get("/providers", response_model=ProvidersResponse)
async def list_providers(llm_router: LLMRouter = Depends(get_llm_router)):
    return ProvidersResponse(
        available=llm_router.available_providers(),
        primary=llm_router.primary_provider,
    )


@router.post("/generate", response_model=GenerateResponse)
async def generate(
    request: GenerateRequest,
    llm_router: LLMRouter = Depends(get_llm_router),
):
    """Single-shot generation. ProviderError is rendered by the app handler."""
    result = await llm_router.generate(request.to_generation_request(), request.provider)
    return GenerateResponse.from_result(result)


@router.post("/stream")
async def stream(
    request: StreamRequest,
    llm_router: LLMRouter = Depends(get_llm_router),
    bridge: StreamBridge = Depends(get_stream_bridge),
):
    """Stream generation as SSE frames: start, token*, then done or error."""
    conversation_id = request.conversation_id or str(uuid.uuid4())
    source = llm_router.generate_stream(request.to_generation_request(), request.provider)

    async def event_generator():
        async with aclosing(bridge.run(source, conversation_id)) as events:
            async for event in events:
                yield to_sse(event)

    return EventSourceResponse(event_generator())
