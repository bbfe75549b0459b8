import logging

from fastapi import APIRouter, Depends
from backend.models.schemas import HealthResponse
from backend.services.llm_router import LLMRouter
from backend.dependencies import get_llm_router

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(llm_router: LLMRouter = Depends(get_llm_router)):
    """Report service health. With no usable provider the service is up but
    "degraded": every generation call would fail with NO_PROVIDER."""
    providers = llm_router.available_providers()
    if not providers:
        logger.warning("Health check: no LLM providers available")
    return HealthResponse(
        status="healthy" if providers else "degraded",
        providers=providers,
        primary_provider=llm_router.primary_provider,
    )
