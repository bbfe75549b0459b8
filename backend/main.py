import logging
from pathlib import Path
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.config import get_settings
from backend.database import init_db, set_db_path
from backend.routers import health, llm
from backend.services.provider_registry import get_registry
from backend.services.providers.errors import ProviderError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)

    # Ensure data directory exists
    db_path = Path(settings.database_url)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    set_db_path(settings.database_url)
    await init_db()

    # Build and finalize the provider registry once, before serving requests
    registry = get_registry()
    logger.info(
        "Generation service started (providers available: %s)",
        ", ".join(registry.available_providers()) or "none",
    )

    yield

    logger.info("Generation service shutting down")


async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    app = FastAPI(
        title="LLM Generation Service",
        description="Provider-routed text generation with fallback and streaming",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(health.router)
    app.include_router(llm.router)
    app.add_exception_handler(ProviderError, provider_error_handler)

    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    extra_origins = get_settings().allowed_origins
    if extra_origins:
        origins.extend(o.strip() for o in extra_origins.split(",") if o.strip())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return app


app = create_app()


@app.get("/")
async def read_root():
    return {
        "status": "ok",
        "message": "Generation service is running",
        "docs": "/docs",
    }
