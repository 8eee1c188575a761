"""
FastAPI application entry point.

Run with: uvicorn src.main:app --reload
"""

from contextlib import asynccontextmanager
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from src.core.config import settings
from src.core.logging import configure_logging, get_logger, bind_context, clear_context
from src.persistence.database import init_database
from src.api.dependencies import get_interview_registry
from src.api.routes import health, interviews
from src.api.exception_handlers import setup_exception_handlers
from src.llm.client import FALLBACK_DEFAULTS, GENERATION_DEFAULTS

# Configure logging before anything else
configure_logging()
log = get_logger(__name__)


# =============================================================================
# Correlation ID Middleware
# =============================================================================


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique correlation ID to each request.

    - Generates a UUID4 request_id for each incoming request
    - Binds it to structlog context for all logs in that request
    - Adds X-Request-ID header to responses
    """

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        bind_context(request_id=request_id)

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()


def validate_api_keys() -> list[str]:
    """
    Check that the configured LLM providers have server-side keys.

    Sessions may bring their own key, so missing server keys are reported
    as warnings instead of failing startup.

    Returns:
        List of warning messages (empty if all keys are present)
    """
    warnings = []

    generation_provider = (
        settings.llm_generation_provider or GENERATION_DEFAULTS["provider"]
    )
    fallback_provider = settings.llm_fallback_provider or FALLBACK_DEFAULTS["provider"]

    providers = {
        "openai": ("openai_api_key", "OPENAI_API_KEY"),
        "deepseek": ("deepseek_api_key", "DEEPSEEK_API_KEY"),
    }

    for client_type, provider in [
        ("generation", generation_provider),
        ("fallback", fallback_provider),
    ]:
        if provider not in providers:
            warnings.append(
                f"Unknown LLM provider '{provider}' for {client_type}. "
                f"Supported providers: {', '.join(providers.keys())}"
            )
            continue

        attr_name, env_var = providers[provider]
        if not getattr(settings, attr_name, None):
            warnings.append(
                f"{env_var} is not set for {provider} (used by {client_type} client); "
                f"sessions must provide their own API key."
            )

    for message in warnings:
        log.warning("api_key_check", message=message)

    if not warnings:
        log.info(
            "api_keys_validated",
            generation=generation_provider,
            fallback=fallback_provider,
        )

    return warnings


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    log.info(
        "application_starting",
        debug=settings.debug,
        database_path=str(settings.database_path),
        persistence=settings.enable_persistence,
    )

    validate_api_keys()

    if settings.enable_persistence:
        await init_database()

    log.info("application_started")

    yield

    log.info("application_shutting_down")
    await get_interview_registry().close_all()


# Create FastAPI application
app = FastAPI(
    title="Career Interview Orchestrator",
    description="Voice-driven career interview that collects resume data",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware for development
if settings.debug:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(CorrelationIDMiddleware)

setup_exception_handlers(app)

app.include_router(health.router, tags=["system"])
app.include_router(interviews.router)


@app.get("/")
async def root():
    """Root endpoint with basic info."""
    return {"name": "Career Interview Orchestrator", "version": "0.1.0", "status": "running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
