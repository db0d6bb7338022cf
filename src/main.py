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
from src.api.dependencies import get_session_registry
from src.api.routes import health, research
from src.api.exception_handlers import setup_exception_handlers
from src.llm.client import DEFAULTS_MAP

# Configure logging before anything else
configure_logging()
log = get_logger(__name__)


# =============================================================================
# Correlation ID Middleware
# =============================================================================


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique correlation ID to each request.

    - Reuses an incoming X-Request-ID header or generates a UUID4
    - Binds it to structlog context for all logs in that request
    - Adds X-Request-ID header to responses
    """

    async def dispatch(self, request: Request, call_next):
        """Process request and add correlation ID."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        bind_context(request_id=request_id)

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()


# =============================================================================
# API key validation
# =============================================================================

PROVIDER_KEYS = {
    "gemini": ("gemini_api_key", "GEMINI_API_KEY"),
    "openai": ("openai_api_key", "OPENAI_API_KEY"),
    "deepseek": ("deepseek_api_key", "DEEPSEEK_API_KEY"),
}


def validate_api_keys() -> list[str]:
    """
    Validate that required API keys are configured.

    Checks API keys for all configured LLM providers. If a provider is
    configured (either via default or environment override), its API key
    must be present.

    Returns:
        Empty list when all keys are present

    Raises:
        RuntimeError: If any required API key is missing
    """
    errors = []
    in_use = {}

    for client_type, defaults in DEFAULTS_MAP.items():
        provider = getattr(settings, f"llm_{client_type}_provider", None) or defaults["provider"]
        in_use[client_type] = provider

        if provider not in PROVIDER_KEYS:
            errors.append(
                f"Unknown LLM provider '{provider}' for {client_type}. "
                f"Supported providers: {', '.join(PROVIDER_KEYS.keys())}"
            )
            continue

        attr_name, env_var = PROVIDER_KEYS[provider]
        if not getattr(settings, attr_name, None):
            errors.append(
                f"LLM API key missing: {env_var} is required for {provider} "
                f"(used by {client_type} client). Set it in .env file."
            )

    if errors:
        error_msg = "API Key Validation Failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise RuntimeError(error_msg)

    log.info("api_keys_validated", **in_use)
    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    log.info("application_starting", debug=settings.debug)

    # Fail fast if LLM providers are misconfigured
    validate_api_keys()

    log.info("application_started")

    yield

    log.info("application_shutting_down")
    await get_session_registry().close()


# Create FastAPI application
app = FastAPI(
    title="Synthetic Consumer Research",
    description="Persona generation, discussion guides and AI-moderated interviews",
    version=health.VERSION,
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
app.include_router(research.router)


@app.get("/")
async def root():
    """Root endpoint with basic info."""
    return {"name": "Synthetic Consumer Research", "version": health.VERSION, "status": "running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
