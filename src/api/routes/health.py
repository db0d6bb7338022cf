"""
Health check endpoints.

Provides system health information for monitoring.
"""

from fastapi import APIRouter, HTTPException
import structlog

from src.api.dependencies import RegistryDep
from src.core.config import settings

log = structlog.get_logger(__name__)

router = APIRouter()

VERSION = "0.1.0"


def _llm_health() -> dict:
    configured = bool(
        settings.gemini_api_key or settings.openai_api_key or settings.deepseek_api_key
    )
    return {"status": "healthy" if configured else "unconfigured"}


@router.get("/health")
async def health_check(registry: RegistryDep):
    """
    Health check endpoint.

    Returns:
        System health status including LLM configuration and session count.
    """
    llm_health = _llm_health()
    overall_status = "healthy" if llm_health["status"] == "healthy" else "unhealthy"

    return {
        "status": overall_status,
        "version": VERSION,
        "debug": settings.debug,
        "components": {
            "llm": llm_health,
            "sessions": {"active": len(registry.list())},
        },
    }


@router.get("/health/live")
async def liveness():
    """
    Kubernetes-style liveness probe.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness():
    """
    Kubernetes-style readiness probe.

    Returns 200 if an LLM provider is configured.
    """
    if _llm_health()["status"] != "healthy":
        raise HTTPException(status_code=503, detail="No LLM provider configured")

    return {"status": "ready"}
