"""
Health Check Routes
===================

Endpoints for health monitoring and service status.

Includes:
- Basic health check
- Liveness and readiness probes
- Service information with rotation statistics
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from loneless.api.dependencies import get_rotation
from loneless.config import Settings, get_settings
from loneless.llm.models import utc_now
from loneless.llm.rotation import RotationPolicy
from loneless.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "",
    summary="Basic health check",
    response_description="Service health status",
)
async def health_check() -> dict[str, str]:
    """Simple status message indicating the service is running."""
    return {"status": "healthy", "timestamp": utc_now().isoformat()}


@router.get(
    "/ready",
    summary="Readiness probe",
    response_description="Service readiness status",
)
async def readiness_check(
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """
    Readiness probe for container orchestration.

    The service is ready once at least one API key and one model are
    configured.

    Raises:
        HTTPException: 503 if the service is not ready.
    """
    checks = {
        "api_key_configured": bool(settings.provider.get_all_api_keys()),
        "models_configured": bool(settings.provider.get_all_models()),
    }

    if not all(checks.values()):
        logger.warning("Service not ready", checks=checks)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "not_ready",
                "checks": checks,
            },
        )

    return {
        "status": "ready",
        "checks": checks,
        "timestamp": utc_now().isoformat(),
    }


@router.get(
    "/live",
    summary="Liveness probe",
    response_description="Service liveness status",
)
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}


@router.get(
    "/info",
    summary="Service information",
    response_description="Detailed service information",
)
async def service_info(
    settings: Settings = Depends(get_settings),
    rotation: RotationPolicy = Depends(get_rotation),
) -> dict[str, Any]:
    """
    Get detailed service information.

    Returns:
        Version, environment, provider configuration and per-key/per-model
        rotation statistics (keys masked).
    """
    from loneless import __version__

    return {
        "service": "loneless-backend",
        "version": __version__,
        "environment": settings.server.environment,
        "config": {
            "provider": settings.provider.get_provider_kind().value,
            "models": settings.provider.get_all_models(),
            "streaming": settings.chat.use_streaming,
            "voice_responses": settings.chat.enable_voice_responses,
            "debug_mode": settings.server.debug,
        },
        "rotation": rotation.get_stats(),
        "timestamp": utc_now().isoformat(),
    }
