"""
Health check and status endpoints
"""

from fastapi import APIRouter

from call_orchestrator.core.config import settings
from call_orchestrator.core.logging import get_logger
from call_orchestrator.models.call import utcnow
from call_orchestrator.services.call_manager import get_call_manager
from call_orchestrator.services.redis_service import redis_healthy

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint
    """
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "environment": settings.environment
    }


@router.get("/ready")
async def readiness_check():
    """
    Readiness check - verifies the session store is reachable
    """
    manager = get_call_manager()
    adapter = manager.repositories.adapter

    checks = {
        "database": adapter.is_connected(),
        "platform_twilio": bool(settings.twilio_account_sid and settings.twilio_auth_token),
        "elevenlabs_phone_number": bool(settings.elevenlabs_agent_phone_number_id),
    }
    redis_ok = await redis_healthy()
    if redis_ok is not None:
        checks["redis"] = redis_ok

    return {
        "status": "ready" if checks["database"] and checks.get("redis", True) else "degraded",
        "timestamp": utcnow().isoformat(),
        "checks": checks,
        "database_type": settings.database_type
    }
