"""
Status and health check endpoints.

WHAT: Health monitoring for the database and the realtime gateway
WHY: Quick diagnostics for ops and load balancers
HOW: FastAPI endpoint calling DB ping and reading gateway registry stats
"""

from fastapi import APIRouter

from ....core.database import ping_database
from ....core.config import settings
from ....realtime.gateway import gateway

router = APIRouter()


@router.get("/health")
async def health_check():
    """
    Overall application health check.

    Returns:
        JSON with overall status, version, and per-component status
    """
    db_status = ping_database()

    return {
        "status": "healthy" if db_status["available"] else "degraded",
        "version": settings.APP_VERSION,
        "app_name": settings.APP_NAME,
        "components": {
            "database": db_status,
            "realtime": gateway.stats()
        }
    }
