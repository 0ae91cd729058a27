"""
Health check router for liveness and readiness probes.
"""
from fastapi import APIRouter, status

from app.database.connections import ping_mongo, ping_redis
from app.database.databases import ledger_db
from app.models.outbox import OutboxStatus

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
)
async def health_check():
    """
    Basic health check endpoint.
    Returns 200 if the API is running.
    """
    return {"status": "healthy"}


@router.get(
    "/health/ready",
    status_code=status.HTTP_200_OK,
    summary="Readiness check with dependencies",
)
async def readiness_check():
    """
    Readiness check that verifies MongoDB and Redis.

    Also reports how many suggestion regeneration tasks are waiting, so a
    stalled outbox worker shows up here.
    """
    checks = {
        "api": "healthy",
        "mongodb": "unknown",
        "redis": "unknown",
    }
    outbox_backlog = None

    try:
        client = await ping_mongo()
        checks["mongodb"] = "healthy"
        outbox_backlog = await client[ledger_db.DB_NAME][ledger_db.Collections.OUTBOX].count_documents(
            {"status": OutboxStatus.PENDING.value}
        )
    except Exception as e:
        checks["mongodb"] = f"unhealthy: {str(e)}"

    try:
        await ping_redis()
        checks["redis"] = "healthy"
    except Exception as e:
        checks["redis"] = f"unhealthy: {str(e)}"

    all_healthy = all(v == "healthy" for v in checks.values())

    return {
        "status": "healthy" if all_healthy else "degraded",
        "checks": checks,
        "outbox_backlog": outbox_backlog,
    }
