"""Health check endpoints for load balancers and monitoring."""

import os
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy import text

from cemtrack.deps import get_ledger
from cemtrack.services.ledger import Ledger
from cemtrack.utils.locks import RedisLedgerLock

router = APIRouter(tags=["health"])


@router.get("/", response_class=PlainTextResponse, include_in_schema=False)
async def root():
    return "Cement API is online. Use POST requests for actions."


@router.get("/health")
async def health_check():
    """Lightweight health check for load balancer (no store/Redis check)."""
    return {
        "status": "ok",
        "service": "cemtrack",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": os.getenv("ENVIRONMENT", "development"),
    }


@router.get("/health/ready")
async def readiness_check(ledger: Ledger = Depends(get_ledger)):
    """Readiness check: ledger store reachable (and Redis, for the redis lock).

    Returns 200 only if all dependencies are healthy.
    """
    checks = {
        "service": "ok",
        "store": "unknown",
    }
    overall_healthy = True

    try:
        async with ledger.store.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["store"] = "ok"
    except Exception as e:
        checks["store"] = f"error: {str(e)[:100]}"
        overall_healthy = False

    if isinstance(ledger.lock, RedisLedgerLock):
        try:
            await ledger.lock.client.ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {str(e)[:100]}"
            overall_healthy = False

    return JSONResponse(
        status_code=status.HTTP_200_OK if overall_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if overall_healthy else "unhealthy",
            "service": "cemtrack",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
