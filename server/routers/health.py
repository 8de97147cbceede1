"""
Health check endpoints for production deployment.

Provides:
- /health - Basic liveness check (is the app running?)
- /ready - Readiness check (is the table accepting players?)
- /metrics - Table metrics for monitoring
"""

import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Service references (set during app initialization)
_table = None


def set_health_dependencies(table=None):
    """Set dependencies for health checks."""
    global _table
    _table = table


@router.get("/health")
async def health_check():
    """
    Basic liveness check - is the app running?

    This endpoint should always return 200 if the process is alive.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ready")
async def readiness_check():
    """
    Readiness check - can the table take a new player?

    Returns 503 when the table is not configured or every seat is taken.
    """
    checks = {}
    accepting = False

    if _table is not None:
        free = len(_table.available_seats())
        accepting = free > 0
        checks["table"] = {
            "status": "ok" if accepting else "full",
            "free_seats": free,
        }
    else:
        checks["table"] = {"status": "not_configured"}

    status_code = 200 if accepting else 503
    return Response(
        content=json.dumps({
            "status": "ok" if accepting else "unavailable",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }),
        status_code=status_code,
        media_type="application/json",
    )


@router.get("/metrics")
async def metrics():
    """
    Expose table metrics for monitoring.

    Returns operational metrics useful for dashboards and alerting.
    """
    metrics_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if _table is not None:
        try:
            metrics_data.update(_table.snapshot())
            metrics_data["classifier_seats"] = [
                seat for seat in range(_table.settings.num_seats)
                if _table.predictor.is_attached(seat)
            ]
            metrics_data["distributions"] = {
                client.seat_index: client.last_distribution
                for client in _table.clients.values()
                if client.last_distribution is not None
            }
        except Exception as e:
            logger.warning(f"Failed to collect table metrics: {e}")

    return metrics_data
