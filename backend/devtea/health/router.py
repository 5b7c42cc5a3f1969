"""Health and status summary.

Endpoints:
    GET /api/health - Liveness plus a snapshot of the in-memory store
"""
import logging
import os
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from devtea import __version__
from devtea.chat.service import ChatService, get_chat_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])

_STARTED_AT = time.monotonic()

# Optional integrations; reported for visibility, they do not affect status.
OPTIONAL_ENV_VARS = {
    "hasGoogleClientId": "GOOGLE_CLIENT_ID",
    "hasGoogleClientSecret": "GOOGLE_CLIENT_SECRET",
    "hasAllowedOrigins": "ALLOWED_ORIGINS",
}


@router.get("/health")
async def health(chat: ChatService = Depends(get_chat_service)) -> JSONResponse:
    """Report service health.

    Returns:
        200 with ``status: healthy`` when the store answers, 503 otherwise.
    """
    started = time.perf_counter()

    try:
        stats = chat.store.stats()
        store_check = {"status": "pass", "details": stats}
    except Exception as e:
        logger.error(f"Health check could not read store: {e}")
        store_check = {"status": "fail", "details": str(e)}

    env_details = {key: bool(os.environ.get(var)) for key, var in OPTIONAL_ENV_VARS.items()}
    healthy = store_check["status"] == "pass"

    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _STARTED_AT, 3),
        "environment": os.environ.get("DEVTEA_ENV", "development"),
        "checks": {
            "environment": {
                "status": "pass" if all(env_details.values()) else "fail",
                "details": env_details,
            },
            "store": store_check,
        },
        "version": __version__,
        "responseTime": f"{(time.perf_counter() - started) * 1000:.1f}ms",
    }
    return JSONResponse(body, status_code=200 if healthy else 503)
