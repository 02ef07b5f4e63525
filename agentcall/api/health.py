"""Health check endpoint."""
import logging
from fastapi import APIRouter, Request

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    logger.debug(
        f"[HEALTH] Health check requested - Client: {request.client.host if request.client else 'unknown'}"
    )
    manager = getattr(request.app.state, "call_manager", None)
    active_calls = len(await manager.active_call_ids()) if manager else 0
    return {"status": "healthy", "active_calls": active_calls}
