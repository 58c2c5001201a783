"""
Health check endpoint.
Verifies object store connectivity.
"""
from fastapi import APIRouter, Depends, HTTPException
from starlette.concurrency import run_in_threadpool

from quickdrop.api.dependencies import get_object_store
from quickdrop.storage import ObjectStore

router = APIRouter()


@router.get("")
async def health_check(store: ObjectStore = Depends(get_object_store)):
    """
    Health check endpoint.
    Returns status of the object store.
    """
    health_status = {
        "status": "healthy",
        "storage": "unknown"
    }

    try:
        reachable = await run_in_threadpool(store.check_health)
        health_status["storage"] = "connected" if reachable else "unreachable"
    except Exception as e:
        reachable = False
        health_status["storage"] = f"error: {str(e)}"

    if not reachable:
        health_status["status"] = "unhealthy"
        raise HTTPException(status_code=503, detail=health_status)

    return health_status
