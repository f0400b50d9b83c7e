from fastapi import APIRouter
from datetime import datetime

from eventrelay.utils.serialization import to_iso

router = APIRouter(tags=["Health"])


@router.get("/health", summary="Health Check", description="Public liveness probe.")
async def health():
    return {"status": "UP", "timestamp": to_iso(datetime.utcnow())}
