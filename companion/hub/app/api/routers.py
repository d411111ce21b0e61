import logging
from typing import Dict

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
from starlette.status import HTTP_503_SERVICE_UNAVAILABLE

from ..db.schemas import SystemInfoDto

# Create router
router = APIRouter(tags=["presence"])

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    status: str
    database: bool
    sessions: int


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Report whether the database answers and how many users are bound."""
    state = request.app.state
    database_ok = await state.repository.check_connection_health()
    if not database_ok:
        raise HTTPException(
            status_code=HTTP_503_SERVICE_UNAVAILABLE,
            detail="Presence database unavailable",
        )
    return HealthResponse(
        status="ok", database=True, sessions=len(state.registry)
    )


@router.get("/system-info", response_model=SystemInfoDto)
async def system_info(request: Request) -> SystemInfoDto:
    return await request.app.state.hub.get_system_info()


@router.get("/metrics")
async def metrics(request: Request) -> Dict[str, int]:
    return request.app.state.metrics.snapshot()
