"""
Admin / observability endpoints
===============================

POST /api/v1/admin/sweep   -- run one expiry + reminder sweep now (X-Admin-Key)
GET  /api/v1/admin/health  -- simple health check
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_engine, require_admin
from src.api.middleware import limiter
from src.api.schemas import HealthResponse, SweepResponse
from src.services.engine import Engine
from src.workers.sweeper import sweep_once

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/sweep",
    response_model=SweepResponse,
    summary="Expire overdue pending bookings and send due reminders",
    dependencies=[Depends(require_admin)],
)
@limiter.limit("10/minute")
async def run_sweep(
    request: Request,
    engine: Engine = Depends(get_engine),
):
    result = await sweep_once(engine)
    return SweepResponse(expired=result.expired, reminded=result.reminded)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
