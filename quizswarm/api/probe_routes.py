"""
PIN and Probe API Routes

- POST /api/pins/validate - Check a single PIN
- POST /api/probes - Start a probe for the caller
- POST /api/probes/random - Random PIN search, answered when it ends
- GET /api/probes - List probe jobs (optionally only the caller's)
- GET /api/probes/{job_id} - Probe status and recent log
- POST /api/probes/{job_id}/stop - Request a cooperative stop
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..application.services.quiz_bot_service import QuizBotService
from ..core.exceptions import InvalidPinError
from ..core.logger import get_logger
from .dependencies import get_bot_service, get_owner
from .response_envelope import json_ok

pins_router = APIRouter(prefix="/api/pins", tags=["pins"])
router = APIRouter(prefix="/api/probes", tags=["probes"])

logger = get_logger(__name__)


class ValidatePinRequest(BaseModel):
    pin: str = Field(..., min_length=1)


class StartProbeRequest(BaseModel):
    start_value: int = Field(..., ge=0, description="First PIN to try, as an integer")


class RandomSearchRequest(BaseModel):
    max_attempts: Optional[int] = Field(default=None, ge=1)
    start_range: Optional[int] = Field(default=None, ge=0, description="Lowest PIN to draw")
    end_range: Optional[int] = Field(default=None, ge=0, description="Highest PIN to draw")


@pins_router.post("/validate")
async def validate_pin(body: ValidatePinRequest, service: QuizBotService = Depends(get_bot_service)):
    result = await service.validate_pin(body.pin)
    if not result.accepted:
        raise InvalidPinError(result.pin, result.error_code)
    return json_ok({"pin": result.pin, "play_id": result.play_id, "valid": True})


@router.post("")
async def start_probe(body: StartProbeRequest,
                      service: QuizBotService = Depends(get_bot_service),
                      owner: str = Depends(get_owner)):
    job_id = service.start_probe(body.start_value, owner)
    logger.info("probe_routes.started", {"job_id": job_id, "owner": owner})
    return json_ok(service.get_probe_status(job_id), status=201)


@router.post("/random")
async def find_random_pin(body: RandomSearchRequest,
                          service: QuizBotService = Depends(get_bot_service),
                          owner: str = Depends(get_owner)):
    result = await service.find_random_pin(body.max_attempts, body.start_range, body.end_range)
    logger.info("probe_routes.random_search", {
        "owner": owner,
        "success": result["success"],
        "attempts": result["attempts"]
    })
    return json_ok(result)


@router.get("")
async def list_probes(mine: bool = Query(default=False),
                      service: QuizBotService = Depends(get_bot_service),
                      owner: str = Depends(get_owner)):
    jobs = service.list_probe_jobs(owner if mine else None)
    return json_ok({"jobs": jobs, "count": len(jobs)})


@router.get("/{job_id}")
async def probe_status(job_id: str, service: QuizBotService = Depends(get_bot_service)):
    return json_ok(service.get_probe_status(job_id))


@router.post("/{job_id}/stop")
async def stop_probe(job_id: str, service: QuizBotService = Depends(get_bot_service)):
    return json_ok(service.stop_probe(job_id))
