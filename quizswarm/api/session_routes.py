"""
Session API Routes
==================
REST endpoints for joining games and driving individual hub sessions.

Endpoints:
- POST /api/sessions - Validate PIN and join one player
- POST /api/sessions/bulk - Join several bots under one PIN
- POST /api/sessions/bulk-disconnect - Disconnect several sessions
- GET /api/sessions - List sessions (optionally the caller's own / one game)
- GET /api/sessions/game/{game_id} - Players of one game
- GET /api/sessions/{session_id} - Session snapshot
- POST /api/sessions/{session_id}/auto-answer - Toggle auto-answer
- POST /api/sessions/{session_id}/answer - Answer the pending question
- POST /api/sessions/{session_id}/disconnect - Close the session
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..application.services.quiz_bot_service import QuizBotService
from ..core.logger import get_logger
from ..domain.models.hub_session import SessionRole
from .dependencies import get_bot_service, get_owner
from .response_envelope import json_ok

router = APIRouter(prefix="/api/sessions", tags=["sessions"])

logger = get_logger(__name__)


# ========================================
# Request Models
# ========================================

class JoinRequest(BaseModel):
    pin: str = Field(..., min_length=1, description="Game PIN")
    display_name: str = Field(..., min_length=1, max_length=64)
    role: SessionRole = Field(default=SessionRole.PRIMARY)
    auto_answer: bool = Field(default=True)


class BulkJoinRequest(BaseModel):
    pin: str = Field(..., min_length=1)
    display_names: List[str] = Field(..., min_length=1, description="One bot per name")
    auto_answer: bool = Field(default=True)


class BulkDisconnectRequest(BaseModel):
    session_ids: List[str] = Field(..., min_length=1)


class AutoAnswerRequest(BaseModel):
    enabled: bool


class AnswerRequest(BaseModel):
    answer_index: int = Field(..., ge=0)


# ========================================
# Endpoints
# ========================================

@router.post("")
async def join_session(body: JoinRequest,
                       service: QuizBotService = Depends(get_bot_service),
                       owner: str = Depends(get_owner)):
    session = await service.join_session(
        body.pin, body.display_name, role=body.role, owner=owner, auto_answer=body.auto_answer
    )
    return json_ok(session.to_dict(), status=201)


@router.post("/bulk")
async def bulk_join(body: BulkJoinRequest,
                    service: QuizBotService = Depends(get_bot_service),
                    owner: str = Depends(get_owner)):
    limit = service.settings.api.max_bulk_join
    if len(body.display_names) > limit:
        raise ValueError(f"At most {limit} bots per request")

    result = await service.bulk_join(body.pin, body.display_names, owner=owner, auto_answer=body.auto_answer)
    logger.info("session_routes.bulk_join", {
        "owner": owner,
        "joined": len(result["joined"]),
        "failed": len(result["errors"])
    })
    return json_ok(result)


@router.post("/bulk-disconnect")
async def bulk_disconnect(body: BulkDisconnectRequest,
                          service: QuizBotService = Depends(get_bot_service)):
    return json_ok(await service.bulk_disconnect(body.session_ids))


@router.get("")
async def list_sessions(game_id: Optional[str] = Query(default=None),
                        mine: bool = Query(default=False, description="Only the caller's sessions"),
                        service: QuizBotService = Depends(get_bot_service),
                        owner: str = Depends(get_owner)):
    sessions = service.list_sessions(game_id=game_id, owner=owner if mine else None)
    return json_ok({"sessions": sessions, "count": len(sessions)})


@router.get("/game/{game_id}")
async def list_game_sessions(game_id: str, service: QuizBotService = Depends(get_bot_service)):
    sessions = service.list_sessions(game_id=game_id)
    return json_ok({
        "game_id": game_id,
        "total": len(sessions),
        "connected": sum(1 for s in sessions if s["connected"]),
        "sessions": sessions,
    })


@router.get("/{session_id}")
async def get_session(session_id: str, service: QuizBotService = Depends(get_bot_service)):
    return json_ok(service.get_session(session_id))


@router.post("/{session_id}/auto-answer")
async def set_auto_answer(session_id: str, body: AutoAnswerRequest,
                          service: QuizBotService = Depends(get_bot_service)):
    return json_ok(service.set_auto_answer(session_id, body.enabled))


@router.post("/{session_id}/answer")
async def submit_answer(session_id: str, body: AnswerRequest,
                        service: QuizBotService = Depends(get_bot_service)):
    outcome = await service.submit_answer(session_id, body.answer_index)
    return json_ok(outcome.to_dict())


@router.post("/{session_id}/disconnect")
async def disconnect(session_id: str, service: QuizBotService = Depends(get_bot_service)):
    return json_ok(await service.disconnect(session_id))
