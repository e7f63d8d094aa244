"""
FastAPI Dependencies for API Routes

Separated from unified_server.py to avoid circular imports.
"""

from fastapi import HTTPException, Request, status

from ..application.services.quiz_bot_service import QuizBotService


def get_bot_service(request: Request) -> QuizBotService:
    service = getattr(request.app.state, "bot_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Bot service not initialized",
        )
    return service


def get_owner(request: Request) -> str:
    """
    Caller identity used to scope probes and session listings: the first
    X-Forwarded-For hop when behind a proxy, else the socket peer.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else "unknown"
